"""
taskkeeper: personal task and goal tracker.

Tasks and goals live either behind a remote REST API or in a local SQLite
cache with the same data model; the sync coordinator picks one per session
and falls back to the cache when the API becomes unreachable.
"""

__version__ = "0.1.0"
