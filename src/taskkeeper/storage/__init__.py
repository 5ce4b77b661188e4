"""
Persistence backends.

Components:
- records.py: statistics/snapshot types and the record <-> wire field mapping
- local_backend.py: SQLite local cache
- remote_backend.py: REST API client (httpx)
"""
