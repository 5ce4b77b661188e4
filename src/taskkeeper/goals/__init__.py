"""
Goal subsystem.

Components:
- goal_models.py: data structures (Goal, GoalDraft, GoalPatch)
- goal_store.py: session goal list, progress derived from tasks
- goal_api.py: status helpers and display text
"""
