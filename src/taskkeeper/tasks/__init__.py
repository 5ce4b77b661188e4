"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskDraft, TaskPatch, TaskFilter)
- recurrence.py: pure recurrence/expiry rules (materialize, catch-up, sweep)
- task_store.py: session task list on top of a PersistenceBackend
- task_scheduler.py: periodic sweep with a non-reentrancy guard
- task_api.py: small high-level helpers used by the rest of the app
"""
