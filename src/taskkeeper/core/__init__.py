"""
Core building blocks shared by every subsystem.

Components:
- errors.py: error taxonomy
- ports.py: PersistenceBackend protocol
- state.py: AppState (per-session context)
- clock.py / validation.py: timestamp helpers and input coercion
"""
