# src/taskkeeper/core/errors.py

"""
Error taxonomy shared by stores, backends and the sync coordinator.

- ValidationError: bad input; surfaced verbatim, never retried, never a fallback trigger.
- NotFoundError: referenced id is absent.
- ConnectivityError: remote backend unreachable (or answered with a non-2xx status);
  the only error that makes the SyncCoordinator fall back to the local cache.
- ConflictError: reserved for multi-writer support (nothing produces it today
  except a 409 from the remote API).
- StorageError: the local cache itself failed (SQLite error).
"""

from __future__ import annotations


class TaskkeeperError(Exception):
    """Base class for all errors raised by taskkeeper."""


class ValidationError(TaskkeeperError):
    pass


class NotFoundError(TaskkeeperError):
    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


class ConnectivityError(TaskkeeperError):
    pass


class ConflictError(TaskkeeperError):
    pass


class StorageError(TaskkeeperError):
    pass
