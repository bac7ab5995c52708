"""Utility modules for supertx."""

from supertx.utils.locks import LockTimeoutError, clear_companion_locks, companion_lock

__all__ = ["LockTimeoutError", "clear_companion_locks", "companion_lock"]
