from .commit import commit_updates, insert_new_items, retry_failed_updates
from .reconciliation import reconcile
from .session import ImportSession, SessionError

__all__ = [
    "ImportSession",
    "SessionError",
    "commit_updates",
    "insert_new_items",
    "reconcile",
    "retry_failed_updates",
]
