from .store import InventoryStore, StoreError, StoreErrorKind, classify_store_error

__all__ = [
    "InventoryStore",
    "StoreError",
    "StoreErrorKind",
    "classify_store_error",
]
