from .base import DuplicateSignatureError, PurchaseRequestStoreBase
from .memory import InMemoryPurchaseRequestStore
from .sqlite import SQLitePurchaseRequestStore


def create_store(backend: str = None, db_path: str = None) -> PurchaseRequestStoreBase:
    """
    Build the configured store.

    Args:
        backend: "memory" or "sqlite" (defaults to STORAGE_BACKEND)
        db_path: SQLite file (defaults to SQLITE_DB_PATH)
    """
    from ...core.config import settings

    backend = (backend or settings.storage_backend).lower()
    if backend == "sqlite":
        return SQLitePurchaseRequestStore(db_path or settings.sqlite_db_path)
    if backend == "memory":
        return InMemoryPurchaseRequestStore()
    raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    "DuplicateSignatureError",
    "PurchaseRequestStoreBase",
    "InMemoryPurchaseRequestStore",
    "SQLitePurchaseRequestStore",
    "create_store",
]
