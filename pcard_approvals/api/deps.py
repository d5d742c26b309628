from ..services.approval_tiers import ApprovalTierTable, get_approval_tiers
from ..services.storage import PurchaseRequestStoreBase, create_store

# Global store (override with app.dependency_overrides in tests)
_store: PurchaseRequestStoreBase | None = None


def get_store() -> PurchaseRequestStoreBase:
    global _store
    if _store is None:
        _store = create_store()
    return _store


def get_tiers() -> ApprovalTierTable:
    return get_approval_tiers()
