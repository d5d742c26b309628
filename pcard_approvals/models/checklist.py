from enum import Enum
from typing import Literal
from pydantic import BaseModel


class ChecklistItemId(str, Enum):
    """Closed set of P-Card policy rules shown on the request checklist"""
    AMOUNT_UNDER_500 = "amount_under_500"
    PO_RULED_OUT = "po_ruled_out"
    NOT_SPLIT_TRANSACTION = "not_split_transaction"
    NOT_PROHIBITED = "not_prohibited"
    SOFTWARE_LICENSE_CHECK = "software_license_check"
    APPROVAL_501_1499 = "approval_501_1499"
    APPROVAL_1500_PLUS = "approval_1500_plus"
    PREFERRED_VENDOR = "preferred_vendor"


ChecklistStatus = Literal["pass", "fail", "warning", "pending"]


class ChecklistItem(BaseModel):
    """One policy rule evaluation. Recomputed on every validation, never stored."""
    id: ChecklistItemId
    question: str
    status: ChecklistStatus
    message: str | None = None
    required: bool
