from enum import Enum
from typing import Any, Literal
from pydantic import BaseModel, Field


class RequestStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class POBypassReason(str, Enum):
    VENDOR_LIMITATIONS = "vendor_limitations"
    TIME_SENSITIVITY = "time_sensitivity"
    OTHER = "other"


ApprovalAction = Literal["approved", "rejected"]


CATEGORIES = [
    "Office Supplies",
    "Software Subscription",
    "Professional Services",
    "Marketing Materials",
    "Equipment Maintenance",
    "Training & Education",
    "Catering & Events",
    "Technology Hardware",
    "Travel - Air",
    "Travel - Rail",
    "Gift Cards",
    "Other",
]


class PurchaseFields(BaseModel):
    """Fields shared by the request form and the persisted record"""
    cardholder_name: str = ""
    p_card_name: str = ""
    expense_date: str = ""
    vendor_name: str = ""
    vendor_location: str = ""
    purchase_amount: float = Field(0.0, ge=0)
    currency: str = "USD"
    tax_amount: float = Field(0.0, ge=0)
    shipping_amount: float = Field(0.0, ge=0)
    business_purpose: str = ""
    detailed_description: str = ""
    po_bypass_reason: str | None = None
    po_bypass_explanation: str | None = None
    category: str = ""
    is_software_subscription: bool = False
    it_license_confirmed: bool = False
    is_preferred_vendor: bool = False


class PurchaseRequestDraft(PurchaseFields):
    """Form fields collected by the multi-step request form"""

    @property
    def total_amount(self) -> float:
        # Plain float addition, no rounding
        return self.purchase_amount + self.tax_amount + self.shipping_amount


class PurchaseRequest(PurchaseFields):
    """Persisted purchase request record"""
    id: str
    requester_id: str
    total_amount: float
    status: RequestStatus = RequestStatus.DRAFT
    employee_signature_url: str | None = None
    employee_signed_at: str | None = None
    rejection_reason: str | None = None
    created_at: str
    updated_at: str


class ApprovalSignature(BaseModel):
    id: str
    request_id: str
    approver_id: str | None = None
    approver_name: str
    approver_title: str
    signature_url: str | None = None
    action: ApprovalAction
    comments: str | None = None
    signed_at: str


class Receipt(BaseModel):
    id: str
    request_id: str
    file_name: str
    file_type: str | None = None
    uploaded_at: str
    ai_verification_status: Literal["pending", "verified", "mismatch", "inconclusive"] = "pending"
    ai_confidence_score: float | None = None
    ai_verified_at: str | None = None


class ExtractedItem(BaseModel):
    description: str
    amount: float


class ReceiptAnalysis(BaseModel):
    receipt_id: str | None = None
    request_id: str | None = None
    extracted_vendor: str | None = None
    extracted_amount: float | None = None
    extracted_date: str | None = None
    extracted_items: list[ExtractedItem] = Field(default_factory=list)
    vendor_match: bool = False
    amount_match: bool = False
    date_match: bool = False
    vendor_reason: str
    amount_reason: str
    date_reason: str
    expected_vendor: str
    expected_amount: float
    expected_date: str
    confidence_score: float = 0.0
    recommendation: Literal["approve", "review", "reject"] = "review"
    analysis_notes: str
    raw_extraction: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
