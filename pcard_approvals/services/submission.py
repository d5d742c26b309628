"""
Multi-step purchase request submission.

The request form has five steps. Each step is gated on the fields it
collects, re-using the policy checklist where a rule applies. Submission
re-checks every step, enforces the monthly P-Card hard stop, and persists
the request with its initial status: small purchases are self-approved,
everything above the no-approval threshold waits for approvers.
"""

import uuid
from datetime import datetime, UTC
from enum import IntEnum
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ..models.checklist import ChecklistItem, ChecklistItemId
from ..models.purchase_request import PurchaseRequest, PurchaseRequestDraft, RequestStatus
from .approval_tiers import ApprovalTierTable, get_approval_tiers
from .storage.base import PurchaseRequestStoreBase
from .validation import ValidationInput, ValidationResult, validate_purchase_request


class SubmissionError(Exception):
    """Raised when a request cannot be submitted"""

    def __init__(self, message: str, step: Optional[int] = None):
        super().__init__(message)
        self.step = step


class RequestStep(IntEnum):
    CARDHOLDER_INFO = 1
    PURCHASE_DETAILS = 2
    JUSTIFICATION = 3
    DOCUMENTATION = 4
    REVIEW_AND_SIGN = 5


STEP_TITLES = {
    RequestStep.CARDHOLDER_INFO: "Cardholder Info",
    RequestStep.PURCHASE_DETAILS: "Purchase Details",
    RequestStep.JUSTIFICATION: "Justification",
    RequestStep.DOCUMENTATION: "Documentation",
    RequestStep.REVIEW_AND_SIGN: "Review & Sign",
}


class PCardUsage(BaseModel):
    current_usage: float
    monthly_limit: float
    remaining: float
    utilization_percent: float
    hard_stop_enabled: bool
    is_limit_reached: bool
    month: str
    pending_amount: float = 0.0
    would_exceed_limit: bool = False
    over_limit_amount: float = 0.0


def validation_input_from_draft(draft: PurchaseRequestDraft | PurchaseRequest) -> ValidationInput:
    return ValidationInput(
        total_amount=draft.total_amount,
        category=draft.category,
        is_software_subscription=draft.is_software_subscription,
        it_license_confirmed=draft.it_license_confirmed,
        is_preferred_vendor=draft.is_preferred_vendor,
        po_bypass_reason=draft.po_bypass_reason or None,
        po_bypass_explanation=draft.po_bypass_explanation or None,
    )


def validate_draft(draft: PurchaseRequestDraft, tiers: ApprovalTierTable = None) -> ValidationResult:
    return validate_purchase_request(validation_input_from_draft(draft), tiers)


def can_proceed(
    step: int,
    draft: PurchaseRequestDraft,
    checklist: list[ChecklistItem],
    signature: Optional[str] = None,
    tiers: ApprovalTierTable = None,
) -> bool:
    """
    Whether the form may advance past a step.

    Args:
        step: Current step (1-5)
        draft: Form contents
        checklist: Checklist from the latest validation of the draft
        signature: Employee signature image reference (step 5)
        tiers: Approval tier table (for the no-approval threshold)
    """
    tiers = tiers or get_approval_tiers()

    if step == RequestStep.CARDHOLDER_INFO:
        return bool(draft.cardholder_name and draft.p_card_name and draft.expense_date)

    if step == RequestStep.PURCHASE_DETAILS:
        prohibited = any(
            item.id == ChecklistItemId.NOT_PROHIBITED and item.status == "fail"
            for item in checklist
        )
        return bool(
            draft.vendor_name
            and draft.purchase_amount > 0
            and draft.category
            and not prohibited
        )

    if step == RequestStep.JUSTIFICATION:
        return bool(
            draft.business_purpose
            and draft.detailed_description
            and (draft.total_amount <= tiers.no_approval_threshold or draft.po_bypass_reason)
        )

    if step == RequestStep.DOCUMENTATION:
        return True

    if step == RequestStep.REVIEW_AND_SIGN:
        return signature is not None

    return False


def initial_status(total_amount: float, tiers: ApprovalTierTable = None) -> RequestStatus:
    """Self-approve at or under the no-approval threshold, otherwise wait for approvers."""
    tiers = tiers or get_approval_tiers()
    if total_amount <= tiers.no_approval_threshold:
        return RequestStatus.APPROVED
    return RequestStatus.PENDING


def get_monthly_usage(
    store: PurchaseRequestStoreBase,
    requester_id: str,
    monthly_limit: float = None,
    hard_stop_enabled: bool = None,
    now: datetime = None,
    amount: float = 0.0,
) -> PCardUsage:
    """
    P-Card spend for the requester in the current calendar month.

    Rejected requests do not count against the limit. When `amount` is given,
    the result also says whether a purchase of that size would take the
    requester over the limit and by how much. Going over is reported only;
    the hard stop applies once the limit is already reached.
    """
    from ..core.config import settings

    monthly_limit = settings.pcard_monthly_limit if monthly_limit is None else monthly_limit
    hard_stop_enabled = settings.pcard_hard_stop_enabled if hard_stop_enabled is None else hard_stop_enabled
    now = now or datetime.now(UTC)
    month = now.strftime("%Y-%m")

    current_usage = sum(
        r.total_amount
        for r in store.list_requests(requester_id=requester_id)
        if r.status != RequestStatus.REJECTED and r.created_at[:7] == month
    )
    remaining = max(0.0, monthly_limit - current_usage)
    utilization = (current_usage / monthly_limit * 100) if monthly_limit > 0 else 100.0

    return PCardUsage(
        current_usage=current_usage,
        monthly_limit=monthly_limit,
        remaining=remaining,
        utilization_percent=round(utilization, 1),
        hard_stop_enabled=hard_stop_enabled,
        is_limit_reached=current_usage >= monthly_limit,
        month=month,
        pending_amount=amount,
        would_exceed_limit=current_usage + amount > monthly_limit,
        over_limit_amount=round(max(0.0, current_usage + amount - monthly_limit), 2),
    )


def submit_purchase_request(
    store: PurchaseRequestStoreBase,
    draft: PurchaseRequestDraft,
    signature_url: Optional[str],
    requester_id: str,
    tiers: ApprovalTierTable = None,
) -> PurchaseRequest:
    """
    Persist a completed request form.

    Raises:
        SubmissionError: a step is incomplete, policy blocks the request,
                         or the monthly hard stop is in effect
    """
    tiers = tiers or get_approval_tiers()

    usage = get_monthly_usage(store, requester_id, amount=draft.total_amount)
    if usage.is_limit_reached and usage.hard_stop_enabled:
        raise SubmissionError(
            f"Monthly P-Card limit of ${usage.monthly_limit:,.2f} reached for {usage.month}"
        )

    result = validate_draft(draft, tiers)
    for step in RequestStep:
        if not can_proceed(step, draft, result.checklist, signature_url, tiers):
            raise SubmissionError(f"Step {int(step)} ({STEP_TITLES[step]}) is incomplete", step=int(step))

    if not result.is_valid:
        failing = [item.id.value for item in result.checklist if item.status == "fail" and item.required]
        raise SubmissionError("Request violates P-Card policy: " + ", ".join(failing))

    now = datetime.now(UTC).isoformat()
    total = draft.total_amount
    status = initial_status(total, tiers)

    request = PurchaseRequest(
        **draft.model_dump(),
        id=str(uuid.uuid4()),
        requester_id=requester_id,
        total_amount=total,
        status=status,
        employee_signature_url=signature_url,
        employee_signed_at=now,
        created_at=now,
        updated_at=now,
    )
    store.create_request(request)

    logger.info(
        "Purchase request submitted",
        request_id=request.id,
        requester_id=requester_id,
        vendor=request.vendor_name,
        total_amount=total,
        status=status.value,
        approvers=[a.name for a in result.required_approvers],
    )

    if usage.would_exceed_limit:
        logger.warning(
            "Request takes requester over monthly P-Card limit",
            request_id=request.id,
            current_usage=usage.current_usage,
            monthly_limit=usage.monthly_limit,
            over_limit_amount=usage.over_limit_amount,
        )

    return request
