"""
Approver sign-off on pending purchase requests.

Each approver in a request's required chain may act once. Every action
writes an ApprovalSignature. A rejection rejects the request immediately
and records the approver's comments as the rejection reason; the request
is approved once the whole chain has approved.
"""

import uuid
from datetime import datetime, UTC
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ..models.purchase_request import (
    ApprovalAction,
    ApprovalSignature,
    PurchaseRequest,
    RequestStatus,
)
from .approval_tiers import ApprovalTierTable, RequiredApprover, get_approval_tiers
from .storage.base import DuplicateSignatureError, PurchaseRequestStoreBase
from .submission import validation_input_from_draft
from .validation import ValidationResult, validate_purchase_request


class RequestNotFoundError(Exception):
    """Raised when a purchase request does not exist"""


class ApprovalError(Exception):
    """Raised when an approval action is not allowed"""


class RequestReview(BaseModel):
    """Read-only view an approver sees before acting"""
    request: PurchaseRequest
    approval_tier: str
    validation: ValidationResult
    signatures: list[ApprovalSignature]


def get_request_or_raise(store: PurchaseRequestStoreBase, request_id: str) -> PurchaseRequest:
    request = store.get_request(request_id)
    if request is None:
        raise RequestNotFoundError(f"Purchase request {request_id} not found")
    return request


def has_already_actioned(store: PurchaseRequestStoreBase, request_id: str, approver_name: str) -> bool:
    """True if the named approver has already signed this request."""
    return store.find_signature(request_id, approver_name) is not None


def chain_status(required: list[RequiredApprover], signatures: list[ApprovalSignature]) -> RequestStatus:
    """
    Status implied by the signatures collected so far.

    Any rejection rejects the request; it is approved once every required
    approver has approved, and pending until then.
    """
    if any(s.action == "rejected" for s in signatures):
        return RequestStatus.REJECTED

    approved_by = {s.approver_name for s in signatures if s.action == "approved"}
    if all(a.name in approved_by for a in required):
        return RequestStatus.APPROVED
    return RequestStatus.PENDING


def get_request_review(
    store: PurchaseRequestStoreBase,
    request_id: str,
    tiers: ApprovalTierTable = None,
) -> RequestReview:
    """
    Re-run the tier and checklist logic for a stored request.

    Raises:
        RequestNotFoundError: unknown request
    """
    tiers = tiers or get_approval_tiers()
    request = get_request_or_raise(store, request_id)

    return RequestReview(
        request=request,
        approval_tier=tiers.get_approval_tier(request.total_amount),
        validation=validate_purchase_request(validation_input_from_draft(request), tiers),
        signatures=store.list_signatures(request_id),
    )


def record_approval_action(
    store: PurchaseRequestStoreBase,
    request_id: str,
    approver_email: str,
    action: ApprovalAction,
    signature_url: Optional[str],
    comments: Optional[str] = None,
    tiers: ApprovalTierTable = None,
) -> tuple[PurchaseRequest, ApprovalSignature]:
    """
    Record an approver's approval or rejection.

    Args:
        store: Purchase request store
        request_id: Request being acted on
        approver_email: Approver identity, looked up in the approver directory
        action: "approved" or "rejected"
        signature_url: Approver signature image reference (required)
        comments: Free text; required when rejecting
        tiers: Approval tier table holding the approver directory

    Returns:
        (updated request, new signature)

    Raises:
        RequestNotFoundError: unknown request
        ApprovalError: request not pending, approver unknown or outside the
                       required chain, missing signature or comments,
                       or approver already acted
    """
    tiers = tiers or get_approval_tiers()
    request = get_request_or_raise(store, request_id)

    if request.status != RequestStatus.PENDING:
        raise ApprovalError(f"Request is already {request.status.value}")

    approver: Optional[RequiredApprover] = tiers.find_approver(approver_email)
    if approver is None:
        raise ApprovalError("You are not recognized as an approver. Please contact an administrator.")

    required = tiers.get_required_approvers(request.total_amount)
    if approver.name not in {a.name for a in required}:
        raise ApprovalError(f"{approver.name} is not a required approver for this request")

    if not signature_url:
        raise ApprovalError("Signature is required to proceed")

    if action == "rejected" and not comments:
        raise ApprovalError("Comments are required when rejecting a request.")

    if has_already_actioned(store, request_id, approver.name):
        raise ApprovalError(f"{approver.name} has already acted on this request")

    signature = ApprovalSignature(
        id=str(uuid.uuid4()),
        request_id=request_id,
        approver_id=approver.email,
        approver_name=approver.name,
        approver_title=approver.title,
        signature_url=signature_url,
        action=action,
        comments=comments or None,
        signed_at=datetime.now(UTC).isoformat(),
    )
    try:
        store.add_signature(signature)
    except DuplicateSignatureError as e:
        raise ApprovalError(f"{approver.name} has already acted on this request") from e

    if action == "rejected":
        new_status = RequestStatus.REJECTED
    else:
        new_status = chain_status(required, store.list_signatures(request_id))

    updated = store.update_request(
        request_id,
        status=new_status,
        rejection_reason=comments if action == "rejected" else None,
    )

    logger.info(
        "Approval action recorded",
        request_id=request_id,
        approver=approver.name,
        action=action,
        status=new_status.value,
        total_amount=request.total_amount,
    )

    return updated, signature
