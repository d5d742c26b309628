from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from pydantic import BaseModel

from ..deps import get_store, get_tiers
from ...models.purchase_request import (
    CATEGORIES,
    ApprovalSignature,
    POBypassReason,
    PurchaseRequest,
    PurchaseRequestDraft,
    RequestStatus,
)
from ...services.approval_tiers import ApprovalTierTable, RequiredApprover
from ...services.approvals import (
    ApprovalError,
    RequestNotFoundError,
    RequestReview,
    get_request_or_raise,
    get_request_review,
    record_approval_action,
)
from ...services.events.event_publisher import (
    REQUEST_APPROVED,
    REQUEST_REJECTED,
    REQUEST_SUBMITTED,
    PurchaseRequestEvent,
    publish_safely,
)
from ...services.notifications import post_approval_card
from ...services.storage import PurchaseRequestStoreBase
from ...services.submission import (
    PCardUsage,
    SubmissionError,
    can_proceed,
    get_monthly_usage,
    submit_purchase_request,
    validate_draft,
)
from ...services.validation import (
    PROHIBITED_CATEGORIES,
    ValidationInput,
    ValidationResult,
    format_bypass_reason,
    validate_purchase_request,
)

router = APIRouter(prefix="/requests", tags=["requests"])


class ValidateResponse(ValidationResult):
    """Checklist plus the tier label for the amount"""
    approval_tier: str


class ApprovalTierResponse(BaseModel):
    amount: float
    approval_tier: str
    required_approvers: list[RequiredApprover]


class StepCheckRequest(BaseModel):
    draft: PurchaseRequestDraft
    signature_url: str | None = None


class StepCheckResponse(BaseModel):
    step: int
    can_proceed: bool
    total_amount: float
    validation: ValidationResult


class SubmitRequest(BaseModel):
    requester_id: str
    signature_url: str | None = None
    draft: PurchaseRequestDraft


class SubmitResponse(BaseModel):
    request: PurchaseRequest
    validation: ValidationResult
    approval_tier: str
    notification: dict | None = None
    usage: PCardUsage | None = None


class ApprovalActionRequest(BaseModel):
    approver_email: str
    signature_url: str | None = None
    comments: str | None = None


class ApprovalActionResponse(BaseModel):
    request: PurchaseRequest
    signature: ApprovalSignature


@router.get("/form-options")
async def form_options(tiers: ApprovalTierTable = Depends(get_tiers)):
    """Choices for the request form's select fields"""
    return {
        "categories": CATEGORIES,
        "prohibited_categories": PROHIBITED_CATEGORIES,
        "po_bypass_reasons": [
            {"value": reason.value, "label": format_bypass_reason(reason.value)}
            for reason in POBypassReason
        ],
        "no_approval_threshold": tiers.no_approval_threshold,
    }


@router.post("/validate", response_model=ValidateResponse)
async def validate_request(
    data: ValidationInput,
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    """
    Evaluate form fields against the P-Card policy.

    Called on every form change; never fails for policy reasons, the
    outcome is carried in is_valid and the checklist.

    Example request:
    {
        "total_amount": 600.00,
        "category": "Office Supplies",
        "po_bypass_reason": null
    }
    """
    result = validate_purchase_request(data, tiers)
    return ValidateResponse(
        **result.model_dump(),
        approval_tier=tiers.get_approval_tier(data.total_amount),
    )


@router.get("/approval-tier", response_model=ApprovalTierResponse)
async def approval_tier(
    amount: float = Query(..., description="Total amount including tax and shipping"),
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    return ApprovalTierResponse(
        amount=amount,
        approval_tier=tiers.get_approval_tier(amount),
        required_approvers=tiers.get_required_approvers(amount),
    )


@router.post("/steps/{step}/check", response_model=StepCheckResponse)
async def check_step(
    step: int,
    req: StepCheckRequest,
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    """Whether the request form may advance past a step"""
    if step < 1 or step > 5:
        raise HTTPException(status_code=404, detail=f"Unknown form step {step}")

    result = validate_draft(req.draft, tiers)
    return StepCheckResponse(
        step=step,
        can_proceed=can_proceed(step, req.draft, result.checklist, req.signature_url, tiers),
        total_amount=req.draft.total_amount,
        validation=result,
    )


@router.get("/usage/{requester_id}", response_model=PCardUsage)
async def monthly_usage(
    requester_id: str,
    amount: float = Query(0.0, ge=0, description="Size of a planned purchase to check against the limit"),
    store: PurchaseRequestStoreBase = Depends(get_store),
):
    return get_monthly_usage(store, requester_id, amount=amount)


@router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    req: SubmitRequest,
    store: PurchaseRequestStoreBase = Depends(get_store),
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    """
    Submit a completed request form.

    Requests at or under $500 are approved on submission; larger requests
    are stored as pending and the approvers are notified in Teams.
    """
    # Usage as it stood before this request, including whether it goes over
    usage = get_monthly_usage(store, req.requester_id, amount=req.draft.total_amount)

    try:
        request = submit_purchase_request(store, req.draft, req.signature_url, req.requester_id, tiers)
    except SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    validation = validate_draft(req.draft, tiers)

    publish_safely(PurchaseRequestEvent(
        event_type=REQUEST_SUBMITTED,
        request_id=request.id,
        vendor_name=request.vendor_name,
        total_amount=request.total_amount,
        status=request.status.value,
        actor=req.requester_id,
    ))

    notification = None
    if request.status == RequestStatus.PENDING:
        try:
            notification = await post_approval_card(
                request,
                validation.required_approvers,
                tiers.get_approval_tier(request.total_amount),
            )
        except Exception as e:
            # Don't fail submission if Teams is unreachable
            logger.warning("Failed to notify approvers", request_id=request.id, error=str(e))
            notification = {"status": "failed", "reason": str(e)}

    return SubmitResponse(
        request=request,
        validation=validation,
        approval_tier=tiers.get_approval_tier(request.total_amount),
        notification=notification,
        usage=usage,
    )


@router.get("")
async def list_requests(
    status: RequestStatus | None = None,
    requester_id: str | None = None,
    store: PurchaseRequestStoreBase = Depends(get_store),
):
    requests = store.list_requests(status=status, requester_id=requester_id)
    return {"total": len(requests), "requests": requests}


@router.get("/{request_id}", response_model=PurchaseRequest)
async def get_request(request_id: str, store: PurchaseRequestStoreBase = Depends(get_store)):
    try:
        return get_request_or_raise(store, request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{request_id}/review", response_model=RequestReview)
async def review_request(
    request_id: str,
    store: PurchaseRequestStoreBase = Depends(get_store),
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    """Read-only tier, checklist and signatures for an approver"""
    try:
        return get_request_review(store, request_id, tiers)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{request_id}/signatures", response_model=list[ApprovalSignature])
async def list_signatures(request_id: str, store: PurchaseRequestStoreBase = Depends(get_store)):
    try:
        get_request_or_raise(store, request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return store.list_signatures(request_id)


def _act(store, tiers, request_id: str, action: str, req: ApprovalActionRequest) -> ApprovalActionResponse:
    try:
        updated, signature = record_approval_action(
            store,
            request_id,
            approver_email=req.approver_email,
            action=action,
            signature_url=req.signature_url,
            comments=req.comments,
            tiers=tiers,
        )
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ApprovalError as e:
        raise HTTPException(status_code=409, detail=str(e))

    publish_safely(PurchaseRequestEvent(
        event_type=REQUEST_REJECTED if action == "rejected" else REQUEST_APPROVED,
        request_id=updated.id,
        vendor_name=updated.vendor_name,
        total_amount=updated.total_amount,
        status=updated.status.value,
        actor=signature.approver_name,
        details={"comments": signature.comments},
    ))

    return ApprovalActionResponse(request=updated, signature=signature)


@router.post("/{request_id}/approve", response_model=ApprovalActionResponse)
async def approve_request(
    request_id: str,
    req: ApprovalActionRequest,
    store: PurchaseRequestStoreBase = Depends(get_store),
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    return _act(store, tiers, request_id, "approved", req)


@router.post("/{request_id}/reject", response_model=ApprovalActionResponse)
async def reject_request(
    request_id: str,
    req: ApprovalActionRequest,
    store: PurchaseRequestStoreBase = Depends(get_store),
    tiers: ApprovalTierTable = Depends(get_tiers),
):
    return _act(store, tiers, request_id, "rejected", req)
