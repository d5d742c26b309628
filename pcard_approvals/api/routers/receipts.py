import uuid
from datetime import datetime, UTC

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from loguru import logger
from pydantic import BaseModel

from ..deps import get_store
from ...core.config import settings
from ...models.purchase_request import Receipt, ReceiptAnalysis
from ...services import form_recognizer
from ...services.approvals import RequestNotFoundError, get_request_or_raise
from ...services.events.event_publisher import RECEIPT_ANALYZED, PurchaseRequestEvent, publish_safely
from ...services.receipt_verification import ExpectedPurchase, VerificationOutcome, analyze_receipt
from ...services.storage import PurchaseRequestStoreBase

router = APIRouter(tags=["receipts"])


class ReceiptUploadResponse(BaseModel):
    receipt: Receipt
    verification: VerificationOutcome


def _publish_analysis(request, receipt: Receipt, outcome: VerificationOutcome):
    if outcome.cached or outcome.error:
        return
    publish_safely(PurchaseRequestEvent(
        event_type=RECEIPT_ANALYZED,
        request_id=request.id,
        vendor_name=request.vendor_name,
        total_amount=request.total_amount,
        status=request.status.value,
        details={
            "receipt_id": receipt.id,
            "recommendation": outcome.analysis.recommendation,
            "confidence_score": outcome.analysis.confidence_score,
        },
    ))


@router.get("/receipts/status")
async def receipt_analysis_status():
    """Whether receipt extraction is configured"""
    endpoint = settings.az_di_endpoint
    return {
        "configured": form_recognizer.is_configured(),
        "endpoint_prefix": endpoint[:30] + "..." if endpoint else None,
    }


@router.post("/requests/{request_id}/receipts", response_model=ReceiptUploadResponse, status_code=201)
async def upload_receipt(
    request_id: str,
    file: UploadFile = File(...),
    store: PurchaseRequestStoreBase = Depends(get_store),
):
    """
    Attach a receipt to a purchase request and verify it.

    The receipt is compared with the request's vendor, total and expense
    date; the verification status is stored on the receipt.
    """
    try:
        request = get_request_or_raise(store, request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    content = await file.read()
    if not content:
        raise HTTPException(status_code=422, detail="Uploaded receipt is empty")

    receipt = store.create_receipt(Receipt(
        id=str(uuid.uuid4()),
        request_id=request_id,
        file_name=file.filename or "receipt",
        file_type=file.content_type,
        uploaded_at=datetime.now(UTC).isoformat(),
    ))

    logger.info("Receipt uploaded", request_id=request_id, receipt_id=receipt.id, size=len(content))

    outcome = analyze_receipt(store, receipt, content, ExpectedPurchase.from_request(request))
    _publish_analysis(request, receipt, outcome)

    return ReceiptUploadResponse(receipt=store.get_receipt(receipt.id), verification=outcome)


@router.get("/requests/{request_id}/receipts", response_model=list[Receipt])
async def list_receipts(request_id: str, store: PurchaseRequestStoreBase = Depends(get_store)):
    try:
        get_request_or_raise(store, request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return store.list_receipts(request_id)


@router.post("/receipts/{receipt_id}/analyze", response_model=ReceiptUploadResponse)
async def reanalyze_receipt(
    receipt_id: str,
    file: UploadFile = File(...),
    force_reanalyze: bool = Form(False),
    store: PurchaseRequestStoreBase = Depends(get_store),
):
    """Analyze a receipt again, returning the cached result unless forced"""
    receipt = store.get_receipt(receipt_id)
    if receipt is None:
        raise HTTPException(status_code=404, detail=f"Receipt {receipt_id} not found")

    try:
        request = get_request_or_raise(store, receipt.request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    content = await file.read()
    outcome = analyze_receipt(
        store,
        receipt,
        content,
        ExpectedPurchase.from_request(request),
        force_reanalyze=force_reanalyze,
    )
    _publish_analysis(request, receipt, outcome)

    return ReceiptUploadResponse(receipt=store.get_receipt(receipt_id), verification=outcome)


@router.get("/receipts/{receipt_id}/analysis", response_model=ReceiptAnalysis)
async def get_receipt_analysis(receipt_id: str, store: PurchaseRequestStoreBase = Depends(get_store)):
    analysis = store.get_receipt_analysis(receipt_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail=f"No analysis for receipt {receipt_id}")
    return analysis


@router.delete("/receipts/{receipt_id}/analysis", status_code=204)
async def clear_receipt_analysis(receipt_id: str, store: PurchaseRequestStoreBase = Depends(get_store)):
    """Drop the cached analysis so the next upload or analyze call re-runs extraction"""
    if not store.delete_receipt_analysis(receipt_id):
        raise HTTPException(status_code=404, detail=f"No analysis for receipt {receipt_id}")
    logger.info("Cleared cached receipt analysis", receipt_id=receipt_id)
