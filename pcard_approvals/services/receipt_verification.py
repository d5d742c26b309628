"""
Receipt verification against the approved purchase request.

A receipt is run through Document Intelligence and the extracted vendor,
total and date are compared with what the employee requested:

- Vendor matches if the normalised names contain one another
- Amount matches if within 10% or $5
- Date matches if within 30 days

The comparison yields a recommendation for the reviewer (approve, review,
reject) and the receipt's verification status. Analyses are cached per
receipt; failures produce a fallback analysis asking for manual review.
"""

import re
from datetime import date, datetime, UTC
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ..models.purchase_request import PurchaseRequest, Receipt, ReceiptAnalysis
from . import form_recognizer
from .form_recognizer import ExtractedReceipt, ReceiptExtractionError
from .storage.base import PurchaseRequestStoreBase


AMOUNT_TOLERANCE_PERCENT = 10
AMOUNT_TOLERANCE_DOLLARS = 5
DATE_TOLERANCE_DAYS = 30
MIN_DECISION_CONFIDENCE = 60
DEFAULT_CONFIDENCE = 50

VERIFICATION_STATUS = {
    "approve": "verified",
    "reject": "mismatch",
    "review": "inconclusive",
}


class ExpectedPurchase(BaseModel):
    """What the receipt should show"""
    vendor_name: str
    total_amount: float
    expense_date: str

    @classmethod
    def from_request(cls, request: PurchaseRequest) -> "ExpectedPurchase":
        return cls(
            vendor_name=request.vendor_name,
            total_amount=request.total_amount,
            expense_date=request.expense_date,
        )


class VerificationOutcome(BaseModel):
    analysis: ReceiptAnalysis
    cached: bool = False
    api_configured: bool = True
    error: Optional[str] = None


def _normalize(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def check_vendor_match(extracted: Optional[str], expected: str) -> bool:
    if not extracted:
        return False
    e = _normalize(extracted)
    x = _normalize(expected)
    return e in x or x in e


def check_amount_match(extracted: Optional[float], expected: float) -> bool:
    if extracted is None:
        return False
    diff = abs(extracted - expected)
    if diff <= AMOUNT_TOLERANCE_DOLLARS:
        return True
    if expected == 0:
        return False
    return diff / abs(expected) * 100 <= AMOUNT_TOLERANCE_PERCENT


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError):
        return None


def check_date_match(extracted: Optional[str], expected: str) -> bool:
    if not extracted:
        return False
    e = _parse_date(extracted)
    x = _parse_date(expected)
    if e is None or x is None:
        return False
    return abs((e - x).days) <= DATE_TOLERANCE_DAYS


def generate_reason(kind: str, extracted, expected, match: bool) -> str:
    if extracted is None:
        return f"Could not extract {kind} from receipt. Expected: {expected!r}."
    if match:
        return f"{kind.capitalize()} matches expected value."
    return f'{kind.capitalize()} "{extracted}" differs from expected "{expected}".'


def recommend(vendor_match: bool, amount_match: bool, date_match: bool, confidence: float) -> str:
    """
    approve: everything matches and extraction is confident
    reject: vendor and amount both wrong and extraction is confident
    review: anything else
    """
    if vendor_match and amount_match and date_match and confidence >= MIN_DECISION_CONFIDENCE:
        return "approve"
    if not vendor_match and not amount_match and confidence >= MIN_DECISION_CONFIDENCE:
        return "reject"
    return "review"


def normalize_confidence(raw: Optional[float]) -> float:
    """Document Intelligence confidence (0-1) as a 0-100 score; missing or zero defaults to 50."""
    score = (raw or 0) * 100
    if not score:
        score = DEFAULT_CONFIDENCE
    return min(100.0, max(0.0, score))


def create_fallback_analysis(expected: ExpectedPurchase, note: Optional[str] = None) -> ReceiptAnalysis:
    return ReceiptAnalysis(
        vendor_reason=f'Unable to verify vendor. Expected: "{expected.vendor_name}".',
        amount_reason=f"Unable to verify amount. Expected: ${expected.total_amount:.2f}.",
        date_reason=f"Unable to verify date. Expected: {expected.expense_date}.",
        expected_vendor=expected.vendor_name,
        expected_amount=expected.total_amount,
        expected_date=expected.expense_date,
        confidence_score=0,
        recommendation="review",
        analysis_notes=note or "Automated analysis could not be completed. Please review manually.",
    )


def build_analysis(extracted: ExtractedReceipt, expected: ExpectedPurchase) -> ReceiptAnalysis:
    """Compare an extraction with the expected purchase."""
    vendor_match = check_vendor_match(extracted.vendor, expected.vendor_name)
    amount_match = check_amount_match(extracted.total, expected.total_amount)
    date_match = check_date_match(extracted.transaction_date, expected.expense_date)
    confidence = normalize_confidence(extracted.confidence)
    recommendation = recommend(vendor_match, amount_match, date_match, confidence)

    matched = sum([vendor_match, amount_match, date_match])
    notes = f"{matched} of 3 fields match the purchase request."

    return ReceiptAnalysis(
        extracted_vendor=extracted.vendor,
        extracted_amount=extracted.total,
        extracted_date=extracted.transaction_date,
        extracted_items=extracted.items,
        vendor_match=vendor_match,
        amount_match=amount_match,
        date_match=date_match,
        vendor_reason=generate_reason("vendor", extracted.vendor, expected.vendor_name, vendor_match),
        amount_reason=generate_reason("amount", extracted.total, expected.total_amount, amount_match),
        date_reason=generate_reason("date", extracted.transaction_date, expected.expense_date, date_match),
        expected_vendor=expected.vendor_name,
        expected_amount=expected.total_amount,
        expected_date=expected.expense_date,
        confidence_score=confidence,
        recommendation=recommendation,
        analysis_notes=notes,
        raw_extraction=extracted.model_dump(mode="json", exclude={"content"}),
    )


def analyze_receipt(
    store: PurchaseRequestStoreBase,
    receipt: Receipt,
    file_bytes: bytes,
    expected: ExpectedPurchase,
    force_reanalyze: bool = False,
    max_bytes: int = None,
) -> VerificationOutcome:
    """
    Verify a receipt and record the result on it.

    Returns the cached analysis unless force_reanalyze is set. Fallback
    analyses (service unconfigured, file too large, extraction failure)
    are returned but not stored.
    """
    from ..core.config import settings

    max_bytes = settings.receipt_max_bytes if max_bytes is None else max_bytes

    if not force_reanalyze:
        existing = store.get_receipt_analysis(receipt.id)
        if existing is not None:
            logger.info("Returning cached receipt analysis", receipt_id=receipt.id)
            return VerificationOutcome(analysis=existing, cached=True)

    if not form_recognizer.is_configured():
        logger.warning("Receipt analysis requested but Document Intelligence is not configured")
        return VerificationOutcome(
            analysis=create_fallback_analysis(
                expected,
                "AI analysis requires Document Intelligence credentials. Please contact your administrator.",
            ),
            api_configured=False,
            error="Document Intelligence not configured",
        )

    if len(file_bytes) > max_bytes:
        return VerificationOutcome(
            analysis=create_fallback_analysis(
                expected,
                f"Receipt file is too large for AI analysis. Please upload a file under {max_bytes // (1024 * 1024)}MB.",
            ),
            error="Receipt too large",
        )

    try:
        extracted = form_recognizer.extract_receipt_fields(file_bytes)
    except ReceiptExtractionError as e:
        return VerificationOutcome(
            analysis=create_fallback_analysis(expected, f"Analysis failed: {e}"),
            error=str(e),
        )

    analysis = build_analysis(extracted, expected)
    analysis.receipt_id = receipt.id
    analysis.request_id = receipt.request_id
    analysis.created_at = datetime.now(UTC).isoformat()
    store.save_receipt_analysis(analysis)

    store.update_receipt(
        receipt.id,
        ai_verification_status=VERIFICATION_STATUS[analysis.recommendation],
        ai_confidence_score=analysis.confidence_score,
        ai_verified_at=analysis.created_at,
    )

    logger.info(
        "Receipt analyzed",
        receipt_id=receipt.id,
        request_id=receipt.request_id,
        recommendation=analysis.recommendation,
        confidence=analysis.confidence_score,
        vendor_match=analysis.vendor_match,
        amount_match=analysis.amount_match,
        date_match=analysis.date_match,
    )

    return VerificationOutcome(analysis=analysis)
