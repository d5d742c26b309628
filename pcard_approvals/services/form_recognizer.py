from datetime import date
from loguru import logger
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from pydantic import BaseModel
from ..core.config import settings
from ..models.purchase_request import ExtractedItem


class ReceiptExtractionError(Exception):
    """Raised when the receipt could not be analyzed"""


class ExtractedReceipt(BaseModel):
    vendor: str | None = None
    total: float | None = None
    transaction_date: str | None = None
    items: list[ExtractedItem] = []
    confidence: float | None = None  # 0-1, from Document Intelligence
    raw_chars: int = 0
    content: str | None = None  # Full OCR text


def is_configured() -> bool:
    return bool(settings.az_di_endpoint and settings.az_di_api_key)


def parse_amount(raw) -> float | None:
    """Parse "$1,234.56", "USD 12.00" or a number; None if unparseable."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    try:
        text = str(raw).replace("$", "").replace(",", "")
        for curr_code in ["USD", "AUD", "EUR", "GBP", "CAD"]:
            text = text.replace(curr_code, "")
        return float(text.strip())
    except (ValueError, TypeError):
        logger.warning(f"Could not parse receipt amount: {raw}")
        return None


def _field_value(fields, name):
    if not fields or name not in fields:
        return None
    field = fields[name]

    for attr in ("value_currency", "value_date", "value_number", "value_string"):
        value = getattr(field, attr, None)
        if value is None:
            continue
        if attr == "value_currency":
            return getattr(value, "amount", None)
        return value

    return getattr(field, "content", None)


def _extract_items(fields) -> list[ExtractedItem]:
    items_field = fields.get("Items") if fields else None
    entries = getattr(items_field, "value_array", None) or []

    items = []
    for entry in entries:
        entry_fields = getattr(entry, "value_object", None) or {}
        description = _field_value(entry_fields, "Description")
        amount = parse_amount(_field_value(entry_fields, "TotalPrice"))
        if description and amount is not None:
            items.append(ExtractedItem(description=str(description), amount=amount))
    return items


def extract_receipt_fields(file_bytes: bytes) -> ExtractedReceipt:
    """
    Extract merchant, total, date and line items from a receipt image or PDF
    using the Azure Document Intelligence prebuilt-receipt model.

    Raises:
        ReceiptExtractionError: service not configured or analysis failed
    """
    if not is_configured():
        raise ReceiptExtractionError(
            "Azure Document Intelligence not configured. Set AZ_DI_ENDPOINT and AZ_DI_API_KEY."
        )

    logger.info(
        "Using Azure Document Intelligence for receipt extraction",
        endpoint=settings.az_di_endpoint[:50] + "..." if len(settings.az_di_endpoint) > 50 else settings.az_di_endpoint
    )

    try:
        client = DocumentIntelligenceClient(
            endpoint=settings.az_di_endpoint,
            credential=AzureKeyCredential(settings.az_di_api_key)
        )

        logger.info(f"Analyzing receipt of size {len(file_bytes)} bytes")

        poller = client.begin_analyze_document(
            "prebuilt-receipt",
            body=file_bytes,
            content_type="application/octet-stream"
        )
        result = poller.result()
    except Exception as e:
        logger.error(f"Azure DI receipt extraction failed: {str(e)}")
        raise ReceiptExtractionError(f"Receipt extraction failed: {str(e)}") from e

    ocr_content = result.content if getattr(result, "content", None) else ""

    if not result.documents:
        # Nothing structured found; caller treats this as an inconclusive receipt
        logger.warning("Azure DI prebuilt-receipt model found no receipt data")
        return ExtractedReceipt(raw_chars=len(file_bytes), content=ocr_content, confidence=0.0)

    doc = result.documents[0]
    fields = doc.fields if hasattr(doc, "fields") else {}

    vendor = _field_value(fields, "MerchantName")
    total = parse_amount(_field_value(fields, "Total"))
    transaction_date = _field_value(fields, "TransactionDate")
    if isinstance(transaction_date, date):
        transaction_date = transaction_date.isoformat()

    confidence = doc.confidence if hasattr(doc, "confidence") else None

    logger.info(
        "Extracted receipt data from Azure DI",
        vendor=vendor,
        total=total,
        transaction_date=transaction_date,
        confidence=confidence
    )

    return ExtractedReceipt(
        vendor=str(vendor) if vendor else None,
        total=total,
        transaction_date=str(transaction_date) if transaction_date else None,
        items=_extract_items(fields),
        confidence=confidence,
        raw_chars=len(file_bytes),
        content=ocr_content,
    )
