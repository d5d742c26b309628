"""
In-memory purchase request storage (for demo and tests).
In production, use the SQLite store or a real database.
"""
from datetime import datetime, UTC
from typing import Dict, Optional

from ...models.purchase_request import (
    ApprovalSignature,
    PurchaseRequest,
    Receipt,
    ReceiptAnalysis,
)
from .base import DuplicateSignatureError, PurchaseRequestStoreBase


class InMemoryPurchaseRequestStore(PurchaseRequestStoreBase):
    def __init__(self):
        self._requests: Dict[str, PurchaseRequest] = {}
        self._signatures: list[ApprovalSignature] = []
        self._receipts: Dict[str, Receipt] = {}
        self._analyses: Dict[str, ReceiptAnalysis] = {}

    def create_request(self, request: PurchaseRequest) -> PurchaseRequest:
        self._requests[request.id] = request.model_copy(deep=True)
        return request

    def get_request(self, request_id: str) -> Optional[PurchaseRequest]:
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    def update_request(self, request_id: str, **changes) -> Optional[PurchaseRequest]:
        if request_id not in self._requests:
            return None

        changes["updated_at"] = datetime.now(UTC).isoformat()
        updated = PurchaseRequest.model_validate({**self._requests[request_id].model_dump(), **changes})
        self._requests[request_id] = updated
        return updated.model_copy(deep=True)

    def list_requests(self, status: str | None = None, requester_id: str | None = None) -> list[PurchaseRequest]:
        results = [
            r.model_copy(deep=True)
            for r in self._requests.values()
            if (status is None or r.status == status)
            and (requester_id is None or r.requester_id == requester_id)
        ]
        results.sort(key=lambda r: r.created_at, reverse=True)
        return results

    def add_signature(self, signature: ApprovalSignature) -> ApprovalSignature:
        if self.find_signature(signature.request_id, signature.approver_name) is not None:
            raise DuplicateSignatureError(
                f"{signature.approver_name} already signed request {signature.request_id}"
            )
        self._signatures.append(signature.model_copy(deep=True))
        return signature

    def list_signatures(self, request_id: str) -> list[ApprovalSignature]:
        sigs = [s.model_copy(deep=True) for s in self._signatures if s.request_id == request_id]
        sigs.sort(key=lambda s: s.signed_at)
        return sigs

    def find_signature(self, request_id: str, approver_name: str) -> Optional[ApprovalSignature]:
        for sig in self._signatures:
            if sig.request_id == request_id and sig.approver_name == approver_name:
                return sig.model_copy(deep=True)
        return None

    def create_receipt(self, receipt: Receipt) -> Receipt:
        self._receipts[receipt.id] = receipt.model_copy(deep=True)
        return receipt

    def get_receipt(self, receipt_id: str) -> Optional[Receipt]:
        receipt = self._receipts.get(receipt_id)
        return receipt.model_copy(deep=True) if receipt else None

    def update_receipt(self, receipt_id: str, **changes) -> Optional[Receipt]:
        if receipt_id not in self._receipts:
            return None

        updated = Receipt.model_validate({**self._receipts[receipt_id].model_dump(), **changes})
        self._receipts[receipt_id] = updated
        return updated.model_copy(deep=True)

    def list_receipts(self, request_id: str) -> list[Receipt]:
        receipts = [r.model_copy(deep=True) for r in self._receipts.values() if r.request_id == request_id]
        receipts.sort(key=lambda r: r.uploaded_at, reverse=True)
        return receipts

    def save_receipt_analysis(self, analysis: ReceiptAnalysis) -> ReceiptAnalysis:
        self._analyses[analysis.receipt_id] = analysis.model_copy(deep=True)
        return analysis

    def get_receipt_analysis(self, receipt_id: str) -> Optional[ReceiptAnalysis]:
        analysis = self._analyses.get(receipt_id)
        return analysis.model_copy(deep=True) if analysis else None

    def delete_receipt_analysis(self, receipt_id: str) -> bool:
        return self._analyses.pop(receipt_id, None) is not None
