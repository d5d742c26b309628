"""
Abstract base class for purchase request storage.

Defines the query interface the services use, standing in for the hosted
relational database, so storage backends can be swapped via dependency
injection.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ...models.purchase_request import (
    ApprovalSignature,
    PurchaseRequest,
    Receipt,
    ReceiptAnalysis,
)


class DuplicateSignatureError(Exception):
    """Raised when an approver already has a signature on the request"""


class PurchaseRequestStoreBase(ABC):
    """
    Abstract base class for purchase request persistence.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    - PostgreSQL (for production)
    """

    @abstractmethod
    def create_request(self, request: PurchaseRequest) -> PurchaseRequest:
        """Insert a new purchase request and return it as stored."""
        pass

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[PurchaseRequest]:
        """Get a purchase request by ID, or None if not found."""
        pass

    @abstractmethod
    def update_request(self, request_id: str, **changes) -> Optional[PurchaseRequest]:
        """
        Apply field changes to a purchase request.

        Args:
            request_id: Purchase request identifier
            **changes: Field names and new values (updated_at is set automatically)

        Returns:
            Updated request, or None if not found
        """
        pass

    @abstractmethod
    def list_requests(
        self,
        status: str | None = None,
        requester_id: str | None = None,
    ) -> list[PurchaseRequest]:
        """List purchase requests, newest first, optionally filtered."""
        pass

    @abstractmethod
    def add_signature(self, signature: ApprovalSignature) -> ApprovalSignature:
        """
        Insert an approval signature.

        Raises:
            DuplicateSignatureError: the approver already signed this request
        """
        pass

    @abstractmethod
    def list_signatures(self, request_id: str) -> list[ApprovalSignature]:
        """Signatures for a request, oldest first."""
        pass

    @abstractmethod
    def find_signature(self, request_id: str, approver_name: str) -> Optional[ApprovalSignature]:
        """Signature left by the named approver on a request, if any."""
        pass

    @abstractmethod
    def create_receipt(self, receipt: Receipt) -> Receipt:
        pass

    @abstractmethod
    def get_receipt(self, receipt_id: str) -> Optional[Receipt]:
        pass

    @abstractmethod
    def update_receipt(self, receipt_id: str, **changes) -> Optional[Receipt]:
        pass

    @abstractmethod
    def list_receipts(self, request_id: str) -> list[Receipt]:
        """Receipts for a request, newest upload first."""
        pass

    @abstractmethod
    def save_receipt_analysis(self, analysis: ReceiptAnalysis) -> ReceiptAnalysis:
        """Insert or replace the analysis for analysis.receipt_id."""
        pass

    @abstractmethod
    def get_receipt_analysis(self, receipt_id: str) -> Optional[ReceiptAnalysis]:
        pass

    @abstractmethod
    def delete_receipt_analysis(self, receipt_id: str) -> bool:
        pass
