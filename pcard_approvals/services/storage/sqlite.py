"""
SQLite-based purchase request storage.

Provides persistent storage of purchase requests, approval signatures and
receipt verification results with SQL query capabilities.
"""

import sqlite3
import json
from datetime import datetime, UTC
from typing import Optional

from ...models.purchase_request import (
    ApprovalSignature,
    PurchaseRequest,
    Receipt,
    ReceiptAnalysis,
)
from .base import DuplicateSignatureError, PurchaseRequestStoreBase


class SQLitePurchaseRequestStore(PurchaseRequestStoreBase):
    """
    SQLite-backed purchase request store.

    Features:
    - Persistent storage across application restarts
    - Status and requester filtering in SQL
    - One signature per approver per request (unique index)
    - Thread-safe operations (via SQLite's built-in locking)

    The full record is kept as JSON next to the columns used for filtering.
    """

    def __init__(self, db_path: str = "pcard_approvals.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: pcard_approvals.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create tables if they don't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS purchase_requests (
                id TEXT PRIMARY KEY,
                requester_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'draft',
                total_amount REAL NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CHECK (status IN ('draft', 'pending', 'approved', 'rejected'))
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS approval_signatures (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL REFERENCES purchase_requests(id),
                approver_id TEXT,
                approver_name TEXT NOT NULL,
                approver_title TEXT NOT NULL,
                signature_url TEXT,
                action TEXT NOT NULL,
                comments TEXT,
                signed_at TEXT NOT NULL,
                CHECK (action IN ('approved', 'rejected'))
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS purchase_receipts (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL REFERENCES purchase_requests(id),
                data TEXT NOT NULL,
                uploaded_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS receipt_analyses (
                receipt_id TEXT PRIMARY KEY,
                request_id TEXT,
                recommendation TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_requests_status
            ON purchase_requests(status)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_requests_requester
            ON purchase_requests(requester_id, created_at)
        """)

        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_signatures_request_approver
            ON approval_signatures(request_id, approver_name)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _write_request(self, cursor: sqlite3.Cursor, request: PurchaseRequest):
        cursor.execute("""
            INSERT OR REPLACE INTO purchase_requests
                (id, requester_id, status, total_amount, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            request.id,
            request.requester_id,
            request.status.value,
            request.total_amount,
            request.model_dump_json(),
            request.created_at,
            request.updated_at,
        ))

    def create_request(self, request: PurchaseRequest) -> PurchaseRequest:
        conn = self._get_connection()
        cursor = conn.cursor()

        self._write_request(cursor, request)

        conn.commit()
        conn.close()

        return request

    def get_request(self, request_id: str) -> Optional[PurchaseRequest]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT data FROM purchase_requests
            WHERE id = ?
        """, (request_id,))

        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None

        return PurchaseRequest.model_validate_json(row["data"])

    def update_request(self, request_id: str, **changes) -> Optional[PurchaseRequest]:
        existing = self.get_request(request_id)
        if existing is None:
            return None

        changes["updated_at"] = datetime.now(UTC).isoformat()
        updated = PurchaseRequest.model_validate({**existing.model_dump(), **changes})

        conn = self._get_connection()
        cursor = conn.cursor()
        self._write_request(cursor, updated)
        conn.commit()
        conn.close()

        return updated

    def list_requests(self, status: str | None = None, requester_id: str | None = None) -> list[PurchaseRequest]:
        """
        List requests (ordered by creation time, newest first).

        Args:
            status: Optional status filter
            requester_id: Optional requester filter

        Returns:
            List of PurchaseRequest
        """
        clauses = []
        params = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value if hasattr(status, "value") else status)
        if requester_id is not None:
            clauses.append("requester_id = ?")
            params.append(requester_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(f"""
            SELECT data FROM purchase_requests
            {where}
            ORDER BY created_at DESC
        """, params)

        rows = cursor.fetchall()
        conn.close()

        return [PurchaseRequest.model_validate_json(row["data"]) for row in rows]

    def add_signature(self, signature: ApprovalSignature) -> ApprovalSignature:
        conn = self._get_connection()
        cursor = conn.cursor()

        # Unique index on (request_id, approver_name) catches concurrent sign-offs
        try:
            cursor.execute("""
                INSERT INTO approval_signatures
                    (id, request_id, approver_id, approver_name, approver_title,
                     signature_url, action, comments, signed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                signature.id,
                signature.request_id,
                signature.approver_id,
                signature.approver_name,
                signature.approver_title,
                signature.signature_url,
                signature.action,
                signature.comments,
                signature.signed_at,
            ))
        except sqlite3.IntegrityError as e:
            conn.close()
            raise DuplicateSignatureError(
                f"{signature.approver_name} already signed request {signature.request_id}"
            ) from e

        conn.commit()
        conn.close()

        return signature

    def _signature_from_row(self, row: sqlite3.Row) -> ApprovalSignature:
        return ApprovalSignature(**{key: row[key] for key in row.keys()})

    def list_signatures(self, request_id: str) -> list[ApprovalSignature]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT * FROM approval_signatures
            WHERE request_id = ?
            ORDER BY signed_at ASC
        """, (request_id,))

        rows = cursor.fetchall()
        conn.close()

        return [self._signature_from_row(row) for row in rows]

    def find_signature(self, request_id: str, approver_name: str) -> Optional[ApprovalSignature]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT * FROM approval_signatures
            WHERE request_id = ? AND approver_name = ?
        """, (request_id, approver_name))

        row = cursor.fetchone()
        conn.close()

        return self._signature_from_row(row) if row else None

    def create_receipt(self, receipt: Receipt) -> Receipt:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT OR REPLACE INTO purchase_receipts (id, request_id, data, uploaded_at)
            VALUES (?, ?, ?, ?)
        """, (receipt.id, receipt.request_id, receipt.model_dump_json(), receipt.uploaded_at))

        conn.commit()
        conn.close()

        return receipt

    def get_receipt(self, receipt_id: str) -> Optional[Receipt]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT data FROM purchase_receipts WHERE id = ?", (receipt_id,))

        row = cursor.fetchone()
        conn.close()

        return Receipt.model_validate_json(row["data"]) if row else None

    def update_receipt(self, receipt_id: str, **changes) -> Optional[Receipt]:
        existing = self.get_receipt(receipt_id)
        if existing is None:
            return None

        updated = Receipt.model_validate({**existing.model_dump(), **changes})
        return self.create_receipt(updated)

    def list_receipts(self, request_id: str) -> list[Receipt]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT data FROM purchase_receipts
            WHERE request_id = ?
            ORDER BY uploaded_at DESC
        """, (request_id,))

        rows = cursor.fetchall()
        conn.close()

        return [Receipt.model_validate_json(row["data"]) for row in rows]

    def save_receipt_analysis(self, analysis: ReceiptAnalysis) -> ReceiptAnalysis:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT OR REPLACE INTO receipt_analyses (receipt_id, request_id, recommendation, data)
            VALUES (?, ?, ?, ?)
        """, (
            analysis.receipt_id,
            analysis.request_id,
            analysis.recommendation,
            json.dumps(analysis.model_dump(mode="json")),
        ))

        conn.commit()
        conn.close()

        return analysis

    def get_receipt_analysis(self, receipt_id: str) -> Optional[ReceiptAnalysis]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT data FROM receipt_analyses WHERE receipt_id = ?", (receipt_id,))

        row = cursor.fetchone()
        conn.close()

        return ReceiptAnalysis.model_validate(json.loads(row["data"])) if row else None

    def delete_receipt_analysis(self, receipt_id: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM receipt_analyses WHERE receipt_id = ?", (receipt_id,))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return rows_affected > 0
