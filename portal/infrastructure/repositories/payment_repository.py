from __future__ import annotations

from typing import Any

from portal.infrastructure.repositories.base import BaseRepository


class PaymentRepository(BaseRepository):
    table = "payments"
    writable_columns = frozenset(
        {
            "vendor_id",
            "amount",
            "payment_method",
            "status",
            "transaction_id",
            "related_tender",
            "related_bid",
            "notes",
            "payment_date",
            "processed_by",
        }
    )

    def get_with_context(self, db, payment_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT p.*, v.name AS vendor_name, v.user_id AS vendor_user_id, t.title AS tender_title
            FROM payments p
            LEFT JOIN vendors v ON v.id = p.vendor_id
            LEFT JOIN tenders t ON t.id = p.related_tender
            WHERE p.id = ?
            LIMIT 1
            """,
            (payment_id,),
        ).fetchone()
        return self.decode_row(row)

    def find_active_for_award(self, db, tender_id: str, bid_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM payments
            WHERE related_tender = ? AND related_bid = ? AND status <> 'failed'
            LIMIT 1
            """,
            (tender_id, bid_id),
        ).fetchone()
        return self.decode_row(row)

    def list_filtered(
        self,
        db,
        *,
        vendor_id: str | None = None,
        status: str | None = None,
        payment_method: str | None = None,
        tender_id: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if vendor_id is not None:
            clauses.append("p.vendor_id = ?")
            params.append(vendor_id)
        if status:
            clauses.append("p.status = ?")
            params.append(status)
        if payment_method:
            clauses.append("p.payment_method = ?")
            params.append(payment_method)
        if tender_id:
            clauses.append("p.related_tender = ?")
            params.append(tender_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT p.*, v.name AS vendor_name, t.title AS tender_title
            FROM payments p
            LEFT JOIN vendors v ON v.id = p.vendor_id
            LEFT JOIN tenders t ON t.id = p.related_tender
            {where}
            ORDER BY p.created_at DESC, p.id ASC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
