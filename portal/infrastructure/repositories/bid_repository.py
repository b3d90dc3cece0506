from __future__ import annotations

from portal.domain.clock import now_iso
from portal.infrastructure.repositories.base import BaseRepository


class BidRepository(BaseRepository):
    table = "bids"
    json_columns = ("documents",)
    writable_columns = frozenset(
        {
            "tender_id",
            "vendor_id",
            "amount",
            "status",
            "technical_score",
            "notes",
            "documents",
            "evaluated_by",
            "evaluated_at",
        }
    )

    def get_for_tender_and_vendor(self, db, tender_id: str, vendor_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM bids WHERE tender_id = ? AND vendor_id = ? LIMIT 1",
            (tender_id, vendor_id),
        ).fetchone()
        return self.decode_row(row)

    def list_for_tender(self, db, tender_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT b.*, v.name AS vendor_name, v.business_type AS vendor_business_type
            FROM bids b
            LEFT JOIN vendors v ON v.id = b.vendor_id
            WHERE b.tender_id = ?
            ORDER BY b.amount ASC, b.created_at ASC
            """,
            (tender_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_for_vendor(self, db, vendor_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT b.*, t.title AS tender_title, t.status AS tender_status
            FROM bids b
            LEFT JOIN tenders t ON t.id = b.tender_id
            WHERE b.vendor_id = ?
            ORDER BY b.created_at DESC, b.id ASC
            """,
            (vendor_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def reject_siblings(self, db, *, tender_id: str, accepted_bid_id: str, evaluated_by: str, note: str) -> list[str]:
        """Reject every other bid of the tender that is not rejected yet; returns the ids touched."""
        rows = db.execute(
            """
            SELECT id
            FROM bids
            WHERE tender_id = ? AND id <> ? AND status <> 'rejected'
            """,
            (tender_id, accepted_bid_id),
        ).fetchall()
        sibling_ids = [str(row["id"]) for row in rows]
        if not sibling_ids:
            return []
        stamp = now_iso()
        db.execute(
            """
            UPDATE bids
            SET status = 'rejected', notes = ?, evaluated_by = ?, evaluated_at = ?, updated_at = ?
            WHERE tender_id = ? AND id <> ? AND status <> 'rejected'
            """,
            (note, evaluated_by, stamp, stamp, tender_id, accepted_bid_id),
        )
        return sibling_ids
