from __future__ import annotations

from typing import Any

from portal.infrastructure.repositories.base import BaseRepository


class TenderRepository(BaseRepository):
    table = "tenders"
    json_columns = ("documents",)
    bool_columns = ("is_reserved_for_mse",)
    writable_columns = frozenset(
        {
            "title",
            "description",
            "estimated_value",
            "category",
            "submission_deadline",
            "status",
            "is_reserved_for_mse",
            "created_by",
            "awarded_bid_id",
            "documents",
        }
    )

    def list_filtered(
        self,
        db,
        *,
        status: str | None = None,
        category: str | None = None,
        reserved_for_mse: bool | None = None,
        search: str | None = None,
        visible_to_vendor_id: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if visible_to_vendor_id is not None:
            clauses.append(
                "(status = 'published' OR EXISTS (SELECT 1 FROM bids b WHERE b.tender_id = tenders.id AND b.vendor_id = ?))"
            )
            params.append(visible_to_vendor_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if category:
            clauses.append("category = ?")
            params.append(category)
        if reserved_for_mse is not None:
            clauses.append("is_reserved_for_mse = ?")
            params.append(bool(reserved_for_mse))
        if search:
            clauses.append("(lower(title) LIKE ? OR lower(description) LIKE ?)")
            pattern = f"%{search.strip().lower()}%"
            params.extend([pattern, pattern])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM tenders
            {where}
            ORDER BY created_at DESC, id ASC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def bid_counts(self, db, tender_ids: list[str]) -> dict[str, int]:
        if not tender_ids:
            return {}
        placeholders = ", ".join("?" for _ in tender_ids)
        rows = db.execute(
            f"""
            SELECT tender_id, COUNT(*) AS bid_count
            FROM bids
            WHERE tender_id IN ({placeholders})
            GROUP BY tender_id
            """,
            tender_ids,
        ).fetchall()
        return {str(row["tender_id"]): int(row["bid_count"]) for row in rows}
