from __future__ import annotations

from typing import Any, Dict

from portal.infrastructure.repositories.base import BaseRepository


class VendorRepository(BaseRepository):
    table = "vendors"
    json_columns = ("bank_details", "documents")
    writable_columns = frozenset(
        {
            "user_id",
            "name",
            "business_type",
            "contact_person",
            "email",
            "phone",
            "address",
            "mse_certificate",
            "status",
            "compliance_score",
            "bank_details",
            "documents",
            "rejection_reason",
            "approved_by",
            "approved_at",
        }
    )

    def get_by_user_id(self, db, user_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM vendors WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return self.decode_row(row)

    def exists_for_user_or_email(self, db, *, user_id: str, email: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM vendors WHERE user_id = ? OR lower(email) = ? LIMIT 1",
            (user_id, email.lower()),
        ).fetchone()
        return bool(row)

    def list_filtered(
        self,
        db,
        *,
        status: str | None = None,
        business_type: str | None = None,
        search: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if business_type:
            clauses.append("business_type = ?")
            params.append(business_type)
        if search:
            clauses.append("(lower(name) LIKE ? OR lower(email) LIKE ?)")
            pattern = f"%{search.strip().lower()}%"
            params.extend([pattern, pattern])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM vendors
            {where}
            ORDER BY created_at DESC, id ASC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)


class VendorApprovalLogRepository(BaseRepository):
    table = "vendor_approval_logs"
    writable_columns = frozenset({"vendor_id", "previous_status", "new_status", "reason", "approved_by"})

    def append(self, db, **values: Any) -> str:
        return self.insert(db, values, timestamps=("created_at",))

    def list_for_vendor(self, db, vendor_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM vendor_approval_logs
            WHERE vendor_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (vendor_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)


class ComplianceHistoryRepository(BaseRepository):
    table = "compliance_history"
    writable_columns = frozenset(
        {"vendor_id", "previous_score", "new_score", "score_change", "type", "description", "updated_by"}
    )

    def append(self, db, **values: Any) -> str:
        return self.insert(db, values, timestamps=("created_at",))

    def list_for_vendor(self, db, vendor_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM compliance_history
            WHERE vendor_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (vendor_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def latest_for_vendor(self, db, vendor_id: str) -> Dict[str, Any] | None:
        history = self.list_for_vendor(db, vendor_id)
        return history[0] if history else None
