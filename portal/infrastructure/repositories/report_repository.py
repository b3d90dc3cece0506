from __future__ import annotations

from typing import Any

from portal.infrastructure.repositories.base import BaseRepository


def _where(clauses: list[str]) -> str:
    return f"WHERE {' AND '.join(clauses)}" if clauses else ""


class ReportRepository(BaseRepository):
    """Read-only aggregations; rows are best-effort snapshots."""

    def tender_status_counts(self, db) -> dict[str, int]:
        rows = db.execute("SELECT status, COUNT(*) AS total FROM tenders GROUP BY status").fetchall()
        return {str(row["status"]): int(row["total"]) for row in rows}

    def vendor_counts(self, db) -> dict[str, int]:
        row = db.execute(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN business_type = 'MSE' THEN 1 ELSE 0 END) AS mse,
                SUM(CASE WHEN status = 'Active' THEN 1 ELSE 0 END) AS active,
                SUM(CASE WHEN status = 'Pending' THEN 1 ELSE 0 END) AS pending
            FROM vendors
            """
        ).fetchone()
        return {key: int((row[key] if row else 0) or 0) for key in ("total", "mse", "active", "pending")}

    def payment_totals(self, db) -> dict[str, float]:
        row = db.execute(
            """
            SELECT
                COALESCE(SUM(amount), 0) AS total_amount,
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed,
                SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending,
                SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END) AS processing,
                SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed
            FROM payments
            """
        ).fetchone()
        if not row:
            return {"total_amount": 0.0, "completed": 0, "pending": 0, "processing": 0, "failed": 0}
        return {
            "total_amount": float(row["total_amount"] or 0.0),
            "completed": int(row["completed"] or 0),
            "pending": int(row["pending"] or 0),
            "processing": int(row["processing"] or 0),
            "failed": int(row["failed"] or 0),
        }

    def tender_report(
        self,
        db,
        *,
        status: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("t.status = ?")
            params.append(status)
        if start_date:
            clauses.append("t.created_at >= ?")
            params.append(start_date)
        if end_date:
            clauses.append("t.created_at <= ?")
            params.append(end_date)
        rows = db.execute(
            f"""
            SELECT
                t.id, t.title, t.category, t.status, t.estimated_value, t.is_reserved_for_mse,
                t.submission_deadline, t.awarded_bid_id, t.created_at,
                COUNT(b.id) AS bid_count,
                MIN(b.amount) AS lowest_bid_amount,
                SUM(CASE WHEN v.business_type = 'MSE' THEN 1 ELSE 0 END) AS mse_bid_count
            FROM tenders t
            LEFT JOIN bids b ON b.tender_id = t.id
            LEFT JOIN vendors v ON v.id = b.vendor_id
            {_where(clauses)}
            GROUP BY t.id, t.title, t.category, t.status, t.estimated_value, t.is_reserved_for_mse,
                t.submission_deadline, t.awarded_bid_id, t.created_at
            ORDER BY t.created_at DESC, t.id ASC
            """,
            params,
        ).fetchall()
        return [
            {**dict(row), "is_reserved_for_mse": bool(row["is_reserved_for_mse"]), "mse_bid_count": int(row["mse_bid_count"] or 0)}
            for row in rows
        ]

    def vendor_report(self, db, *, status: str | None = None, business_type: str | None = None) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("v.status = ?")
            params.append(status)
        if business_type:
            clauses.append("v.business_type = ?")
            params.append(business_type)
        rows = db.execute(
            f"""
            SELECT
                v.id, v.name, v.business_type, v.status, v.compliance_score, v.email, v.created_at,
                COUNT(b.id) AS bid_count,
                SUM(CASE WHEN b.status = 'accepted' THEN 1 ELSE 0 END) AS won_count,
                COALESCE(SUM(CASE WHEN b.status = 'accepted' THEN b.amount ELSE 0 END), 0) AS won_amount
            FROM vendors v
            LEFT JOIN bids b ON b.vendor_id = v.id
            {_where(clauses)}
            GROUP BY v.id, v.name, v.business_type, v.status, v.compliance_score, v.email, v.created_at
            ORDER BY v.created_at DESC, v.id ASC
            """,
            params,
        ).fetchall()
        return [{**dict(row), "won_count": int(row["won_count"] or 0)} for row in rows]

    def payment_report(
        self,
        db,
        *,
        status: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("p.status = ?")
            params.append(status)
        if start_date:
            clauses.append("p.payment_date >= ?")
            params.append(start_date)
        if end_date:
            clauses.append("p.payment_date <= ?")
            params.append(end_date)
        rows = db.execute(
            f"""
            SELECT
                p.id, p.amount, p.payment_method, p.status, p.transaction_id, p.payment_date,
                p.related_tender, p.related_bid, p.created_at,
                v.name AS vendor_name, v.business_type AS vendor_business_type
            FROM payments p
            LEFT JOIN vendors v ON v.id = p.vendor_id
            {_where(clauses)}
            ORDER BY COALESCE(p.payment_date, p.created_at) DESC, p.id ASC
            """,
            params,
        ).fetchall()
        return self.rows_to_dicts(rows)
