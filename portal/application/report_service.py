from __future__ import annotations

from portal.application.validation import optional_text, require_choice
from portal.domain.clock import parse_timestamp, to_iso
from portal.domain.contracts import BUSINESS_TYPES, Principal
from portal.errors import ValidationError
from portal.infrastructure.repositories.report_repository import ReportRepository
from portal.policies import require
from portal.ui_strings import status_keys_for_group


def _date_filter(value, field: str) -> str | None:
    raw = optional_text(value)
    if raw is None:
        return None
    parsed = parse_timestamp(raw)
    if parsed is None:
        raise ValidationError(code="date_invalid", payload={"field": field})
    return to_iso(parsed)


def _status_filter(value, group: str) -> str | None:
    raw = optional_text(value)
    if raw is None:
        return None
    return require_choice(raw, status_keys_for_group(group), "status_invalid")


class ReportService:
    """Dashboard counters and tabular reports. Reads are best-effort snapshots."""

    def __init__(self, repository: ReportRepository | None = None) -> None:
        self.repository = repository or ReportRepository()

    def dashboard(self, db, principal: Principal) -> dict:
        require(principal, "report.view")
        tenders = self.repository.tender_status_counts(db)
        vendors = self.repository.vendor_counts(db)
        payments = self.repository.payment_totals(db)
        return {
            "tenders": {
                "total": sum(tenders.values()),
                "draft": tenders.get("draft", 0),
                "published": tenders.get("published", 0),
                "under_review": tenders.get("under_review", 0),
                "awarded": tenders.get("awarded", 0),
                "cancelled": tenders.get("cancelled", 0),
            },
            "vendors": vendors,
            "payments": payments,
        }

    def tender_report(self, db, principal: Principal, *, status=None, start_date=None, end_date=None) -> list[dict]:
        require(principal, "report.view")
        return self.repository.tender_report(
            db,
            status=_status_filter(status, "tender"),
            start_date=_date_filter(start_date, "start_date"),
            end_date=_date_filter(end_date, "end_date"),
        )

    def vendor_report(self, db, principal: Principal, *, status=None, business_type=None) -> list[dict]:
        require(principal, "report.view")
        business_type = optional_text(business_type)
        return self.repository.vendor_report(
            db,
            status=_status_filter(status, "vendor"),
            business_type=require_choice(business_type, BUSINESS_TYPES, "business_type_invalid") if business_type else None,
        )

    def payment_report(self, db, principal: Principal, *, status=None, start_date=None, end_date=None) -> list[dict]:
        require(principal, "report.view")
        return self.repository.payment_report(
            db,
            status=_status_filter(status, "payment"),
            start_date=_date_filter(start_date, "start_date"),
            end_date=_date_filter(end_date, "end_date"),
        )
