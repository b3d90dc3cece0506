from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

from portal.application.validation import (
    future_timestamp,
    normalize_documents,
    optional_text,
    parse_flag,
    positive_amount,
    require_choice,
    require_text,
    score_value,
)
from portal.core import (
    BidEvaluated,
    BidSubmitted,
    EventBus,
    TenderAwarded,
    TenderCreated,
    TenderStatusChanged,
    TenderUpdated,
    get_event_bus,
)
from portal.db import is_unique_violation
from portal.domain.clock import deadline_passed, now_iso
from portal.domain.contracts import (
    SIBLING_REJECTION_NOTE,
    TENDER_CATEGORIES,
    BidEvaluationInput,
    BidSubmitInput,
    Principal,
    TenderCreateInput,
)
from portal.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from portal.infrastructure.repositories.bid_repository import BidRepository
from portal.infrastructure.repositories.tender_repository import TenderRepository
from portal.infrastructure.repositories.vendor_repository import VendorRepository
from portal.lifecycle.flow_policy import (
    RESTRICTED_STATUS_ACTIONS,
    action_allowed,
    action_for_transition,
    next_status,
)
from portal.policies import BidSubmission, can_view_all, require
from portal.ui_strings import status_keys_for_group


logger = logging.getLogger("portal")

TENDER_STATUSES = set(status_keys_for_group("tender"))
_EVALUATION_ACTIONS = ("review", "accept", "reject")


class TenderService:
    """Tender status machine with nested bid submission, evaluation and award."""

    def __init__(
        self,
        repository: TenderRepository | None = None,
        bids: BidRepository | None = None,
        vendors: VendorRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.repository = repository or TenderRepository()
        self.bids = bids or BidRepository()
        self.vendors = vendors or VendorRepository()
        self.event_bus = event_bus or get_event_bus()

    # -- reads -----------------------------------------------------------------

    def get_tender(self, db, tender_id: str) -> dict:
        tender = self.repository.get_by_id(db, tender_id)
        if not tender:
            raise NotFoundError(code="tender_not_found", payload={"tender_id": tender_id})
        return tender

    def get_bid(self, db, bid_id: str) -> dict:
        bid = self.bids.get_by_id(db, bid_id)
        if not bid:
            raise NotFoundError(code="bid_not_found", payload={"bid_id": bid_id})
        return bid

    def _own_vendor(self, db, principal: Principal) -> dict | None:
        return self.vendors.get_by_user_id(db, principal.user_id)

    def get_visible_tender(self, db, principal: Principal, tender_id: str) -> dict:
        if principal is None:
            require(principal, "tender.view_all")
        tender = self.get_tender(db, tender_id)
        if can_view_all(principal, "tender") or tender.get("status") == "published":
            return tender
        vendor = self._own_vendor(db, principal)
        if vendor and self.bids.get_for_tender_and_vendor(db, tender_id, vendor["id"]):
            return tender
        raise NotFoundError(code="tender_not_found", payload={"tender_id": tender_id})

    def list_tenders(self, db, principal: Principal, **filters: Any) -> list[dict]:
        if principal is None:
            require(principal, "tender.view_all")
        if can_view_all(principal, "tender"):
            tenders = self.repository.list_filtered(db, **filters)
        else:
            vendor = self._own_vendor(db, principal)
            # Unknown id keeps the bid clause false for principals without a vendor profile.
            visible_to = vendor["id"] if vendor else ""
            tenders = self.repository.list_filtered(db, visible_to_vendor_id=visible_to, **filters)
        counts = self.repository.bid_counts(db, [tender["id"] for tender in tenders])
        for tender in tenders:
            tender["bid_count"] = counts.get(tender["id"], 0)
        return tenders

    def list_bids_for_tender(self, db, principal: Principal, tender_id: str) -> list[dict]:
        tender = self.get_visible_tender(db, principal, tender_id)
        bids = self.bids.list_for_tender(db, tender["id"])
        if can_view_all(principal, "bid"):
            return bids
        vendor = self._own_vendor(db, principal)
        return [bid for bid in bids if vendor and bid["vendor_id"] == vendor["id"]]

    def list_my_bids(self, db, principal: Principal) -> list[dict]:
        require(principal, "bid.submit")
        vendor = self._own_vendor(db, principal)
        if not vendor:
            return []
        return self.bids.list_for_vendor(db, vendor["id"])

    # -- tender writes -----------------------------------------------------------

    def create_tender(self, db, principal: Principal, data: TenderCreateInput) -> dict:
        require(principal, "tender.create")
        values = {
            "title": require_text(data.title, "title", code="title_required"),
            "description": require_text(data.description, "description", code="description_required"),
            "estimated_value": positive_amount(data.estimated_value, "estimated_value_invalid"),
            "category": require_choice(data.category, TENDER_CATEGORIES, "category_invalid"),
            "submission_deadline": future_timestamp(data.submission_deadline),
            "is_reserved_for_mse": parse_flag(data.is_reserved_for_mse),
            "documents": normalize_documents(data.documents),
            "status": "draft",
            "created_by": principal.user_id,
        }
        with db.transaction():
            tender_id = self.repository.insert(db, values)
            self.event_bus.publish(
                db,
                TenderCreated(
                    actor_id=principal.user_id,
                    tender_id=tender_id,
                    title=values["title"],
                    is_reserved_for_mse=values["is_reserved_for_mse"],
                ),
            )
        logger.info("tender_created", extra={"tender_id": tender_id, "category": values["category"]})
        return self.get_tender(db, tender_id)

    def update_tender(self, db, principal: Principal, tender_id: str, changes: Dict[str, Any]) -> dict:
        require(principal, "tender.update")
        tender = self.get_tender(db, tender_id)
        if not action_allowed("tender", tender.get("status"), "edit_tender"):
            raise ConflictError(code="tender_locked", payload={"status": tender.get("status")})

        parsers = {
            "title": lambda value: require_text(value, "title", code="title_required"),
            "description": lambda value: require_text(value, "description", code="description_required"),
            "estimated_value": lambda value: positive_amount(value, "estimated_value_invalid"),
            "category": lambda value: require_choice(value, TENDER_CATEGORIES, "category_invalid"),
            "submission_deadline": future_timestamp,
            "is_reserved_for_mse": parse_flag,
            "documents": normalize_documents,
        }
        values = {field: parse(changes[field]) for field, parse in parsers.items() if field in changes}
        if not values:
            raise ValidationError(code="no_changes")

        with db.transaction():
            if not self.repository.update(db, tender_id, values, expected_status="draft"):
                raise ConflictError(code="state_changed", payload={"tender_id": tender_id})
            self.event_bus.publish(
                db,
                TenderUpdated(actor_id=principal.user_id, tender_id=tender_id, fields=tuple(sorted(values))),
            )
        return self.get_tender(db, tender_id)

    def set_status(self, db, principal: Principal, tender_id: str, target: str) -> dict:
        require(principal, "tender.set_status")
        target = str(target or "").strip()
        if target not in TENDER_STATUSES:
            raise ValidationError(code="status_invalid", payload={"status": target})
        tender = self.get_tender(db, tender_id)
        current = str(tender.get("status") or "")
        action = action_for_transition("tender", current, target)
        if action is None:
            raise ConflictError(code="illegal_transition", payload={"status": current, "target": target})
        if ("tender", action) in RESTRICTED_STATUS_ACTIONS:
            raise ValidationError(code="award_via_bid", payload={"status": current, "target": target})
        if action == "unpublish" and deadline_passed(tender.get("submission_deadline")):
            raise ConflictError(code="deadline_passed", payload={"tender_id": tender_id})

        with db.transaction():
            if not self.repository.update(db, tender_id, {"status": target}, expected_status=current):
                raise ConflictError(code="state_changed", payload={"tender_id": tender_id})
            self.event_bus.publish(
                db,
                TenderStatusChanged(
                    actor_id=principal.user_id,
                    tender_id=tender_id,
                    previous_status=current,
                    new_status=target,
                ),
            )
        logger.info(
            "tender_status_changed",
            extra={"tender_id": tender_id, "from_status": current, "to_status": target, "action": action},
        )
        return self.get_tender(db, tender_id)

    def award_tender(self, db, principal: Principal, tender_id: str, bid_id: str) -> dict:
        """Accept ``bid_id``, mark the tender awarded and reject every other live bid, atomically."""
        require(principal, "tender.award")
        tender = self.get_tender(db, tender_id)
        bid = self.get_bid(db, bid_id)
        if bid.get("tender_id") != tender_id:
            raise ValidationError(code="bid_not_in_tender", payload={"tender_id": tender_id, "bid_id": bid_id})
        if tender.get("status") != "under_review":
            raise ConflictError(code="state_changed", payload={"tender_id": tender_id, "status": tender.get("status")})
        bid_status = str(bid.get("status") or "")
        if not action_allowed("bid", bid_status, "accept"):
            raise ConflictError(code="illegal_transition", payload={"bid_id": bid_id, "status": bid_status})

        stamp = now_iso()
        with db.transaction():
            accepted = self.bids.update(
                db,
                bid_id,
                {"status": "accepted", "evaluated_by": principal.user_id, "evaluated_at": stamp},
                expected_status=bid_status,
            )
            if not accepted:
                raise ConflictError(code="state_changed", payload={"bid_id": bid_id})
            awarded = self.repository.update(
                db,
                tender_id,
                {"status": "awarded", "awarded_bid_id": bid_id},
                expected_status="under_review",
            )
            if not awarded:
                raise ConflictError(code="state_changed", payload={"tender_id": tender_id})
            rejected_ids = self.bids.reject_siblings(
                db,
                tender_id=tender_id,
                accepted_bid_id=bid_id,
                evaluated_by=principal.user_id,
                note=SIBLING_REJECTION_NOTE,
            )
            vendor = self.vendors.get_by_id(db, bid["vendor_id"]) or {}
            self.event_bus.publish(
                db,
                TenderAwarded(
                    actor_id=principal.user_id,
                    tender_id=tender_id,
                    bid_id=bid_id,
                    vendor_id=bid["vendor_id"],
                    vendor_user_id=str(vendor.get("user_id") or ""),
                    title=str(tender.get("title") or ""),
                    rejected_bid_ids=tuple(rejected_ids),
                ),
            )
        logger.info(
            "tender_awarded",
            extra={"tender_id": tender_id, "bid_id": bid_id, "rejected_bids": len(rejected_ids)},
        )
        return self.get_tender(db, tender_id)

    # -- bids -------------------------------------------------------------------

    def submit_bid(self, db, principal: Principal, data: BidSubmitInput, *, now: datetime | None = None) -> dict:
        require(principal, "bid.submit")
        amount = positive_amount(data.amount)
        documents = normalize_documents(data.documents)
        tender = self.get_tender(db, data.tender_id)

        if data.vendor_id and principal.is_admin:
            vendor = self.vendors.get_by_id(db, data.vendor_id)
        else:
            vendor = self._own_vendor(db, principal)
        if not vendor:
            raise AuthorizationError(reason="vendor_not_active", payload={"action": "bid.submit"})

        existing = self.bids.get_for_tender_and_vendor(db, tender["id"], vendor["id"])
        require(principal, "bid.submit", BidSubmission(vendor=vendor, tender=tender, existing_bid=existing), now=now)

        with db.transaction():
            try:
                bid_id = self.bids.insert(
                    db,
                    {
                        "tender_id": tender["id"],
                        "vendor_id": vendor["id"],
                        "amount": amount,
                        "status": "submitted",
                        "notes": optional_text(data.notes),
                        "documents": documents,
                    },
                )
            except Exception as exc:
                if is_unique_violation(exc, ("uq_bids_tender_vendor", "bids.tender_id")):
                    raise ConflictError(code="duplicate_bid", details=str(exc)) from exc
                raise
            self.event_bus.publish(
                db,
                BidSubmitted(
                    actor_id=principal.user_id,
                    bid_id=bid_id,
                    tender_id=tender["id"],
                    vendor_id=vendor["id"],
                    amount=amount,
                ),
            )
        logger.info("bid_submitted", extra={"bid_id": bid_id, "tender_id": tender["id"]})
        return self.get_bid(db, bid_id)

    def evaluate_bid(self, db, principal: Principal, data: BidEvaluationInput) -> dict:
        require(principal, "bid.evaluate")
        action = str(data.action or "").strip()
        if action not in _EVALUATION_ACTIONS:
            raise ValidationError(code="evaluation_action_invalid")
        bid = self.get_bid(db, data.bid_id)
        tender = self.get_tender(db, bid["tender_id"])
        if tender.get("status") != "under_review":
            raise ConflictError(code="tender_not_under_review", payload={"status": tender.get("status")})
        current = str(bid.get("status") or "")
        if not action_allowed("bid", current, action):
            raise ConflictError(code="illegal_transition", payload={"status": current, "action": action})

        if action == "accept":
            self.award_tender(db, principal, tender["id"], bid["id"])
            return self.get_bid(db, bid["id"])

        values: Dict[str, Any] = {"evaluated_by": principal.user_id, "evaluated_at": now_iso()}
        if action == "review":
            if data.technical_score is None:
                raise ValidationError(code="score_invalid")
            values["technical_score"] = score_value(data.technical_score)
        else:
            values["notes"] = require_text(data.reason, "reason", code="reason_required")
            if data.technical_score is not None:
                values["technical_score"] = score_value(data.technical_score)
        target = next_status("bid", current, action)
        values["status"] = target

        vendor = self.vendors.get_by_id(db, bid["vendor_id"]) or {}
        with db.transaction():
            if not self.bids.update(db, bid["id"], values, expected_status=current):
                raise ConflictError(code="state_changed", payload={"bid_id": bid["id"]})
            self.event_bus.publish(
                db,
                BidEvaluated(
                    actor_id=principal.user_id,
                    bid_id=bid["id"],
                    tender_id=tender["id"],
                    vendor_id=bid["vendor_id"],
                    vendor_user_id=str(vendor.get("user_id") or ""),
                    previous_status=current,
                    new_status=target,
                    technical_score=values.get("technical_score"),
                ),
            )
        return self.get_bid(db, bid["id"])
