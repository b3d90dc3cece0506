from __future__ import annotations

import logging
import time
from typing import Any, Dict

from portal.application.validation import optional_text, positive_amount, require_choice, require_text
from portal.core import EventBus, PaymentCreated, PaymentStatusChanged, get_event_bus
from portal.db import is_unique_violation
from portal.domain.clock import now_iso
from portal.domain.contracts import PAYMENT_METHODS, PaymentCreateInput, PaymentInfoInput, Principal
from portal.errors import AuthorizationError, ConflictError, NotFoundError
from portal.infrastructure.repositories.bid_repository import BidRepository
from portal.infrastructure.repositories.payment_repository import PaymentRepository
from portal.infrastructure.repositories.tender_repository import TenderRepository
from portal.infrastructure.repositories.vendor_repository import VendorRepository
from portal.lifecycle.flow_policy import action_allowed, next_status
from portal.policies import can_view_all, require
from portal.security import issue_public_payment_token, public_payment_token_mode, verify_public_payment_token


logger = logging.getLogger("portal")

QR_NOTE = "Paid via QR Code"
QR_PAYMENT_METHOD = "bank_transfer"

# Fields exposed on the unauthenticated payment page.
_PUBLIC_FIELDS = (
    "id",
    "amount",
    "payment_method",
    "status",
    "transaction_id",
    "payment_date",
    "notes",
    "vendor_name",
    "tender_title",
    "created_at",
)


def _append_note(existing: str | None, note: str) -> str:
    existing = str(existing or "").strip()
    return f"{existing} | {note}" if existing else note


def qr_transaction_id(now_ms: int | None = None) -> str:
    return f"QR-{now_ms if now_ms is not None else int(time.time() * 1000)}"


class PaymentService:
    """Payments for awarded bids: pending -> processing -> completed, or failed."""

    def __init__(
        self,
        repository: PaymentRepository | None = None,
        tenders: TenderRepository | None = None,
        bids: BidRepository | None = None,
        vendors: VendorRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.repository = repository or PaymentRepository()
        self.tenders = tenders or TenderRepository()
        self.bids = bids or BidRepository()
        self.vendors = vendors or VendorRepository()
        self.event_bus = event_bus or get_event_bus()

    def get_payment(self, db, payment_id: str) -> dict:
        payment = self.repository.get_with_context(db, payment_id)
        if not payment:
            raise NotFoundError(code="payment_not_found", payload={"payment_id": payment_id})
        return payment

    def _payment_vendor(self, db, payment: dict) -> dict:
        return self.vendors.get_by_id(db, payment["vendor_id"]) or {}

    def get_visible_payment(self, db, principal: Principal, payment_id: str) -> dict:
        if principal is None:
            require(principal, "payment.view_all")
        payment = self.get_payment(db, payment_id)
        if can_view_all(principal, "payment") or payment.get("vendor_user_id") == principal.user_id:
            return payment
        raise NotFoundError(code="payment_not_found", payload={"payment_id": payment_id})

    def list_payments(self, db, principal: Principal, **filters: Any) -> list[dict]:
        if can_view_all(principal, "payment"):
            return self.repository.list_filtered(db, **filters)
        require(principal, "payment.submit_info")
        vendor = self.vendors.get_by_user_id(db, principal.user_id)
        if not vendor:
            return []
        filters.pop("vendor_id", None)
        return self.repository.list_filtered(db, vendor_id=vendor["id"], **filters)

    def create_payment(self, db, principal: Principal, data: PaymentCreateInput) -> dict:
        require(principal, "payment.create")
        amount = positive_amount(data.amount)
        method = require_choice(data.payment_method, PAYMENT_METHODS, "payment_method_invalid")
        tender = self.tenders.get_by_id(db, data.tender_id)
        if not tender:
            raise NotFoundError(code="tender_not_found", payload={"tender_id": data.tender_id})
        bid = self.bids.get_by_id(db, data.bid_id)
        if not bid:
            raise NotFoundError(code="bid_not_found", payload={"bid_id": data.bid_id})

        is_award = (
            tender.get("status") == "awarded"
            and bid.get("status") == "accepted"
            and bid.get("tender_id") == tender["id"]
            and tender.get("awarded_bid_id") == bid["id"]
        )
        if not is_award:
            raise ConflictError(code="award_required", payload={"tender_id": tender["id"], "bid_id": bid["id"]})
        if self.repository.find_active_for_award(db, tender["id"], bid["id"]):
            raise ConflictError(code="duplicate_payment", payload={"tender_id": tender["id"], "bid_id": bid["id"]})

        vendor = self.vendors.get_by_id(db, bid["vendor_id"]) or {}
        with db.transaction():
            try:
                payment_id = self.repository.insert(
                    db,
                    {
                        "vendor_id": bid["vendor_id"],
                        "amount": amount,
                        "payment_method": method,
                        "status": "pending",
                        "related_tender": tender["id"],
                        "related_bid": bid["id"],
                        "notes": optional_text(data.notes),
                        "processed_by": principal.user_id,
                    },
                )
            except Exception as exc:
                if is_unique_violation(exc, ("uq_payments_award", "payments.related_tender")):
                    raise ConflictError(code="duplicate_payment", details=str(exc)) from exc
                raise
            self.event_bus.publish(
                db,
                PaymentCreated(
                    actor_id=principal.user_id,
                    payment_id=payment_id,
                    vendor_id=bid["vendor_id"],
                    vendor_user_id=str(vendor.get("user_id") or ""),
                    amount=amount,
                    tender_id=tender["id"],
                    bid_id=bid["id"],
                ),
            )
        logger.info("payment_created", extra={"payment_id": payment_id, "tender_id": tender["id"]})
        return self.get_payment(db, payment_id)

    def _transition(
        self,
        db,
        payment: dict,
        action: str,
        values: Dict[str, Any],
        *,
        actor_id: str,
    ) -> dict:
        current = str(payment.get("status") or "")
        if not action_allowed("payment", current, action):
            raise ConflictError(
                code="illegal_transition",
                payload={"payment_id": payment["id"], "status": current, "action": action},
            )
        target = next_status("payment", current, action)
        with db.transaction():
            if not self.repository.update(db, payment["id"], {**values, "status": target}, expected_status=current):
                raise ConflictError(code="state_changed", payload={"payment_id": payment["id"]})
            self.event_bus.publish(
                db,
                PaymentStatusChanged(
                    actor_id=actor_id,
                    payment_id=payment["id"],
                    vendor_id=payment["vendor_id"],
                    vendor_user_id=str(payment.get("vendor_user_id") or ""),
                    previous_status=current,
                    new_status=target,
                ),
            )
        logger.info(
            "payment_status_changed",
            extra={"payment_id": payment["id"], "from_status": current, "to_status": target, "action": action},
        )
        return self.get_payment(db, payment["id"])

    def submit_payment_info(self, db, principal: Principal, data: PaymentInfoInput) -> dict:
        payment = self.get_payment(db, data.payment_id)
        require(principal, "payment.submit_info", self._payment_vendor(db, payment))
        method = require_choice(data.payment_method, PAYMENT_METHODS, "payment_method_invalid")
        transaction_id = require_text(data.transaction_id, "transaction_id", code="transaction_id_required")
        note = optional_text(data.notes)
        notes = _append_note(payment.get("notes"), f"Vendor note: {note}") if note else payment.get("notes")
        return self._transition(
            db,
            payment,
            "submit_info",
            {"payment_method": method, "transaction_id": transaction_id, "notes": notes},
            actor_id=principal.user_id,
        )

    def _qr_values(self, payment: dict) -> Dict[str, Any]:
        return {
            "payment_method": QR_PAYMENT_METHOD,
            "transaction_id": qr_transaction_id(),
            "notes": _append_note(payment.get("notes"), QR_NOTE),
        }

    def pay_via_qr(self, db, principal: Principal, payment_id: str) -> dict:
        payment = self.get_payment(db, payment_id)
        require(principal, "payment.pay_via_qr", self._payment_vendor(db, payment))
        return self._transition(db, payment, "pay_via_qr", self._qr_values(payment), actor_id=principal.user_id)

    def complete_payment(self, db, principal: Principal, payment_id: str) -> dict:
        require(principal, "payment.complete")
        payment = self.get_payment(db, payment_id)
        return self._transition(
            db,
            payment,
            "complete",
            {"payment_date": now_iso(), "processed_by": principal.user_id},
            actor_id=principal.user_id,
        )

    def fail_payment(self, db, principal: Principal, payment_id: str, reason: str | None = None) -> dict:
        """Reconciliation outcome; reachable from pending or processing."""
        require(principal, "payment.fail")
        payment = self.get_payment(db, payment_id)
        reason = optional_text(reason)
        values: Dict[str, Any] = {"processed_by": principal.user_id}
        if reason:
            values["notes"] = _append_note(payment.get("notes"), f"Failed: {reason}")
        return self._transition(db, payment, "fail", values, actor_id=principal.user_id)

    # -- public link ---------------------------------------------------------

    def public_link(self, db, principal: Principal, payment_id: str) -> dict:
        payment = self.get_visible_payment(db, principal, payment_id)
        token = issue_public_payment_token(payment["id"], str(payment.get("vendor_user_id") or ""))
        return {
            "payment_id": payment["id"],
            "token": token,
            "mode": public_payment_token_mode(),
            "path": f"/api/public/payments/{payment['id']}",
        }

    def _authorized_public_payment(self, db, payment_id: str, token: str | None) -> dict:
        payment = self.repository.get_with_context(db, payment_id)
        vendor_user_id = str((payment or {}).get("vendor_user_id") or "")
        if not payment or not verify_public_payment_token(payment_id, vendor_user_id, token):
            # Unknown payments and bad tokens are indistinguishable to the caller.
            raise AuthorizationError(reason="token_mismatch", payload={"payment_id": payment_id})
        return payment

    def get_public_payment(self, db, payment_id: str, token: str | None) -> dict:
        payment = self._authorized_public_payment(db, payment_id, token)
        return {field: payment.get(field) for field in _PUBLIC_FIELDS}

    def pay_public_via_qr(self, db, payment_id: str, token: str | None) -> dict:
        payment = self._authorized_public_payment(db, payment_id, token)
        self._transition(
            db,
            payment,
            "pay_via_qr",
            self._qr_values(payment),
            actor_id=str(payment.get("vendor_user_id") or ""),
        )
        return self.get_public_payment(db, payment_id, token)
