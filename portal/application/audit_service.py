from __future__ import annotations

import logging

from portal.application.validation import bounded_int
from portal.core import (
    BidEvaluated,
    ComplianceScoreUpdated,
    DomainEvent,
    EventBus,
    PaymentCreated,
    PaymentStatusChanged,
    TenderAwarded,
    VendorRegistered,
    VendorStatusChanged,
)
from portal.domain.contracts import ROLE_ADMIN, ROLE_PROCUREMENT_OFFICER, Principal
from portal.errors import NotFoundError
from portal.infrastructure.repositories.audit_repository import ActionLogRepository, NotificationRepository
from portal.infrastructure.repositories.auth_repository import AuthRepository
from portal.infrastructure.repositories.bid_repository import BidRepository
from portal.infrastructure.repositories.vendor_repository import VendorRepository
from portal.policies import require, require_roles
from portal.ui_strings import notification_message, status_label, vendor_status_notification


logger = logging.getLogger("portal")

_action_logs = ActionLogRepository()
_notifications = NotificationRepository()
_auth_users = AuthRepository()
_bids = BidRepository()
_vendors = VendorRepository()


def _notify(db, user_id: str | None, kind: str, message: str, related_id: str | None) -> None:
    if not user_id:
        logger.warning("notification_without_recipient", extra={"notification_type": kind, "related_id": related_id})
        return
    _notifications.append(db, user_id=user_id, type=kind, message=message, related_id=related_id)


def record_action(db, event: DomainEvent) -> None:
    _action_logs.append(
        db,
        user_id=event.actor_id or None,
        action=event.action,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        details=event.details(),
    )


def notify_vendor_registered(db, event: VendorRegistered) -> None:
    message = notification_message("vendor_approval", name=event.name)
    for user_id in _auth_users.list_user_ids_by_roles(db, (ROLE_PROCUREMENT_OFFICER, ROLE_ADMIN)):
        _notify(db, user_id, "vendor_approval", message, event.vendor_id)


def notify_vendor_status(db, event: VendorStatusChanged) -> None:
    _notify(db, event.vendor_user_id, "vendor_status", vendor_status_notification(event.new_status), event.vendor_id)


def notify_compliance_update(db, event: ComplianceScoreUpdated) -> None:
    message = notification_message(
        "compliance_update",
        previous_score=f"{event.previous_score:g}",
        new_score=f"{event.new_score:g}",
    )
    _notify(db, event.vendor_user_id, "compliance_update", message, event.vendor_id)


def notify_tender_awarded(db, event: TenderAwarded) -> None:
    _notify(
        db,
        event.vendor_user_id,
        "bid_status",
        notification_message("bid_accepted", title=event.title),
        event.bid_id,
    )
    for bid_id in event.rejected_bid_ids:
        bid = _bids.get_by_id(db, bid_id)
        vendor = _vendors.get_by_id(db, bid["vendor_id"]) if bid else None
        if not vendor:
            logger.warning("rejected_bid_vendor_missing", extra={"bid_id": bid_id})
            continue
        _notify(
            db,
            vendor.get("user_id"),
            "bid_status",
            notification_message("bid_not_selected", title=event.title),
            bid_id,
        )


def notify_bid_evaluated(db, event: BidEvaluated) -> None:
    message = notification_message("bid_evaluated", status=status_label("bid", event.new_status))
    _notify(db, event.vendor_user_id, "bid_status", message, event.bid_id)


def notify_payment_created(db, event: PaymentCreated) -> None:
    message = notification_message("payment_created", amount=f"{event.amount:,.2f}")
    _notify(db, event.vendor_user_id, "payment", message, event.payment_id)


def notify_payment_status(db, event: PaymentStatusChanged) -> None:
    message = notification_message("payment_status", status=status_label("payment", event.new_status))
    _notify(db, event.vendor_user_id, "payment", message, event.payment_id)


def register_audit_handlers(event_bus: EventBus) -> None:
    event_bus.subscribe(DomainEvent, record_action)
    event_bus.subscribe(VendorRegistered, notify_vendor_registered)
    event_bus.subscribe(VendorStatusChanged, notify_vendor_status)
    event_bus.subscribe(ComplianceScoreUpdated, notify_compliance_update)
    event_bus.subscribe(TenderAwarded, notify_tender_awarded)
    event_bus.subscribe(BidEvaluated, notify_bid_evaluated)
    event_bus.subscribe(PaymentCreated, notify_payment_created)
    event_bus.subscribe(PaymentStatusChanged, notify_payment_status)


class AuditService:
    """Read side of action logs and notifications."""

    def __init__(
        self,
        action_logs: ActionLogRepository | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self.action_logs = action_logs or _action_logs
        self.notifications = notifications or _notifications

    def list_action_logs(
        self,
        db,
        principal: Principal,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        limit=None,
    ) -> list[dict]:
        require(principal, "action_log.view")
        return self.action_logs.list_filtered(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            limit=bounded_int(limit, default=100, min_value=1, max_value=500),
        )

    def list_my_action_logs(self, db, principal: Principal, *, limit=None) -> list[dict]:
        require_roles(principal)
        return self.action_logs.list_filtered(
            db,
            user_id=principal.user_id,
            limit=bounded_int(limit, default=100, min_value=1, max_value=500),
        )

    def list_notifications(
        self,
        db,
        principal: Principal,
        *,
        is_read: bool | None = False,
        type: str | None = None,
        limit=None,
    ) -> list[dict]:
        require_roles(principal)
        return self.notifications.list_for_user(
            db,
            principal.user_id,
            is_read=is_read,
            type=type,
            limit=bounded_int(limit, default=10, min_value=1, max_value=100),
        )

    def unread_count(self, db, principal: Principal, *, type: str | None = None) -> int:
        require_roles(principal)
        return self.notifications.unread_count(db, principal.user_id, type=type)

    def mark_read(self, db, principal: Principal, notification_id: str) -> None:
        require_roles(principal)
        if not self.notifications.mark_read(db, notification_id, principal.user_id):
            raise NotFoundError(code="notification_not_found", payload={"notification_id": notification_id})

    def mark_all_read(self, db, principal: Principal, *, type: str | None = None) -> int:
        require_roles(principal)
        return self.notifications.mark_all_read(db, principal.user_id, type=type)
