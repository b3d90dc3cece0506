from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Tuple, Type

from portal.observability import observe_domain_event_emitted


EventHandler = Callable[[object, "DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)
    actor_id: str = ""

    entity_type = ""
    action = ""

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)
        object.__setattr__(self, "actor_id", str(self.actor_id or "").strip())

    @property
    def entity_id(self) -> str:
        return str(getattr(self, f"{self.entity_type}_id", "") or "")

    def details(self) -> Dict[str, object]:
        """Event fields for the action log, without the envelope."""
        payload: Dict[str, object] = {}
        for key, value in asdict(self).items():
            if key in {"event_id", "occurred_at", "actor_id"}:
                continue
            payload[key] = list(value) if isinstance(value, tuple) else value
        return payload


@dataclass(frozen=True, kw_only=True)
class VendorRegistered(DomainEvent):
    entity_type = "vendor"
    action = "vendor_registered"

    vendor_id: str
    user_id: str
    name: str
    business_type: str


@dataclass(frozen=True, kw_only=True)
class VendorStatusChanged(DomainEvent):
    entity_type = "vendor"
    action = "vendor_status_changed"

    vendor_id: str
    vendor_user_id: str
    previous_status: str
    new_status: str
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class VendorProfileUpdated(DomainEvent):
    entity_type = "vendor"
    action = "vendor_profile_updated"

    vendor_id: str
    fields: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class VendorDocumentVerified(DomainEvent):
    entity_type = "vendor"
    action = "vendor_document_verified"

    vendor_id: str
    document_index: int
    document_name: str = ""


@dataclass(frozen=True, kw_only=True)
class ComplianceScoreUpdated(DomainEvent):
    entity_type = "vendor"
    action = "compliance_updated"

    vendor_id: str
    vendor_user_id: str
    previous_score: float
    new_score: float
    type: str


@dataclass(frozen=True, kw_only=True)
class TenderCreated(DomainEvent):
    entity_type = "tender"
    action = "tender_created"

    tender_id: str
    title: str
    is_reserved_for_mse: bool = False


@dataclass(frozen=True, kw_only=True)
class TenderUpdated(DomainEvent):
    entity_type = "tender"
    action = "tender_updated"

    tender_id: str
    fields: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class TenderStatusChanged(DomainEvent):
    entity_type = "tender"
    action = "tender_status_changed"

    tender_id: str
    previous_status: str
    new_status: str


@dataclass(frozen=True, kw_only=True)
class TenderAwarded(DomainEvent):
    entity_type = "tender"
    action = "tender_awarded"

    tender_id: str
    bid_id: str
    vendor_id: str
    vendor_user_id: str
    title: str = ""
    rejected_bid_ids: Tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class BidSubmitted(DomainEvent):
    entity_type = "bid"
    action = "bid_submitted"

    bid_id: str
    tender_id: str
    vendor_id: str
    amount: float


@dataclass(frozen=True, kw_only=True)
class BidEvaluated(DomainEvent):
    entity_type = "bid"
    action = "bid_evaluated"

    bid_id: str
    tender_id: str
    vendor_id: str
    vendor_user_id: str
    previous_status: str
    new_status: str
    technical_score: float | None = None


@dataclass(frozen=True, kw_only=True)
class PaymentCreated(DomainEvent):
    entity_type = "payment"
    action = "payment_created"

    payment_id: str
    vendor_id: str
    vendor_user_id: str
    amount: float
    tender_id: str
    bid_id: str


@dataclass(frozen=True, kw_only=True)
class PaymentStatusChanged(DomainEvent):
    entity_type = "payment"
    action = "payment_status_changed"

    payment_id: str
    vendor_id: str
    vendor_user_id: str
    previous_status: str
    new_status: str


class EventBus:
    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("portal")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def publish(self, db, event: DomainEvent) -> None:
        """Run every handler on the caller's connection; a failing handler fails the write."""
        observe_domain_event_emitted(type(event).__name__)
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
            handlers.extend(
                handler for handler in self._handlers.get(DomainEvent, []) if handler not in handlers
            )
        for handler in handlers:
            try:
                handler(db, event)
            except Exception:
                self._logger.exception(
                    "event_handler_failed",
                    extra={"event_type": type(event).__name__, "event_id": event.event_id},
                )
                raise

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS


def reset_event_bus_for_tests() -> None:
    _DEFAULT_EVENT_BUS.clear()
