from portal.core.event_bus import (
    BidEvaluated,
    BidSubmitted,
    ComplianceScoreUpdated,
    DomainEvent,
    EventBus,
    PaymentCreated,
    PaymentStatusChanged,
    TenderAwarded,
    TenderCreated,
    TenderStatusChanged,
    TenderUpdated,
    VendorDocumentVerified,
    VendorProfileUpdated,
    VendorRegistered,
    VendorStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "VendorRegistered",
    "VendorStatusChanged",
    "VendorProfileUpdated",
    "VendorDocumentVerified",
    "ComplianceScoreUpdated",
    "TenderCreated",
    "TenderUpdated",
    "TenderStatusChanged",
    "TenderAwarded",
    "BidSubmitted",
    "BidEvaluated",
    "PaymentCreated",
    "PaymentStatusChanged",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
