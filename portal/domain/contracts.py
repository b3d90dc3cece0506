from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


ROLE_VENDOR = "vendor"
ROLE_PROCUREMENT_OFFICER = "procurement_officer"
ROLE_FINANCE_OFFICER = "finance_officer"
ROLE_ADMIN = "admin"

BUSINESS_TYPES = ("MSE", "Large Enterprise")
TENDER_CATEGORIES = ("goods", "services", "works")
PAYMENT_METHODS = ("bank_transfer", "check", "credit_card")
COMPLIANCE_TYPES = ("positive", "negative", "neutral")
VENDOR_DOCUMENT_TYPES = ("registration", "tax", "mseCertificate", "other")

SIBLING_REJECTION_NOTE = "Another bid was accepted for this tender"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved per request and passed explicitly to every service call."""

    user_id: str
    role: str
    email: str | None = None
    display_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class VendorRegistrationInput:
    name: str
    business_type: str
    contact_person: str | None
    email: str
    phone: str | None
    address: str | None
    mse_certificate: str | None = None
    bank_details: Dict[str, Any] | None = None
    documents: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ComplianceUpdateInput:
    vendor_id: str
    score: float
    note: str | None
    type: str = "neutral"


@dataclass(frozen=True)
class TenderCreateInput:
    title: str
    description: str
    estimated_value: float
    category: str
    submission_deadline: str
    is_reserved_for_mse: bool = False
    documents: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class BidSubmitInput:
    tender_id: str
    vendor_id: str
    amount: float
    notes: str | None = None
    documents: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class BidEvaluationInput:
    bid_id: str
    action: str
    technical_score: float | None = None
    reason: str | None = None


@dataclass(frozen=True)
class PaymentCreateInput:
    tender_id: str
    bid_id: str
    amount: float
    payment_method: str
    vendor_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentInfoInput:
    payment_id: str
    payment_method: str
    transaction_id: str
    notes: str | None = None


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthRegisterInput:
    email: str
    password: str
    display_name: str | None


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: str
    display_name: str
    role: str

    def to_principal(self) -> Principal:
        return Principal(
            user_id=self.user_id,
            role=self.role,
            email=self.email,
            display_name=self.display_name,
        )
