from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, Set

from portal.domain.clock import deadline_passed
from portal.domain.contracts import (
    ROLE_ADMIN,
    ROLE_FINANCE_OFFICER,
    ROLE_PROCUREMENT_OFFICER,
    ROLE_VENDOR,
    Principal,
)
from portal.errors import AuthorizationError, ConflictError


# Denials caused by the entity's current state rather than by the caller.
_CONFLICT_REASONS: Dict[str, str] = {
    "state_mismatch": "tender_not_open",
    "deadline_passed": "deadline_passed",
    "duplicate_bid": "duplicate_bid",
}

VALID_ROLES: Set[str] = {ROLE_VENDOR, ROLE_PROCUREMENT_OFFICER, ROLE_FINANCE_OFFICER, ROLE_ADMIN}

_VENDOR_ACTIONS = {
    "vendor.register",
    "vendor.update_profile",
    "bid.submit",
    "payment.submit_info",
    "payment.pay_via_qr",
}

_PROCUREMENT_ACTIONS = {
    "vendor.approve",
    "vendor.suspend",
    "vendor.reactivate",
    "vendor.update_compliance",
    "vendor.verify_document",
    "vendor.view_all",
    "tender.create",
    "tender.update",
    "tender.set_status",
    "tender.award",
    "tender.view_all",
    "bid.evaluate",
    "bid.view_all",
    "payment.create",
    "payment.pay_via_qr",
    "payment.complete",
    "payment.fail",
    "payment.view_all",
    "report.view",
    "action_log.view",
}

_FINANCE_ACTIONS = {
    "vendor.view_all",
    "tender.view_all",
    "bid.view_all",
    "payment.create",
    "payment.pay_via_qr",
    "payment.complete",
    "payment.fail",
    "payment.view_all",
    "report.view",
}

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    ROLE_VENDOR: frozenset(_VENDOR_ACTIONS),
    ROLE_PROCUREMENT_OFFICER: frozenset(_PROCUREMENT_ACTIONS),
    ROLE_FINANCE_OFFICER: frozenset(_FINANCE_ACTIONS),
}
# admin is the named superset of every other role.
ROLE_PERMISSIONS[ROLE_ADMIN] = frozenset().union(*ROLE_PERMISSIONS.values())


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    def raise_for_denial(self, action: str | None = None) -> None:
        if self.allowed:
            return
        reason = self.reason or "role_mismatch"
        payload = {"reason": reason, "action": action} if action else {"reason": reason}
        if reason in _CONFLICT_REASONS:
            raise ConflictError(code=_CONFLICT_REASONS[reason], payload=payload)
        raise AuthorizationError(
            reason=reason,
            http_status=401 if reason == "auth_required" else None,
            payload=payload,
        )


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


@dataclass(frozen=True)
class BidSubmission:
    """Entity bundle checked by the gate before a bid row is written."""

    vendor: dict
    tender: dict
    existing_bid: dict | None = None


def normalize_role(role: str | None, default: str = ROLE_VENDOR) -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role, default="")
        if normalized:
            allowed.add(normalized)
    return allowed


def has_permission(role: str | None, action: str) -> bool:
    normalized = normalize_role(role, default="")
    return action in ROLE_PERMISSIONS.get(normalized, frozenset())


def _owns_vendor(principal: Principal, vendor: dict) -> bool:
    return bool(vendor) and str(vendor.get("user_id") or "") == principal.user_id


def _check_vendor_owner(principal: Principal, vendor: dict, _now: datetime | None) -> Decision:
    if principal.is_admin or _owns_vendor(principal, vendor):
        return ALLOW
    return deny("ownership_mismatch")


def _check_qr_payer(principal: Principal, vendor: dict, now: datetime | None) -> Decision:
    # Officers settle QR payments on the vendor's behalf; vendors only their own.
    if principal.role != ROLE_VENDOR:
        return ALLOW
    return _check_vendor_owner(principal, vendor, now)


def _check_bid_submission(principal: Principal, submission: BidSubmission, now: datetime | None) -> Decision:
    vendor = submission.vendor
    tender = submission.tender
    if not principal.is_admin and not _owns_vendor(principal, vendor):
        return deny("ownership_mismatch")
    if vendor.get("status") != "Active":
        return deny("vendor_not_active")
    if bool(tender.get("is_reserved_for_mse")) and vendor.get("business_type") != "MSE":
        return deny("mse_reserved")
    if tender.get("status") != "published":
        return deny("state_mismatch")
    if deadline_passed(tender.get("submission_deadline"), now):
        return deny("deadline_passed")
    if submission.existing_bid is not None:
        return deny("duplicate_bid")
    return ALLOW


_ENTITY_RULES: Dict[str, Callable[[Principal, object, datetime | None], Decision]] = {
    "vendor.update_profile": _check_vendor_owner,
    "bid.submit": _check_bid_submission,
    "payment.submit_info": _check_vendor_owner,
    "payment.pay_via_qr": _check_qr_payer,
}


def authorize(
    principal: Principal | None,
    action: str,
    entity: object | None = None,
    *,
    now: datetime | None = None,
) -> Decision:
    if principal is None:
        return deny("auth_required")
    if not has_permission(principal.role, action):
        return deny("role_mismatch")
    rule = _ENTITY_RULES.get(action)
    if rule is not None and entity is not None:
        return rule(principal, entity, now)
    return ALLOW


def require(
    principal: Principal | None,
    action: str,
    entity: object | None = None,
    *,
    now: datetime | None = None,
) -> Principal:
    authorize(principal, action, entity, now=now).raise_for_denial(action)
    return principal


def can_view_all(principal: Principal | None, resource: str) -> bool:
    if principal is None:
        return False
    return has_permission(principal.role, f"{resource}.view_all")


def require_roles(principal: Principal | None, *allowed_roles: str) -> Principal:
    if principal is None:
        raise AuthorizationError(reason="auth_required", http_status=401)
    allowed = normalize_allowed_roles(allowed_roles)
    if not allowed or principal.role in allowed or principal.is_admin:
        return principal
    raise AuthorizationError(reason="role_mismatch")
