from __future__ import annotations

import logging
from typing import Any, Dict

from portal.application.validation import (
    normalize_documents,
    optional_text,
    require_choice,
    require_text,
    score_value,
)
from portal.core import (
    ComplianceScoreUpdated,
    EventBus,
    VendorDocumentVerified,
    VendorProfileUpdated,
    VendorRegistered,
    VendorStatusChanged,
    get_event_bus,
)
from portal.db import is_unique_violation
from portal.domain.clock import now_iso
from portal.domain.contracts import (
    BUSINESS_TYPES,
    COMPLIANCE_TYPES,
    VENDOR_DOCUMENT_TYPES,
    ComplianceUpdateInput,
    Principal,
    VendorRegistrationInput,
)
from portal.errors import ConflictError, NotFoundError, ValidationError
from portal.infrastructure.repositories.vendor_repository import (
    ComplianceHistoryRepository,
    VendorApprovalLogRepository,
    VendorRepository,
)
from portal.lifecycle.flow_policy import action_allowed, next_status
from portal.policies import can_view_all, require


logger = logging.getLogger("portal")

_BANK_DETAIL_KEYS = ("accountName", "accountNumber", "bankName", "ifscCode")
_PROFILE_FIELDS = ("contact_person", "phone", "address", "mse_certificate")

# status action -> permission checked by the gate
_STATUS_PERMISSIONS = {
    "approve": "vendor.approve",
    "reject": "vendor.approve",
    "suspend": "vendor.suspend",
    "reactivate": "vendor.reactivate",
}


def _bank_details(raw: Any) -> Dict[str, str] | None:
    if raw in (None, ""):
        return None
    if not isinstance(raw, dict):
        raise ValidationError(code="bank_details_invalid")
    return {key: str(raw.get(key) or "").strip() for key in _BANK_DETAIL_KEYS if str(raw.get(key) or "").strip()}


def _document_key(document: dict) -> tuple:
    return (document.get("name"), document.get("type"), document.get("url"))


def _keep_verification(stored: list, submitted: list) -> list:
    """Carry verified_at over only for documents resubmitted unchanged."""
    verified = {_document_key(doc): doc["verified_at"] for doc in stored if doc.get("verified_at")}
    for document in submitted:
        stamp = verified.get(_document_key(document))
        if stamp:
            document["verified_at"] = stamp
    return submitted


class VendorService:
    """Vendor registration, approval workflow, compliance scoring and profile upkeep."""

    def __init__(
        self,
        repository: VendorRepository | None = None,
        approval_logs: VendorApprovalLogRepository | None = None,
        compliance_history: ComplianceHistoryRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.repository = repository or VendorRepository()
        self.approval_logs = approval_logs or VendorApprovalLogRepository()
        self.compliance_history = compliance_history or ComplianceHistoryRepository()
        self.event_bus = event_bus or get_event_bus()

    def get_vendor(self, db, vendor_id: str) -> dict:
        vendor = self.repository.get_by_id(db, vendor_id)
        if not vendor:
            raise NotFoundError(code="vendor_not_found", payload={"vendor_id": vendor_id})
        return vendor

    def get_visible_vendor(self, db, principal: Principal, vendor_id: str) -> dict:
        if principal is None:
            require(principal, "vendor.view_all")
        vendor = self.get_vendor(db, vendor_id)
        if not can_view_all(principal, "vendor") and vendor.get("user_id") != principal.user_id:
            # Other vendors' profiles are reported as missing.
            raise NotFoundError(code="vendor_not_found", payload={"vendor_id": vendor_id})
        return vendor

    def vendor_for_principal(self, db, principal: Principal) -> dict | None:
        if principal is None:
            return None
        return self.repository.get_by_user_id(db, principal.user_id)

    def list_vendors(
        self,
        db,
        principal: Principal,
        *,
        status: str | None = None,
        business_type: str | None = None,
        search: str | None = None,
    ) -> list[dict]:
        if not can_view_all(principal, "vendor"):
            require(principal, "vendor.register")
            own = self.vendor_for_principal(db, principal)
            return [own] if own else []
        return self.repository.list_filtered(db, status=status, business_type=business_type, search=search)

    def list_pending(self, db, principal: Principal) -> list[dict]:
        require(principal, "vendor.approve")
        return self.repository.list_filtered(db, status="Pending")

    def list_mse(self, db, principal: Principal) -> list[dict]:
        require(principal, "vendor.view_all")
        return self.repository.list_filtered(db, business_type="MSE")

    def register_vendor(self, db, principal: Principal, data: VendorRegistrationInput) -> dict:
        require(principal, "vendor.register")
        name = require_text(data.name, "name", code="name_required")
        email = require_text(data.email, "email", code="email_required").lower()
        business_type = require_choice(data.business_type, BUSINESS_TYPES, "business_type_invalid")
        contact_person = require_text(data.contact_person, "contact_person")
        phone = require_text(data.phone, "phone")
        address = require_text(data.address, "address")
        documents = normalize_documents(data.documents, VENDOR_DOCUMENT_TYPES)

        if self.repository.exists_for_user_or_email(db, user_id=principal.user_id, email=email):
            raise ConflictError(code="vendor_already_registered")

        bank_details = _bank_details(data.bank_details)
        with db.transaction():
            try:
                vendor_id = self.repository.insert(
                    db,
                    {
                        "user_id": principal.user_id,
                        "name": name,
                        "business_type": business_type,
                        "contact_person": contact_person,
                        "email": email,
                        "phone": phone,
                        "address": address,
                        "mse_certificate": optional_text(data.mse_certificate),
                        "status": "Pending",
                        "compliance_score": 0,
                        "bank_details": bank_details,
                        "documents": documents,
                    },
                )
            except Exception as exc:
                if is_unique_violation(exc, ("vendors.", "vendors_")):
                    raise ConflictError(code="vendor_already_registered", details=str(exc)) from exc
                raise
            self.event_bus.publish(
                db,
                VendorRegistered(
                    actor_id=principal.user_id,
                    vendor_id=vendor_id,
                    user_id=principal.user_id,
                    name=name,
                    business_type=business_type,
                ),
            )
        logger.info("vendor_registered", extra={"vendor_id": vendor_id, "business_type": business_type})
        return self.get_vendor(db, vendor_id)

    def approve_vendor(self, db, principal: Principal, vendor_id: str) -> dict:
        return self._transition(db, principal, vendor_id, "approve", reason=None)

    def suspend_vendor(self, db, principal: Principal, vendor_id: str, reason: str | None) -> dict:
        """Reject a Pending vendor or suspend an Active one; a reason is mandatory either way."""
        vendor = self.get_vendor(db, vendor_id)
        action = "reject" if vendor.get("status") == "Pending" else "suspend"
        return self._transition(db, principal, vendor_id, action, reason=reason, vendor=vendor)

    def reactivate_vendor(self, db, principal: Principal, vendor_id: str) -> dict:
        return self._transition(db, principal, vendor_id, "reactivate", reason=None)

    def _transition(
        self,
        db,
        principal: Principal,
        vendor_id: str,
        action: str,
        *,
        reason: str | None,
        vendor: dict | None = None,
    ) -> dict:
        require(principal, _STATUS_PERMISSIONS[action])
        vendor = vendor or self.get_vendor(db, vendor_id)
        previous_status = str(vendor.get("status") or "")
        if not action_allowed("vendor", previous_status, action):
            raise ConflictError(
                code="illegal_transition",
                payload={"status": previous_status, "action": action},
            )
        target = next_status("vendor", previous_status, action)
        if target == "Suspended":
            reason = require_text(reason, "reason", code="reason_required")
        else:
            reason = optional_text(reason)

        stamp = now_iso()
        changes = {
            "status": target,
            "approved_by": principal.user_id,
            "approved_at": stamp,
            "rejection_reason": reason if target == "Suspended" else None,
        }
        with db.transaction():
            if not self.repository.update(db, vendor_id, changes, expected_status=previous_status):
                raise ConflictError(code="state_changed", payload={"vendor_id": vendor_id})
            self.approval_logs.append(
                db,
                vendor_id=vendor_id,
                previous_status=previous_status,
                new_status=target,
                reason=reason,
                approved_by=principal.user_id,
            )
            self.event_bus.publish(
                db,
                VendorStatusChanged(
                    actor_id=principal.user_id,
                    vendor_id=vendor_id,
                    vendor_user_id=str(vendor.get("user_id") or ""),
                    previous_status=previous_status,
                    new_status=target,
                    reason=reason,
                ),
            )
        logger.info(
            "vendor_status_changed",
            extra={"vendor_id": vendor_id, "from_status": previous_status, "to_status": target},
        )
        return self.get_vendor(db, vendor_id)

    def update_compliance_score(self, db, principal: Principal, data: ComplianceUpdateInput) -> dict:
        require(principal, "vendor.update_compliance")
        vendor = self.get_vendor(db, data.vendor_id)
        try:
            requested = float(data.score)
        except (TypeError, ValueError):
            raise ValidationError(code="score_invalid") from None
        new_score = score_value(min(100.0, max(0.0, requested)))
        change_type = require_choice(data.type or "neutral", COMPLIANCE_TYPES, "compliance_type_invalid")
        note = require_text(data.note, "note")
        previous_score = float(vendor.get("compliance_score") or 0.0)

        with db.transaction():
            self.repository.update(db, data.vendor_id, {"compliance_score": new_score})
            self.compliance_history.append(
                db,
                vendor_id=data.vendor_id,
                previous_score=previous_score,
                new_score=new_score,
                score_change=round(new_score - previous_score, 1),
                type=change_type,
                description=note,
                updated_by=principal.user_id,
            )
            self.event_bus.publish(
                db,
                ComplianceScoreUpdated(
                    actor_id=principal.user_id,
                    vendor_id=data.vendor_id,
                    vendor_user_id=str(vendor.get("user_id") or ""),
                    previous_score=previous_score,
                    new_score=new_score,
                    type=change_type,
                ),
            )
        return self.get_vendor(db, data.vendor_id)

    def compliance_history_for(self, db, principal: Principal, vendor_id: str) -> list[dict]:
        self.get_visible_vendor(db, principal, vendor_id)
        return self.compliance_history.list_for_vendor(db, vendor_id)

    def approval_logs_for(self, db, principal: Principal, vendor_id: str) -> list[dict]:
        self.get_visible_vendor(db, principal, vendor_id)
        return self.approval_logs.list_for_vendor(db, vendor_id)

    def update_profile(self, db, principal: Principal, vendor_id: str, changes: Dict[str, Any]) -> dict:
        """Owner edits of contact data, bank details and documents; never touches status."""
        vendor = self.get_vendor(db, vendor_id)
        require(principal, "vendor.update_profile", vendor)

        values: Dict[str, Any] = {}
        for field in _PROFILE_FIELDS:
            if field in changes:
                values[field] = optional_text(changes.get(field))
        for field in ("contact_person", "phone", "address"):
            if field in values and values[field] is None:
                raise ValidationError(code="field_required", payload={"field": field})
        if "bank_details" in changes:
            values["bank_details"] = _bank_details(changes.get("bank_details"))
        if "documents" in changes:
            values["documents"] = _keep_verification(
                vendor.get("documents") or [],
                normalize_documents(changes.get("documents"), VENDOR_DOCUMENT_TYPES),
            )
        if not values:
            raise ValidationError(code="no_changes")

        with db.transaction():
            self.repository.update(db, vendor_id, values)
            self.event_bus.publish(
                db,
                VendorProfileUpdated(actor_id=principal.user_id, vendor_id=vendor_id, fields=tuple(sorted(values))),
            )
        return self.get_vendor(db, vendor_id)

    def verify_document(self, db, principal: Principal, vendor_id: str, document_index: int) -> dict:
        require(principal, "vendor.verify_document")
        vendor = self.get_vendor(db, vendor_id)
        documents = list(vendor.get("documents") or [])
        if document_index < 0 or document_index >= len(documents):
            raise NotFoundError(code="document_not_found", payload={"document_index": document_index})
        document = dict(documents[document_index])
        document["verified_at"] = now_iso()
        documents[document_index] = document

        with db.transaction():
            self.repository.update(db, vendor_id, {"documents": documents})
            self.event_bus.publish(
                db,
                VendorDocumentVerified(
                    actor_id=principal.user_id,
                    vendor_id=vendor_id,
                    document_index=document_index,
                    document_name=str(document.get("name") or ""),
                ),
            )
        return self.get_vendor(db, vendor_id)
