from __future__ import annotations

from flask import Blueprint, jsonify, request

from portal.application.vendor_service import VendorService
from portal.auth import current_principal
from portal.db import get_db
from portal.domain.contracts import ComplianceUpdateInput, VendorRegistrationInput
from portal.lifecycle.flow_policy import flow_meta
from portal.ui_strings import success_message


vendor_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")

_VENDOR_SERVICE = VendorService()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _vendor_response(vendor: dict, message_key: str | None = None) -> dict:
    body = {"vendor": vendor, "flow": flow_meta("vendor", vendor.get("status"))}
    if message_key:
        body["message"] = success_message(message_key)
    return body


@vendor_bp.route("", methods=["GET"])
def list_vendors():
    items = _VENDOR_SERVICE.list_vendors(
        get_db(),
        current_principal(),
        status=(request.args.get("status") or "").strip() or None,
        business_type=(request.args.get("business_type") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return jsonify({"items": items})


@vendor_bp.route("", methods=["POST"])
def register_vendor():
    payload = _payload()
    db = get_db()
    vendor = _VENDOR_SERVICE.register_vendor(
        db,
        current_principal(),
        VendorRegistrationInput(
            name=payload.get("name"),
            business_type=payload.get("business_type"),
            contact_person=payload.get("contact_person"),
            email=payload.get("email"),
            phone=payload.get("phone"),
            address=payload.get("address"),
            mse_certificate=payload.get("mse_certificate"),
            bank_details=payload.get("bank_details"),
            documents=payload.get("documents") or [],
        ),
    )
    db.commit()
    return jsonify(_vendor_response(vendor, "vendor_registered")), 201


@vendor_bp.route("/me", methods=["GET"])
def my_vendor():
    principal = current_principal()
    db = get_db()
    vendor = _VENDOR_SERVICE.vendor_for_principal(db, principal)
    if vendor is None:
        return jsonify({"vendor": None})
    return jsonify(_vendor_response(_VENDOR_SERVICE.get_visible_vendor(db, principal, vendor["id"])))


@vendor_bp.route("/pending", methods=["GET"])
def pending_vendors():
    return jsonify({"items": _VENDOR_SERVICE.list_pending(get_db(), current_principal())})


@vendor_bp.route("/mse", methods=["GET"])
def mse_vendors():
    return jsonify({"items": _VENDOR_SERVICE.list_mse(get_db(), current_principal())})


@vendor_bp.route("/<string:vendor_id>", methods=["GET"])
def vendor_detail(vendor_id: str):
    vendor = _VENDOR_SERVICE.get_visible_vendor(get_db(), current_principal(), vendor_id)
    return jsonify(_vendor_response(vendor))


@vendor_bp.route("/<string:vendor_id>", methods=["PATCH"])
def update_vendor_profile(vendor_id: str):
    db = get_db()
    vendor = _VENDOR_SERVICE.update_profile(db, current_principal(), vendor_id, _payload())
    db.commit()
    return jsonify(_vendor_response(vendor))


@vendor_bp.route("/<string:vendor_id>/approve", methods=["POST"])
def approve_vendor(vendor_id: str):
    db = get_db()
    vendor = _VENDOR_SERVICE.approve_vendor(db, current_principal(), vendor_id)
    db.commit()
    return jsonify(_vendor_response(vendor, "vendor_approved"))


@vendor_bp.route("/<string:vendor_id>/suspend", methods=["POST"])
def suspend_vendor(vendor_id: str):
    db = get_db()
    vendor = _VENDOR_SERVICE.suspend_vendor(db, current_principal(), vendor_id, _payload().get("reason"))
    db.commit()
    return jsonify(_vendor_response(vendor, "vendor_suspended"))


@vendor_bp.route("/<string:vendor_id>/reactivate", methods=["POST"])
def reactivate_vendor(vendor_id: str):
    db = get_db()
    vendor = _VENDOR_SERVICE.reactivate_vendor(db, current_principal(), vendor_id)
    db.commit()
    return jsonify(_vendor_response(vendor, "vendor_reactivated"))


@vendor_bp.route("/<string:vendor_id>/compliance", methods=["GET"])
def compliance_history(vendor_id: str):
    items = _VENDOR_SERVICE.compliance_history_for(get_db(), current_principal(), vendor_id)
    return jsonify({"items": items})


@vendor_bp.route("/<string:vendor_id>/compliance", methods=["POST"])
def update_compliance(vendor_id: str):
    payload = _payload()
    db = get_db()
    vendor = _VENDOR_SERVICE.update_compliance_score(
        db,
        current_principal(),
        ComplianceUpdateInput(
            vendor_id=vendor_id,
            score=payload.get("score"),
            note=payload.get("note"),
            type=payload.get("type") or "neutral",
        ),
    )
    db.commit()
    return jsonify(_vendor_response(vendor, "compliance_updated"))


@vendor_bp.route("/<string:vendor_id>/approval-logs", methods=["GET"])
def approval_logs(vendor_id: str):
    items = _VENDOR_SERVICE.approval_logs_for(get_db(), current_principal(), vendor_id)
    return jsonify({"items": items})


@vendor_bp.route("/<string:vendor_id>/documents/<int:document_index>/verify", methods=["POST"])
def verify_document(vendor_id: str, document_index: int):
    db = get_db()
    vendor = _VENDOR_SERVICE.verify_document(db, current_principal(), vendor_id, document_index)
    db.commit()
    return jsonify(_vendor_response(vendor))
