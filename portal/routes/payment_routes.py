from __future__ import annotations

from flask import Blueprint, jsonify, request

from portal.application.payment_service import PaymentService
from portal.application.validation import bounded_int
from portal.auth import current_principal
from portal.db import get_db
from portal.domain.contracts import PaymentCreateInput, PaymentInfoInput
from portal.lifecycle.flow_policy import flow_meta
from portal.ui_strings import success_message


payment_bp = Blueprint("payments", __name__)

_PAYMENT_SERVICE = PaymentService()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _payment_response(payment: dict, message_key: str | None = None) -> dict:
    body = {"payment": payment, "flow": flow_meta("payment", payment.get("status"))}
    if message_key:
        body["message"] = success_message(message_key)
    return body


@payment_bp.route("/api/payments", methods=["GET"])
def list_payments():
    args = request.args
    items = _PAYMENT_SERVICE.list_payments(
        get_db(),
        current_principal(),
        vendor_id=(args.get("vendor_id") or "").strip() or None,
        status=(args.get("status") or "").strip() or None,
        payment_method=(args.get("payment_method") or "").strip() or None,
        tender_id=(args.get("tender_id") or "").strip() or None,
        limit=bounded_int(args.get("limit"), default=200, min_value=1, max_value=500),
    )
    return jsonify({"items": items})


@payment_bp.route("/api/payments", methods=["POST"])
def create_payment():
    payload = _payload()
    db = get_db()
    payment = _PAYMENT_SERVICE.create_payment(
        db,
        current_principal(),
        PaymentCreateInput(
            tender_id=str(payload.get("tender_id") or ""),
            bid_id=str(payload.get("bid_id") or ""),
            amount=payload.get("amount"),
            payment_method=payload.get("payment_method"),
            notes=payload.get("notes"),
        ),
    )
    db.commit()
    return jsonify(_payment_response(payment, "payment_created")), 201


@payment_bp.route("/api/payments/<string:payment_id>", methods=["GET"])
def payment_detail(payment_id: str):
    payment = _PAYMENT_SERVICE.get_visible_payment(get_db(), current_principal(), payment_id)
    return jsonify(_payment_response(payment))


@payment_bp.route("/api/payments/<string:payment_id>/submit", methods=["POST"])
def submit_payment_info(payment_id: str):
    payload = _payload()
    db = get_db()
    payment = _PAYMENT_SERVICE.submit_payment_info(
        db,
        current_principal(),
        PaymentInfoInput(
            payment_id=payment_id,
            payment_method=payload.get("payment_method"),
            transaction_id=payload.get("transaction_id"),
            notes=payload.get("notes"),
        ),
    )
    db.commit()
    return jsonify(_payment_response(payment, "payment_submitted"))


@payment_bp.route("/api/payments/<string:payment_id>/qr", methods=["POST"])
def pay_via_qr(payment_id: str):
    db = get_db()
    payment = _PAYMENT_SERVICE.pay_via_qr(db, current_principal(), payment_id)
    db.commit()
    return jsonify(_payment_response(payment, "payment_submitted"))


@payment_bp.route("/api/payments/<string:payment_id>/complete", methods=["POST"])
def complete_payment(payment_id: str):
    db = get_db()
    payment = _PAYMENT_SERVICE.complete_payment(db, current_principal(), payment_id)
    db.commit()
    return jsonify(_payment_response(payment, "payment_completed"))


@payment_bp.route("/api/payments/<string:payment_id>/fail", methods=["POST"])
def fail_payment(payment_id: str):
    db = get_db()
    payment = _PAYMENT_SERVICE.fail_payment(db, current_principal(), payment_id, _payload().get("reason"))
    db.commit()
    return jsonify(_payment_response(payment))


@payment_bp.route("/api/payments/<string:payment_id>/public-link", methods=["GET"])
def payment_public_link(payment_id: str):
    return jsonify(_PAYMENT_SERVICE.public_link(get_db(), current_principal(), payment_id))


@payment_bp.route("/api/public/payments/<string:payment_id>", methods=["GET"])
def public_payment(payment_id: str):
    payment = _PAYMENT_SERVICE.get_public_payment(get_db(), payment_id, request.args.get("token"))
    return jsonify({"payment": payment})


@payment_bp.route("/api/public/payments/<string:payment_id>/qr", methods=["POST"])
def public_pay_via_qr(payment_id: str):
    db = get_db()
    payment = _PAYMENT_SERVICE.pay_public_via_qr(db, payment_id, request.args.get("token"))
    db.commit()
    return jsonify({"payment": payment, "message": success_message("payment_submitted")})
