from __future__ import annotations

from flask import Blueprint, jsonify, request

from portal.application.tender_service import TenderService
from portal.application.validation import bounded_int, parse_flag
from portal.auth import current_principal
from portal.db import get_db
from portal.domain.contracts import BidEvaluationInput, BidSubmitInput, TenderCreateInput
from portal.lifecycle.flow_policy import flow_meta
from portal.ui_strings import success_message


tender_bp = Blueprint("tenders", __name__)

_TENDER_SERVICE = TenderService()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _tender_response(tender: dict, message_key: str | None = None) -> dict:
    body = {"tender": tender, "flow": flow_meta("tender", tender.get("status"))}
    if message_key:
        body["message"] = success_message(message_key)
    return body


def _bid_response(bid: dict, message_key: str | None = None) -> dict:
    body = {"bid": bid, "flow": flow_meta("bid", bid.get("status"))}
    if message_key:
        body["message"] = success_message(message_key)
    return body


def _reserved_filter(value: str | None) -> bool | None:
    if value is None or not value.strip():
        return None
    return parse_flag(value)


@tender_bp.route("/api/tenders", methods=["GET"])
def list_tenders():
    args = request.args
    items = _TENDER_SERVICE.list_tenders(
        get_db(),
        current_principal(),
        status=(args.get("status") or "").strip() or None,
        category=(args.get("category") or "").strip() or None,
        reserved_for_mse=_reserved_filter(args.get("reserved_for_mse")),
        search=(args.get("search") or "").strip() or None,
        limit=bounded_int(args.get("limit"), default=200, min_value=1, max_value=500),
    )
    return jsonify({"items": items})


@tender_bp.route("/api/tenders", methods=["POST"])
def create_tender():
    payload = _payload()
    db = get_db()
    tender = _TENDER_SERVICE.create_tender(
        db,
        current_principal(),
        TenderCreateInput(
            title=payload.get("title"),
            description=payload.get("description"),
            estimated_value=payload.get("estimated_value"),
            category=payload.get("category"),
            submission_deadline=payload.get("submission_deadline"),
            is_reserved_for_mse=payload.get("is_reserved_for_mse", False),
            documents=payload.get("documents") or [],
        ),
    )
    db.commit()
    return jsonify(_tender_response(tender, "tender_saved")), 201


@tender_bp.route("/api/tenders/<string:tender_id>", methods=["GET"])
def tender_detail(tender_id: str):
    tender = _TENDER_SERVICE.get_visible_tender(get_db(), current_principal(), tender_id)
    return jsonify(_tender_response(tender))


@tender_bp.route("/api/tenders/<string:tender_id>", methods=["PATCH"])
def update_tender(tender_id: str):
    db = get_db()
    tender = _TENDER_SERVICE.update_tender(db, current_principal(), tender_id, _payload())
    db.commit()
    return jsonify(_tender_response(tender, "tender_saved"))


@tender_bp.route("/api/tenders/<string:tender_id>/status", methods=["POST"])
def set_tender_status(tender_id: str):
    db = get_db()
    tender = _TENDER_SERVICE.set_status(db, current_principal(), tender_id, _payload().get("status"))
    db.commit()
    return jsonify(_tender_response(tender, "tender_status_updated"))


@tender_bp.route("/api/tenders/<string:tender_id>/award", methods=["POST"])
def award_tender(tender_id: str):
    db = get_db()
    tender = _TENDER_SERVICE.award_tender(db, current_principal(), tender_id, str(_payload().get("bid_id") or ""))
    db.commit()
    return jsonify(_tender_response(tender, "tender_awarded"))


@tender_bp.route("/api/tenders/<string:tender_id>/bids", methods=["GET"])
def tender_bids(tender_id: str):
    items = _TENDER_SERVICE.list_bids_for_tender(get_db(), current_principal(), tender_id)
    return jsonify({"items": items})


@tender_bp.route("/api/tenders/<string:tender_id>/bids", methods=["POST"])
def submit_bid(tender_id: str):
    payload = _payload()
    db = get_db()
    bid = _TENDER_SERVICE.submit_bid(
        db,
        current_principal(),
        BidSubmitInput(
            tender_id=tender_id,
            vendor_id=str(payload.get("vendor_id") or ""),
            amount=payload.get("amount"),
            notes=payload.get("notes"),
            documents=payload.get("documents") or [],
        ),
    )
    db.commit()
    return jsonify(_bid_response(bid, "bid_submitted")), 201


@tender_bp.route("/api/bids/mine", methods=["GET"])
def my_bids():
    return jsonify({"items": _TENDER_SERVICE.list_my_bids(get_db(), current_principal())})


@tender_bp.route("/api/bids/<string:bid_id>/evaluate", methods=["POST"])
def evaluate_bid(bid_id: str):
    payload = _payload()
    db = get_db()
    bid = _TENDER_SERVICE.evaluate_bid(
        db,
        current_principal(),
        BidEvaluationInput(
            bid_id=bid_id,
            action=payload.get("action"),
            technical_score=payload.get("technical_score"),
            reason=payload.get("reason"),
        ),
    )
    db.commit()
    return jsonify(_bid_response(bid, "bid_updated"))
