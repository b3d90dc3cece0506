from __future__ import annotations

from flask import Blueprint, jsonify, request

from portal.application.audit_service import AuditService
from portal.application.validation import parse_flag
from portal.auth import current_principal
from portal.db import get_db


audit_bp = Blueprint("audit", __name__)

_AUDIT_SERVICE = AuditService()


def _read_filter(value: str | None) -> bool | None:
    # Unread only by default; "all" lists both.
    raw = (value or "").strip().lower()
    if not raw:
        return False
    if raw == "all":
        return None
    return parse_flag(raw)


@audit_bp.route("/api/notifications", methods=["GET"])
def list_notifications():
    items = _AUDIT_SERVICE.list_notifications(
        get_db(),
        current_principal(),
        is_read=_read_filter(request.args.get("is_read")),
        type=(request.args.get("type") or "").strip() or None,
        limit=request.args.get("limit"),
    )
    return jsonify({"items": items})


@audit_bp.route("/api/notifications/unread-count", methods=["GET"])
def unread_notifications():
    count = _AUDIT_SERVICE.unread_count(
        get_db(),
        current_principal(),
        type=(request.args.get("type") or "").strip() or None,
    )
    return jsonify({"count": count})


@audit_bp.route("/api/notifications/<string:notification_id>/read", methods=["POST"])
def mark_notification_read(notification_id: str):
    db = get_db()
    _AUDIT_SERVICE.mark_read(db, current_principal(), notification_id)
    db.commit()
    return jsonify({"ok": True})


@audit_bp.route("/api/notifications/read-all", methods=["POST"])
def mark_all_notifications_read():
    payload = request.get_json(silent=True) or {}
    db = get_db()
    updated = _AUDIT_SERVICE.mark_all_read(
        db,
        current_principal(),
        type=str(payload.get("type") or "").strip() or None,
    )
    db.commit()
    return jsonify({"updated": updated})


@audit_bp.route("/api/action-logs", methods=["GET"])
def list_action_logs():
    args = request.args
    items = _AUDIT_SERVICE.list_action_logs(
        get_db(),
        current_principal(),
        entity_type=(args.get("entity_type") or "").strip() or None,
        entity_id=(args.get("entity_id") or "").strip() or None,
        user_id=(args.get("user_id") or "").strip() or None,
        limit=args.get("limit"),
    )
    return jsonify({"items": items})


@audit_bp.route("/api/action-logs/mine", methods=["GET"])
def my_action_logs():
    items = _AUDIT_SERVICE.list_my_action_logs(get_db(), current_principal(), limit=request.args.get("limit"))
    return jsonify({"items": items})
