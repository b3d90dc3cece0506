from __future__ import annotations

from flask import Blueprint, jsonify, request

from portal.application.report_service import ReportService
from portal.auth import current_principal
from portal.db import get_db


report_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

_REPORT_SERVICE = ReportService()


@report_bp.route("/dashboard", methods=["GET"])
def dashboard():
    return jsonify(_REPORT_SERVICE.dashboard(get_db(), current_principal()))


@report_bp.route("/tenders", methods=["GET"])
def tender_report():
    items = _REPORT_SERVICE.tender_report(
        get_db(),
        current_principal(),
        status=request.args.get("status"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return jsonify({"items": items})


@report_bp.route("/vendors", methods=["GET"])
def vendor_report():
    items = _REPORT_SERVICE.vendor_report(
        get_db(),
        current_principal(),
        status=request.args.get("status"),
        business_type=request.args.get("business_type"),
    )
    return jsonify({"items": items})


@report_bp.route("/payments", methods=["GET"])
def payment_report():
    items = _REPORT_SERVICE.payment_report(
        get_db(),
        current_principal(),
        status=request.args.get("status"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return jsonify({"items": items})
