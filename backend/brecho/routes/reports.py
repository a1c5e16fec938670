from flask import Blueprint, jsonify, request, g

from brecho.decorators import require_auth, require_permission
from brecho.services import reporting_service
from brecho.services.tenant_service import shop_today
from brecho.validation import ValidationError
from .common import date_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")
dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _month_args():
    today = shop_today(g.shop_id)
    year = request.args.get("year", default=today.year, type=int)
    month = request.args.get("month", default=today.month, type=int)
    return year, month


@reports_bp.get("/balance-sheet")
@require_auth
@require_permission("VIEW_REPORTS")
def balance_sheet_report():
    try:
        report = reporting_service.balance_sheet(
            shop_id=g.shop_id,
            reference_date=date_arg("reference_date"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/monthly-summary")
@require_auth
@require_permission("VIEW_REPORTS")
def monthly_summary_report():
    year, month = _month_args()
    try:
        report = reporting_service.monthly_summary(shop_id=g.shop_id, year=year, month=month)
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/financial-summary")
@require_auth
@require_permission("VIEW_REPORTS")
def financial_summary_report():
    try:
        report = reporting_service.financial_summary(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
        )
        return jsonify(report), 200
    except (reporting_service.ReportError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/expenses-by-category")
@require_auth
@require_permission("VIEW_REPORTS")
def expenses_by_category_report():
    try:
        report = reporting_service.expenses_by_category(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
        )
        return jsonify(report), 200
    except (reporting_service.ReportError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/revenues-by-category")
@require_auth
@require_permission("VIEW_REPORTS")
def revenues_by_category_report():
    try:
        report = reporting_service.revenues_by_category(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
        )
        return jsonify(report), 200
    except (reporting_service.ReportError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/profitability")
@require_auth
@require_permission("VIEW_REPORTS")
def profitability_report():
    year, _ = _month_args()
    try:
        rows = reporting_service.monthly_profitability(shop_id=g.shop_id, year=year)
        return jsonify({"year": year, "months": rows}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/monthly-comparison")
@require_auth
@require_permission("VIEW_REPORTS")
def monthly_comparison_report():
    months = request.args.get("months", default=6, type=int)
    rows = reporting_service.monthly_comparison(shop_id=g.shop_id, months=months)
    return jsonify({"months": rows}), 200


@dashboard_bp.get("")
@require_auth
@require_permission("VIEW_REPORTS")
def dashboard_view():
    return jsonify(reporting_service.dashboard(shop_id=g.shop_id)), 200
