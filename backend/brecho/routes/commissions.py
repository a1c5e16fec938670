# Overview: Flask API routes for commission rules, commissions and their payoff.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import CommissionRule
from ..services import commission_service
from ..services.commission_service import (
    CommissionError,
    CommissionNotFoundError,
    CommissionRuleNotFoundError,
)
from ..services.tenant_service import shop_today
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_commission_rule,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg, date_arg, int_field, page_args, page_response

RULE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "calculation_type", "percentage_bps", "amount_cents",
        "category_id", "criteria", "is_active", "valid_from", "valid_until",
    },
    required_on_create={"name", "calculation_type"},
)

commission_rules_bp = Blueprint("commission_rules", __name__, url_prefix="/api/commission-rules")
commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


# -- Rules --

@commission_rules_bp.get("")
@require_auth
@require_permission("VIEW_COMMISSIONS")
def list_rules_route():
    limit, offset = page_args()
    try:
        items, total = commission_service.list_rules(
            shop_id=g.shop_id,
            is_active=bool_arg("is_active"),
            calculation_type=request.args.get("calculation_type"),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@commission_rules_bp.get("/<int:rule_id>")
@require_auth
@require_permission("VIEW_COMMISSIONS")
def get_rule_route(rule_id: int):
    try:
        rule = commission_service.get_rule(shop_id=g.shop_id, rule_id=rule_id)
    except CommissionRuleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(rule.to_dict()), 200


@commission_rules_bp.post("")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def create_rule_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=CommissionRule, payload=payload, policy=RULE_POLICY, partial=False)
        enforce_rules_commission_rule(patch)
        rule = commission_service.create_rule(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(rule.to_dict()), 201


@commission_rules_bp.put("/<int:rule_id>")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def update_rule_route(rule_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=CommissionRule, payload=payload, policy=RULE_POLICY, partial=True)
        enforce_rules_commission_rule(patch)
        rule = commission_service.update_rule(shop_id=g.shop_id, rule_id=rule_id, patch=patch)
    except CommissionRuleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(rule.to_dict()), 200


@commission_rules_bp.post("/<int:rule_id>/status")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def set_rule_status_route(rule_id: int):
    payload = request.get_json(silent=True) or {}
    is_active = payload.get("is_active")
    if not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400
    try:
        rule = commission_service.set_rule_status(shop_id=g.shop_id, rule_id=rule_id, is_active=is_active)
    except CommissionRuleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(rule.to_dict()), 200


@commission_rules_bp.delete("/<int:rule_id>")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def delete_rule_route(rule_id: int):
    try:
        commission_service.delete_rule(shop_id=g.shop_id, rule_id=rule_id)
    except CommissionRuleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


# -- Commissions --

@commissions_bp.get("")
@require_auth
@require_permission("VIEW_COMMISSIONS")
def list_commissions_route():
    limit, offset = page_args()
    try:
        items, total = commission_service.list_commissions(
            shop_id=g.shop_id,
            seller_id=request.args.get("seller_id", type=int),
            sale_id=request.args.get("sale_id", type=int),
            status=request.args.get("status"),
            month=request.args.get("month", type=int),
            year=request.args.get("year", type=int),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@commissions_bp.get("/report")
@require_auth
@require_permission("VIEW_COMMISSIONS")
def commission_report_route():
    """month/year default to the current month."""
    today = shop_today(g.shop_id)
    month = request.args.get("month", default=today.month, type=int)
    year = request.args.get("year", default=today.year, type=int)
    try:
        report = commission_service.commission_report(shop_id=g.shop_id, month=month, year=year)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(report), 200


@commissions_bp.get("/<int:commission_id>")
@require_auth
@require_permission("VIEW_COMMISSIONS")
def get_commission_route(commission_id: int):
    try:
        commission = commission_service.get_commission(shop_id=g.shop_id, commission_id=commission_id)
    except CommissionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(commission.to_dict()), 200


@commissions_bp.post("")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def create_commission_route():
    payload = request.get_json(silent=True) or {}
    notes = payload.get("notes")
    try:
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        commission = commission_service.create_commission(
            shop_id=g.shop_id,
            sale_id=int_field(payload, "sale_id", required=True),
            seller_id=int_field(payload, "seller_id"),
            rule_id=int_field(payload, "rule_id"),
            amount_cents=int_field(payload, "amount_cents"),
            notes=notes,
        )
    except (ValidationError, CommissionError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(commission.to_dict()), 201


@commissions_bp.put("/<int:commission_id>")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def update_commission_route(commission_id: int):
    payload = request.get_json(silent=True) or {}
    unknown = set(payload) - {"rule_id", "amount_cents", "notes"}
    if unknown:
        return jsonify({"error": f"Field not allowed: {sorted(unknown)[0]}"}), 400
    try:
        commission = commission_service.update_commission(
            shop_id=g.shop_id, commission_id=commission_id, patch=dict(payload)
        )
    except CommissionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(commission.to_dict()), 200


@commissions_bp.delete("/<int:commission_id>")
@require_auth
@require_permission("MANAGE_COMMISSIONS")
def delete_commission_route(commission_id: int):
    try:
        commission_service.delete_commission(shop_id=g.shop_id, commission_id=commission_id)
    except CommissionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


@commissions_bp.post("/<int:commission_id>/pay")
@require_auth
@require_permission("PAY_COMMISSIONS")
def pay_commission_route(commission_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        commission = commission_service.pay_commission(
            shop_id=g.shop_id,
            commission_id=commission_id,
            category_id=int_field(payload, "category_id"),
            paid_on=date_arg("paid_on", payload),
            payment_method_id=int_field(payload, "payment_method_id"),
            actor_user_id=g.current_user.id,
        )
    except CommissionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CommissionError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to pay commission")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(commission.to_dict()), 200
