# Overview: Flask API routes for the daily cash flow.

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..services import cash_flow_service
from ..services.cash_flow_service import CashFlowError, CashMovementNotFoundError
from ..services.tenant_service import shop_today
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, date_arg, int_field

cash_flow_bp = Blueprint("cash_flow", __name__, url_prefix="/api/cash-flow")


@cash_flow_bp.get("/period")
@require_auth
@require_permission("VIEW_FINANCE")
def cash_flow_period_route():
    """start/end default to the last 30 days."""
    try:
        end = date_arg("end") or shop_today(g.shop_id)
        start = date_arg("start") or end - timedelta(days=29)
        days = cash_flow_service.period(shop_id=g.shop_id, start=start, end=end)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"start": start.isoformat(), "end": end.isoformat(), "days": days}), 200


@cash_flow_bp.get("/days/<day>")
@require_auth
@require_permission("VIEW_FINANCE")
def cash_flow_day_route(day: str):
    try:
        parsed = parse_iso_date(day)
    except ValueError:
        return jsonify({"error": "day must be a YYYY-MM-DD date"}), 400
    return jsonify(cash_flow_service.day_detail(shop_id=g.shop_id, day=parsed)), 200


@cash_flow_bp.get("/balance")
@require_auth
@require_permission("VIEW_FINANCE")
def cash_flow_balance_route():
    try:
        as_of = date_arg("as_of")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    balance = cash_flow_service.current_balance(shop_id=g.shop_id, as_of=as_of)
    return jsonify({"balance_cents": balance, "as_of": as_of.isoformat() if as_of else None}), 200


@cash_flow_bp.get("/history")
@require_auth
@require_permission("VIEW_FINANCE")
def cash_flow_history_route():
    days = request.args.get("days", default=30, type=int)
    return jsonify({"items": cash_flow_service.balance_history(shop_id=g.shop_id, days=days)}), 200


@cash_flow_bp.post("/movements")
@require_auth
@require_permission("MANAGE_FINANCE")
def create_movement_route():
    payload = request.get_json(silent=True) or {}
    try:
        movement_type = payload.get("movement_type")
        description = payload.get("description")
        if not isinstance(movement_type, str):
            raise ValidationError("movement_type must be IN or OUT")
        if not isinstance(description, str):
            raise ValidationError("description is required")
        movement = cash_flow_service.create_manual_movement(
            shop_id=g.shop_id,
            day=date_arg("date", payload),
            movement_type=movement_type,
            amount_cents=int_field(payload, "amount_cents", required=True),
            description=description,
            payment_method_id=int_field(payload, "payment_method_id"),
            created_by_user_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(movement.to_dict()), 201


@cash_flow_bp.delete("/movements/<int:movement_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def delete_movement_route(movement_id: int):
    try:
        cash_flow_service.delete_manual_movement(shop_id=g.shop_id, movement_id=movement_id)
    except CashMovementNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except CashFlowError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200
