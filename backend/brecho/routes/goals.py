# Overview: Flask API routes for financial goals and in-app alerts.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Goal
from ..services import goal_service
from ..services.goal_service import GoalNotFoundError, AlertNotFoundError
from ..services.tenant_service import shop_today
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_goal,
    ValidationError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg, date_arg, int_field, page_args, page_response

GOAL_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "goal_type", "period",
        "target_cents", "current_cents", "start_date", "end_date",
    },
    required_on_create={"name", "target_cents", "start_date", "end_date"},
)

goals_bp = Blueprint("goals", __name__, url_prefix="/api/goals")
alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@goals_bp.get("")
@require_auth
@require_permission("VIEW_GOALS")
def list_goals_route():
    limit, offset = page_args()
    items, total = goal_service.list_goals(
        shop_id=g.shop_id,
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    today = shop_today(g.shop_id)
    return jsonify({
        "items": [goal.to_dict(today=today) for goal in items],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200


@goals_bp.get("/<int:goal_id>")
@require_auth
@require_permission("VIEW_GOALS")
def get_goal_route(goal_id: int):
    try:
        goal = goal_service.get_goal(shop_id=g.shop_id, goal_id=goal_id)
    except GoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(goal.to_dict(today=shop_today(g.shop_id))), 200


@goals_bp.post("")
@require_auth
@require_permission("MANAGE_GOALS")
def create_goal_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Goal, payload=payload, policy=GOAL_POLICY, partial=False)
        enforce_rules_goal(patch)
        goal = goal_service.create_goal(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create goal")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(goal.to_dict(today=shop_today(g.shop_id))), 201


@goals_bp.put("/<int:goal_id>")
@require_auth
@require_permission("MANAGE_GOALS")
def update_goal_route(goal_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Goal, payload=payload, policy=GOAL_POLICY, partial=True)
        enforce_rules_goal(patch)
        goal = goal_service.update_goal(shop_id=g.shop_id, goal_id=goal_id, patch=patch)
    except GoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(goal.to_dict(today=shop_today(g.shop_id))), 200


@goals_bp.delete("/<int:goal_id>")
@require_auth
@require_permission("MANAGE_GOALS")
def delete_goal_route(goal_id: int):
    try:
        goal_service.delete_goal(shop_id=g.shop_id, goal_id=goal_id)
    except GoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True}), 200


@goals_bp.get("/<int:goal_id>/progress")
@require_auth
@require_permission("VIEW_GOALS")
def list_goal_progress_route(goal_id: int):
    try:
        entries = goal_service.list_progress(shop_id=g.shop_id, goal_id=goal_id)
    except GoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": [entry.to_dict() for entry in entries]}), 200


@goals_bp.post("/<int:goal_id>/progress")
@require_auth
@require_permission("MANAGE_GOALS")
def add_goal_progress_route(goal_id: int):
    payload = request.get_json(silent=True) or {}
    notes = payload.get("notes")
    try:
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        entry = goal_service.add_progress(
            shop_id=g.shop_id,
            goal_id=goal_id,
            value_cents=int_field(payload, "value_cents", required=True),
            recorded_on=date_arg("recorded_on", payload),
            notes=notes,
        )
    except GoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    goal = goal_service.get_goal(shop_id=g.shop_id, goal_id=goal_id)
    return jsonify({
        "progress": entry.to_dict(),
        "goal": goal.to_dict(today=shop_today(g.shop_id)),
    }), 201


# -- Alerts --

@alerts_bp.get("")
@require_auth
@require_permission("VIEW_GOALS")
def list_alerts_route():
    """Unread only unless ?all=true."""
    limit, offset = page_args()
    try:
        show_all = bool(bool_arg("all"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    items, total = goal_service.list_alerts(
        shop_id=g.shop_id, unread_only=not show_all, limit=limit, offset=offset
    )
    body = page_response(items, total, limit, offset)
    body["unread"] = goal_service.count_unread_alerts(shop_id=g.shop_id)
    return jsonify(body), 200


@alerts_bp.post("/<int:alert_id>/read")
@require_auth
@require_permission("VIEW_GOALS")
def read_alert_route(alert_id: int):
    payload = request.get_json(silent=True) or {}
    is_read = payload.get("is_read", True)
    if not isinstance(is_read, bool):
        return jsonify({"error": "is_read must be a boolean"}), 400
    try:
        alert = goal_service.set_alert_read(shop_id=g.shop_id, alert_id=alert_id, is_read=is_read)
    except AlertNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(alert.to_dict()), 200


@alerts_bp.post("/read-all")
@require_auth
@require_permission("VIEW_GOALS")
def read_all_alerts_route():
    count = goal_service.mark_all_read(shop_id=g.shop_id)
    return jsonify({"updated": count}), 200


@alerts_bp.get("/config")
@require_auth
@require_permission("VIEW_GOALS")
def get_alert_config_route():
    config = goal_service.get_alert_config(shop_id=g.shop_id)
    body = config.to_dict()
    db.session.commit()
    return jsonify(body), 200


@alerts_bp.put("/config")
@require_auth
@require_permission("MANAGE_GOALS")
def update_alert_config_route():
    payload = request.get_json(silent=True) or {}
    try:
        config = goal_service.update_alert_config(shop_id=g.shop_id, patch=payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(config.to_dict()), 200


@alerts_bp.post("/check")
@require_auth
@require_permission("MANAGE_GOALS")
def check_alerts_route():
    try:
        result = goal_service.check_alerts(shop_id=g.shop_id)
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to check alerts")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 200
