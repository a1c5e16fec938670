# Overview: Flask API routes for sellers and their sales goals.

from flask import Blueprint, request, jsonify, g

from ..models import Seller, SalesGoal
from ..services import seller_service
from ..services.seller_service import SellerNotFoundError, SalesGoalNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_seller,
    enforce_rules_sales_goal,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import date_arg, page_args, page_response

SELLER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "hired_on", "status", "commission_rule_id"},
    required_on_create={"name"},
)

SALES_GOAL_POLICY = ModelValidationPolicy(
    writable_fields={
        "seller_id", "period_start", "period_end",
        "target_amount_cents", "target_quantity", "notes",
    },
    required_on_create={"seller_id", "period_start", "period_end"},
)

sellers_bp = Blueprint("sellers", __name__, url_prefix="/api/sellers")
sales_goals_bp = Blueprint("sales_goals", __name__, url_prefix="/api/sales-goals")


@sellers_bp.get("")
@require_auth
@require_permission("VIEW_SELLERS")
def list_sellers_route():
    limit, offset = page_args()
    items, total = seller_service.list_sellers(
        shop_id=g.shop_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify(page_response(items, total, limit, offset)), 200


@sellers_bp.get("/active")
@require_auth
@require_permission("VIEW_SALES")
def list_active_sellers_route():
    """id/name pairs for the sale form."""
    return jsonify({"items": seller_service.list_active_for_select(shop_id=g.shop_id)}), 200


@sellers_bp.get("/<int:seller_id>")
@require_auth
@require_permission("VIEW_SELLERS")
def get_seller_route(seller_id: int):
    try:
        seller = seller_service.get_seller(shop_id=g.shop_id, seller_id=seller_id)
    except SellerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(seller.to_dict()), 200


@sellers_bp.post("")
@require_auth
@require_permission("MANAGE_SELLERS")
def create_seller_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Seller, payload=payload, policy=SELLER_POLICY, partial=False)
        enforce_rules_seller(patch)
        seller = seller_service.create_seller(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(seller.to_dict()), 201


@sellers_bp.put("/<int:seller_id>")
@require_auth
@require_permission("MANAGE_SELLERS")
def update_seller_route(seller_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Seller, payload=payload, policy=SELLER_POLICY, partial=True)
        enforce_rules_seller(patch)
        seller = seller_service.update_seller(shop_id=g.shop_id, seller_id=seller_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SellerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(seller.to_dict()), 200


@sellers_bp.delete("/<int:seller_id>")
@require_auth
@require_permission("MANAGE_SELLERS")
def delete_seller_route(seller_id: int):
    try:
        seller_service.delete_seller(shop_id=g.shop_id, seller_id=seller_id)
    except SellerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


# -- Sales goals --

@sales_goals_bp.get("")
@require_auth
@require_permission("VIEW_SELLERS")
def list_sales_goals_route():
    """Query params: seller_id, start, end (goals overlapping the range)."""
    try:
        rows = seller_service.list_sales_goals(
            shop_id=g.shop_id,
            seller_id=request.args.get("seller_id", type=int),
            start=date_arg("start"),
            end=date_arg("end"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [goal.to_dict() for goal in rows], "count": len(rows)}), 200


@sales_goals_bp.post("")
@require_auth
@require_permission("MANAGE_SELLERS")
def create_sales_goal_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=SalesGoal, payload=payload, policy=SALES_GOAL_POLICY, partial=False)
        enforce_rules_sales_goal(patch)
        goal = seller_service.create_sales_goal(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(goal.to_dict()), 201


@sales_goals_bp.put("/<int:goal_id>")
@require_auth
@require_permission("MANAGE_SELLERS")
def update_sales_goal_route(goal_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=SalesGoal, payload=payload, policy=SALES_GOAL_POLICY, partial=True)
        enforce_rules_sales_goal(patch)
        goal = seller_service.update_sales_goal(shop_id=g.shop_id, goal_id=goal_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SalesGoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(goal.to_dict()), 200


@sales_goals_bp.delete("/<int:goal_id>")
@require_auth
@require_permission("MANAGE_SELLERS")
def delete_sales_goal_route(goal_id: int):
    try:
        seller_service.delete_sales_goal(shop_id=g.shop_id, goal_id=goal_id)
    except SalesGoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True}), 200


@sales_goals_bp.get("/<int:goal_id>/progress")
@require_auth
@require_permission("VIEW_SELLERS")
def sales_goal_progress_route(goal_id: int):
    try:
        progress = seller_service.sales_goal_progress(shop_id=g.shop_id, goal_id=goal_id)
    except SalesGoalNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(progress), 200
