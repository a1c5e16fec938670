# Overview: Flask API routes for revenues and the recurring-entry job.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Revenue
from ..services import revenue_service
from ..services.revenue_service import RevenueNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_revenue,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, date_arg, page_args, page_response

REVENUE_POLICY = ModelValidationPolicy(
    writable_fields={
        "description", "amount_cents", "date", "category_id", "revenue_type",
        "payment_method_id", "is_recurring", "frequency", "notes",
    },
    required_on_create={"description", "amount_cents"},
)

revenues_bp = Blueprint("revenues", __name__, url_prefix="/api/revenues")
recurring_bp = Blueprint("recurring", __name__, url_prefix="/api/recurring")


@revenues_bp.get("")
@require_auth
@require_permission("VIEW_FINANCE")
def list_revenues_route():
    limit, offset = page_args()
    try:
        items, total = revenue_service.list_revenues(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
            revenue_type=request.args.get("revenue_type"),
            category_id=request.args.get("category_id", type=int),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@revenues_bp.get("/<int:revenue_id>")
@require_auth
@require_permission("VIEW_FINANCE")
def get_revenue_route(revenue_id: int):
    try:
        revenue = revenue_service.get_revenue(shop_id=g.shop_id, revenue_id=revenue_id)
    except RevenueNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(revenue.to_dict()), 200


@revenues_bp.post("")
@require_auth
@require_permission("MANAGE_FINANCE")
def create_revenue_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Revenue, payload=payload, policy=REVENUE_POLICY, partial=False)
        enforce_rules_revenue(patch)
        revenue = revenue_service.create_revenue(
            shop_id=g.shop_id, patch=patch, actor_user_id=g.current_user.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create revenue")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(revenue.to_dict()), 201


@revenues_bp.put("/<int:revenue_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def update_revenue_route(revenue_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Revenue, payload=payload, policy=REVENUE_POLICY, partial=True)
        enforce_rules_revenue(patch)
        revenue = revenue_service.update_revenue(
            shop_id=g.shop_id, revenue_id=revenue_id, patch=patch, actor_user_id=g.current_user.id
        )
    except RevenueNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(revenue.to_dict()), 200


@revenues_bp.delete("/<int:revenue_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def delete_revenue_route(revenue_id: int):
    try:
        revenue_service.delete_revenue(shop_id=g.shop_id, revenue_id=revenue_id)
    except RevenueNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


@recurring_bp.post("/process")
@require_auth
@require_permission("MANAGE_FINANCE")
def process_recurring_route():
    """Generate due occurrences of recurring revenues and expenses."""
    try:
        result = revenue_service.process_recurring(shop_id=g.shop_id)
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to process recurring entries")
        return jsonify({"error": "Internal server error"}), 500
    current_app.logger.info(
        "Recurring entries for shop %s: %s revenues, %s expenses",
        g.shop_id, result["revenues_created"], result["expenses_created"],
    )
    return jsonify(result), 200
