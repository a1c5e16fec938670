# Overview: Flask API routes for customers and their loyalty points.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Customer
from ..services import customer_service
from ..services.customer_service import CustomerNotFoundError, PointsError, RedemptionNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg, int_field, page_args, page_response

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "phone", "email", "address", "notes", "classification",
        "credit_limit_cents", "referred_by", "accepts_email", "accepts_sms",
        "accepts_whatsapp",
    },
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    limit, offset = page_args()
    try:
        items, total = customer_service.list_customers(
            shop_id=g.shop_id,
            search=request.args.get("search"),
            include_inactive=bool(bool_arg("include_inactive")),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(shop_id=g.shop_id, customer_id=customer_id)
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(customer.to_dict()), 200


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = customer_service.create_customer(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(customer.to_dict()), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(shop_id=g.shop_id, customer_id=customer_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(customer.to_dict()), 200


@customers_bp.post("/<int:customer_id>/status")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def set_customer_status_route(customer_id: int):
    """Body: {"is_active": bool}. Customers are deactivated, never deleted."""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload.get("is_active"), bool):
        return jsonify({"error": "is_active must be a boolean"}), 400
    try:
        customer = customer_service.set_customer_status(
            shop_id=g.shop_id, customer_id=customer_id, is_active=payload["is_active"]
        )
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(customer.to_dict()), 200


# -- Loyalty points --

@customers_bp.get("/<int:customer_id>/points")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_points_route(customer_id: int):
    """Account balance plus the latest transactions."""
    limit, offset = page_args()
    try:
        account = customer_service.get_points_account(shop_id=g.shop_id, customer_id=customer_id)
        items, total = customer_service.points_history(
            shop_id=g.shop_id, customer_id=customer_id, limit=limit, offset=offset
        )
        # the account may have just been created
        db.session.commit()
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    body = page_response(items, total, limit, offset)
    body["account"] = account.to_dict()
    return jsonify(body), 200


@customers_bp.post("/<int:customer_id>/points")
@require_auth
@require_permission("MANAGE_LOYALTY")
def add_points_route(customer_id: int):
    """Manual adjustment. Body: {"points": int (may be negative), "note": str?}"""
    payload = request.get_json(silent=True) or {}
    try:
        points = int_field(payload, "points", required=True)
        txn = customer_service.add_points(
            shop_id=g.shop_id,
            customer_id=customer_id,
            points=points,
            note=payload.get("note"),
            user_id=g.current_user.id,
        )
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PointsError) as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to adjust customer points")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(txn.to_dict()), 201


@customers_bp.get("/redemptions")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_redemptions_route():
    rows = customer_service.list_redemptions(
        shop_id=g.shop_id,
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200


@customers_bp.post("/<int:customer_id>/redemptions")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def request_redemption_route(customer_id: int):
    """Body: {"points": int, "reward_description": str}"""
    payload = request.get_json(silent=True) or {}
    try:
        points = int_field(payload, "points", required=True)
        redemption = customer_service.request_redemption(
            shop_id=g.shop_id,
            customer_id=customer_id,
            points=points,
            reward_description=payload.get("reward_description"),
        )
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, PointsError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(redemption.to_dict()), 201


def _decide(action, redemption_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        redemption = action(
            shop_id=g.shop_id,
            redemption_id=redemption_id,
            user_id=g.current_user.id,
            note=payload.get("note"),
        )
    except RedemptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PointsError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to decide redemption")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(redemption.to_dict()), 200


@customers_bp.post("/redemptions/<int:redemption_id>/approve")
@require_auth
@require_permission("MANAGE_LOYALTY")
def approve_redemption_route(redemption_id: int):
    return _decide(customer_service.approve_redemption, redemption_id)


@customers_bp.post("/redemptions/<int:redemption_id>/reject")
@require_auth
@require_permission("MANAGE_LOYALTY")
def reject_redemption_route(redemption_id: int):
    return _decide(customer_service.reject_redemption, redemption_id)


@customers_bp.post("/redemptions/<int:redemption_id>/cancel")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def cancel_redemption_route(redemption_id: int):
    return _decide(customer_service.cancel_redemption, redemption_id)
