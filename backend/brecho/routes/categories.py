# Overview: Flask API routes for categories and payment methods.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Category, PaymentMethod
from ..services import category_service, payment_method_service
from ..services.category_service import CategoryNotFoundError
from ..services.payment_method_service import PaymentMethodNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_category,
    enforce_rules_payment_method,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "kind", "is_active"},
    required_on_create={"name"},
)

PAYMENT_METHOD_POLICY = ModelValidationPolicy(
    writable_fields={"name", "is_immediate", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
payment_methods_bp = Blueprint("payment_methods", __name__, url_prefix="/api/payment-methods")


@categories_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_categories_route():
    """Query params: kind (PRODUCT, EXPENSE, REVENUE), include_inactive."""
    try:
        rows = category_service.list_categories(
            shop_id=g.shop_id,
            kind=request.args.get("kind"),
            include_inactive=bool(bool_arg("include_inactive")),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [c.to_dict() for c in rows], "count": len(rows)}), 200


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_category_route(category_id: int):
    try:
        category = category_service.get_category(shop_id=g.shop_id, category_id=category_id)
    except CategoryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(category.to_dict()), 200


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        enforce_rules_category(patch)
        category = category_service.create_category(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(category.to_dict()), 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        enforce_rules_category(patch)
        category = category_service.update_category(shop_id=g.shop_id, category_id=category_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CategoryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(category.to_dict()), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_category_route(category_id: int):
    try:
        category_service.delete_category(shop_id=g.shop_id, category_id=category_id)
    except CategoryNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"ok": True}), 200


# -- Payment methods --

@payment_methods_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_payment_methods_route():
    rows = payment_method_service.list_payment_methods(
        shop_id=g.shop_id,
        include_inactive=bool(bool_arg("include_inactive")),
    )
    return jsonify({"items": [m.to_dict() for m in rows], "count": len(rows)}), 200


@payment_methods_bp.post("")
@require_auth
@require_permission("MANAGE_FINANCE")
def create_payment_method_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=PaymentMethod, payload=payload, policy=PAYMENT_METHOD_POLICY, partial=False)
        enforce_rules_payment_method(patch)
        method = payment_method_service.create_payment_method(shop_id=g.shop_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(method.to_dict()), 201


@payment_methods_bp.put("/<int:payment_method_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def update_payment_method_route(payment_method_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=PaymentMethod, payload=payload, policy=PAYMENT_METHOD_POLICY, partial=True)
        enforce_rules_payment_method(patch)
        method = payment_method_service.update_payment_method(
            shop_id=g.shop_id, payment_method_id=payment_method_id, patch=patch
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentMethodNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(method.to_dict()), 200


@payment_methods_bp.delete("/<int:payment_method_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def deactivate_payment_method_route(payment_method_id: int):
    """Payment methods are referenced by history, so they are only deactivated."""
    try:
        method = payment_method_service.deactivate_payment_method(
            shop_id=g.shop_id, payment_method_id=payment_method_id
        )
    except PaymentMethodNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(method.to_dict()), 200
