# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

All product operations are scoped to the caller's shop (g.shop_id).
- Read operations require VIEW_CATALOG
- Catalog edits require MANAGE_CATALOG
- Stock changes (quantity, reserve, release) require MANAGE_STOCK
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product
from ..services import product_service
from ..services.product_service import ProductNotFoundError, StockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg, int_field, page_args, page_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "sku", "brand", "size", "condition",
        "category_id", "supplier_id", "cost_price_cents", "sale_price_cents",
        "quantity", "reserved_quantity", "status",
    },
    required_on_create={"name", "sale_price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_products_route():
    """
    Query params: search, category_id, supplier_id, status,
    include_inactive, limit, offset.
    """
    limit, offset = page_args()
    try:
        items, total = product_service.list_products(
            shop_id=g.shop_id,
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
            status=request.args.get("status"),
            include_inactive=bool(bool_arg("include_inactive")),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@products_bp.get("/available")
@require_auth
@require_permission("VIEW_CATALOG")
def list_available_route():
    """Products that can go on a sale right now."""
    rows = product_service.list_available_for_sale(shop_id=g.shop_id)
    return jsonify({"items": [p.to_dict() for p in rows], "count": len(rows)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(shop_id=g.shop_id, product_id=product_id)
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = product_service.create_product(
            shop_id=g.shop_id, patch=patch, actor_user_id=g.current_user.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(product.to_dict()), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = product_service.update_product(
            shop_id=g.shop_id, product_id=product_id, patch=patch, actor_user_id=g.current_user.id
        )
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, StockError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(product.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_product_route(product_id: int):
    """Soft delete: the product becomes INACTIVE."""
    try:
        product = product_service.delete_product(
            shop_id=g.shop_id, product_id=product_id, actor_user_id=g.current_user.id
        )
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


def _stock_route(action, product_id: int, field: str = "quantity"):
    payload = request.get_json(silent=True) or {}
    try:
        quantity = int_field(payload, field, required=True)
        kwargs = {"shop_id": g.shop_id, "product_id": product_id, field: quantity, "actor_user_id": g.current_user.id}
        if action is product_service.set_quantity:
            kwargs["reason"] = payload.get("reason")
        product = action(**kwargs)
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, StockError) as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to change product stock")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(product.to_dict()), 200


@products_bp.post("/<int:product_id>/quantity")
@require_auth
@require_permission("MANAGE_STOCK")
def set_quantity_route(product_id: int):
    """Body: {"quantity": int, "reason": str?}"""
    return _stock_route(product_service.set_quantity, product_id)


@products_bp.post("/<int:product_id>/reserve")
@require_auth
@require_permission("MANAGE_STOCK")
def reserve_route(product_id: int):
    return _stock_route(product_service.reserve, product_id)


@products_bp.post("/<int:product_id>/release")
@require_auth
@require_permission("MANAGE_STOCK")
def release_route(product_id: int):
    return _stock_route(product_service.release_reservation, product_id)
