# Overview: Flask API routes for suppliers operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..models import Supplier
from ..services import supplier_service
from ..services.supplier_service import SupplierNotFoundError, SupplierValidationError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_supplier,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import bool_arg, page_args, page_response

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "legal_name", "trade_name", "document", "state_registration",
        "contact_name", "phone", "email",
        "street", "number", "complement", "district", "city", "state", "postal_code",
        "notes",
    },
    required_on_create={"legal_name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def list_suppliers_route():
    limit, offset = page_args()
    try:
        items, total = supplier_service.list_suppliers(
            shop_id=g.shop_id,
            search=request.args.get("search"),
            include_inactive=bool(bool_arg("include_inactive")),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_SUPPLIERS")
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(shop_id=g.shop_id, supplier_id=supplier_id)
    except SupplierNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        enforce_rules_supplier(patch)
        supplier = supplier_service.create_supplier(shop_id=g.shop_id, patch=patch)
    except (ValidationError, SupplierValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        enforce_rules_supplier(patch)
        supplier = supplier_service.update_supplier(shop_id=g.shop_id, supplier_id=supplier_id, patch=patch)
    except SupplierNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, SupplierValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def deactivate_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.deactivate_supplier(shop_id=g.shop_id, supplier_id=supplier_id)
    except SupplierNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.post("/<int:supplier_id>/reactivate")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def reactivate_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.reactivate_supplier(shop_id=g.shop_id, supplier_id=supplier_id)
    except SupplierNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(supplier.to_dict()), 200
