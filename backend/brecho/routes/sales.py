# Overview: Flask API routes for sales, cancellation and installments.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import SaleError, SaleNotFoundError, InstallmentNotFoundError
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, date_arg, int_field, page_args, page_response

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_error(e: SaleError):
    body = {"error": str(e)}
    if e.details:
        body["details"] = e.details
    return jsonify(body), 400


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    limit, offset = page_args()
    try:
        items, total = sales_service.list_sales(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            seller_id=request.args.get("seller_id", type=int),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(shop_id=g.shop_id, sale_id=sale_id)
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(sale.to_dict(include_items=True)), 200


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Checkout.

    Body: items (list of {product_id | manual_description, quantity,
    unit_price_cents}), payment_method_id, optional customer_id, seller_id,
    category_id, sold_at, total_cents, installment_count, first_due_date,
    notes.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        raw_sold_at = payload.get("sold_at")
        if raw_sold_at is not None and not isinstance(raw_sold_at, str):
            raise ValidationError("sold_at must be an ISO datetime")
        try:
            sold_at = parse_iso_datetime(raw_sold_at)
        except ValueError:
            raise ValidationError("sold_at must be an ISO datetime")

        notes = payload.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")

        sale = sales_service.create_sale(
            shop_id=g.shop_id,
            items=payload.get("items"),
            payment_method_id=int_field(payload, "payment_method_id", required=True),
            customer_id=int_field(payload, "customer_id"),
            seller_id=int_field(payload, "seller_id"),
            category_id=int_field(payload, "category_id"),
            sold_at=sold_at,
            total_cents=int_field(payload, "total_cents"),
            installment_count=int_field(payload, "installment_count"),
            first_due_date=date_arg("first_due_date", payload),
            notes=notes,
            actor_user_id=g.current_user.id,
            points_per_real=current_app.config.get("POINTS_PER_REAL", 1),
        )
    except SaleError as e:
        return _sale_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(sale.to_dict(include_items=True)), 201


@sales_bp.put("/<int:sale_id>")
@require_auth
@require_permission("MANAGE_SALES")
def update_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        sale = sales_service.update_sale(shop_id=g.shop_id, sale_id=sale_id, patch=dict(payload))
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return _sale_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(sale.to_dict(include_items=True)), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("MANAGE_SALES")
def cancel_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    reason = payload.get("reason")
    if reason is not None and not isinstance(reason, str):
        return jsonify({"error": "reason must be a string"}), 400
    try:
        sale = sales_service.cancel_sale(
            shop_id=g.shop_id,
            sale_id=sale_id,
            reason=reason,
            actor_user_id=g.current_user.id,
        )
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e)}), 409
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(sale.to_dict(include_items=True)), 200


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission("MANAGE_SALES")
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(shop_id=g.shop_id, sale_id=sale_id)
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


@sales_bp.post("/installments/<int:installment_id>/status")
@require_auth
@require_permission("MANAGE_SALES")
def set_installment_status_route(installment_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        installment = sales_service.set_installment_status(
            shop_id=g.shop_id,
            installment_id=installment_id,
            status=payload.get("status") if isinstance(payload.get("status"), str) else None,
            paid_on=date_arg("paid_on", payload),
            actor_user_id=g.current_user.id,
        )
    except InstallmentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(installment.to_dict()), 200
