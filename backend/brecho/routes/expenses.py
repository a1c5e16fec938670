# Overview: Flask API routes for expenses and their payment state.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Expense
from ..services import expense_service
from ..services.expense_service import ExpenseNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_expense,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission
from .common import CONCURRENT_WRITE_ERRORS, bool_arg, date_arg, int_field, page_args, page_response

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "description", "amount_cents", "category_id", "due_date", "is_paid", "paid_on",
        "payment_method_id", "expense_type", "is_recurring", "frequency", "notes",
    },
    required_on_create={"description", "amount_cents"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission("VIEW_FINANCE")
def list_expenses_route():
    limit, offset = page_args()
    try:
        items, total = expense_service.list_expenses(
            shop_id=g.shop_id,
            start=date_arg("start"),
            end=date_arg("end"),
            is_paid=bool_arg("is_paid"),
            category_id=request.args.get("category_id", type=int),
            expense_type=request.args.get("expense_type"),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(page_response(items, total, limit, offset)), 200


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_permission("VIEW_FINANCE")
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(shop_id=g.shop_id, expense_id=expense_id)
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(expense.to_dict()), 200


@expenses_bp.post("")
@require_auth
@require_permission("MANAGE_FINANCE")
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
        expense = expense_service.create_expense(
            shop_id=g.shop_id, patch=patch, actor_user_id=g.current_user.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CONCURRENT_WRITE_ERRORS:
        raise
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(expense.to_dict()), 201


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
        enforce_rules_expense(patch)
        expense = expense_service.update_expense(
            shop_id=g.shop_id, expense_id=expense_id, patch=patch, actor_user_id=g.current_user.id
        )
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(expense.to_dict()), 200


@expenses_bp.post("/<int:expense_id>/pay")
@require_auth
@require_permission("MANAGE_FINANCE")
def pay_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expense = expense_service.mark_paid(
            shop_id=g.shop_id,
            expense_id=expense_id,
            paid_on=date_arg("paid_on", payload),
            payment_method_id=int_field(payload, "payment_method_id"),
            actor_user_id=g.current_user.id,
        )
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(expense.to_dict()), 200


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_FINANCE")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(shop_id=g.shop_id, expense_id=expense_id)
    except ExpenseNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200
