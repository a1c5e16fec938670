# Overview: Service-layer operations for expenses; payment state and its cash movement.

"""
Expense Service

PAYMENT STATE:
- unpaid: no paid_on, no cash movement
- paid: paid_on and payment_method_id set, one OUT movement on paid_on

Every write goes through _apply so the movement always matches the row.
Expenses created by a commission payoff are owned by the commission.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Category, Expense, PaymentMethod
from ..validation import ConflictError, ValidationError
from .cash_flow_service import record_movement, remove_movements_for
from .revenue_service import detach_from_series
from .tenant_service import require_reference, shop_today


class ExpenseNotFoundError(Exception):
    pass


EXPENSE_MUTABLE_FIELDS = {
    "description", "amount_cents", "category_id", "due_date", "is_paid", "paid_on",
    "payment_method_id", "expense_type", "is_recurring", "frequency", "notes",
}
CASH_FIELDS = {"description", "amount_cents", "is_paid", "paid_on", "payment_method_id"}


def get_expense(*, shop_id: int, expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id, shop_id=shop_id).first()
    if not expense:
        raise ExpenseNotFoundError(f"Expense {expense_id} not found")
    return expense


def list_expenses(
    *,
    shop_id: int,
    start: date | None = None,
    end: date | None = None,
    is_paid: bool | None = None,
    category_id: int | None = None,
    expense_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Expense], int]:
    """Date range applies to paid_on, or due_date for unpaid expenses."""
    effective = db.func.coalesce(Expense.paid_on, Expense.due_date)
    q = db.session.query(Expense).filter(Expense.shop_id == shop_id)
    if start:
        q = q.filter(effective >= start)
    if end:
        q = q.filter(effective <= end)
    if is_paid is not None:
        q = q.filter(Expense.is_paid.is_(bool(is_paid)))
    if category_id:
        q = q.filter(Expense.category_id == category_id)
    if expense_type:
        q = q.filter(Expense.expense_type == expense_type.upper())
    total = q.count()
    items = q.order_by(effective.desc(), Expense.id.desc()).offset(offset).limit(limit).all()
    return items, total


def _check_references(shop_id: int, patch: dict) -> None:
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")
    if "payment_method_id" in patch:
        require_reference(PaymentMethod, patch["payment_method_id"], shop_id, "payment_method_id")


def _normalize(expense: Expense) -> None:
    if expense.is_paid:
        if expense.paid_on is None:
            raise ValidationError("paid_on is required for a paid expense")
        if expense.payment_method_id is None:
            raise ValidationError("payment_method_id is required for a paid expense")
    else:
        expense.paid_on = None
        if expense.due_date is None:
            expense.due_date = shop_today(expense.shop_id)

    if expense.is_recurring and not expense.frequency:
        expense.frequency = "MONTHLY"
    if not expense.is_recurring:
        expense.frequency = None


def _sync_movement(expense: Expense, actor_user_id: int | None = None) -> None:
    remove_movements_for(shop_id=expense.shop_id, expense_id=expense.id)
    if not expense.is_paid:
        return
    record_movement(
        shop_id=expense.shop_id,
        day=expense.paid_on,
        movement_type="OUT",
        amount_cents=expense.amount_cents,
        description=f"Despesa: {expense.description}",
        payment_method_id=expense.payment_method_id,
        created_by_user_id=actor_user_id,
        expense_id=expense.id,
        commission_id=expense.commission_id,
    )


def add_expense(
    *,
    shop_id: int,
    patch: dict,
    actor_user_id: int | None = None,
    commission_id: int | None = None,
) -> Expense:
    """Insert an expense and its movement. Flushes only."""
    _check_references(shop_id, patch)

    expense = Expense(shop_id=shop_id, expense_type="BUSINESS", is_paid=False, is_recurring=False)
    for key, value in patch.items():
        if key in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, key, value)
    expense.commission_id = commission_id
    _normalize(expense)

    db.session.add(expense)
    db.session.flush()
    _sync_movement(expense, actor_user_id)
    return expense


def create_expense(*, shop_id: int, patch: dict, actor_user_id: int | None = None) -> Expense:
    try:
        expense = add_expense(shop_id=shop_id, patch=patch, actor_user_id=actor_user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return expense


def update_expense(
    *,
    shop_id: int,
    expense_id: int,
    patch: dict,
    actor_user_id: int | None = None,
) -> Expense:
    """
    unpaid -> paid adds the movement, paid -> unpaid removes it, and a paid
    expense with a new amount, date or method gets its movement replaced.
    """
    expense = get_expense(shop_id=shop_id, expense_id=expense_id)
    if expense.commission_id is not None:
        raise ConflictError("Expense belongs to a commission payoff")
    _check_references(shop_id, patch)

    try:
        cash_changed = False
        for key, value in patch.items():
            if key not in EXPENSE_MUTABLE_FIELDS:
                continue
            if key in CASH_FIELDS and getattr(expense, key) != value:
                cash_changed = True
            setattr(expense, key, value)
        _normalize(expense)

        if cash_changed:
            _sync_movement(expense, actor_user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return expense


def mark_paid(
    *,
    shop_id: int,
    expense_id: int,
    paid_on: date | None = None,
    payment_method_id: int | None = None,
    actor_user_id: int | None = None,
) -> Expense:
    expense = get_expense(shop_id=shop_id, expense_id=expense_id)
    if expense.is_paid:
        raise ConflictError("Expense is already paid")
    return update_expense(
        shop_id=shop_id,
        expense_id=expense_id,
        patch={
            "is_paid": True,
            "paid_on": paid_on or shop_today(shop_id),
            "payment_method_id": payment_method_id or expense.payment_method_id,
        },
        actor_user_id=actor_user_id,
    )


def delete_expense(*, shop_id: int, expense_id: int) -> None:
    expense = get_expense(shop_id=shop_id, expense_id=expense_id)
    if expense.commission_id is not None:
        raise ConflictError("Expense belongs to a commission payoff")

    try:
        remove_movements_for(shop_id=shop_id, expense_id=expense.id)
        detach_from_series(Expense, expense)
        db.session.delete(expense)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
