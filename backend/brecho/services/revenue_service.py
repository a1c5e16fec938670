# Overview: Service-layer operations for revenues and recurring revenue/expense series.

"""
Revenue Service

Every non-SALE revenue has exactly one IN cash movement on its date.
SALE revenues are written by the sale workflow, which also owns their cash.

RECURRENCE:
A recurring series is a root row (is_recurring, no parent) plus the
occurrences generated from it, each linked through recurrence_parent_id.
process_recurring fills in every missing occurrence up to today.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..models import Category, Expense, PaymentMethod, Revenue
from ..validation import ConflictError, ValidationError
from .cash_flow_service import record_movement, remove_movements_for
from .tenant_service import require_reference, shop_today
from brecho.time_utils import add_months


class RevenueNotFoundError(Exception):
    pass


REVENUE_MUTABLE_FIELDS = {
    "description", "amount_cents", "date", "category_id", "revenue_type",
    "payment_method_id", "is_recurring", "frequency", "notes",
}
CASH_FIELDS = {"description", "amount_cents", "date", "revenue_type", "payment_method_id"}

# Occurrences generated per series per run
MAX_CATCH_UP = 1000


# -- Recurrence --

def next_occurrence(current: date, frequency: str | None) -> date:
    """Date of the occurrence after `current`. Unknown frequencies are monthly."""
    frequency = (frequency or "").upper()
    if frequency == "DAILY":
        return current + timedelta(days=1)
    if frequency == "WEEKLY":
        return current + timedelta(weeks=1)
    if frequency == "BIWEEKLY":
        return current + timedelta(days=15)
    if frequency == "BIMONTHLY":
        return add_months(current, 2)
    if frequency == "QUARTERLY":
        return add_months(current, 3)
    if frequency == "SEMIANNUAL":
        return add_months(current, 6)
    if frequency == "ANNUAL":
        return add_months(current, 12)
    return add_months(current, 1)


def detach_from_series(model, row) -> None:
    """
    Keep a series alive when its root is deleted: the earliest occurrence
    becomes the new root. Flushes only.
    """
    if row.recurrence_parent_id is not None:
        return
    date_col = model.date if model is Revenue else model.due_date
    children = (
        db.session.query(model)
        .filter(model.recurrence_parent_id == row.id)
        .order_by(date_col.asc(), model.id.asc())
        .all()
    )
    if not children:
        return
    new_root = children[0]
    new_root.recurrence_parent_id = None
    new_root.is_recurring = row.is_recurring
    new_root.frequency = row.frequency
    for child in children[1:]:
        child.recurrence_parent_id = new_root.id
    db.session.flush()


def _check_recurrence(row) -> None:
    if row.is_recurring and not row.frequency:
        row.frequency = "MONTHLY"
    if not row.is_recurring:
        row.frequency = None


def _series_latest(model, root, date_attr: str) -> date | None:
    date_col = getattr(model, date_attr)
    latest = (
        db.session.query(db.func.max(date_col))
        .filter(model.recurrence_parent_id == root.id)
        .scalar()
    )
    root_date = getattr(root, date_attr)
    if latest is None:
        return root_date
    if root_date is None:
        return latest
    return max(latest, root_date)


def _process_revenue_series(shop_id: int, today: date) -> int:
    created = 0
    roots = (
        db.session.query(Revenue)
        .filter(
            Revenue.shop_id == shop_id,
            Revenue.is_recurring.is_(True),
            Revenue.recurrence_parent_id.is_(None),
        )
        .order_by(Revenue.id.asc())
        .all()
    )
    for root in roots:
        latest = _series_latest(Revenue, root, "date")
        nxt = next_occurrence(latest, root.frequency)
        generated = 0
        while nxt <= today and generated < MAX_CATCH_UP:
            revenue = Revenue(
                shop_id=shop_id,
                description=root.description,
                amount_cents=root.amount_cents,
                date=nxt,
                category_id=root.category_id,
                revenue_type=root.revenue_type,
                payment_method_id=root.payment_method_id,
                is_recurring=True,
                frequency=root.frequency,
                recurrence_parent_id=root.id,
                notes=root.notes,
            )
            db.session.add(revenue)
            db.session.flush()
            _sync_movement(revenue)
            generated += 1
            nxt = next_occurrence(nxt, root.frequency)
        created += generated
    return created


def _process_expense_series(shop_id: int, today: date) -> int:
    created = 0
    roots = (
        db.session.query(Expense)
        .filter(
            Expense.shop_id == shop_id,
            Expense.is_recurring.is_(True),
            Expense.recurrence_parent_id.is_(None),
        )
        .order_by(Expense.id.asc())
        .all()
    )
    for root in roots:
        latest = _series_latest(Expense, root, "due_date") or root.effective_date
        if latest is None:
            continue
        nxt = next_occurrence(latest, root.frequency)
        generated = 0
        while nxt <= today and generated < MAX_CATCH_UP:
            db.session.add(Expense(
                shop_id=shop_id,
                description=root.description,
                amount_cents=root.amount_cents,
                category_id=root.category_id,
                due_date=nxt,
                is_paid=False,
                expense_type=root.expense_type,
                is_recurring=True,
                frequency=root.frequency,
                recurrence_parent_id=root.id,
                notes=root.notes,
            ))
            generated += 1
            nxt = next_occurrence(nxt, root.frequency)
        created += generated
    db.session.flush()
    return created


def process_recurring(*, shop_id: int, today: date | None = None) -> dict:
    """
    Generate missing occurrences of every recurring series up to today.

    Generated expenses are unpaid and due on the occurrence date; generated
    revenues record their cash movement like any other revenue.
    """
    today = today or shop_today(shop_id)
    try:
        revenues = _process_revenue_series(shop_id, today)
        expenses = _process_expense_series(shop_id, today)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return {"revenues_created": revenues, "expenses_created": expenses, "today": today.isoformat()}


# -- Revenues --

def get_revenue(*, shop_id: int, revenue_id: int) -> Revenue:
    revenue = db.session.query(Revenue).filter_by(id=revenue_id, shop_id=shop_id).first()
    if not revenue:
        raise RevenueNotFoundError(f"Revenue {revenue_id} not found")
    return revenue


def list_revenues(
    *,
    shop_id: int,
    start: date | None = None,
    end: date | None = None,
    revenue_type: str | None = None,
    category_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Revenue], int]:
    q = db.session.query(Revenue).filter(Revenue.shop_id == shop_id)
    if start:
        q = q.filter(Revenue.date >= start)
    if end:
        q = q.filter(Revenue.date <= end)
    if revenue_type:
        q = q.filter(Revenue.revenue_type == revenue_type.upper())
    if category_id:
        q = q.filter(Revenue.category_id == category_id)
    total = q.count()
    items = q.order_by(Revenue.date.desc(), Revenue.id.desc()).offset(offset).limit(limit).all()
    return items, total


def _sync_movement(revenue: Revenue, actor_user_id: int | None = None) -> None:
    remove_movements_for(shop_id=revenue.shop_id, revenue_id=revenue.id)
    if revenue.revenue_type == "SALE":
        return
    record_movement(
        shop_id=revenue.shop_id,
        day=revenue.date,
        movement_type="IN",
        amount_cents=revenue.amount_cents,
        description=f"Receita: {revenue.description}",
        payment_method_id=revenue.payment_method_id,
        created_by_user_id=actor_user_id,
        revenue_id=revenue.id,
    )


def _check_references(shop_id: int, patch: dict) -> None:
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")
    if "payment_method_id" in patch:
        require_reference(PaymentMethod, patch["payment_method_id"], shop_id, "payment_method_id")


def create_revenue(*, shop_id: int, patch: dict, actor_user_id: int | None = None) -> Revenue:
    _check_references(shop_id, patch)

    revenue = Revenue(shop_id=shop_id, revenue_type="OTHER", is_recurring=False)
    for key, value in patch.items():
        if key in REVENUE_MUTABLE_FIELDS:
            setattr(revenue, key, value)
    if revenue.date is None:
        revenue.date = shop_today(shop_id)
    if revenue.revenue_type == "SALE" and revenue.is_recurring:
        raise ValidationError("SALE revenues cannot be recurring")
    _check_recurrence(revenue)

    try:
        db.session.add(revenue)
        db.session.flush()
        _sync_movement(revenue, actor_user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return revenue


def update_revenue(
    *,
    shop_id: int,
    revenue_id: int,
    patch: dict,
    actor_user_id: int | None = None,
) -> Revenue:
    revenue = get_revenue(shop_id=shop_id, revenue_id=revenue_id)
    if revenue.sale_id is not None:
        raise ConflictError("Revenue belongs to a sale; change the sale instead")
    _check_references(shop_id, patch)
    if patch.get("revenue_type", revenue.revenue_type) == "SALE" and patch.get("is_recurring", revenue.is_recurring):
        raise ValidationError("SALE revenues cannot be recurring")

    cash_changed = False
    for key, value in patch.items():
        if key not in REVENUE_MUTABLE_FIELDS:
            continue
        if key in CASH_FIELDS and getattr(revenue, key) != value:
            cash_changed = True
        setattr(revenue, key, value)
    _check_recurrence(revenue)

    try:
        if cash_changed:
            _sync_movement(revenue, actor_user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return revenue


def delete_revenue(*, shop_id: int, revenue_id: int) -> None:
    revenue = get_revenue(shop_id=shop_id, revenue_id=revenue_id)
    if revenue.sale_id is not None:
        raise ConflictError("Revenue belongs to a sale; cancel the sale instead")

    try:
        remove_movements_for(shop_id=shop_id, revenue_id=revenue.id)
        detach_from_series(Revenue, revenue)
        db.session.delete(revenue)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
