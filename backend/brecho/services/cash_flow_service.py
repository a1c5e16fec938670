# Overview: Service-layer operations for the cash box; daily balances and movements.

"""
Cash Flow Service

The cash box is a chain of CashFlowDay rows, one per shop per day with
activity:

    closing = opening + inflow - outflow
    opening = closing of the closest earlier day (0 for the first day)

Movements are written by the business workflows (sales, installments,
revenues, expenses, commission payoffs) or entered by hand. After any
change to a day, every later day is re-chained so backdated movements
carry forward.

record_movement / remove_movement only flush; the calling workflow owns
the transaction.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..models import CashFlowDay, CashMovement, PaymentMethod
from ..validation import MAX_AMOUNT_CENTS, ValidationError
from .concurrency import lock_for_update
from .tenant_service import require_reference, shop_today
from brecho.time_utils import iter_days


class CashMovementNotFoundError(Exception):
    pass


class CashFlowError(ValueError):
    pass


LINK_FIELDS = ("sale_id", "installment_id", "revenue_id", "expense_id", "commission_id")


def _previous_closing(shop_id: int, day: date) -> int:
    prev = (
        db.session.query(CashFlowDay)
        .filter(CashFlowDay.shop_id == shop_id, CashFlowDay.date < day)
        .order_by(CashFlowDay.date.desc())
        .first()
    )
    return prev.closing_balance_cents if prev else 0


def get_or_create_day(*, shop_id: int, day: date) -> CashFlowDay:
    """Load a day row under lock, creating it from the previous closing."""
    row = lock_for_update(
        db.session.query(CashFlowDay).filter_by(shop_id=shop_id, date=day)
    ).first()
    if row:
        return row

    opening = _previous_closing(shop_id, day)
    row = CashFlowDay(
        shop_id=shop_id,
        date=day,
        opening_balance_cents=opening,
        inflow_cents=0,
        outflow_cents=0,
        closing_balance_cents=opening,
    )
    db.session.add(row)
    db.session.flush()
    return row


def rechain_from(*, shop_id: int, day: date) -> int:
    """
    Recompute opening/closing of every day on or after `day`.

    Returns the number of rows touched.
    """
    running = _previous_closing(shop_id, day)
    rows = (
        lock_for_update(
            db.session.query(CashFlowDay)
            .filter(CashFlowDay.shop_id == shop_id, CashFlowDay.date >= day)
        )
        .order_by(CashFlowDay.date.asc())
        .all()
    )
    for row in rows:
        row.opening_balance_cents = running
        row.recompute_closing()
        running = row.closing_balance_cents
    db.session.flush()
    return len(rows)


def record_movement(
    *,
    shop_id: int,
    day: date,
    movement_type: str,
    amount_cents: int,
    description: str,
    payment_method_id: int | None = None,
    created_by_user_id: int | None = None,
    **links,
) -> CashMovement:
    """Add an IN/OUT movement on a day. Flushes only."""
    if movement_type not in ("IN", "OUT"):
        raise CashFlowError("movement_type must be IN or OUT")
    if not isinstance(amount_cents, int) or amount_cents <= 0:
        raise CashFlowError("amount_cents must be > 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise CashFlowError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
    unknown = set(links) - set(LINK_FIELDS)
    if unknown:
        raise CashFlowError(f"Unknown movement link: {', '.join(sorted(unknown))}")

    cash_day = get_or_create_day(shop_id=shop_id, day=day)

    movement = CashMovement(
        shop_id=shop_id,
        cash_flow_day_id=cash_day.id,
        date=day,
        movement_type=movement_type,
        amount_cents=amount_cents,
        description=description[:255],
        payment_method_id=payment_method_id,
        created_by_user_id=created_by_user_id,
        **links,
    )
    db.session.add(movement)

    if movement_type == "IN":
        cash_day.inflow_cents += amount_cents
    else:
        cash_day.outflow_cents += amount_cents
    db.session.flush()

    rechain_from(shop_id=shop_id, day=day)
    return movement


def remove_movement(movement: CashMovement) -> None:
    """Delete a movement and take it out of its day. Flushes only."""
    cash_day = get_or_create_day(shop_id=movement.shop_id, day=movement.date)
    if movement.movement_type == "IN":
        cash_day.inflow_cents -= movement.amount_cents
    else:
        cash_day.outflow_cents -= movement.amount_cents

    day = movement.date
    db.session.delete(movement)
    db.session.flush()
    rechain_from(shop_id=movement.shop_id, day=day)


def find_movements(*, shop_id: int, **links) -> list[CashMovement]:
    """Movements produced by one source record, e.g. find_movements(shop_id=1, expense_id=7)."""
    if not links or set(links) - set(LINK_FIELDS):
        raise CashFlowError("Filter by one of: " + ", ".join(LINK_FIELDS))
    return (
        db.session.query(CashMovement)
        .filter_by(shop_id=shop_id, **links)
        .order_by(CashMovement.id.asc())
        .all()
    )


def remove_movements_for(*, shop_id: int, **links) -> int:
    """Remove every movement linked to a source record. Flushes only."""
    movements = find_movements(shop_id=shop_id, **links)
    for movement in movements:
        remove_movement(movement)
    return len(movements)


# -- Manual movements --

def create_manual_movement(
    *,
    shop_id: int,
    day: date | None,
    movement_type: str,
    amount_cents: int,
    description: str,
    payment_method_id: int | None = None,
    created_by_user_id: int | None = None,
) -> CashMovement:
    description = (description or "").strip()
    if len(description) < 3:
        raise ValidationError("description must have at least 3 characters")
    movement_type = (movement_type or "").upper()
    if movement_type not in ("IN", "OUT"):
        raise ValidationError("movement_type must be IN or OUT")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer")
    require_reference(PaymentMethod, payment_method_id, shop_id, "payment_method_id")

    try:
        movement = record_movement(
            shop_id=shop_id,
            day=day or shop_today(shop_id),
            movement_type=movement_type,
            amount_cents=amount_cents,
            description=description,
            payment_method_id=payment_method_id,
            created_by_user_id=created_by_user_id,
        )
        db.session.commit()
    except CashFlowError as exc:
        db.session.rollback()
        raise ValidationError(str(exc))
    except Exception:
        db.session.rollback()
        raise
    return movement


def delete_manual_movement(*, shop_id: int, movement_id: int) -> None:
    """Only hand-entered movements; linked ones follow their source record."""
    movement = db.session.query(CashMovement).filter_by(id=movement_id, shop_id=shop_id).first()
    if not movement:
        raise CashMovementNotFoundError(f"Cash movement {movement_id} not found")
    if not movement.is_manual:
        raise CashFlowError("Movement belongs to another record; change that record instead")

    try:
        remove_movement(movement)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# -- Reads --

def current_balance(*, shop_id: int, as_of: date | None = None) -> int:
    """Closing balance of the latest day on or before as_of (default today)."""
    as_of = as_of or shop_today(shop_id)
    row = (
        db.session.query(CashFlowDay)
        .filter(CashFlowDay.shop_id == shop_id, CashFlowDay.date <= as_of)
        .order_by(CashFlowDay.date.desc())
        .first()
    )
    return row.closing_balance_cents if row else 0


def period(*, shop_id: int, start: date, end: date) -> list[dict]:
    """
    One row per calendar day in [start, end].

    Days without activity carry the previous balance with zero movement.
    """
    if end < start:
        raise ValidationError("end must be on or after start")
    if (end - start).days > 366:
        raise ValidationError("period cannot exceed 366 days")

    stored = {
        row.date: row
        for row in db.session.query(CashFlowDay)
        .filter(CashFlowDay.shop_id == shop_id, CashFlowDay.date >= start, CashFlowDay.date <= end)
        .all()
    }

    running = _previous_closing(shop_id, start)
    days = []
    for day in iter_days(start, end):
        row = stored.get(day)
        if row is not None:
            days.append(row.to_dict())
            running = row.closing_balance_cents
        else:
            days.append({
                "id": None,
                "date": day.isoformat(),
                "opening_balance_cents": running,
                "inflow_cents": 0,
                "outflow_cents": 0,
                "closing_balance_cents": running,
            })
    return days


def day_detail(*, shop_id: int, day: date) -> dict:
    row = (
        db.session.query(CashFlowDay)
        .filter_by(shop_id=shop_id, date=day)
        .first()
    )
    if row is None:
        balance = _previous_closing(shop_id, day)
        return {
            "day": {
                "id": None,
                "date": day.isoformat(),
                "opening_balance_cents": balance,
                "inflow_cents": 0,
                "outflow_cents": 0,
                "closing_balance_cents": balance,
            },
            "movements": [],
        }
    return {
        "day": row.to_dict(),
        "movements": [m.to_dict() for m in row.movements],
    }


def balance_history(*, shop_id: int, days: int = 30, today: date | None = None) -> list[dict]:
    """[{date, balance_cents}] for the last `days` days, oldest first."""
    days = max(1, min(days, 366))
    today = today or shop_today(shop_id)
    start = today - timedelta(days=days - 1)
    return [
        {"date": row["date"], "balance_cents": row["closing_balance_cents"]}
        for row in period(shop_id=shop_id, start=start, end=today)
    ]
