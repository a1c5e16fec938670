# Overview: Service-layer operations for sellers and their sales goals.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Seller, SalesGoal, Sale, SaleItem, Commission, CommissionRule
from ..validation import ConflictError, ValidationError, check_date_order
from .tenant_service import require_reference


class SellerNotFoundError(Exception):
    pass


class SalesGoalNotFoundError(Exception):
    pass


SELLER_MUTABLE_FIELDS = {"name", "email", "phone", "hired_on", "status", "commission_rule_id"}
SALES_GOAL_MUTABLE_FIELDS = {
    "seller_id", "period_start", "period_end",
    "target_amount_cents", "target_quantity", "notes",
}


# -- Sellers --

def get_seller(*, shop_id: int, seller_id: int) -> Seller:
    seller = db.session.query(Seller).filter_by(id=seller_id, shop_id=shop_id).first()
    if not seller:
        raise SellerNotFoundError(f"Seller {seller_id} not found")
    return seller


def list_sellers(
    *,
    shop_id: int,
    status: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Seller], int]:
    q = db.session.query(Seller).filter(Seller.shop_id == shop_id)
    if status:
        q = q.filter(Seller.status == status.upper())
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(Seller.name.ilike(like), Seller.email.ilike(like)))
    total = q.count()
    items = q.order_by(Seller.name.asc(), Seller.id.asc()).offset(offset).limit(limit).all()
    return items, total


def list_active_for_select(*, shop_id: int) -> list[dict]:
    """id + name pairs of ACTIVE sellers, for pickers."""
    rows = (
        db.session.query(Seller.id, Seller.name)
        .filter(Seller.shop_id == shop_id, Seller.status == "ACTIVE")
        .order_by(Seller.name.asc())
        .all()
    )
    return [{"id": seller_id, "name": name} for seller_id, name in rows]


def create_seller(*, shop_id: int, patch: dict) -> Seller:
    if "commission_rule_id" in patch:
        require_reference(CommissionRule, patch["commission_rule_id"], shop_id, "commission_rule_id")

    seller = Seller(shop_id=shop_id, status="ACTIVE")
    for key, value in patch.items():
        if key in SELLER_MUTABLE_FIELDS:
            setattr(seller, key, value)
    if seller.status is None:
        seller.status = "ACTIVE"

    db.session.add(seller)
    db.session.commit()
    return seller


def update_seller(*, shop_id: int, seller_id: int, patch: dict) -> Seller:
    seller = get_seller(shop_id=shop_id, seller_id=seller_id)
    if "commission_rule_id" in patch:
        require_reference(CommissionRule, patch["commission_rule_id"], shop_id, "commission_rule_id")

    for key, value in patch.items():
        if key in SELLER_MUTABLE_FIELDS:
            setattr(seller, key, value)

    db.session.commit()
    return seller


def delete_seller(*, shop_id: int, seller_id: int) -> None:
    """
    Hard delete. Refused while commissions or sales reference the seller;
    set status INACTIVE or TERMINATED instead.
    """
    seller = get_seller(shop_id=shop_id, seller_id=seller_id)

    if db.session.query(Commission.id).filter(Commission.seller_id == seller.id).first():
        raise ConflictError("Seller has commissions and cannot be deleted")
    if db.session.query(Sale.id).filter(Sale.seller_id == seller.id).first():
        raise ConflictError("Seller has sales and cannot be deleted")

    db.session.query(SalesGoal).filter(SalesGoal.seller_id == seller.id).delete(synchronize_session=False)
    db.session.delete(seller)
    db.session.commit()


# -- Sales goals --

def get_sales_goal(*, shop_id: int, goal_id: int) -> SalesGoal:
    goal = db.session.query(SalesGoal).filter_by(id=goal_id, shop_id=shop_id).first()
    if not goal:
        raise SalesGoalNotFoundError(f"Sales goal {goal_id} not found")
    return goal


def _check_sales_goal(goal: SalesGoal) -> None:
    if goal.target_amount_cents is None and goal.target_quantity is None:
        raise ValidationError("Set target_amount_cents or target_quantity (or both)")
    check_date_order(goal.period_start, goal.period_end, start_name="period_start", end_name="period_end")


def list_sales_goals(
    *,
    shop_id: int,
    seller_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[SalesGoal]:
    """Goals overlapping [start, end], newest period first."""
    q = db.session.query(SalesGoal).filter(SalesGoal.shop_id == shop_id)
    if seller_id is not None:
        q = q.filter(SalesGoal.seller_id == seller_id)
    if start is not None:
        q = q.filter(SalesGoal.period_end >= start)
    if end is not None:
        q = q.filter(SalesGoal.period_start <= end)
    return q.order_by(SalesGoal.period_start.desc(), SalesGoal.id.desc()).all()


def create_sales_goal(*, shop_id: int, patch: dict) -> SalesGoal:
    require_reference(Seller, patch.get("seller_id"), shop_id, "seller_id")

    goal = SalesGoal(shop_id=shop_id)
    for key, value in patch.items():
        if key in SALES_GOAL_MUTABLE_FIELDS:
            setattr(goal, key, value)
    _check_sales_goal(goal)

    db.session.add(goal)
    db.session.commit()
    return goal


def update_sales_goal(*, shop_id: int, goal_id: int, patch: dict) -> SalesGoal:
    goal = get_sales_goal(shop_id=shop_id, goal_id=goal_id)
    if "seller_id" in patch:
        if patch["seller_id"] is None:
            raise ValidationError("seller_id cannot be null")
        require_reference(Seller, patch["seller_id"], shop_id, "seller_id")

    for key, value in patch.items():
        if key in SALES_GOAL_MUTABLE_FIELDS:
            setattr(goal, key, value)
    try:
        _check_sales_goal(goal)
    except ValidationError:
        db.session.rollback()
        raise

    db.session.commit()
    return goal


def delete_sales_goal(*, shop_id: int, goal_id: int) -> None:
    goal = get_sales_goal(shop_id=shop_id, goal_id=goal_id)
    db.session.delete(goal)
    db.session.commit()


def _percent(achieved: int, target: int | None) -> float | None:
    if target is None:
        return None
    if target <= 0:
        return 0.0
    return round(min(achieved / target * 100, 100.0), 2)


def sales_goal_progress(*, shop_id: int, goal_id: int) -> dict:
    """
    What the seller sold in the goal period (non-cancelled sales).

    achieved_quantity counts item units, not sales.
    """
    goal = get_sales_goal(shop_id=shop_id, goal_id=goal_id)

    sale_filter = (
        Sale.shop_id == shop_id,
        Sale.seller_id == goal.seller_id,
        Sale.status != "CANCELLED",
        Sale.sold_on >= goal.period_start,
        Sale.sold_on <= goal.period_end,
    )

    achieved_amount = (
        db.session.query(db.func.coalesce(db.func.sum(Sale.total_cents), 0))
        .filter(*sale_filter)
        .scalar()
    )
    achieved_quantity = (
        db.session.query(db.func.coalesce(db.func.sum(SaleItem.quantity), 0))
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(*sale_filter)
        .scalar()
    )

    return {
        "goal": goal.to_dict(),
        "achieved_amount_cents": int(achieved_amount or 0),
        "achieved_quantity": int(achieved_quantity or 0),
        "amount_percent": _percent(int(achieved_amount or 0), goal.target_amount_cents),
        "quantity_percent": _percent(int(achieved_quantity or 0), goal.target_quantity),
    }
