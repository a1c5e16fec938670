# Overview: Service-layer operations for commission rules, seller commissions and payoffs.

"""
Commission Service

RULE EVALUATION (calculate_commission):
- PERCENTAGE    total * bps / 10000, half up to the cent
- FIXED_AMOUNT  amount
- PER_ITEM      amount * sum of item quantities
- PER_CATEGORY  amount * quantities of items whose product is in the rule's category

A rule that is inactive, or a sale dated outside valid_from..valid_until,
yields 0. There is no precedence between rules: each commission names one.

PAYOFF (pay_commission) runs in one transaction: paid expense + cash OUT +
commission PAID + ledger event.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Category, Commission, CommissionRule, PaymentMethod, Sale, Seller
from ..validation import ConflictError, ValidationError, check_date_order
from .concurrency import lock_for_update
from .expense_service import add_expense
from .ledger_service import append_ledger_event
from .tenant_service import require_reference, shop_today
from brecho.time_utils import month_bounds, utcnow


class CommissionRuleNotFoundError(Exception):
    pass


class CommissionNotFoundError(Exception):
    pass


class CommissionError(ValueError):
    pass


RULE_MUTABLE_FIELDS = {
    "name", "description", "calculation_type", "percentage_bps", "amount_cents",
    "category_id", "criteria", "is_active", "valid_from", "valid_until",
}


# -- Rules --

def get_rule(*, shop_id: int, rule_id: int) -> CommissionRule:
    rule = db.session.query(CommissionRule).filter_by(id=rule_id, shop_id=shop_id).first()
    if not rule:
        raise CommissionRuleNotFoundError(f"Commission rule {rule_id} not found")
    return rule


def list_rules(
    *,
    shop_id: int,
    is_active: bool | None = None,
    calculation_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[CommissionRule], int]:
    q = db.session.query(CommissionRule).filter(CommissionRule.shop_id == shop_id)
    if is_active is not None:
        q = q.filter(CommissionRule.is_active.is_(bool(is_active)))
    if calculation_type:
        q = q.filter(CommissionRule.calculation_type == calculation_type.upper())
    total = q.count()
    items = q.order_by(CommissionRule.name.asc(), CommissionRule.id.asc()).offset(offset).limit(limit).all()
    return items, total


def _check_rule_shape(rule: CommissionRule) -> None:
    if rule.calculation_type == "PERCENTAGE":
        if not rule.percentage_bps:
            raise ValidationError("percentage_bps is required for PERCENTAGE rules")
        rule.amount_cents = None
    else:
        if not rule.amount_cents:
            raise ValidationError(f"amount_cents is required for {rule.calculation_type} rules")
        rule.percentage_bps = None
    if rule.calculation_type == "PER_CATEGORY" and rule.category_id is None:
        raise ValidationError("category_id is required for PER_CATEGORY rules")
    check_date_order(rule.valid_from, rule.valid_until, start_name="valid_from", end_name="valid_until")


def create_rule(*, shop_id: int, patch: dict) -> CommissionRule:
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")

    rule = CommissionRule(shop_id=shop_id, is_active=True)
    for key, value in patch.items():
        if key in RULE_MUTABLE_FIELDS:
            setattr(rule, key, value)
    if rule.is_active is None:
        rule.is_active = True
    _check_rule_shape(rule)

    db.session.add(rule)
    db.session.commit()
    return rule


def update_rule(*, shop_id: int, rule_id: int, patch: dict) -> CommissionRule:
    rule = get_rule(shop_id=shop_id, rule_id=rule_id)
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")

    try:
        for key, value in patch.items():
            if key in RULE_MUTABLE_FIELDS:
                setattr(rule, key, value)
        _check_rule_shape(rule)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return rule


def set_rule_status(*, shop_id: int, rule_id: int, is_active: bool) -> CommissionRule:
    rule = get_rule(shop_id=shop_id, rule_id=rule_id)
    rule.is_active = bool(is_active)
    db.session.commit()
    return rule


def delete_rule(*, shop_id: int, rule_id: int) -> None:
    """Sellers using the rule are left without one."""
    rule = get_rule(shop_id=shop_id, rule_id=rule_id)
    if db.session.query(Commission.id).filter_by(rule_id=rule.id).first():
        raise ConflictError("Rule is used by commissions; deactivate it instead")

    try:
        db.session.query(Seller).filter_by(shop_id=shop_id, commission_rule_id=rule.id).update(
            {"commission_rule_id": None}, synchronize_session=False
        )
        db.session.delete(rule)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def calculate_commission(rule: CommissionRule, sale: Sale) -> int:
    """Commission in cents that `rule` yields for `sale`."""
    if not rule.is_active:
        return 0
    if rule.valid_from is not None and sale.sold_on < rule.valid_from:
        return 0
    if rule.valid_until is not None and sale.sold_on > rule.valid_until:
        return 0

    if rule.calculation_type == "PERCENTAGE":
        return (sale.total_cents * (rule.percentage_bps or 0) + 5_000) // 10_000
    if rule.calculation_type == "FIXED_AMOUNT":
        return rule.amount_cents or 0
    if rule.calculation_type == "PER_ITEM":
        return (rule.amount_cents or 0) * sum(item.quantity for item in sale.items)
    if rule.calculation_type == "PER_CATEGORY":
        quantity = sum(
            item.quantity
            for item in sale.items
            if item.product is not None and item.product.category_id == rule.category_id
        )
        return (rule.amount_cents or 0) * quantity
    return 0


# -- Commissions --

def get_commission(*, shop_id: int, commission_id: int) -> Commission:
    commission = db.session.query(Commission).filter_by(id=commission_id, shop_id=shop_id).first()
    if not commission:
        raise CommissionNotFoundError(f"Commission {commission_id} not found")
    return commission


def _month_filter(q, month: int | None, year: int | None):
    if month is None and year is None:
        return q
    if month is None or year is None:
        raise ValidationError("month and year must be given together")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    first, last = month_bounds(year, month)
    return q.join(Sale, Sale.id == Commission.sale_id).filter(Sale.sold_on >= first, Sale.sold_on <= last)


def list_commissions(
    *,
    shop_id: int,
    seller_id: int | None = None,
    sale_id: int | None = None,
    status: str | None = None,
    month: int | None = None,
    year: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Commission], int]:
    """month/year select by the sale date."""
    q = db.session.query(Commission).filter(Commission.shop_id == shop_id)
    if seller_id:
        q = q.filter(Commission.seller_id == seller_id)
    if sale_id:
        q = q.filter(Commission.sale_id == sale_id)
    if status:
        q = q.filter(Commission.status == status.upper())
    q = _month_filter(q, month, year)
    total = q.count()
    items = q.order_by(Commission.calculated_at.desc(), Commission.id.desc()).offset(offset).limit(limit).all()
    return items, total


def create_commission(
    *,
    shop_id: int,
    sale_id: int,
    seller_id: int | None = None,
    rule_id: int | None = None,
    amount_cents: int | None = None,
    notes: str | None = None,
) -> Commission:
    """
    Commission for one sale.

    Without an explicit amount it is computed from rule_id, or from the
    seller's own rule when rule_id is omitted.
    """
    sale = require_reference(Sale, sale_id, shop_id, "sale_id")
    if sale is None:
        raise ValidationError("sale_id is required")
    if sale.status == "CANCELLED":
        raise CommissionError("Sale is cancelled")

    seller = require_reference(Seller, seller_id or sale.seller_id, shop_id, "seller_id")
    if seller is None:
        raise ValidationError("seller_id is required (sale has no seller)")
    if db.session.query(Commission.id).filter_by(sale_id=sale.id, seller_id=seller.id).first():
        raise ConflictError("Commission already exists for this sale and seller")

    rule = require_reference(CommissionRule, rule_id or seller.commission_rule_id, shop_id, "rule_id")
    if amount_cents is None:
        if rule is None:
            raise ValidationError("amount_cents or a commission rule is required")
        amount_cents = calculate_commission(rule, sale)
    elif not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents < 0:
        raise ValidationError("amount_cents must be an integer >= 0")

    commission = Commission(
        shop_id=shop_id,
        sale_id=sale.id,
        seller_id=seller.id,
        rule_id=rule.id if rule else None,
        amount_cents=amount_cents,
        calculated_at=utcnow(),
        status="PENDING",
        notes=notes,
    )
    db.session.add(commission)
    db.session.commit()
    return commission


def update_commission(*, shop_id: int, commission_id: int, patch: dict) -> Commission:
    commission = get_commission(shop_id=shop_id, commission_id=commission_id)
    if commission.status == "PAID" and set(patch) - {"notes"}:
        raise ConflictError("Paid commissions only accept notes")

    if "rule_id" in patch:
        rule = require_reference(CommissionRule, patch["rule_id"], shop_id, "rule_id")
        commission.rule_id = rule.id if rule else None
        if rule is not None and "amount_cents" not in patch:
            commission.amount_cents = calculate_commission(rule, commission.sale)
            commission.calculated_at = utcnow()
    if "amount_cents" in patch:
        amount = patch["amount_cents"]
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValidationError("amount_cents must be an integer >= 0")
        commission.amount_cents = amount
    if "notes" in patch:
        commission.notes = patch["notes"]

    db.session.commit()
    return commission


def delete_commission(*, shop_id: int, commission_id: int) -> None:
    commission = get_commission(shop_id=shop_id, commission_id=commission_id)
    if commission.status == "PAID":
        raise ConflictError("Paid commissions cannot be deleted")
    db.session.delete(commission)
    db.session.commit()


def commission_report(*, shop_id: int, month: int, year: int) -> dict:
    """Totals per seller for sales made in the month."""
    q = db.session.query(Commission).filter(Commission.shop_id == shop_id)
    q = _month_filter(q, month, year)

    by_seller: dict[int, dict] = {}
    for commission in q.all():
        row = by_seller.setdefault(commission.seller_id, {
            "seller_id": commission.seller_id,
            "seller_name": commission.seller.name if commission.seller else None,
            "count": 0,
            "total_cents": 0,
            "paid_cents": 0,
            "pending_cents": 0,
        })
        row["count"] += 1
        row["total_cents"] += commission.amount_cents
        if commission.status == "PAID":
            row["paid_cents"] += commission.amount_cents
        else:
            row["pending_cents"] += commission.amount_cents

    sellers = sorted(by_seller.values(), key=lambda r: (-r["total_cents"], r["seller_name"] or ""))
    return {
        "month": month,
        "year": year,
        "sellers": sellers,
        "total_cents": sum(r["total_cents"] for r in sellers),
        "paid_cents": sum(r["paid_cents"] for r in sellers),
        "pending_cents": sum(r["pending_cents"] for r in sellers),
    }


def _default_payment_method(shop_id: int) -> PaymentMethod | None:
    return (
        db.session.query(PaymentMethod)
        .filter_by(shop_id=shop_id, is_active=True, is_immediate=True)
        .order_by(PaymentMethod.id.asc())
        .first()
    )


def pay_commission(
    *,
    shop_id: int,
    commission_id: int,
    category_id: int | None = None,
    paid_on: date | None = None,
    payment_method_id: int | None = None,
    actor_user_id: int | None = None,
) -> Commission:
    """Pay off a PENDING commission through a paid BUSINESS expense."""
    try:
        commission = lock_for_update(
            db.session.query(Commission).filter_by(id=commission_id, shop_id=shop_id)
        ).first()
        if not commission:
            raise CommissionNotFoundError(f"Commission {commission_id} not found")
        if commission.status != "PENDING":
            raise CommissionError("Commission is not pending")
        if commission.amount_cents <= 0:
            raise CommissionError("Commission amount is zero")

        require_reference(Category, category_id, shop_id, "category_id")
        if payment_method_id is None:
            method = _default_payment_method(shop_id)
            if method is None:
                raise ValidationError("payment_method_id is required")
            payment_method_id = method.id

        paid_on = paid_on or shop_today(shop_id)
        seller_name = commission.seller.name if commission.seller else f"Vendedor {commission.seller_id}"
        expense = add_expense(
            shop_id=shop_id,
            patch={
                "description": f"Comissão - {seller_name} - Venda #{commission.sale_id}"[:100],
                "amount_cents": commission.amount_cents,
                "category_id": category_id,
                "due_date": paid_on,
                "is_paid": True,
                "paid_on": paid_on,
                "payment_method_id": payment_method_id,
                "expense_type": "BUSINESS",
            },
            actor_user_id=actor_user_id,
            commission_id=commission.id,
        )

        commission.status = "PAID"
        commission.paid_on = paid_on
        commission.expense_id = expense.id

        append_ledger_event(
            shop_id=shop_id,
            event_type="commission.paid",
            event_category="commission",
            entity_type="commission",
            entity_id=commission.id,
            actor_user_id=actor_user_id,
            occurred_at=utcnow(),
            note=None,
            payload={
                "amount_cents": commission.amount_cents,
                "expense_id": expense.id,
                "sale_id": commission.sale_id,
                "seller_id": commission.seller_id,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return commission
