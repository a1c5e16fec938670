# Overview: Service-layer operations for sales; checkout workflow, cancellation and installments.

"""
Sales Service

create_sale runs the whole checkout in one transaction:

    validate items -> insert sale + items -> decrement stock
    -> SALE revenue -> cash IN (immediate) or installments (deferred)
    -> loyalty points -> ledger event

Any failure rolls everything back, so a rejected sale leaves stock,
revenue and the cash flow untouched.

CANCELLATION reverses stock, revenue, cash movements and earned points;
only cancelled sales can be deleted.
"""

from __future__ import annotations

from datetime import date, datetime

from ..extensions import db
from ..models import (
    Category,
    Commission,
    Customer,
    CustomerPointsAccount,
    CustomerPointsTransaction,
    Installment,
    PaymentMethod,
    Product,
    Revenue,
    Sale,
    SaleItem,
    Seller,
)
from ..validation import MAX_AMOUNT_CENTS, ConflictError, ValidationError
from .cash_flow_service import record_movement, remove_movements_for
from .concurrency import lock_for_update
from .customer_service import points_for_amount, post_points
from .ledger_service import append_ledger_event
from .product_service import apply_quantity
from .tenant_service import get_shop_timezone, require_reference
from brecho.time_utils import add_months, local_date, utcnow


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleNotFoundError(Exception):
    pass


class InstallmentNotFoundError(Exception):
    pass


SALE_MUTABLE_FIELDS = {"notes", "customer_id", "seller_id", "category_id"}
MAX_INSTALLMENTS = 24


def get_sale(*, shop_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, shop_id=shop_id).first()
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found")
    return sale


def _lock_sale(shop_id: int, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id, shop_id=shop_id)).first()
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(
    *,
    shop_id: int,
    start: date | None = None,
    end: date | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    seller_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    q = db.session.query(Sale).filter(Sale.shop_id == shop_id)
    if start:
        q = q.filter(Sale.sold_on >= start)
    if end:
        q = q.filter(Sale.sold_on <= end)
    if status:
        q = q.filter(Sale.status == status.upper())
    if customer_id:
        q = q.filter(Sale.customer_id == customer_id)
    if seller_id:
        q = q.filter(Sale.seller_id == seller_id)
    total = q.count()
    items = q.order_by(Sale.sold_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return items, total


# -- Checkout --

def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise SaleError("Sale must have at least one item")

    normalized = []
    errors = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            errors.append({"index": index, "error": "item must be an object"})
            continue
        product_id = raw.get("product_id")
        description = (raw.get("manual_description") or "").strip() or None
        quantity = raw.get("quantity", 1)
        unit_price = raw.get("unit_price_cents")

        if product_id is None and description is None:
            errors.append({"index": index, "error": "product_id or manual_description is required"})
            continue
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            errors.append({"index": index, "error": "quantity must be a positive integer"})
            continue
        if product_id is None and unit_price is None:
            errors.append({"index": index, "error": "unit_price_cents is required for manual items"})
            continue
        if unit_price is not None and (
            not isinstance(unit_price, int) or isinstance(unit_price, bool) or unit_price < 0
        ):
            errors.append({"index": index, "error": "unit_price_cents must be an integer >= 0"})
            continue

        normalized.append({
            "product_id": product_id,
            "manual_description": description,
            "quantity": quantity,
            "unit_price_cents": unit_price,
        })

    if errors:
        raise SaleError("Invalid sale items", details={"items": errors})
    return normalized


def _load_products(shop_id: int, items: list[dict]) -> dict[int, Product]:
    """Lock every product on the sale and check availability per product."""
    requested: dict[int, int] = {}
    for item in items:
        if item["product_id"] is not None:
            requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]

    products: dict[int, Product] = {}
    problems = []
    for product_id, qty in requested.items():
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, shop_id=shop_id)
        ).first()
        if product is None:
            problems.append({"product_id": product_id, "error": "Product not found"})
            continue
        if product.status != "AVAILABLE":
            problems.append({
                "product_id": product_id,
                "error": f"Product is {product.status}",
            })
            continue
        if product.available_quantity < qty:
            problems.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "available_quantity": product.available_quantity,
                "error": "Insufficient stock",
            })
            continue
        products[product_id] = product

    if problems:
        raise SaleError("Some items cannot be sold", details={"items": problems})
    return products


def _split_installments(total_cents: int, count: int) -> list[int]:
    """Even split with the remainder cents on the first installment."""
    base, remainder = divmod(total_cents, count)
    amounts = [base] * count
    amounts[0] += remainder
    return amounts


def _cash_description(sale: Sale) -> str:
    if sale.customer:
        return f"Venda #{sale.id} - Cliente: {sale.customer.name}"
    return f"Venda #{sale.id} - Cliente não informado"


def create_sale(
    *,
    shop_id: int,
    items: list,
    payment_method_id: int | None,
    customer_id: int | None = None,
    seller_id: int | None = None,
    category_id: int | None = None,
    sold_at: datetime | None = None,
    total_cents: int | None = None,
    installment_count: int | None = None,
    first_due_date: date | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
    points_per_real: int = 1,
) -> Sale:
    """
    Record a sale with its items, stock, revenue, cash and points effects.

    Raises SaleError (with details) for item problems, ValidationError for
    bad references or amounts.
    """
    try:
        lines = _normalize_items(items)

        if payment_method_id is None:
            raise ValidationError("payment_method_id is required")
        payment_method = require_reference(PaymentMethod, payment_method_id, shop_id, "payment_method_id")
        if not payment_method.is_active:
            raise ValidationError("payment_method_id is inactive")
        customer = require_reference(Customer, customer_id, shop_id, "customer_id")
        if customer is not None and not customer.is_active:
            raise ValidationError("customer_id is inactive")
        seller = require_reference(Seller, seller_id, shop_id, "seller_id")
        if seller is not None and seller.status != "ACTIVE":
            raise ValidationError("seller_id is not active")
        require_reference(Category, category_id, shop_id, "category_id")

        products = _load_products(shop_id, lines)

        computed_total = 0
        for line in lines:
            product = products.get(line["product_id"]) if line["product_id"] is not None else None
            if line["unit_price_cents"] is None:
                line["unit_price_cents"] = product.sale_price_cents
            line["unit_cost_cents"] = product.cost_price_cents if product else 0
            line["subtotal_cents"] = line["quantity"] * line["unit_price_cents"]
            computed_total += line["subtotal_cents"]

        if total_cents is not None and total_cents != computed_total:
            raise SaleError(
                "Sale total does not match the items",
                details={"total_cents": total_cents, "computed_total_cents": computed_total},
            )
        if computed_total > MAX_AMOUNT_CENTS:
            raise ValidationError(f"total_cents cannot exceed {MAX_AMOUNT_CENTS}")

        sold_at = sold_at or utcnow()
        sold_on = local_date(sold_at, get_shop_timezone(shop_id))

        if not payment_method.is_immediate:
            installment_count = installment_count or 1
            if not 1 <= installment_count <= MAX_INSTALLMENTS:
                raise ValidationError(f"installment_count must be between 1 and {MAX_INSTALLMENTS}")
            if installment_count > computed_total > 0:
                raise ValidationError("installment_count cannot exceed the sale total in cents")
            first_due_date = first_due_date or add_months(sold_on, 1)
        # nothing to collect later on an immediate or zero-total sale
        settled_now = payment_method.is_immediate or computed_total == 0
        if settled_now:
            installment_count = None
            first_due_date = None

        sale = Sale(
            shop_id=shop_id,
            customer_id=customer.id if customer else None,
            seller_id=seller.id if seller else None,
            payment_method_id=payment_method.id,
            category_id=category_id,
            sold_at=sold_at,
            sold_on=sold_on,
            total_cents=computed_total,
            installment_count=installment_count,
            first_due_date=first_due_date,
            status="PENDING",
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line["product_id"],
                manual_description=line["manual_description"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                unit_cost_cents=line["unit_cost_cents"],
                subtotal_cents=line["subtotal_cents"],
            ))

            product = products.get(line["product_id"]) if line["product_id"] is not None else None
            if product is not None:
                apply_quantity(
                    product,
                    product.quantity - line["quantity"],
                    reason=f"Venda #{sale.id}",
                    actor_user_id=actor_user_id,
                    sale_id=sale.id,
                )

        if computed_total > 0:
            db.session.add(Revenue(
                shop_id=shop_id,
                description=f"Venda #{sale.id}",
                amount_cents=computed_total,
                date=sold_on,
                category_id=category_id,
                revenue_type="SALE",
                payment_method_id=payment_method.id,
                sale_id=sale.id,
            ))

        if settled_now:
            if computed_total > 0:
                record_movement(
                    shop_id=shop_id,
                    day=sold_on,
                    movement_type="IN",
                    amount_cents=computed_total,
                    description=_cash_description(sale),
                    payment_method_id=payment_method.id,
                    created_by_user_id=actor_user_id,
                    sale_id=sale.id,
                )
            sale.status = "PAID"
        else:
            amounts = _split_installments(computed_total, installment_count)
            for number, amount in enumerate(amounts, start=1):
                db.session.add(Installment(
                    shop_id=shop_id,
                    sale_id=sale.id,
                    number=number,
                    due_date=add_months(first_due_date, number - 1),
                    amount_cents=amount,
                    status="AWAITING",
                ))

        if customer is not None:
            points = points_for_amount(computed_total, points_per_real)
            if points > 0:
                post_points(
                    customer,
                    points=points,
                    transaction_type="EARN",
                    note=f"Venda #{sale.id}",
                    user_id=actor_user_id,
                    sale_id=sale.id,
                )

        append_ledger_event(
            shop_id=shop_id,
            event_type="sale.created",
            event_category="sale",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=actor_user_id,
            occurred_at=sold_at,
            note=notes,
            payload={
                "total_cents": computed_total,
                "items": len(lines),
                "payment_method_id": payment_method.id,
                "installment_count": installment_count,
            },
        )

        db.session.commit()
        return sale
    except Exception:
        db.session.rollback()
        raise


def update_sale(*, shop_id: int, sale_id: int, patch: dict) -> Sale:
    """Only descriptive fields change after checkout."""
    sale = get_sale(shop_id=shop_id, sale_id=sale_id)
    if sale.status == "CANCELLED":
        raise SaleError("Cancelled sales cannot be edited")

    unknown = set(patch) - SALE_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

    notes = patch.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    for field in ("customer_id", "seller_id", "category_id"):
        value = patch.get(field)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValidationError(f"{field} must be an integer")

    if "customer_id" in patch:
        require_reference(Customer, patch["customer_id"], shop_id, "customer_id")
    if "seller_id" in patch:
        require_reference(Seller, patch["seller_id"], shop_id, "seller_id")
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")

    try:
        for key, value in patch.items():
            setattr(sale, key, value)

        if "category_id" in patch:
            for revenue in db.session.query(Revenue).filter_by(shop_id=shop_id, sale_id=sale.id).all():
                revenue.category_id = patch["category_id"]

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return sale


def _void_sale_points(sale: Sale, actor_user_id: int | None) -> None:
    """Take back the points a sale earned, from whichever account earned them."""
    earned_by_account: dict[int, int] = {}
    rows = (
        db.session.query(CustomerPointsTransaction)
        .filter(
            CustomerPointsTransaction.sale_id == sale.id,
            CustomerPointsTransaction.transaction_type == "EARN",
        )
        .all()
    )
    for txn in rows:
        earned_by_account[txn.points_account_id] = earned_by_account.get(txn.points_account_id, 0) + txn.points

    for account_id, earned in earned_by_account.items():
        account = db.session.get(CustomerPointsAccount, account_id)
        # points already redeemed stay redeemed
        to_void = min(earned, account.points_balance)
        if to_void > 0:
            post_points(
                account.customer,
                points=-to_void,
                transaction_type="ADJUST",
                note=f"Venda #{sale.id} cancelada",
                user_id=actor_user_id,
                sale_id=sale.id,
            )


def cancel_sale(
    *,
    shop_id: int,
    sale_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Sale:
    try:
        sale = _lock_sale(shop_id, sale_id)
        if sale.status == "CANCELLED":
            raise SaleError("Sale is already cancelled")

        if any(c.status == "PAID" for c in db.session.query(Commission).filter_by(sale_id=sale.id)):
            raise SaleError("Sale has a paid commission; reverse the payoff first")

        for item in sale.items:
            if item.product_id is None:
                continue
            product = lock_for_update(
                db.session.query(Product).filter_by(id=item.product_id, shop_id=shop_id)
            ).first()
            if product is not None:
                apply_quantity(
                    product,
                    product.quantity + item.quantity,
                    reason=f"Venda #{sale.id} cancelada",
                    actor_user_id=actor_user_id,
                    sale_id=sale.id,
                )

        remove_movements_for(shop_id=shop_id, sale_id=sale.id)
        for revenue in db.session.query(Revenue).filter_by(shop_id=shop_id, sale_id=sale.id).all():
            remove_movements_for(shop_id=shop_id, revenue_id=revenue.id)
            db.session.delete(revenue)

        for installment in sale.installments:
            if installment.status != "CANCELLED":
                installment.status = "CANCELLED"

        for commission in db.session.query(Commission).filter_by(sale_id=sale.id, status="PENDING").all():
            db.session.delete(commission)

        _void_sale_points(sale, actor_user_id)

        sale.status = "CANCELLED"
        sale.cancelled_at = utcnow()
        sale.cancel_reason = reason

        append_ledger_event(
            shop_id=shop_id,
            event_type="sale.cancelled",
            event_category="sale",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=actor_user_id,
            occurred_at=sale.cancelled_at,
            note=reason,
            payload={"total_cents": sale.total_cents},
        )

        db.session.commit()
        return sale
    except Exception:
        db.session.rollback()
        raise


def delete_sale(*, shop_id: int, sale_id: int) -> None:
    sale = get_sale(shop_id=shop_id, sale_id=sale_id)
    if sale.status != "CANCELLED":
        raise ConflictError("Only cancelled sales can be deleted")
    if db.session.query(Commission).filter_by(sale_id=sale.id).first():
        raise ConflictError("Sale has commissions")

    try:
        db.session.query(CustomerPointsTransaction).filter_by(sale_id=sale.id).update(
            {"sale_id": None}, synchronize_session=False
        )
        for installment in list(sale.installments):
            db.session.delete(installment)
        for item in list(sale.items):
            db.session.delete(item)
        db.session.delete(sale)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# -- Installments --

def _refresh_sale_status(sale: Sale) -> None:
    open_ones = [i for i in sale.installments if i.status != "CANCELLED"]
    if open_ones and all(i.status == "PAID" for i in open_ones):
        sale.status = "PAID"
    else:
        sale.status = "PENDING"


def set_installment_status(
    *,
    shop_id: int,
    installment_id: int,
    status: str,
    paid_on: date | None = None,
    today: date | None = None,
    actor_user_id: int | None = None,
) -> Installment:
    """
    Move an installment between AWAITING, PAID and CANCELLED.

    Entering PAID records the cash IN on paid_on (default today); leaving
    PAID removes it. The sale status follows its installments.
    """
    status = (status or "").upper()
    if status not in {"AWAITING", "PAID", "CANCELLED"}:
        raise ValidationError("status must be one of: AWAITING, CANCELLED, PAID")

    try:
        installment = lock_for_update(
            db.session.query(Installment).filter_by(id=installment_id, shop_id=shop_id)
        ).first()
        if not installment:
            raise InstallmentNotFoundError(f"Installment {installment_id} not found")
        sale = _lock_sale(shop_id, installment.sale_id)
        if sale.status == "CANCELLED":
            raise SaleError("Sale is cancelled")

        previous = installment.status
        if previous == status:
            db.session.commit()
            return installment

        if previous == "PAID":
            remove_movements_for(shop_id=shop_id, installment_id=installment.id)
            installment.paid_on = None

        if status == "PAID":
            installment.paid_on = paid_on or today or local_date(utcnow(), get_shop_timezone(shop_id))
            if installment.amount_cents > 0:
                record_movement(
                    shop_id=shop_id,
                    day=installment.paid_on,
                    movement_type="IN",
                    amount_cents=installment.amount_cents,
                    description=f"Parcela {installment.number}/{sale.installment_count} - Venda #{sale.id}",
                    payment_method_id=sale.payment_method_id,
                    created_by_user_id=actor_user_id,
                    sale_id=sale.id,
                    installment_id=installment.id,
                )

        installment.status = status
        db.session.flush()
        _refresh_sale_status(sale)
        db.session.commit()
        return installment
    except Exception:
        db.session.rollback()
        raise
