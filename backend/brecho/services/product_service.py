# Overview: Service-layer operations for products; catalog CRUD and stock levels.

"""
Product Service

Stock lives on the product row (quantity, reserved_quantity). Every change
to either is written to the ledger in the same transaction.

STATUS RULES:
- quantity reaches 0 -> SOLD
- quantity goes above 0 while SOLD -> AVAILABLE
- reserved_quantity >= quantity -> RESERVED; released below -> AVAILABLE
- INACTIVE (soft delete) is never changed by stock movements
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Category, Supplier
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update
from .ledger_service import append_ledger_event
from .tenant_service import require_reference
from brecho.time_utils import utcnow


class ProductNotFoundError(Exception):
    pass


class StockError(ValueError):
    """Requested stock change is not possible (e.g. reserving more than available)."""


PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "sku", "brand", "size", "condition",
    "category_id", "supplier_id", "cost_price_cents", "sale_price_cents", "status",
}


def _ensure_sku_unique(*, shop_id: int, sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product).filter(Product.shop_id == shop_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError(f"SKU '{sku}' already exists")


def _check_references(shop_id: int, patch: dict) -> None:
    if "category_id" in patch:
        require_reference(Category, patch["category_id"], shop_id, "category_id")
    if "supplier_id" in patch:
        require_reference(Supplier, patch["supplier_id"], shop_id, "supplier_id")


def _derive_status(product: Product) -> None:
    if product.status == "INACTIVE":
        return
    if product.quantity == 0:
        product.status = "SOLD"
    elif product.reserved_quantity >= product.quantity:
        product.status = "RESERVED"
    elif product.status in {"SOLD", "RESERVED"}:
        product.status = "AVAILABLE"


def get_product(*, shop_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, shop_id=shop_id).first()
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def _lock_product(shop_id: int, product_id: int) -> Product:
    product = lock_for_update(
        db.session.query(Product).filter_by(id=product_id, shop_id=shop_id)
    ).first()
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    shop_id: int,
    search: str | None = None,
    category_id: int | None = None,
    status: str | None = None,
    supplier_id: int | None = None,
    include_inactive: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Product], int]:
    q = db.session.query(Product).filter(Product.shop_id == shop_id)

    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(Product.name.ilike(like), Product.sku.ilike(like)))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if supplier_id is not None:
        q = q.filter(Product.supplier_id == supplier_id)
    if status:
        q = q.filter(Product.status == status.upper())
    elif not include_inactive:
        q = q.filter(Product.status != "INACTIVE")

    total = q.count()
    items = q.order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit).all()
    return items, total


def list_available_for_sale(*, shop_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.shop_id == shop_id,
            Product.status == "AVAILABLE",
            Product.quantity - Product.reserved_quantity > 0,
        )
        .order_by(Product.name.asc())
        .all()
    )


def create_product(*, shop_id: int, patch: dict, actor_user_id: int | None = None) -> Product:
    _check_references(shop_id, patch)
    _ensure_sku_unique(shop_id=shop_id, sku=patch.get("sku"))

    quantity = patch.get("quantity")
    if quantity is None:
        quantity = 1
    reserved = patch.get("reserved_quantity") or 0
    if reserved > quantity:
        raise ValidationError("reserved_quantity cannot exceed quantity")

    product = Product(shop_id=shop_id, quantity=quantity, reserved_quantity=reserved, status="AVAILABLE")
    for key, value in patch.items():
        if key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)
    if product.cost_price_cents is None:
        product.cost_price_cents = 0
    _derive_status(product)

    db.session.add(product)
    db.session.flush()

    append_ledger_event(
        shop_id=shop_id,
        event_type="product.created",
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
        payload={"quantity": product.quantity},
    )
    db.session.commit()
    return product


def update_product(
    *,
    shop_id: int,
    product_id: int,
    patch: dict,
    actor_user_id: int | None = None,
) -> Product:
    """
    Apply a validated patch. quantity / reserved_quantity changes go through
    the same path as set_quantity so they are logged.
    """
    try:
        product = _lock_product(shop_id, product_id)
        _check_references(shop_id, patch)
        if "sku" in patch:
            _ensure_sku_unique(shop_id=shop_id, sku=patch["sku"], exclude_id=product.id)

        for key, value in patch.items():
            if key in PRODUCT_MUTABLE_FIELDS:
                setattr(product, key, value)

        if "reserved_quantity" in patch and patch["reserved_quantity"] is not None:
            product.reserved_quantity = patch["reserved_quantity"]
        if "quantity" in patch and patch["quantity"] is not None:
            apply_quantity(
                product,
                patch["quantity"],
                reason="Product edited",
                actor_user_id=actor_user_id,
            )
        elif product.reserved_quantity > product.quantity:
            raise ValidationError("reserved_quantity cannot exceed quantity")
        else:
            _derive_status(product)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return product


def delete_product(*, shop_id: int, product_id: int, actor_user_id: int | None = None) -> Product:
    """Soft delete (status INACTIVE); sales history keeps the row."""
    product = _lock_product(shop_id, product_id)
    product.status = "INACTIVE"
    append_ledger_event(
        shop_id=shop_id,
        event_type="product.deactivated",
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.commit()
    return product


def apply_quantity(
    product: Product,
    quantity: int,
    *,
    reason: str | None,
    actor_user_id: int | None = None,
    sale_id: int | None = None,
) -> Product:
    """
    Set the on-hand quantity of an already loaded product. Flushes only.

    Used by set_quantity and by the sale workflows.
    """
    if quantity is None or quantity < 0:
        raise StockError("quantity must be >= 0")
    if quantity < product.reserved_quantity:
        raise StockError(
            f"quantity cannot go below the reserved quantity ({product.reserved_quantity})"
        )

    previous = product.quantity
    product.quantity = quantity
    _derive_status(product)

    if previous != quantity:
        payload = {"from": previous, "to": quantity, "delta": quantity - previous}
        if sale_id is not None:
            payload["sale_id"] = sale_id
        append_ledger_event(
            shop_id=product.shop_id,
            event_type="product.quantity_changed",
            event_category="product",
            entity_type="product",
            entity_id=product.id,
            actor_user_id=actor_user_id,
            occurred_at=utcnow(),
            note=reason,
            payload=payload,
        )
    db.session.flush()
    return product


def set_quantity(
    *,
    shop_id: int,
    product_id: int,
    quantity: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Product:
    product = _lock_product(shop_id, product_id)
    apply_quantity(product, quantity, reason=reason or "Manual stock adjustment", actor_user_id=actor_user_id)
    db.session.commit()
    return product


def reserve(
    *,
    shop_id: int,
    product_id: int,
    quantity: int,
    actor_user_id: int | None = None,
) -> Product:
    """Hold units for a customer; held units cannot be sold."""
    product = _lock_product(shop_id, product_id)
    if product.status == "INACTIVE":
        raise StockError("Product is inactive")
    if quantity is None or quantity <= 0:
        raise StockError("quantity must be > 0")
    if quantity > product.available_quantity:
        raise StockError(f"Only {product.available_quantity} unit(s) available to reserve")

    product.reserved_quantity += quantity
    _derive_status(product)

    append_ledger_event(
        shop_id=shop_id,
        event_type="product.reserved",
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
        payload={"quantity": quantity, "reserved_quantity": product.reserved_quantity},
    )
    db.session.commit()
    return product


def release_reservation(
    *,
    shop_id: int,
    product_id: int,
    quantity: int,
    actor_user_id: int | None = None,
) -> Product:
    product = _lock_product(shop_id, product_id)
    if quantity is None or quantity <= 0:
        raise StockError("quantity must be > 0")
    if quantity > product.reserved_quantity:
        raise StockError(f"Only {product.reserved_quantity} unit(s) are reserved")

    product.reserved_quantity -= quantity
    _derive_status(product)

    append_ledger_event(
        shop_id=shop_id,
        event_type="product.reservation_released",
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        actor_user_id=actor_user_id,
        occurred_at=utcnow(),
        payload={"quantity": quantity, "reserved_quantity": product.reserved_quantity},
    )
    db.session.commit()
    return product
