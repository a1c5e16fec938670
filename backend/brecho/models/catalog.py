from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


CATEGORY_KINDS = {"PRODUCT", "EXPENSE", "REVENUE", "GENERAL"}

PRODUCT_STATUSES = {"AVAILABLE", "RESERVED", "SOLD", "INACTIVE"}


class Category(db.Model):
    """
    Classification shared by products, sales, expenses and revenues.

    kind narrows where a category is offered; GENERAL fits everywhere.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", "kind", name="uq_categories_shop_name_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    kind = db.Column(db.String(16), nullable=False, default="GENERAL")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentMethod(db.Model):
    """
    How a customer pays or how an expense is settled.

    is_immediate marks methods that settle into the cash box on the spot
    (cash, PIX, cards). Other methods (store credit) are paid in installments.
    """
    __tablename__ = "payment_methods"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", name="uq_payment_methods_shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(50), nullable=False)
    is_immediate = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_immediate": self.is_immediate,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Catalog item. Most thrift pieces are unique (quantity 1), but lots of
    identical items are supported.

    INVARIANTS:
    - 0 <= reserved_quantity
    - available_quantity = quantity - reserved_quantity
    - status SOLD when quantity reaches 0, INACTIVE on soft delete
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "sku", name="uq_products_shop_sku"),
        db.Index("ix_products_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(16), nullable=True)
    condition = db.Column(db.String(32), nullable=True)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_quantity(self) -> int:
        return max((self.quantity or 0) - (self.reserved_quantity or 0), 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "brand": self.brand,
            "size": self.size,
            "condition": self.condition,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "supplier_id": self.supplier_id,
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
