from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_iso_date, to_utc_z


SALE_STATUSES = {"PENDING", "PAID", "CANCELLED"}
INSTALLMENT_STATUSES = {"AWAITING", "PAID", "CANCELLED"}


class Sale(db.Model):
    """
    Sale document.

    sold_at is the UTC instant; sold_on is the shop-local calendar day used
    by reports and the cash flow.

    LIFECYCLE:
    - PENDING: installments still open
    - PAID: settled (immediate payment or every installment paid)
    - CANCELLED: stock, revenue and cash movements reversed
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shop_sold_on", "shop_id", "sold_on"),
        db.Index("ix_sales_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False)
    sold_on = db.Column(db.Date, nullable=False)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    installment_count = db.Column(db.Integer, nullable=True)
    first_due_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    seller = db.relationship("Seller", backref=db.backref("sales", lazy=True))
    payment_method = db.relationship("PaymentMethod")
    category = db.relationship("Category")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "seller_id": self.seller_id,
            "seller_name": self.seller.name if self.seller else None,
            "payment_method_id": self.payment_method_id,
            "payment_method_name": self.payment_method.name if self.payment_method else None,
            "category_id": self.category_id,
            "sold_at": to_utc_z(self.sold_at),
            "sold_on": to_iso_date(self.sold_on),
            "total_cents": self.total_cents,
            "installment_count": self.installment_count,
            "first_due_date": to_iso_date(self.first_due_date),
            "status": self.status,
            "notes": self.notes,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["installments"] = [inst.to_dict() for inst in self.installments]
        return data


class SaleItem(db.Model):
    """
    Sale line: either a catalog product or a free-text manual item.

    unit_cost_cents snapshots the product cost at sale time so later cost
    edits do not rewrite historical margins.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    manual_description = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "manual_description": self.manual_description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Installment(db.Model):
    """Deferred payment of a sale (crediário)."""
    __tablename__ = "installments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "number", name="uq_installments_sale_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    number = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="AWAITING", index=True)
    paid_on = db.Column(db.Date, nullable=True)

    sale = db.relationship("Sale", backref=db.backref("installments", lazy=True, order_by="Installment.number"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "number": self.number,
            "due_date": to_iso_date(self.due_date),
            "amount_cents": self.amount_cents,
            "status": self.status,
            "paid_on": to_iso_date(self.paid_on),
        }
