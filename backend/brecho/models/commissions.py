from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_iso_date, to_utc_z


CALCULATION_TYPES = {"PERCENTAGE", "FIXED_AMOUNT", "PER_ITEM", "PER_CATEGORY"}
COMMISSION_STATUSES = {"PENDING", "PAID"}


class CommissionRule(db.Model):
    """
    How a seller's commission on a sale is computed.

    PERCENTAGE uses percentage_bps (1250 = 12.5%); every other type uses
    amount_cents. PER_CATEGORY only counts items in category_id.
    """
    __tablename__ = "commission_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    calculation_type = db.Column(db.String(16), nullable=False)
    percentage_bps = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    criteria = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    valid_from = db.Column(db.Date, nullable=True)
    valid_until = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "calculation_type": self.calculation_type,
            "percentage_bps": self.percentage_bps,
            "amount_cents": self.amount_cents,
            "category_id": self.category_id,
            "criteria": self.criteria,
            "is_active": self.is_active,
            "valid_from": to_iso_date(self.valid_from),
            "valid_until": to_iso_date(self.valid_until),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Commission(db.Model):
    """
    Commission owed to a seller for one sale.

    PENDING until paid off; payoff creates a paid expense linked through
    expense_id.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        db.Index("ix_commissions_shop_seller", "shop_id", "seller_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("commission_rules.id"), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    calculated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    paid_on = db.Column(db.Date, nullable=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sale = db.relationship("Sale")
    seller = db.relationship("Seller", backref=db.backref("commissions", lazy=True))
    rule = db.relationship("CommissionRule")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "seller_id": self.seller_id,
            "seller_name": self.seller.name if self.seller else None,
            "rule_id": self.rule_id,
            "rule_name": self.rule.name if self.rule else None,
            "amount_cents": self.amount_cents,
            "calculated_at": to_utc_z(self.calculated_at),
            "status": self.status,
            "paid_on": to_iso_date(self.paid_on),
            "expense_id": self.expense_id,
            "notes": self.notes,
        }
