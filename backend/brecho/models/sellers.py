from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_iso_date, to_utc_z


SELLER_STATUSES = {"ACTIVE", "INACTIVE", "ON_LEAVE", "TERMINATED"}


class Seller(db.Model):
    """Sales staff member; commissions are computed per seller."""
    __tablename__ = "sellers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    hired_on = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    # Default rule used when a commission is computed without an explicit rule
    commission_rule_id = db.Column(db.Integer, db.ForeignKey("commission_rules.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    commission_rule = db.relationship("CommissionRule", foreign_keys=[commission_rule_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "hired_on": to_iso_date(self.hired_on),
            "status": self.status,
            "commission_rule_id": self.commission_rule_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SalesGoal(db.Model):
    """
    Sales target for one seller over a period.

    At least one of target_amount_cents / target_quantity is set.
    """
    __tablename__ = "sales_goals"
    __table_args__ = (
        db.Index("ix_sales_goals_seller_period", "seller_id", "period_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    target_amount_cents = db.Column(db.Integer, nullable=True)
    target_quantity = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    seller = db.relationship("Seller", backref=db.backref("sales_goals", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "seller_name": self.seller.name if self.seller else None,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "target_amount_cents": self.target_amount_cents,
            "target_quantity": self.target_quantity,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
