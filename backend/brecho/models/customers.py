from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


REDEMPTION_STATUSES = {"PENDING", "APPROVED", "REJECTED", "CANCELLED"}


class Customer(db.Model):
    """
    Customer master data for purchases, contact preferences and loyalty.

    WHY: Brechós live on repeat buyers; referral, marketing opt-ins and a
    store-credit limit are tracked per customer.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "email", name="uq_customers_shop_email"),
        db.Index("ix_customers_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    classification = db.Column(db.String(32), nullable=True)
    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    referred_by = db.Column(db.String(128), nullable=True)

    accepts_email = db.Column(db.Boolean, nullable=False, default=False)
    accepts_sms = db.Column(db.Boolean, nullable=False, default=False)
    accepts_whatsapp = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        account = self.points_account
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "classification": self.classification,
            "credit_limit_cents": self.credit_limit_cents,
            "referred_by": self.referred_by,
            "accepts_email": self.accepts_email,
            "accepts_sms": self.accepts_sms,
            "accepts_whatsapp": self.accepts_whatsapp,
            "is_active": self.is_active,
            "points_balance": account.points_balance if account else 0,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CustomerPointsAccount(db.Model):
    """
    Loyalty points account, one per customer.

    Tracks the balance plus lifetime earned/redeemed totals.
    """
    __tablename__ = "customer_points_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_points_accounts_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("points_account", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "points_balance": self.points_balance,
            "lifetime_points_earned": self.lifetime_points_earned,
            "lifetime_points_redeemed": self.lifetime_points_redeemed,
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerPointsTransaction(db.Model):
    """
    Append-only history of point movements.

    TRANSACTION TYPES:
    - EARN: points earned from a sale (credit)
    - REDEEM: points spent on an approved redemption (debit)
    - ADJUST: manual credit/debit, or reversal of a cancelled sale

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "customer_points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_account_occurred", "points_account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    points_account_id = db.Column(db.Integer, db.ForeignKey("customer_points_accounts.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)  # positive = credit, negative = debit

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    redemption_id = db.Column(db.Integer, db.ForeignKey("points_redemptions.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    points_account = db.relationship("CustomerPointsAccount", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "direction": "CREDIT" if self.points >= 0 else "DEBIT",
            "points": self.points,
            "sale_id": self.sale_id,
            "redemption_id": self.redemption_id,
            "note": self.note,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class PointsRedemption(db.Model):
    """
    A customer's request to trade points for a reward.

    Lifecycle: PENDING -> APPROVED | REJECTED | CANCELLED.
    Points only leave the account on approval.
    """
    __tablename__ = "points_redemptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    points = db.Column(db.Integer, nullable=False)
    reward_description = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decision_note = db.Column(db.String(255), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("redemptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "points": self.points,
            "reward_description": self.reward_description,
            "status": self.status,
            "requested_at": to_utc_z(self.requested_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "decided_by_user_id": self.decided_by_user_id,
            "decision_note": self.decision_note,
        }
