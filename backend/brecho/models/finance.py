from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_iso_date, to_utc_z


EXPENSE_TYPES = {"BUSINESS", "PERSONAL"}
REVENUE_TYPES = {"SALE", "SERVICES", "RENTALS", "COMMISSION", "DONATION", "OTHER"}
FREQUENCIES = {
    "DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", "BIMONTHLY",
    "QUARTERLY", "SEMIANNUAL", "ANNUAL",
}
MOVEMENT_TYPES = {"IN", "OUT"}


class Expense(db.Model):
    """
    Money going out (rent, utilities, purchases, commissions).

    A paid expense has paid_on and payment_method_id, and exactly one OUT
    cash movement linked by expense_id. Unpaid expenses have none.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_shop_paid_on", "shop_id", "paid_on"),
        db.Index("ix_expenses_shop_due_date", "shop_id", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    description = db.Column(db.String(100), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    due_date = db.Column(db.Date, nullable=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_on = db.Column(db.Date, nullable=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)

    expense_type = db.Column(db.String(16), nullable=False, default="BUSINESS")
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    frequency = db.Column(db.String(16), nullable=True)
    recurrence_parent_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True, index=True)

    commission_id = db.Column(db.Integer, db.ForeignKey("commissions.id", use_alter=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category")
    payment_method = db.relationship("PaymentMethod")

    @property
    def effective_date(self):
        """Date used by reports: payment day, else due day."""
        return self.paid_on or self.due_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "due_date": to_iso_date(self.due_date),
            "is_paid": self.is_paid,
            "paid_on": to_iso_date(self.paid_on),
            "payment_method_id": self.payment_method_id,
            "expense_type": self.expense_type,
            "is_recurring": self.is_recurring,
            "frequency": self.frequency,
            "recurrence_parent_id": self.recurrence_parent_id,
            "commission_id": self.commission_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Revenue(db.Model):
    """
    Money coming in. SALE revenues are created by the sale workflow and
    linked by sale_id; other types are entered by hand.
    """
    __tablename__ = "revenues"
    __table_args__ = (
        db.Index("ix_revenues_shop_date", "shop_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    description = db.Column(db.String(100), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.Date, nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    revenue_type = db.Column(db.String(16), nullable=False, default="OTHER")
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    frequency = db.Column(db.String(16), nullable=True)
    recurrence_parent_id = db.Column(db.Integer, db.ForeignKey("revenues.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category")
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "date": to_iso_date(self.date),
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "revenue_type": self.revenue_type,
            "payment_method_id": self.payment_method_id,
            "sale_id": self.sale_id,
            "is_recurring": self.is_recurring,
            "frequency": self.frequency,
            "recurrence_parent_id": self.recurrence_parent_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CashFlowDay(db.Model):
    """
    One row per shop per calendar day of cash-box activity.

    INVARIANTS:
    - closing_balance_cents = opening + inflow - outflow
    - opening_balance_cents = closing of the closest earlier day (0 if none)
    """
    __tablename__ = "cash_flow_days"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "date", name="uq_cash_flow_days_shop_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    inflow_cents = db.Column(db.Integer, nullable=False, default=0)
    outflow_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def recompute_closing(self) -> None:
        self.closing_balance_cents = (
            (self.opening_balance_cents or 0)
            + (self.inflow_cents or 0)
            - (self.outflow_cents or 0)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_iso_date(self.date),
            "opening_balance_cents": self.opening_balance_cents,
            "inflow_cents": self.inflow_cents,
            "outflow_cents": self.outflow_cents,
            "closing_balance_cents": self.closing_balance_cents,
        }


class CashMovement(db.Model):
    """
    A single entry into (IN) or out of (OUT) the cash box.

    Source links identify the business record that produced the movement so
    it can be removed when that record is reversed.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_shop_date", "shop_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    cash_flow_day_id = db.Column(db.Integer, db.ForeignKey("cash_flow_days.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    movement_type = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    installment_id = db.Column(db.Integer, db.ForeignKey("installments.id"), nullable=True, index=True)
    revenue_id = db.Column(db.Integer, db.ForeignKey("revenues.id"), nullable=True, index=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True, index=True)
    commission_id = db.Column(db.Integer, db.ForeignKey("commissions.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    day = db.relationship("CashFlowDay", backref=db.backref("movements", lazy=True, order_by="CashMovement.id"))

    @property
    def is_manual(self) -> bool:
        return not any((
            self.sale_id, self.installment_id, self.revenue_id,
            self.expense_id, self.commission_id,
        ))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_iso_date(self.date),
            "movement_type": self.movement_type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_method_id": self.payment_method_id,
            "sale_id": self.sale_id,
            "installment_id": self.installment_id,
            "revenue_id": self.revenue_id,
            "expense_id": self.expense_id,
            "commission_id": self.commission_id,
            "is_manual": self.is_manual,
            "created_at": to_utc_z(self.created_at),
        }
