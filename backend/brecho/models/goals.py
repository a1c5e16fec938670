from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_iso_date, to_utc_z


GOAL_TYPES = {"REVENUE", "EXPENSE", "SALES", "PROFIT", "SAVINGS", "OTHER"}
GOAL_PERIODS = {"DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "SEMIANNUAL", "ANNUAL", "ONCE"}
GOAL_STATUSES = {"IN_PROGRESS", "ACHIEVED", "NOT_ACHIEVED"}
ALERT_TYPES = {"GOAL_ACHIEVED", "GOAL_DEADLINE", "LOW_STOCK"}


class Goal(db.Model):
    """
    Financial goal tracked against a target value over a date range.

    current_cents is the latest recorded progress value, not a sum.
    """
    __tablename__ = "goals"
    __table_args__ = (
        db.Index("ix_goals_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    goal_type = db.Column(db.String(16), nullable=False, default="REVENUE")
    period = db.Column(db.String(16), nullable=False, default="MONTHLY")

    target_cents = db.Column(db.Integer, nullable=False)
    current_cents = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="IN_PROGRESS")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def percent_complete(self) -> float:
        if not self.target_cents:
            return 0.0
        percent = (self.current_cents or 0) / self.target_cents * 100
        return round(min(max(percent, 0.0), 100.0), 2)

    def to_dict(self, today=None) -> dict:
        days_remaining = None
        if today is not None and self.end_date is not None:
            days_remaining = (self.end_date - today).days
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "goal_type": self.goal_type,
            "period": self.period,
            "target_cents": self.target_cents,
            "current_cents": self.current_cents,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "status": self.status,
            "percent_complete": self.percent_complete,
            "days_remaining": days_remaining,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class GoalProgress(db.Model):
    """Point-in-time progress reading for a goal."""
    __tablename__ = "goal_progress"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey("goals.id"), nullable=False, index=True)

    recorded_on = db.Column(db.Date, nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    goal = db.relationship("Goal", backref=db.backref("progress_entries", lazy=True, order_by="GoalProgress.recorded_on"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "recorded_on": to_iso_date(self.recorded_on),
            "value_cents": self.value_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Alert(db.Model):
    """
    In-app notification about a goal or a product.

    ALERT TYPES:
    - GOAL_ACHIEVED: goal reached its target
    - GOAL_DEADLINE: goal in progress with end_date close
    - LOW_STOCK: product available quantity at or below the threshold
    """
    __tablename__ = "alerts"
    __table_args__ = (
        db.Index("ix_alerts_shop_read", "shop_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    alert_type = db.Column(db.String(32), nullable=False)
    message = db.Column(db.String(255), nullable=False)
    goal_id = db.Column(db.Integer, db.ForeignKey("goals.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "message": self.message,
            "goal_id": self.goal_id,
            "product_id": self.product_id,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at) if self.read_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class AlertConfig(db.Model):
    """Per-shop alert preferences."""
    __tablename__ = "alert_configs"
    __table_args__ = (
        db.UniqueConstraint("shop_id", name="uq_alert_configs_shop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    goal_deadline_days = db.Column(db.Integer, nullable=False, default=7)
    notify_goal_achieved = db.Column(db.Boolean, nullable=False, default=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=1)
    notify_low_stock = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "goal_deadline_days": self.goal_deadline_days,
            "notify_goal_achieved": self.notify_goal_achieved,
            "low_stock_threshold": self.low_stock_threshold,
            "notify_low_stock": self.notify_low_stock,
            "updated_at": to_utc_z(self.updated_at),
        }
