# Overview: Service-layer operations for financial goals, their progress and alerts.

"""
Goal Service

STATUS RULES (applied on every progress reading and by check_alerts):
- current >= target                 -> ACHIEVED
- end_date passed, target not met   -> NOT_ACHIEVED
- otherwise                         -> IN_PROGRESS

Alerts are deduplicated: a subject (goal or product) never has two unread
alerts of the same type.
"""

from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..models import Alert, AlertConfig, Goal, GoalProgress, Product
from ..validation import ValidationError, check_date_order
from .concurrency import lock_for_update
from .tenant_service import shop_today
from brecho.time_utils import utcnow


class GoalNotFoundError(Exception):
    pass


class AlertNotFoundError(Exception):
    pass


GOAL_MUTABLE_FIELDS = {
    "name", "description", "goal_type", "period",
    "target_cents", "current_cents", "start_date", "end_date",
}
ALERT_CONFIG_FIELDS = {
    "goal_deadline_days", "notify_goal_achieved",
    "low_stock_threshold", "notify_low_stock",
}


# -- Alert configuration --

def get_alert_config(*, shop_id: int) -> AlertConfig:
    """Load the shop's alert settings, creating the defaults. Flushes only."""
    config = db.session.query(AlertConfig).filter_by(shop_id=shop_id).first()
    if config is None:
        config = AlertConfig(
            shop_id=shop_id,
            goal_deadline_days=7,
            notify_goal_achieved=True,
            low_stock_threshold=1,
            notify_low_stock=True,
        )
        db.session.add(config)
        db.session.flush()
    return config


def update_alert_config(*, shop_id: int, patch: dict) -> AlertConfig:
    config = get_alert_config(shop_id=shop_id)
    for key in ("goal_deadline_days", "low_stock_threshold"):
        if key in patch:
            value = patch[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{key} must be an integer >= 0")
    for key in ("notify_goal_achieved", "notify_low_stock"):
        if key in patch and not isinstance(patch[key], bool):
            raise ValidationError(f"{key} must be a boolean")

    for key, value in patch.items():
        if key in ALERT_CONFIG_FIELDS:
            setattr(config, key, value)
    db.session.commit()
    return config


# -- Goals --

def get_goal(*, shop_id: int, goal_id: int) -> Goal:
    goal = db.session.query(Goal).filter_by(id=goal_id, shop_id=shop_id).first()
    if not goal:
        raise GoalNotFoundError(f"Goal {goal_id} not found")
    return goal


def list_goals(
    *,
    shop_id: int,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Goal], int]:
    q = db.session.query(Goal).filter(Goal.shop_id == shop_id)
    if status:
        q = q.filter(Goal.status == status.upper())
    total = q.count()
    items = (
        q.order_by(Goal.status.asc(), Goal.end_date.asc(), Goal.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def _derive_status(goal: Goal, today: date) -> str:
    if goal.target_cents and (goal.current_cents or 0) >= goal.target_cents:
        return "ACHIEVED"
    if goal.end_date < today:
        return "NOT_ACHIEVED"
    return "IN_PROGRESS"


def _has_unread(shop_id: int, alert_type: str, *, goal_id=None, product_id=None) -> bool:
    q = db.session.query(Alert.id).filter(
        Alert.shop_id == shop_id,
        Alert.alert_type == alert_type,
        Alert.is_read.is_(False),
    )
    if goal_id is not None:
        q = q.filter(Alert.goal_id == goal_id)
    if product_id is not None:
        q = q.filter(Alert.product_id == product_id)
    return q.first() is not None


def _raise_alert(shop_id: int, alert_type: str, message: str, *, goal_id=None, product_id=None) -> Alert | None:
    """Create an alert unless an unread one exists for the same subject. Flushes only."""
    if _has_unread(shop_id, alert_type, goal_id=goal_id, product_id=product_id):
        return None
    alert = Alert(
        shop_id=shop_id,
        alert_type=alert_type,
        message=message[:255],
        goal_id=goal_id,
        product_id=product_id,
        is_read=False,
    )
    db.session.add(alert)
    db.session.flush()
    return alert


def _apply_status(goal: Goal, today: date) -> None:
    previous = goal.status
    goal.status = _derive_status(goal, today)
    if goal.status == "ACHIEVED" and previous != "ACHIEVED":
        config = get_alert_config(shop_id=goal.shop_id)
        if config.notify_goal_achieved:
            _raise_alert(
                goal.shop_id,
                "GOAL_ACHIEVED",
                f"Meta '{goal.name}' atingida!",
                goal_id=goal.id,
            )


def create_goal(*, shop_id: int, patch: dict, today: date | None = None) -> Goal:
    goal = Goal(shop_id=shop_id, current_cents=0, goal_type="REVENUE", period="MONTHLY")
    for key, value in patch.items():
        if key in GOAL_MUTABLE_FIELDS:
            setattr(goal, key, value)
    if goal.current_cents is None:
        goal.current_cents = 0

    try:
        db.session.add(goal)
        db.session.flush()
        _apply_status(goal, today or shop_today(shop_id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return goal


def update_goal(*, shop_id: int, goal_id: int, patch: dict, today: date | None = None) -> Goal:
    goal = get_goal(shop_id=shop_id, goal_id=goal_id)
    check_date_order(
        patch.get("start_date", goal.start_date),
        patch.get("end_date", goal.end_date),
        start_name="start_date",
        end_name="end_date",
    )
    try:
        for key, value in patch.items():
            if key in GOAL_MUTABLE_FIELDS:
                setattr(goal, key, value)
        _apply_status(goal, today or shop_today(shop_id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return goal


def delete_goal(*, shop_id: int, goal_id: int) -> None:
    goal = get_goal(shop_id=shop_id, goal_id=goal_id)
    try:
        db.session.query(GoalProgress).filter_by(goal_id=goal.id).delete(synchronize_session=False)
        db.session.query(Alert).filter_by(goal_id=goal.id).delete(synchronize_session=False)
        db.session.delete(goal)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def add_progress(
    *,
    shop_id: int,
    goal_id: int,
    value_cents: int,
    recorded_on: date | None = None,
    notes: str | None = None,
    today: date | None = None,
) -> GoalProgress:
    """Record a reading; the goal's current value becomes that reading."""
    if not isinstance(value_cents, int) or isinstance(value_cents, bool) or value_cents < 0:
        raise ValidationError("value_cents must be an integer >= 0")

    today = today or shop_today(shop_id)
    try:
        goal = lock_for_update(db.session.query(Goal).filter_by(id=goal_id, shop_id=shop_id)).first()
        if not goal:
            raise GoalNotFoundError(f"Goal {goal_id} not found")

        entry = GoalProgress(
            goal_id=goal.id,
            recorded_on=recorded_on or today,
            value_cents=value_cents,
            notes=notes,
        )
        db.session.add(entry)
        goal.current_cents = value_cents
        _apply_status(goal, today)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return entry


def list_progress(*, shop_id: int, goal_id: int) -> list[GoalProgress]:
    goal = get_goal(shop_id=shop_id, goal_id=goal_id)
    return (
        db.session.query(GoalProgress)
        .filter_by(goal_id=goal.id)
        .order_by(GoalProgress.recorded_on.asc(), GoalProgress.id.asc())
        .all()
    )


# -- Alerts --

def list_alerts(
    *,
    shop_id: int,
    unread_only: bool = True,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Alert], int]:
    q = db.session.query(Alert).filter(Alert.shop_id == shop_id)
    if unread_only:
        q = q.filter(Alert.is_read.is_(False))
    total = q.count()
    items = q.order_by(Alert.created_at.desc(), Alert.id.desc()).offset(offset).limit(limit).all()
    return items, total


def count_unread_alerts(*, shop_id: int) -> int:
    return (
        db.session.query(db.func.count(Alert.id))
        .filter(Alert.shop_id == shop_id, Alert.is_read.is_(False))
        .scalar()
    ) or 0


def set_alert_read(*, shop_id: int, alert_id: int, is_read: bool = True) -> Alert:
    alert = db.session.query(Alert).filter_by(id=alert_id, shop_id=shop_id).first()
    if not alert:
        raise AlertNotFoundError(f"Alert {alert_id} not found")
    alert.is_read = bool(is_read)
    alert.read_at = utcnow() if alert.is_read else None
    db.session.commit()
    return alert


def mark_all_read(*, shop_id: int) -> int:
    count = (
        db.session.query(Alert)
        .filter(Alert.shop_id == shop_id, Alert.is_read.is_(False))
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return count


def check_alerts(*, shop_id: int, today: date | None = None) -> dict:
    """
    Periodic sweep: deadline alerts, overdue goals, low-stock alerts.

    Returns counts of what was created or changed.
    """
    today = today or shop_today(shop_id)
    config = get_alert_config(shop_id=shop_id)
    result = {"goal_deadline": 0, "goals_not_achieved": 0, "low_stock": 0}

    try:
        goals = db.session.query(Goal).filter(
            Goal.shop_id == shop_id,
            Goal.status == "IN_PROGRESS",
        ).all()
        horizon = today + timedelta(days=config.goal_deadline_days)
        for goal in goals:
            if goal.end_date < today:
                goal.status = _derive_status(goal, today)
                if goal.status == "NOT_ACHIEVED":
                    result["goals_not_achieved"] += 1
                continue
            if goal.end_date <= horizon:
                days_left = (goal.end_date - today).days
                alert = _raise_alert(
                    shop_id,
                    "GOAL_DEADLINE",
                    f"Meta '{goal.name}' termina em {days_left} dia(s) "
                    f"({goal.percent_complete:.0f}% concluída)",
                    goal_id=goal.id,
                )
                if alert is not None:
                    result["goal_deadline"] += 1

        if config.notify_low_stock:
            products = db.session.query(Product).filter(
                Product.shop_id == shop_id,
                Product.status.in_(("AVAILABLE", "RESERVED")),
            ).all()
            for product in products:
                if product.available_quantity <= config.low_stock_threshold:
                    alert = _raise_alert(
                        shop_id,
                        "LOW_STOCK",
                        f"Estoque baixo: {product.name} ({product.available_quantity} disponível)",
                        product_id=product.id,
                    )
                    if alert is not None:
                        result["low_stock"] += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return result
