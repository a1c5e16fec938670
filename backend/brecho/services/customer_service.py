# Overview: Service-layer operations for customers, loyalty points and redemptions.

"""
Customer Service

Customers are soft-deleted (is_active) so sales history stays intact.

LOYALTY POINTS:
- One points account per customer, created on first use.
- Every balance change appends a CustomerPointsTransaction
  (EARN / REDEEM / ADJUST). The balance never goes negative.
- A redemption request holds nothing; points leave the account only when
  the request is approved, in the same transaction as the REDEEM
  transaction and the ledger event.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    Customer,
    CustomerPointsAccount,
    CustomerPointsTransaction,
    PointsRedemption,
)
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update
from .ledger_service import append_ledger_event
from brecho.time_utils import utcnow


class CustomerNotFoundError(Exception):
    pass


class RedemptionNotFoundError(Exception):
    pass


class PointsError(ValueError):
    """Points operation not allowed (insufficient balance, wrong status)."""


CUSTOMER_MUTABLE_FIELDS = {
    "name", "phone", "email", "address", "notes", "classification",
    "credit_limit_cents", "referred_by", "accepts_email", "accepts_sms",
    "accepts_whatsapp", "is_active",
}


# -- Customers --

def _ensure_email_unique(*, shop_id: int, email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    q = db.session.query(Customer).filter(Customer.shop_id == shop_id, Customer.email == email)
    if exclude_id is not None:
        q = q.filter(Customer.id != exclude_id)
    if q.first():
        raise ConflictError("A customer with this email already exists")


def get_customer(*, shop_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, shop_id=shop_id).first()
    if not customer:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")
    return customer


def list_customers(
    *,
    shop_id: int,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Customer], int]:
    q = db.session.query(Customer).filter(Customer.shop_id == shop_id)
    if not include_inactive:
        q = q.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(
            Customer.name.ilike(like),
            Customer.email.ilike(like),
            Customer.phone.ilike(like),
        ))
    total = q.count()
    items = q.order_by(Customer.name.asc(), Customer.id.asc()).offset(offset).limit(limit).all()
    return items, total


def create_customer(*, shop_id: int, patch: dict) -> Customer:
    _ensure_email_unique(shop_id=shop_id, email=patch.get("email"))

    customer = Customer(shop_id=shop_id)
    for key, value in patch.items():
        if key in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, key, value)
    if customer.credit_limit_cents is None:
        customer.credit_limit_cents = 0

    db.session.add(customer)
    db.session.flush()
    ensure_points_account(customer)
    db.session.commit()
    return customer


def update_customer(*, shop_id: int, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    if "email" in patch:
        _ensure_email_unique(shop_id=shop_id, email=patch["email"], exclude_id=customer.id)

    for key, value in patch.items():
        if key in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, key, value)

    db.session.commit()
    return customer


def set_customer_status(*, shop_id: int, customer_id: int, is_active: bool) -> Customer:
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    customer.is_active = bool(is_active)
    db.session.commit()
    return customer


# -- Points --

def ensure_points_account(customer: Customer) -> CustomerPointsAccount:
    """Load or create the customer's account. Flushes only."""
    account = db.session.query(CustomerPointsAccount).filter_by(customer_id=customer.id).first()
    if account:
        return account
    account = CustomerPointsAccount(customer_id=customer.id, shop_id=customer.shop_id)
    db.session.add(account)
    db.session.flush()
    return account


def _lock_account(customer: Customer) -> CustomerPointsAccount:
    ensure_points_account(customer)
    return lock_for_update(
        db.session.query(CustomerPointsAccount).filter_by(customer_id=customer.id)
    ).first()


def post_points(
    customer: Customer,
    *,
    points: int,
    transaction_type: str,
    note: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    redemption_id: int | None = None,
) -> CustomerPointsTransaction:
    """
    Move points in or out of an account. Flushes only.

    points is signed. Raises PointsError if the balance would go negative.
    """
    if points == 0:
        raise PointsError("points must not be zero")

    account = _lock_account(customer)
    new_balance = account.points_balance + points
    if new_balance < 0:
        raise PointsError(f"Insufficient points: balance is {account.points_balance}")

    account.points_balance = new_balance
    if transaction_type == "EARN" or (transaction_type == "ADJUST" and points > 0):
        account.lifetime_points_earned += points
    elif transaction_type == "REDEEM":
        account.lifetime_points_redeemed += -points

    txn = CustomerPointsTransaction(
        points_account_id=account.id,
        transaction_type=transaction_type,
        points=points,
        sale_id=sale_id,
        redemption_id=redemption_id,
        note=note,
        user_id=user_id,
        occurred_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def add_points(
    *,
    shop_id: int,
    customer_id: int,
    points: int,
    note: str | None = None,
    user_id: int | None = None,
) -> CustomerPointsTransaction:
    """Manual credit (points > 0) or debit (points < 0)."""
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    if not isinstance(points, int) or isinstance(points, bool):
        raise ValidationError("points must be an integer")
    try:
        txn = post_points(
            customer,
            points=points,
            transaction_type="ADJUST",
            note=note or "Manual adjustment",
            user_id=user_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return txn


def points_for_amount(amount_cents: int, points_per_real: int) -> int:
    """Points earned for a purchase: whole reais times the configured rate."""
    if points_per_real <= 0 or amount_cents <= 0:
        return 0
    return (amount_cents // 100) * points_per_real


def get_points_account(*, shop_id: int, customer_id: int) -> CustomerPointsAccount:
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    account = ensure_points_account(customer)
    db.session.commit()
    return account


def points_history(
    *,
    shop_id: int,
    customer_id: int,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[CustomerPointsTransaction], int]:
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    q = (
        db.session.query(CustomerPointsTransaction)
        .join(CustomerPointsAccount, CustomerPointsAccount.id == CustomerPointsTransaction.points_account_id)
        .filter(CustomerPointsAccount.customer_id == customer.id)
    )
    total = q.count()
    items = (
        q.order_by(CustomerPointsTransaction.occurred_at.desc(), CustomerPointsTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


# -- Redemptions --

def _get_redemption(shop_id: int, redemption_id: int, *, lock: bool = False) -> PointsRedemption:
    q = db.session.query(PointsRedemption).filter_by(id=redemption_id, shop_id=shop_id)
    if lock:
        q = lock_for_update(q)
    redemption = q.first()
    if not redemption:
        raise RedemptionNotFoundError(f"Redemption {redemption_id} not found")
    return redemption


def request_redemption(
    *,
    shop_id: int,
    customer_id: int,
    points: int,
    reward_description: str,
) -> PointsRedemption:
    customer = get_customer(shop_id=shop_id, customer_id=customer_id)
    if not isinstance(points, int) or isinstance(points, bool) or points <= 0:
        raise ValidationError("points must be a positive integer")
    reward_description = (reward_description or "").strip()
    if len(reward_description) < 3:
        raise ValidationError("reward_description must have at least 3 characters")
    if len(reward_description) > 255:
        raise ValidationError("reward_description must have at most 255 characters")

    account = ensure_points_account(customer)
    if points > account.points_balance:
        raise PointsError(f"Insufficient points: balance is {account.points_balance}")

    redemption = PointsRedemption(
        shop_id=shop_id,
        customer_id=customer.id,
        points=points,
        reward_description=reward_description,
        status="PENDING",
        requested_at=utcnow(),
    )
    db.session.add(redemption)
    db.session.commit()
    return redemption


def approve_redemption(
    *,
    shop_id: int,
    redemption_id: int,
    user_id: int | None = None,
    note: str | None = None,
) -> PointsRedemption:
    """
    Approve a PENDING request: debit the points, log REDEEM and the ledger
    event. One transaction; the balance is re-checked under lock.
    """
    try:
        redemption = _get_redemption(shop_id, redemption_id, lock=True)
        if redemption.status != "PENDING":
            raise PointsError(f"Redemption is {redemption.status}, not PENDING")

        customer = get_customer(shop_id=shop_id, customer_id=redemption.customer_id)
        post_points(
            customer,
            points=-redemption.points,
            transaction_type="REDEEM",
            note=redemption.reward_description,
            user_id=user_id,
            redemption_id=redemption.id,
        )

        now = utcnow()
        redemption.status = "APPROVED"
        redemption.decided_at = now
        redemption.decided_by_user_id = user_id
        redemption.decision_note = note

        append_ledger_event(
            shop_id=shop_id,
            event_type="redemption.approved",
            event_category="loyalty",
            entity_type="points_redemption",
            entity_id=redemption.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=redemption.reward_description,
            payload={"customer_id": customer.id, "points": redemption.points},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return redemption


def _close_redemption(shop_id: int, redemption_id: int, status: str, user_id, note) -> PointsRedemption:
    redemption = _get_redemption(shop_id, redemption_id, lock=True)
    if redemption.status != "PENDING":
        raise PointsError(f"Redemption is {redemption.status}, not PENDING")
    redemption.status = status
    redemption.decided_at = utcnow()
    redemption.decided_by_user_id = user_id
    redemption.decision_note = note
    db.session.commit()
    return redemption


def reject_redemption(*, shop_id: int, redemption_id: int, user_id: int | None = None, note: str | None = None) -> PointsRedemption:
    return _close_redemption(shop_id, redemption_id, "REJECTED", user_id, note)


def cancel_redemption(*, shop_id: int, redemption_id: int, user_id: int | None = None, note: str | None = None) -> PointsRedemption:
    return _close_redemption(shop_id, redemption_id, "CANCELLED", user_id, note)


def list_redemptions(
    *,
    shop_id: int,
    customer_id: int | None = None,
    status: str | None = None,
) -> list[PointsRedemption]:
    q = db.session.query(PointsRedemption).filter(PointsRedemption.shop_id == shop_id)
    if customer_id is not None:
        q = q.filter(PointsRedemption.customer_id == customer_id)
    if status:
        q = q.filter(PointsRedemption.status == status.upper())
    return q.order_by(PointsRedemption.requested_at.desc(), PointsRedemption.id.desc()).all()
