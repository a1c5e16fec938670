# Overview: Service-layer operations for payment methods.

from __future__ import annotations

from ..extensions import db
from ..models import PaymentMethod
from ..validation import ConflictError


# (name, is_immediate)
DEFAULT_PAYMENT_METHODS = [
    ("Dinheiro", True),
    ("PIX", True),
    ("Cartão de Débito", True),
    ("Cartão de Crédito", True),
    ("Crediário", False),
]


class PaymentMethodNotFoundError(Exception):
    pass


def seed_default_payment_methods(*, shop_id: int) -> int:
    """Create the default methods missing from a shop. Flushes only."""
    existing = {
        name for (name,) in db.session.query(PaymentMethod.name).filter_by(shop_id=shop_id).all()
    }
    created = 0
    for name, is_immediate in DEFAULT_PAYMENT_METHODS:
        if name in existing:
            continue
        db.session.add(PaymentMethod(shop_id=shop_id, name=name, is_immediate=is_immediate))
        created += 1
    db.session.flush()
    return created


def get_payment_method(*, shop_id: int, payment_method_id: int) -> PaymentMethod:
    method = db.session.query(PaymentMethod).filter_by(id=payment_method_id, shop_id=shop_id).first()
    if not method:
        raise PaymentMethodNotFoundError(f"Payment method {payment_method_id} not found")
    return method


def list_payment_methods(*, shop_id: int, include_inactive: bool = False) -> list[PaymentMethod]:
    q = db.session.query(PaymentMethod).filter_by(shop_id=shop_id)
    if not include_inactive:
        q = q.filter(PaymentMethod.is_active.is_(True))
    return q.order_by(PaymentMethod.name.asc()).all()


def _ensure_unique(*, shop_id: int, name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(PaymentMethod).filter(
        PaymentMethod.shop_id == shop_id,
        db.func.lower(PaymentMethod.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(PaymentMethod.id != exclude_id)
    if q.first():
        raise ConflictError(f"Payment method '{name}' already exists")


def create_payment_method(*, shop_id: int, patch: dict) -> PaymentMethod:
    _ensure_unique(shop_id=shop_id, name=patch["name"])
    method = PaymentMethod(
        shop_id=shop_id,
        name=patch["name"],
        is_immediate=patch.get("is_immediate", True),
        is_active=patch.get("is_active", True),
    )
    db.session.add(method)
    db.session.commit()
    return method


def update_payment_method(*, shop_id: int, payment_method_id: int, patch: dict) -> PaymentMethod:
    method = get_payment_method(shop_id=shop_id, payment_method_id=payment_method_id)
    if "name" in patch and patch["name"] != method.name:
        _ensure_unique(shop_id=shop_id, name=patch["name"], exclude_id=method.id)
    for key in ("name", "is_immediate", "is_active"):
        if key in patch:
            setattr(method, key, patch[key])
    db.session.commit()
    return method


def deactivate_payment_method(*, shop_id: int, payment_method_id: int) -> PaymentMethod:
    """Soft delete: history keeps pointing at the row."""
    method = get_payment_method(shop_id=shop_id, payment_method_id=payment_method_id)
    method.is_active = False
    db.session.commit()
    return method
