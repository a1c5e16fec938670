# Overview: Service-layer operations for leads submitted from the public interest form.

from __future__ import annotations

from ..extensions import db
from ..models import Lead
from ..validation import ConflictError, PHONE_RE, ValidationError, is_valid_email


def submit_interest(
    *,
    shop_name: str | None,
    email: str | None,
    phone: str | None,
    contact_name: str | None = None,
    city: str | None = None,
    message: str | None = None,
) -> Lead:
    email = (email or "").strip().lower()
    shop_name = (shop_name or "").strip()
    phone = (phone or "").strip()

    if not email:
        raise ValidationError("email is required")
    if not is_valid_email(email):
        raise ValidationError("email is not a valid email address")
    if not shop_name:
        raise ValidationError("shop_name is required")
    if len(shop_name) > 120:
        raise ValidationError("shop_name must have at most 120 characters")
    if not phone:
        raise ValidationError("phone is required")
    if not PHONE_RE.match(phone):
        raise ValidationError("phone must look like (11) 91234-5678")

    if db.session.query(Lead.id).filter_by(email=email).first():
        raise ConflictError("This email has already registered interest")

    lead = Lead(
        shop_name=shop_name,
        contact_name=(contact_name or "").strip() or None,
        email=email,
        phone=phone,
        city=(city or "").strip() or None,
        message=message,
    )
    db.session.add(lead)
    db.session.commit()
    return lead


def list_leads(*, limit: int = 100, offset: int = 0) -> tuple[list[Lead], int]:
    q = db.session.query(Lead)
    total = q.count()
    items = q.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(offset).limit(limit).all()
    return items, total
