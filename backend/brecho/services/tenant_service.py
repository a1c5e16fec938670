"""
Tenant scoping helpers.

Every business row carries shop_id. Ids that arrive in a payload (a sale's
customer_id, a product's category_id) must point at rows of the caller's
shop; anything else is reported as not found so ids of other shops are
never confirmed.
"""

from ..extensions import db
from ..models import Shop
from ..validation import ValidationError
from brecho.time_utils import DEFAULT_TIMEZONE, today_local


def require_reference(model, obj_id: int | None, shop_id: int, field: str):
    """
    Load a referenced row of the same shop, or raise ValidationError.

    Returns None when obj_id is None (optional reference left blank).
    """
    if obj_id is None:
        return None
    obj = db.session.query(model).filter_by(id=obj_id, shop_id=shop_id).first()
    if obj is None:
        raise ValidationError(f"{field} not found")
    return obj


def get_shop_timezone(shop_id: int) -> str:
    shop = db.session.get(Shop, shop_id)
    if shop is None or not shop.timezone:
        return DEFAULT_TIMEZONE
    return shop.timezone


def shop_today(shop_id: int):
    """Today's calendar date in the shop's time zone."""
    return today_local(get_shop_timezone(shop_id))
