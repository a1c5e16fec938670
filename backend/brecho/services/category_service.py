# Overview: Service-layer operations for categories.

from __future__ import annotations

from ..extensions import db
from ..models import Category, Product, Sale, Expense, Revenue, CommissionRule
from ..validation import ConflictError


class CategoryNotFoundError(Exception):
    pass


CATEGORY_MUTABLE_FIELDS = {"name", "description", "kind", "is_active"}


def _ensure_unique(*, shop_id: int, name: str, kind: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(
        Category.shop_id == shop_id,
        db.func.lower(Category.name) == name.lower(),
        Category.kind == kind,
    )
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first():
        raise ConflictError(f"Category '{name}' already exists")


def get_category(*, shop_id: int, category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id, shop_id=shop_id).first()
    if not category:
        raise CategoryNotFoundError(f"Category {category_id} not found")
    return category


def list_categories(
    *,
    shop_id: int,
    kind: str | None = None,
    include_inactive: bool = False,
) -> list[Category]:
    """
    Categories of a shop ordered by name.

    Filtering by kind also returns GENERAL categories, which apply anywhere.
    """
    q = db.session.query(Category).filter(Category.shop_id == shop_id)
    if kind:
        q = q.filter(Category.kind.in_({kind.upper(), "GENERAL"}))
    if not include_inactive:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name.asc(), Category.id.asc()).all()


def create_category(*, shop_id: int, patch: dict) -> Category:
    kind = patch.get("kind") or "GENERAL"
    _ensure_unique(shop_id=shop_id, name=patch["name"], kind=kind)

    category = Category(shop_id=shop_id, kind=kind)
    for key, value in patch.items():
        if key in CATEGORY_MUTABLE_FIELDS and key != "kind":
            setattr(category, key, value)

    db.session.add(category)
    db.session.commit()
    return category


def update_category(*, shop_id: int, category_id: int, patch: dict) -> Category:
    category = get_category(shop_id=shop_id, category_id=category_id)

    name = patch.get("name", category.name)
    kind = patch.get("kind") or category.kind
    if name != category.name or kind != category.kind:
        _ensure_unique(shop_id=shop_id, name=name, kind=kind, exclude_id=category.id)

    for key, value in patch.items():
        if key in CATEGORY_MUTABLE_FIELDS:
            setattr(category, key, value)
    if category.kind is None:
        category.kind = "GENERAL"

    db.session.commit()
    return category


def delete_category(*, shop_id: int, category_id: int) -> None:
    """
    Delete a category nobody references.

    Raises ConflictError when products, sales, expenses, revenues or
    commission rules still point at it; deactivate it instead.
    """
    category = get_category(shop_id=shop_id, category_id=category_id)

    for model, label in (
        (Product, "products"),
        (Sale, "sales"),
        (Expense, "expenses"),
        (Revenue, "revenues"),
        (CommissionRule, "commission rules"),
    ):
        in_use = db.session.query(model.id).filter(model.category_id == category.id).first()
        if in_use:
            raise ConflictError(f"Category is used by {label}; deactivate it instead")

    db.session.delete(category)
    db.session.commit()
