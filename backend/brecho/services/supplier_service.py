# Overview: Service-layer operations for suppliers.

"""
Supplier Service

Suppliers are where thrift pieces come from (consignors, wholesalers,
donors). The CPF/CNPJ is stored as digits only and is unique per shop.
Suppliers are deactivated instead of deleted so products keep their link.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Supplier
from ..validation import ConflictError


class SupplierNotFoundError(Exception):
    """Raised when a supplier is not found."""
    pass


class SupplierValidationError(Exception):
    """Raised when supplier data fails validation."""
    pass


SUPPLIER_MUTABLE_FIELDS = {
    "legal_name", "trade_name", "document", "state_registration",
    "contact_name", "phone", "email", "street", "number", "complement",
    "district", "city", "state", "postal_code", "notes",
}


def _ensure_document_unique(*, shop_id: int, document: str | None, exclude_id: int | None = None) -> None:
    if not document:
        return
    q = db.session.query(Supplier).filter(Supplier.shop_id == shop_id, Supplier.document == document)
    if exclude_id is not None:
        q = q.filter(Supplier.id != exclude_id)
    if q.first():
        raise ConflictError("A supplier with this CPF/CNPJ already exists")


def get_supplier(*, shop_id: int, supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, shop_id=shop_id).first()
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(
    *,
    shop_id: int,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    q = db.session.query(Supplier).filter(Supplier.shop_id == shop_id)
    if not include_inactive:
        q = q.filter(Supplier.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(
            Supplier.legal_name.ilike(like),
            Supplier.trade_name.ilike(like),
            Supplier.document.ilike(like),
            Supplier.city.ilike(like),
        ))
    total = q.count()
    items = q.order_by(Supplier.legal_name.asc(), Supplier.id.asc()).offset(offset).limit(limit).all()
    return items, total


def create_supplier(*, shop_id: int, patch: dict) -> Supplier:
    _ensure_document_unique(shop_id=shop_id, document=patch.get("document"))

    supplier = Supplier(shop_id=shop_id, is_active=True)
    for key, value in patch.items():
        if key in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, key, value)

    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(*, shop_id: int, supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(shop_id=shop_id, supplier_id=supplier_id)
    if not supplier.is_active:
        raise SupplierValidationError("Cannot update inactive supplier")
    if "document" in patch:
        _ensure_document_unique(shop_id=shop_id, document=patch["document"], exclude_id=supplier.id)

    for key, value in patch.items():
        if key in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, key, value)

    db.session.commit()
    return supplier


def deactivate_supplier(*, shop_id: int, supplier_id: int) -> Supplier:
    supplier = get_supplier(shop_id=shop_id, supplier_id=supplier_id)
    if not supplier.is_active:
        raise SupplierValidationError("Supplier is already inactive")
    supplier.is_active = False
    db.session.commit()
    return supplier


def reactivate_supplier(*, shop_id: int, supplier_id: int) -> Supplier:
    supplier = get_supplier(shop_id=shop_id, supplier_id=supplier_id)
    if supplier.is_active:
        raise SupplierValidationError("Supplier is already active")
    supplier.is_active = True
    db.session.commit()
    return supplier
