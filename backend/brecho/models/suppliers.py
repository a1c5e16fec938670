from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


class Supplier(db.Model):
    """
    Where pieces come from: consignors, wholesalers, donation partners.

    document holds a CPF or CNPJ (digits only) and is unique within a shop.
    Deactivation is a soft delete; products keep their supplier link.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "document", name="uq_suppliers_shop_document"),
        db.Index("ix_suppliers_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    legal_name = db.Column(db.String(150), nullable=False)
    trade_name = db.Column(db.String(150), nullable=True)
    document = db.Column(db.String(14), nullable=True)
    state_registration = db.Column(db.String(32), nullable=True)

    contact_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    street = db.Column(db.String(150), nullable=True)
    number = db.Column(db.String(16), nullable=True)
    complement = db.Column(db.String(64), nullable=True)
    district = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(64), nullable=True)
    state = db.Column(db.String(2), nullable=True)
    postal_code = db.Column(db.String(9), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "legal_name": self.legal_name,
            "trade_name": self.trade_name,
            "document": self.document,
            "state_registration": self.state_registration,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "street": self.street,
            "number": self.number,
            "complement": self.complement,
            "district": self.district,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
