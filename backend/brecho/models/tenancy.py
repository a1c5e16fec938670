from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


class Shop(db.Model):
    """
    Tenant root: every brechó using the system is a Shop.

    All catalog, people, sales and finance rows carry shop_id and every
    query is scoped by it. No data may cross shop boundaries.
    """
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # CPF or CNPJ of the business owner, digits only
    document = db.Column(db.String(14), nullable=True, unique=True)
    timezone = db.Column(db.String(64), nullable=False, default="America/Sao_Paulo")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "document": self.document,
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
