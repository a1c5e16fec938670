from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


class Lead(db.Model):
    """
    Interest submitted from the public sign-up form.

    Not tenant-scoped: leads exist before any shop does.
    """
    __tablename__ = "leads"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_name = db.Column(db.String(120), nullable=False)
    contact_name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(20), nullable=False)
    city = db.Column(db.String(100), nullable=True)
    message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_name": self.shop_name,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
        }
