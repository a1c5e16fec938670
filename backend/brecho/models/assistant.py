from __future__ import annotations

from ..extensions import db
from brecho.time_utils import to_utc_z


class ChatMessage(db.Model):
    """One turn of a user's conversation with the assistant."""
    __tablename__ = "chat_messages"
    __table_args__ = (
        db.Index("ix_chat_messages_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(16), nullable=False)  # user | assistant
    content = db.Column(db.Text, nullable=False)
    source = db.Column(db.String(16), nullable=True)  # webhook | simulation, replies only

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
        }
