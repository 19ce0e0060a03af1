# devhelp/models/chat.py
from datetime import datetime
from ..extensions import db
from .user import _uuid
from .help_request import _iso


class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    help_request_id = db.Column(db.String(36), db.ForeignKey("help_requests.id", ondelete="CASCADE"),
                                nullable=False, index=True)
    sender_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False, index=True)
    receiver_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "help_request_id": self.help_request_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "message": self.message,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
