# devhelp/models/notification.py
from datetime import datetime
from ..extensions import db
from .user import _uuid
from .help_request import _iso


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    related_entity_id = db.Column(db.String(36), index=True)
    entity_type = db.Column(db.String(40), nullable=False)        # application|application_status|message
    notification_type = db.Column(db.String(40), index=True)      # new_application|application_approved|...
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)
    # denormalized fields needed to act without a re-fetch
    action_data = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "related_entity_id": self.related_entity_id,
            "entity_type": self.entity_type,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "is_read": bool(self.is_read),
            "action_data": dict(self.action_data or {}),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
