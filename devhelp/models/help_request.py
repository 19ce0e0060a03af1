# devhelp/models/help_request.py
from datetime import datetime
from ..extensions import db
from .user import _uuid
from .status import REQUEST_PENDING, TERMINAL_REQUEST_STATUSES, OPEN_FOR_APPLICATIONS


def _iso(dt):
    return dt.isoformat() if dt else None


class HelpRequest(db.Model):
    __tablename__ = "help_requests"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    client_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    technical_area = db.Column(db.JSON, nullable=False, default=list)
    urgency = db.Column(db.String(20), default="low", index=True)       # low|medium|high|critical
    communication_preference = db.Column(db.JSON, nullable=False, default=list)
    estimated_duration = db.Column(db.Integer, default=30)              # minutes
    budget_range = db.Column(db.String(30), default="Under $50")
    code_snippet = db.Column(db.Text)

    status = db.Column(db.String(30), default=REQUEST_PENDING, index=True)
    cancellation_reason = db.Column(db.Text)
    selected_developer_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("User", foreign_keys=[client_id])
    selected_developer = db.relationship("User", foreign_keys=[selected_developer_id])

    # pairs with HelpRequestMatch.request
    applications = db.relationship(
        "HelpRequestMatch",
        back_populates="request",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    history = db.relationship(
        "RequestHistory",
        backref="ticket",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    messages = db.relationship(
        "ChatMessage",
        backref="help_request",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def is_open_for_applications(self) -> bool:
        return self.status in OPEN_FOR_APPLICATIONS

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "technical_area": list(self.technical_area or []),
            "urgency": self.urgency,
            "communication_preference": list(self.communication_preference or []),
            "estimated_duration": self.estimated_duration,
            "budget_range": self.budget_range,
            "code_snippet": self.code_snippet,
            "status": self.status,
            "cancellation_reason": self.cancellation_reason,
            "selected_developer_id": self.selected_developer_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class RequestHistory(db.Model):
    __tablename__ = "ticket_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    ticket_id = db.Column(db.String(36), db.ForeignKey("help_requests.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    action_type = db.Column(db.String(40), nullable=False)  # created|edited|status_change|cancelled|application_approved
    previous_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "user_id": self.user_id,
            "action_type": self.action_type,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "created_at": _iso(self.created_at),
        }
