# devhelp/models/application.py
from datetime import datetime
from sqlalchemy import text
from ..extensions import db
from .user import _uuid
from .help_request import _iso
from .status import APP_PENDING


class HelpRequestMatch(db.Model):
    """A developer's application against a help request."""
    __tablename__ = "help_request_matches"
    __table_args__ = (
        db.UniqueConstraint("request_id", "developer_id", name="uq_match_request_developer"),
        # at most one approved application per request
        db.Index(
            "uq_match_one_approved",
            "request_id",
            unique=True,
            sqlite_where=text("status = 'approved_by_client'"),
            postgresql_where=text("status = 'approved_by_client'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    request_id = db.Column(db.String(36), db.ForeignKey("help_requests.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    developer_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False, index=True)

    # pending|approved_by_client|rejected_by_client|completed|cancelled
    status = db.Column(db.String(30), default=APP_PENDING, nullable=False, index=True)
    proposed_message = db.Column(db.Text)
    proposed_rate = db.Column(db.Numeric(5, 2))
    proposed_duration = db.Column(db.Integer)
    match_score = db.Column(db.Float)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    request = db.relationship("HelpRequest", back_populates="applications")
    developer = db.relationship("User", foreign_keys=[developer_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "developer_id": self.developer_id,
            "status": self.status,
            "proposed_message": self.proposed_message,
            "proposed_rate": float(self.proposed_rate) if self.proposed_rate is not None else None,
            "proposed_duration": self.proposed_duration,
            "match_score": self.match_score,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
