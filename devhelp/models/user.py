# devhelp/models/user.py
import uuid
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from ..extensions import db


def _uuid() -> str:
    return str(uuid.uuid4())


# ------- Core Models -------

class User(UserMixin, db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    password_hash = db.Column(db.String(255))

    # client|developer
    user_type = db.Column(db.String(20), nullable=False, default="client", index=True)
    is_staff = db.Column(db.Boolean, default=False)

    # Public profile
    image = db.Column(db.String(512))
    description = db.Column(db.Text)
    location = db.Column(db.String(120))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    developer_profile = db.relationship(
        "DeveloperProfile",
        backref="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    # --- Auth helpers ---
    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    @property
    def is_developer(self) -> bool:
        return self.user_type == "developer"

    @property
    def is_client(self) -> bool:
        return self.user_type == "client"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "user_type": self.user_type,
            "is_staff": bool(self.is_staff),
            "image": self.image,
            "description": self.description,
            "location": self.location,
        }


class DeveloperProfile(db.Model):
    __tablename__ = "developer_profiles"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), unique=True, index=True)

    # Public/profile info used in matching
    skills = db.Column(db.JSON, default=list)
    experience = db.Column(db.String(255))
    hourly_rate = db.Column(db.Numeric(7, 2))
    rating = db.Column(db.Float)
    availability = db.Column(db.Boolean, default=True)
    online = db.Column(db.Boolean, default=False)
