# devhelp/context.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf a store operation runs."""
    user_id: str
    user_type: str  # client|developer
    is_staff: bool = False

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(user_id=user.id, user_type=user.user_type, is_staff=bool(user.is_staff))

    @property
    def is_client(self) -> bool:
        return self.user_type == "client"

    @property
    def is_developer(self) -> bool:
        return self.user_type == "developer"

    def owns(self, record, attr: str = "client_id") -> bool:
        return getattr(record, attr, None) == self.user_id
