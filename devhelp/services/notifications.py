# devhelp/services/notifications.py
"""
Per-user notification feed and its realtime relay.

Notifications are written by the stores in the same transaction as the
event that caused them (``add_notification``), published by the change
feed after commit, and read back with ``fetch_all``. The live subscription
is a latency optimisation only: ``NotificationCenter.refresh`` is always
available as the source of truth.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from flask import current_app
from flask_babel import gettext as _

from ..context import Actor
from ..errors import NotFoundError, PermissionDenied, StoreResult, ValidationError, as_result
from ..extensions import db, feed
from ..models import Notification, User
from ..realtime import FeedState, INSERT, Subscription
from .email_service import email_notification

log = logging.getLogger(__name__)


def add_notification(*, user_id: str, entity_type: str, notification_type: str,
                     related_entity_id: Optional[str], title: str, message: str,
                     action_data: Optional[Dict[str, Any]] = None) -> Notification:
    """Stage a notification on the current session; the caller commits."""
    n = Notification(
        user_id=user_id,
        entity_type=entity_type,
        notification_type=notification_type,
        related_entity_id=related_entity_id,
        title=title,
        message=message,
        is_read=False,
        action_data=dict(action_data or {}),
    )
    db.session.add(n)
    return n


def send_email_copies(notifications: Iterable[Notification]) -> int:
    """After commit: mirror notifications by e-mail when enabled."""
    if not current_app.config.get("NOTIFY_BY_EMAIL"):
        return 0
    sent = 0
    for n in notifications:
        user = db.session.get(User, n.user_id)
        if email_notification(user, n.to_dict()):
            sent += 1
    return sent


@as_result
def create(actor: Actor, *, user_id: str, entity_type: str, notification_type: str,
           title: str, message: str, related_entity_id: Optional[str] = None,
           action_data: Optional[Dict[str, Any]] = None) -> dict:
    """Explicit insert for events raised outside the stores (staff only)."""
    if not actor.is_staff:
        raise PermissionDenied(_("Only administrators can post notifications directly."))
    missing = [k for k, v in (("user_id", user_id), ("title", title), ("message", message)) if not v]
    if missing:
        raise ValidationError(_("Missing required fields: %(fields)s", fields=", ".join(missing)),
                              fields=missing)
    if db.session.get(User, user_id) is None:
        raise NotFoundError(_("User not found."))
    n = add_notification(
        user_id=user_id,
        entity_type=entity_type,
        notification_type=notification_type,
        related_entity_id=related_entity_id,
        title=title,
        message=message,
        action_data=action_data,
    )
    db.session.commit()
    send_email_copies([n])
    return n.to_dict()


def _ensure_self(actor: Actor, user_id: str) -> None:
    if not user_id:
        raise ValidationError(_("User ID is required"), fields=["user_id"])
    if actor.user_id != user_id and not actor.is_staff:
        raise PermissionDenied(_("You can only access your own notifications."))


@as_result
def fetch_all(actor: Actor, user_id: str, unread_only: bool = False) -> List[dict]:
    _ensure_self(actor, user_id)
    q = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return [n.to_dict() for n in rows]


@as_result
def unread_count(actor: Actor, user_id: str) -> int:
    _ensure_self(actor, user_id)
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


@as_result
def mark_read(actor: Actor, notification_id: str) -> dict:
    n = db.session.get(Notification, notification_id)
    if n is None:
        raise NotFoundError(_("Notification not found."))
    if n.user_id != actor.user_id:
        raise PermissionDenied(_("You can only access your own notifications."))
    if not n.is_read:
        n.is_read = True
        db.session.commit()
    return n.to_dict()


@as_result
def mark_all_read(actor: Actor, user_id: str) -> int:
    _ensure_self(actor, user_id)
    updated = (
        Notification.query
        .filter_by(user_id=user_id, is_read=False)
        .update({Notification.is_read: True}, synchronize_session="fetch")
    )
    db.session.commit()
    log.info("Marked %s notification(s) read for user=%s", updated, user_id)
    return updated


def subscribe(user_id: str, on_insert: Callable[[dict], None]) -> Subscription:
    """Live inserts for one user's feed. Returns the unsubscribe handle."""
    if not user_id:
        raise ValueError("user_id is required for a notifications subscription")
    return feed.subscribe(
        "notifications",
        f"user_id=eq.{user_id}",
        lambda change: on_insert(change.row),
        events=(INSERT,),
    )


class NotificationCenter:
    """
    One open session's view of a user's notifications.

    Read flags are flipped locally before the store call returns and are not
    rolled back if the call fails.
    """

    def __init__(self, actor: Actor):
        self.actor = actor
        self.state = FeedState(newest_first=True)
        self._sub: Optional[Subscription] = None
        self.on_new: Optional[Callable[[dict], None]] = None

    def open(self) -> "NotificationCenter":
        # subscribe before fetching so nothing lands in between
        if self._sub is None:
            self._sub = subscribe(self.actor.user_id, self._on_insert)
        self.refresh()
        return self

    def close(self) -> None:
        if self._sub is not None:
            self._sub.unsubscribe()
            self._sub = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _on_insert(self, row: dict) -> None:
        if self.state.upsert(row) and self.on_new:
            self.on_new(row)

    def refresh(self) -> StoreResult:
        res = fetch_all(self.actor, self.actor.user_id)
        if res.success:
            for row in res.data:
                self.state.upsert(row)
        return res

    def mark_read(self, notification_id: str) -> StoreResult:
        self.state.patch(notification_id, is_read=True)
        res = mark_read(self.actor, notification_id)
        if not res.success:
            log.warning("mark_read(%s) failed: %s", notification_id, res.error)
        return res

    def mark_all_read(self) -> StoreResult:
        self.state.patch_all(is_read=True)
        res = mark_all_read(self.actor, self.actor.user_id)
        if not res.success:
            log.warning("mark_all_read(%s) failed: %s", self.actor.user_id, res.error)
        return res

    @property
    def notifications(self) -> List[dict]:
        return self.state.items()

    @property
    def unread_count(self) -> int:
        return self.state.unread_count
