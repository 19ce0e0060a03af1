# devhelp/services/chat.py
"""Per-request chat between the client and the developers who applied."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Set

from flask_babel import gettext as _

from ..context import Actor
from ..errors import PermissionDenied, ValidationError, as_result
from ..extensions import db, feed
from ..models import ChatMessage, HelpRequest, HelpRequestMatch
from ..models.status import ENTITY_MESSAGE, NOTIFY_NEW_MESSAGE
from ..realtime import INSERT, Subscription
from .notifications import add_notification, send_email_copies
from .request_store import load_request

log = logging.getLogger(__name__)

PREVIEW_LENGTH = 80


def participants(req: HelpRequest) -> Set[str]:
    ids = {req.client_id}
    ids.update(
        dev_id for (dev_id,) in
        db.session.query(HelpRequestMatch.developer_id).filter_by(request_id=req.id).all()
    )
    return ids


def _ensure_participant(actor: Actor, req: HelpRequest) -> Set[str]:
    people = participants(req)
    if actor.user_id not in people:
        raise PermissionDenied(_("You are not part of this conversation."))
    return people


@as_result
def send(actor: Actor, help_request_id: str, receiver_id: str, message: str) -> dict:
    text = message.strip() if isinstance(message, str) else ""
    if not text:
        raise ValidationError(_("Message cannot be empty."), fields=["message"])
    if not receiver_id:
        raise ValidationError(_("Missing required fields: %(fields)s", fields="receiver_id"),
                              fields=["receiver_id"])

    req = load_request(help_request_id)
    people = _ensure_participant(actor, req)
    if receiver_id not in people or receiver_id == actor.user_id:
        raise PermissionDenied(_("The receiver is not part of this conversation."))

    msg = ChatMessage(
        help_request_id=req.id,
        sender_id=actor.user_id,
        receiver_id=receiver_id,
        message=text,
        is_read=False,
    )
    db.session.add(msg)
    db.session.flush()

    preview = text if len(text) <= PREVIEW_LENGTH else text[:PREVIEW_LENGTH - 1] + "…"
    note = add_notification(
        user_id=receiver_id,
        entity_type=ENTITY_MESSAGE,
        notification_type=NOTIFY_NEW_MESSAGE,
        related_entity_id=req.id,
        title=_("New message"),
        message=preview,
        action_data={"message_id": msg.id, "sender_id": actor.user_id,
                     "request_id": req.id, "request_title": req.title},
    )
    db.session.commit()
    send_email_copies([note])

    log.debug("Chat message id=%s request=%s", msg.id, req.id)
    return msg.to_dict()


@as_result
def fetch(actor: Actor, help_request_id: str) -> List[dict]:
    req = load_request(help_request_id)
    _ensure_participant(actor, req)
    rows = (
        ChatMessage.query
        .filter(ChatMessage.help_request_id == req.id)
        .filter((ChatMessage.sender_id == actor.user_id) | (ChatMessage.receiver_id == actor.user_id))
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
    return [m.to_dict() for m in rows]


@as_result
def mark_read(actor: Actor, help_request_id: str) -> int:
    req = load_request(help_request_id)
    _ensure_participant(actor, req)
    updated = (
        ChatMessage.query
        .filter_by(help_request_id=req.id, receiver_id=actor.user_id, is_read=False)
        .update({ChatMessage.is_read: True}, synchronize_session="fetch")
    )
    db.session.commit()
    return updated


def subscribe(help_request_id: str, on_insert: Callable[[dict], None],
              user_id: Optional[str] = None) -> Subscription:
    """New messages of one request; with ``user_id`` only those the user sent or received."""
    if not help_request_id:
        raise ValueError("help_request_id is required for a chat subscription")

    def deliver(change):
        row = change.row
        if user_id and user_id not in (row.get("sender_id"), row.get("receiver_id")):
            return
        on_insert(row)

    return feed.subscribe("chat_messages", f"help_request_id=eq.{help_request_id}", deliver,
                          events=(INSERT,))
