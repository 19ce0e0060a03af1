# devhelp/blueprints/notifications/routes.py
from flask import request
from flask_login import login_required

from ...services import notifications
from ..utils import current_actor, json_body, respond
from . import notifications_bp


@notifications_bp.route("", methods=["GET"])
@login_required
def list_mine():
    actor = current_actor()
    unread_only = (request.args.get("unread") or "").lower() in {"1", "true", "yes"}
    return respond(notifications.fetch_all(actor, actor.user_id, unread_only=unread_only))


@notifications_bp.route("", methods=["POST"])
@login_required
def create():
    body = json_body()
    res = notifications.create(
        current_actor(),
        user_id=body.get("user_id"),
        entity_type=body.get("entity_type") or "system",
        notification_type=body.get("notification_type") or "announcement",
        related_entity_id=body.get("related_entity_id"),
        title=body.get("title"),
        message=body.get("message"),
        action_data=body.get("action_data") if isinstance(body.get("action_data"), dict) else None,
    )
    return respond(res, created=True)


@notifications_bp.route("/unread-count")
@login_required
def unread_count():
    actor = current_actor()
    return respond(notifications.unread_count(actor, actor.user_id))


@notifications_bp.route("/<notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    return respond(notifications.mark_read(current_actor(), notification_id))


@notifications_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    actor = current_actor()
    return respond(notifications.mark_all_read(actor, actor.user_id))
