# devhelp/blueprints/realtime/routes.py
"""
Server-Sent Events bridge over the change feed.

One queue per open stream. The subscription lives exactly as long as the
generator: it is created on the first read and removed when the client
goes away. Clients that miss events re-fetch the plain GET lists.
"""
import json
import logging
import queue

from flask import Response, current_app, jsonify, request, stream_with_context
from flask_babel import gettext as _
from flask_login import login_required

from ...extensions import db
from ...models import HelpRequest
from ...services import application_store, chat, notifications
from ..utils import current_actor
from . import realtime_bp

log = logging.getLogger(__name__)

TOPICS = ("notifications", "chat", "applications")


def _format_sse_event(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def _deny(status: int, message: str, code: str):
    return jsonify(success=False, error=message, code=code), status


@realtime_bp.route("/stream")
@login_required
def stream():
    actor = current_actor()
    topic = (request.args.get("topic") or "").strip()
    target = (request.args.get("id") or "").strip()

    if topic not in TOPICS:
        return _deny(400, _("topic must be one of: %(topics)s", topics=", ".join(TOPICS)), "validation")

    if topic == "notifications":
        target = target or actor.user_id
        if target != actor.user_id:
            return _deny(403, _("You can only stream your own notifications."), "permission")

        def open_sub(put):
            return notifications.subscribe(target, lambda row: put("notification", row))
    else:
        req = db.session.get(HelpRequest, target) if target else None
        if req is None:
            return _deny(404, _("Help request not found."), "not_found")
        if topic == "chat":
            if actor.user_id not in chat.participants(req):
                return _deny(403, _("You are not part of this conversation."), "permission")

            def open_sub(put):
                return chat.subscribe(target, lambda row: put("message", row), user_id=actor.user_id)
        else:
            if not (actor.owns(req) or actor.is_staff):
                return _deny(403, _("Only the client who posted this request can follow its applications."),
                             "permission")

            def open_sub(put):
                return application_store.subscribe(
                    target, lambda event, row: put("application", {"event": event, "row": row})
                )

    heartbeat = current_app.config.get("REALTIME_HEARTBEAT_SECONDS", 15)
    # the stream must not hold a pooled connection while it idles
    db.session.remove()

    def generate():
        events: "queue.Queue[tuple]" = queue.Queue()
        sub = open_sub(lambda name, row: events.put((name, row)))
        log.debug("SSE open topic=%s id=%s user=%s", topic, target, actor.user_id)
        try:
            yield _format_sse_event("ready", {"topic": topic, "id": target})
            while True:
                try:
                    name, row = events.get(timeout=heartbeat)
                except queue.Empty:
                    yield ": heartbeat\n\n"
                    continue
                yield _format_sse_event(name, row)
        finally:
            sub.unsubscribe()
            log.debug("SSE closed topic=%s id=%s user=%s", topic, target, actor.user_id)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
