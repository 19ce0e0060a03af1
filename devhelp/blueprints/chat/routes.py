# devhelp/blueprints/chat/routes.py
from flask_login import login_required

from ...services import chat
from ..utils import current_actor, json_body, respond
from . import chat_bp


@chat_bp.route("/<request_id>/messages", methods=["GET"])
@login_required
def messages(request_id):
    return respond(chat.fetch(current_actor(), request_id))


@chat_bp.route("/<request_id>/messages", methods=["POST"])
@login_required
def send(request_id):
    body = json_body()
    res = chat.send(current_actor(), request_id, body.get("receiver_id"), body.get("message"))
    return respond(res, created=True)


@chat_bp.route("/<request_id>/read", methods=["POST"])
@login_required
def mark_read(request_id):
    return respond(chat.mark_read(current_actor(), request_id))
