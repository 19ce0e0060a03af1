# devhelp/blueprints/help_requests/routes.py
from flask import jsonify, request
from flask_login import login_required

from ...models.status import (
    BUDGET_RANGES,
    COMMUNICATION_CHANNELS,
    TECHNICAL_AREAS,
    URGENCY_LEVELS,
)
from ...services import application_store, request_store
from ..utils import current_actor, json_body, respond
from . import requests_bp


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes"}


@requests_bp.route("/options")
def options():
    """Choices offered by the request form."""
    return jsonify(success=True, data={
        "technical_areas": list(TECHNICAL_AREAS),
        "urgency_levels": list(URGENCY_LEVELS),
        "budget_ranges": list(BUDGET_RANGES),
        "communication_channels": list(COMMUNICATION_CHANNELS),
    })


@requests_bp.route("", methods=["GET"])
@login_required
def list_open():
    return respond(request_store.list_public(current_actor()))


@requests_bp.route("", methods=["POST"])
@login_required
def create():
    return respond(request_store.create(current_actor(), json_body()), created=True)


@requests_bp.route("/mine")
@login_required
def mine():
    actor = current_actor()
    return respond(request_store.get_for_client(actor, actor.user_id, include_counts=_flag("counts")))


@requests_bp.route("/<request_id>", methods=["GET"])
@login_required
def detail(request_id):
    return respond(request_store.get_by_id(current_actor(), request_id))


@requests_bp.route("/<request_id>", methods=["PATCH"])
@login_required
def update(request_id):
    return respond(request_store.update(current_actor(), request_id, json_body()))


@requests_bp.route("/<request_id>", methods=["DELETE"])
@login_required
def delete(request_id):
    return respond(request_store.delete(current_actor(), request_id))


@requests_bp.route("/<request_id>/cancel", methods=["POST"])
@login_required
def cancel(request_id):
    body = json_body()
    return respond(request_store.cancel(current_actor(), request_id, reason=body.get("reason")))


@requests_bp.route("/<request_id>/status", methods=["POST"])
@login_required
def set_status(request_id):
    body = json_body()
    return respond(request_store.set_status(current_actor(), request_id, body.get("status")))


@requests_bp.route("/<request_id>/history")
@login_required
def history(request_id):
    return respond(request_store.get_history(current_actor(), request_id))


@requests_bp.route("/<request_id>/applications", methods=["GET"])
@login_required
def applications(request_id):
    return respond(application_store.list_for_request(current_actor(), request_id))


@requests_bp.route("/<request_id>/applications", methods=["POST"])
@login_required
def apply(request_id):
    actor = current_actor()
    body = json_body()
    res = application_store.submit(
        actor,
        request_id,
        actor.user_id,
        message=body.get("message"),
        proposed_rate=body.get("proposed_rate"),
        proposed_duration=body.get("proposed_duration"),
    )
    return respond(res, created=bool(res.success and not res.data.get("is_update")))


@requests_bp.route("/<request_id>/applications/status")
@login_required
def application_status(request_id):
    actor = current_actor()
    developer_id = request.args.get("developer_id") or actor.user_id
    return respond(application_store.check_status(actor, request_id, developer_id))


@requests_bp.route("/<request_id>/recommended-developers")
@login_required
def recommended_developers(request_id):
    return respond(request_store.recommend_developers(current_actor(), request_id, expand=_flag("expand")))
