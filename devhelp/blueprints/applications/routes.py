# devhelp/blueprints/applications/routes.py
from flask_login import login_required

from ...services import application_store
from ..utils import current_actor, json_body, respond
from . import applications_bp


@applications_bp.route("/mine")
@login_required
def mine():
    actor = current_actor()
    return respond(application_store.list_for_developer(actor, actor.user_id))


@applications_bp.route("/<application_id>/approve", methods=["POST"])
@login_required
def approve(application_id):
    return respond(application_store.approve(current_actor(), application_id))


@applications_bp.route("/<application_id>/reject", methods=["POST"])
@login_required
def reject(application_id):
    body = json_body()
    return respond(application_store.reject(current_actor(), application_id, reason=body.get("reason")))
