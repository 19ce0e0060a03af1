# devhelp/blueprints/developers/routes.py
from flask import request
from flask_login import login_required

from ...services import profiles
from ..utils import respond
from . import developers_bp


@developers_bp.route("", methods=["GET"])
@login_required
def directory():
    """?q=&available=1&min_rate=&max_rate=&page=&page_size="""
    args = request.args
    return respond(profiles.search_developers(
        q=args.get("q"),
        available_only=(args.get("available") or "").strip().lower() in {"1", "true", "yes"},
        page=args.get("page", 1, type=int),
        page_size=args.get("page_size", type=int),
        min_rate=args.get("min_rate") or None,
        max_rate=args.get("max_rate") or None,
    ))


@developers_bp.route("/<developer_id>")
@login_required
def detail(developer_id):
    return respond(profiles.get_developer(developer_id))
