from flask import jsonify, request
from flask_login import current_user

from ..context import Actor
from ..errors import StoreResult


def current_actor() -> Actor:
    return Actor.from_user(current_user)


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def respond(res: StoreResult, created: bool = False):
    """StoreResult -> (json, status)."""
    status = res.http_status
    if created and res.success:
        status = 201
    return jsonify(res.to_dict()), status
