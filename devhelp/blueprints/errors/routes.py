import logging

from flask import jsonify, request
from flask_babel import gettext as _
from werkzeug.exceptions import HTTPException

from ...extensions import db
from . import errors_bp

log = logging.getLogger(__name__)


def _error(code: int, message: str, kind: str):
    return jsonify(success=False, error=message, code=kind), code


# 401 – Unauthorized
@errors_bp.app_errorhandler(401)
def err_401(e):
    return _error(401, _("Please sign in first."), "unauthenticated")


# 403 – Forbidden
@errors_bp.app_errorhandler(403)
def err_403(e):
    return _error(403, e.description or _("Forbidden."), "permission")


# 404 – Not Found
@errors_bp.app_errorhandler(404)
def err_404(e):
    return _error(404, _("No such endpoint: %(path)s", path=request.path), "not_found")


# 405 – Method Not Allowed
@errors_bp.app_errorhandler(405)
def err_405(e):
    return _error(405, _("%(method)s is not allowed here.", method=request.method), "method_not_allowed")


# 413 – Payload Too Large
@errors_bp.app_errorhandler(413)
def err_413(e):
    return _error(413, _("Request body is too large."), "too_large")


# 500 – Internal Server Error
@errors_bp.app_errorhandler(500)
def err_500(e):
    # if a DB action caused this, rollback so the session isn't stuck in a bad transaction
    db.session.rollback()
    return _error(500, _("Something went wrong. Please try again."), "unexpected")


# Fallback for uncaught HTTPException
@errors_bp.app_errorhandler(HTTPException)
def err_http(e: HTTPException):
    return _error(e.code, e.description or e.name, e.name.lower().replace(" ", "_"))


# Last-resort: any other Exception
@errors_bp.app_errorhandler(Exception)
def err_unexpected(e):
    db.session.rollback()
    log.exception("Unhandled error on %s %s", request.method, request.path)
    # Don't leak internals, just a generic 500
    return _error(500, _("Something went wrong. Please try again."), "unexpected")
