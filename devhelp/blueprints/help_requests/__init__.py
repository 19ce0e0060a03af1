from flask import Blueprint

requests_bp = Blueprint("help_requests", __name__)

from . import routes
