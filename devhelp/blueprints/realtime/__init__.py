from flask import Blueprint

realtime_bp = Blueprint("realtime", __name__)

from . import routes
