import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import json_log_formatter
import sentry_sdk
from flask import Flask, has_request_context, jsonify, request, session
from flask_babel import gettext as _
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from .extensions import db, migrate, login_manager, mail, babel, feed
from .config import Config
from .models.user import User

# Blueprints
from .blueprints.errors import errors_bp
from .blueprints.auth import auth_bp
from .blueprints.help_requests import requests_bp
from .blueprints.applications import applications_bp
from .blueprints.notifications import notifications_bp
from .blueprints.chat import chat_bp
from .blueprints.realtime import realtime_bp
from .blueprints.developers import developers_bp


# Optional: Sentry
def _init_sentry(app):
    dsn = app.config.get("SENTRY_DSN")
    if not dsn:
        return
    try:
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.0),
            environment=os.getenv("ENV", "development"),
            release=os.getenv("GIT_COMMIT", None),
            send_default_pii=False,
        )
        app.logger.info("Sentry initialized.")
    except Exception as e:
        app.logger.warning(f"Sentry init failed: {e}")


def _init_logging(app):
    level_name = app.config.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    log_dir = Path(app.config.get("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / app.config.get("LOG_FILENAME", "devhelp.log")

    # Formatter: text or JSON
    if app.config.get("LOG_JSON", False):
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")

    # Rotating file handler (5MB x 5)
    file_handler = RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    # Stream to stdout as well (useful on dev/docker)
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)

    # app.logger is the "devhelp" logger, parent of every store logger.
    # Handlers from an earlier create_app() in the same process are replaced.
    for old in [h for h in app.logger.handlers if getattr(h, "_devhelp", False)]:
        app.logger.removeHandler(old)
        old.close()
    app.logger.setLevel(level)
    for handler in (file_handler, stream_handler):
        handler._devhelp = True
        app.logger.addHandler(handler)

    app.logger.info("Logging initialized.")


def _engine_options(app):
    """Bound each store call: pool checkout everywhere, statements on PostgreSQL."""
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    if uri.startswith("sqlite"):
        return opts
    opts.setdefault("pool_timeout", app.config.get("DB_POOL_TIMEOUT", 10))
    opts.setdefault("pool_pre_ping", True)
    if uri.startswith("postgres"):
        ms = int(app.config.get("DB_STATEMENT_TIMEOUT_MS", 10000))
        connect_args = dict(opts.get("connect_args") or {})
        connect_args.setdefault("options", f"-c statement_timeout={ms}")
        opts["connect_args"] = connect_args
    return opts


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.config.setdefault("SECRET_KEY", "change-me")
    app.config.setdefault(
        "SQLALCHEMY_DATABASE_URI",
        "sqlite:///" + os.path.join(app.instance_path, "devhelp.db"),
    )
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)

    # i18n defaults (Babel)
    app.config.setdefault("BABEL_DEFAULT_LOCALE", "en")
    app.config.setdefault("BABEL_DEFAULT_TIMEZONE", "UTC")
    app.config.setdefault("LANGUAGES", ["en", "fr", "de", "sw"])

    # JSON bodies only; responses keep insertion order
    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)
    app.json.sort_keys = False

    app.config.from_pyfile("config.py", silent=True)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    mail.init_app(app)
    feed.init_app(app)

    # ---- Babel init (locale from session/Accept-Language) ----
    def _select_locale():
        if not has_request_context():
            return app.config["BABEL_DEFAULT_LOCALE"]
        return (
            session.get("lang")
            or request.accept_languages.best_match(app.config.get("LANGUAGES", ["en"]))
            or "en"
        )
    babel.init_app(app, locale_selector=_select_locale)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify(success=False, error=_("Please sign in first."), code="unauthenticated"), 401

    # Logging must come before blueprints so errors during register are captured
    _init_logging(app)
    _init_sentry(app)

    # Blueprints
    app.register_blueprint(errors_bp)  # error handlers
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(requests_bp, url_prefix="/requests")
    app.register_blueprint(applications_bp, url_prefix="/applications")
    app.register_blueprint(notifications_bp, url_prefix="/notifications")
    app.register_blueprint(chat_bp, url_prefix="/chat")
    app.register_blueprint(realtime_bp, url_prefix="/realtime")
    app.register_blueprint(developers_bp, url_prefix="/developers")

    @app.route("/health")
    def health():
        return jsonify(status="ok", version=app.config.get("APP_VERSION"))

    return app
