# devhelp/services/application_store.py
"""
Application Store: developers apply to help requests, clients approve or
reject them.

Approving an application is the only way a request reaches ``approved``.
The three writes involved (approve the application, select the developer
on the request, reject the pending siblings) commit together, and the
``uq_match_one_approved`` index keeps two concurrent approvals from both
landing.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from flask_babel import gettext as _
from sqlalchemy import exc as sa_exc

from ..context import Actor
from ..errors import (
    AlreadyTerminalError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
    as_result,
    translate_db_error,
)
from ..extensions import db, feed
from ..models import HelpRequest, HelpRequestMatch, User
from ..models.status import (
    APP_APPROVED,
    APP_PENDING,
    APP_REJECTED,
    ENTITY_APPLICATION,
    ENTITY_APPLICATION_STATUS,
    NOTIFY_APPLICATION_APPROVED,
    NOTIFY_APPLICATION_REJECTED,
    NOTIFY_NEW_APPLICATION,
    OPEN_FOR_APPLICATIONS,
    REQUEST_APPROVED,
    REQUEST_MATCHING,
    REQUEST_PENDING,
)
from ..realtime import INSERT, UPDATE, Subscription
from .matching import match_developer_to_request
from .notifications import add_notification, send_email_copies
from .profiles import public_developer
from .request_store import load_request, record_history

log = logging.getLogger(__name__)

CENTS = Decimal("0.01")
UNKNOWN_DEVELOPER = "Unknown Developer"


# -----------------
# Helpers
# -----------------

def _clean_rate(raw) -> Optional[Decimal]:
    """Round to cents and clamp to the column ceiling."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError(_("Proposed rate must be a number."), fields=["proposed_rate"])
    try:
        rate = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(_("Proposed rate must be a number."), fields=["proposed_rate"])
    if not rate.is_finite():
        raise ValidationError(_("Proposed rate must be a number."), fields=["proposed_rate"])
    if rate < 0:
        raise ValidationError(_("Proposed rate cannot be negative."), fields=["proposed_rate"])

    ceiling = Decimal(str(current_app.config.get("MAX_PROPOSED_RATE", "999.99")))
    # clamp before rounding: quantize fails on values wider than the context precision
    if rate > ceiling:
        log.info("Proposed rate %s clamped to %s", raw, ceiling)
        rate = ceiling
    return rate.quantize(CENTS, rounding=ROUND_HALF_UP)


def _clean_duration(raw) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        num = int(raw)
    except (TypeError, ValueError, OverflowError):
        num = 0
    if isinstance(raw, bool) or (isinstance(raw, float) and raw != num) or num <= 0:
        raise ValidationError(_("Proposed duration must be a positive number of minutes."),
                              fields=["proposed_duration"])
    return num


def _load_application(application_id: str) -> HelpRequestMatch:
    app = db.session.get(HelpRequestMatch, application_id) if application_id else None
    if app is None:
        raise NotFoundError(_("Application not found."))
    return app


def _public_profile(user: Optional[User]) -> Dict[str, Any]:
    if user is None:
        return {
            "id": None,
            "name": UNKNOWN_DEVELOPER,
            "image": None,
            "bio": None,
            "location": None,
            "skills": [],
            "experience": None,
            "hourly_rate": None,
            "rating": None,
            "availability": False,
            "online": False,
            "is_placeholder": True,
        }
    data = public_developer(user)
    data["is_placeholder"] = False
    return data


def _match_score(developer: Optional[User], req: HelpRequest) -> float:
    if developer is None or developer.developer_profile is None:
        return float(current_app.config.get("DEFAULT_MATCH_SCORE", 0.8))
    return match_developer_to_request(developer, req).score


def _find_application(request_id: str, developer_id: str) -> Optional[HelpRequestMatch]:
    return HelpRequestMatch.query.filter_by(request_id=request_id, developer_id=developer_id).first()


def _resubmit(existing: HelpRequestMatch, message: Optional[str], rate, duration) -> dict:
    """Update a pending application in place; no new notification."""
    if existing.status != APP_PENDING:
        raise ConflictError(
            _("Your application was already %(status)s and can no longer be changed.",
              status=existing.status)
        )
    existing.proposed_message = message
    existing.proposed_rate = rate
    existing.proposed_duration = duration
    db.session.commit()
    log.info("Application resubmitted id=%s request=%s", existing.id, existing.request_id)
    data = existing.to_dict()
    data["is_update"] = True
    return data


def _flush_step(step: str) -> None:
    """Flush one approval step, naming it if the database refuses."""
    try:
        db.session.flush()
    except sa_exc.SQLAlchemyError as e:
        db.session.rollback()
        err = translate_db_error(e)
        err.message = _("%(step)s failed: %(reason)s", step=step, reason=err.message)
        raise err from e


# -----------------
# Operations
# -----------------

@as_result
def submit(actor: Actor, request_id: str, developer_id: str, message: Optional[str] = None,
           proposed_rate=None, proposed_duration=None) -> dict:
    if not request_id or not developer_id:
        missing = [n for n, v in (("request_id", request_id), ("developer_id", developer_id)) if not v]
        raise ValidationError(_("Missing required fields: %(fields)s", fields=", ".join(missing)),
                              fields=missing)
    if actor.user_id != developer_id or not actor.is_developer:
        raise PermissionDenied(_("Only the applying developer can submit this application."))

    rate = _clean_rate(proposed_rate)
    duration = _clean_duration(proposed_duration)
    message = message.strip() if isinstance(message, str) and message.strip() else None

    req = load_request(request_id)
    if req.status not in OPEN_FOR_APPLICATIONS:
        raise ConflictError(_("This request is no longer accepting applications."))

    existing = _find_application(req.id, developer_id)
    if existing is not None:
        return _resubmit(existing, message, rate, duration)

    developer = db.session.get(User, developer_id)
    app = HelpRequestMatch(
        request_id=req.id,
        developer_id=developer_id,
        status=APP_PENDING,
        proposed_message=message,
        proposed_rate=rate,
        proposed_duration=duration,
        match_score=_match_score(developer, req),
    )
    db.session.add(app)
    try:
        db.session.flush()
    except sa_exc.IntegrityError:
        # a concurrent first submission won the unique (request, developer) slot
        db.session.rollback()
        existing = _find_application(request_id, developer_id)
        if existing is None:
            raise
        return _resubmit(existing, message, rate, duration)

    if req.status == REQUEST_PENDING:
        record_history(req, actor.user_id, "status_change", req.status, REQUEST_MATCHING)
        req.status = REQUEST_MATCHING

    developer_name = developer.name if developer else UNKNOWN_DEVELOPER
    note = add_notification(
        user_id=req.client_id,
        entity_type=ENTITY_APPLICATION,
        notification_type=NOTIFY_NEW_APPLICATION,
        related_entity_id=req.id,
        title=_("New application"),
        message=_("%(name)s applied to help with \"%(title)s\".", name=developer_name, title=req.title),
        action_data={
            "application_id": app.id,
            "developer_id": developer_id,
            "developer_name": developer_name,
            "request_id": req.id,
            "request_title": req.title,
        },
    )
    db.session.commit()
    send_email_copies([note])

    log.info("Application submitted id=%s request=%s developer=%s", app.id, req.id, developer_id)
    data = app.to_dict()
    data["is_update"] = False
    return data


@as_result
def list_for_request(actor: Actor, request_id: str) -> List[dict]:
    req = load_request(request_id)
    if not (actor.owns(req) or actor.is_staff):
        raise PermissionDenied(_("Only the client who posted this request can view its applications."))

    rows = (
        HelpRequestMatch.query
        .filter_by(request_id=req.id)
        .order_by(HelpRequestMatch.created_at.desc(), HelpRequestMatch.id.desc())
        .all()
    )
    out = []
    for app in rows:
        item = app.to_dict()
        item["developer"] = _public_profile(app.developer)
        out.append(item)
    return out


@as_result
def list_for_developer(actor: Actor, developer_id: str) -> List[dict]:
    if actor.user_id != developer_id and not actor.is_staff:
        raise PermissionDenied(_("You can only list your own applications."))
    rows = (
        HelpRequestMatch.query
        .filter_by(developer_id=developer_id)
        .order_by(HelpRequestMatch.created_at.desc(), HelpRequestMatch.id.desc())
        .all()
    )
    out = []
    for app in rows:
        item = app.to_dict()
        item["request"] = app.request.to_dict() if app.request else None
        out.append(item)
    return out


@as_result
def approve(actor: Actor, application_id: str) -> dict:
    app = _load_application(application_id)
    req = app.request
    if req is None:
        raise NotFoundError(_("Help request not found."))
    if not actor.owns(req):
        raise PermissionDenied(_("Only the client who posted this request can approve applications."))
    if req.is_terminal:
        raise AlreadyTerminalError(
            _("This request is already %(status)s and can no longer be changed.", status=req.status)
        )

    already = app.status == APP_APPROVED
    if already and req.selected_developer_id not in (None, app.developer_id):
        raise ConflictError(_("Another developer has already been selected for this request."))
    if not already:
        if app.status != APP_PENDING:
            raise ConflictError(
                _("Only pending applications can be approved (this one is %(status)s).", status=app.status)
            )
        others = [a for a in req.applications if a.id != app.id and a.status == APP_APPROVED]
        if others:
            raise ConflictError(_("Another application has already been approved for this request."))

    # approve the application
    app.status = APP_APPROVED
    _flush_step(_("Approving the application"))

    # select the developer on the request
    if req.status in OPEN_FOR_APPLICATIONS:
        record_history(req, actor.user_id, "application_approved", req.status, REQUEST_APPROVED)
        req.status = REQUEST_APPROVED
    req.selected_developer_id = app.developer_id
    _flush_step(_("Updating the help request"))

    # reject every sibling still pending
    rejected = [a for a in req.applications if a.id != app.id and a.status == APP_PENDING]
    for sibling in rejected:
        sibling.status = APP_REJECTED
    _flush_step(_("Rejecting the other applications"))

    notes = []
    if not already:
        notes.append(add_notification(
            user_id=app.developer_id,
            entity_type=ENTITY_APPLICATION_STATUS,
            notification_type=NOTIFY_APPLICATION_APPROVED,
            related_entity_id=req.id,
            title=_("Application approved"),
            message=_("Your application for \"%(title)s\" was approved.", title=req.title),
            action_data={"application_id": app.id, "request_id": req.id, "request_title": req.title},
        ))
    for sibling in rejected:
        notes.append(add_notification(
            user_id=sibling.developer_id,
            entity_type=ENTITY_APPLICATION_STATUS,
            notification_type=NOTIFY_APPLICATION_REJECTED,
            related_entity_id=req.id,
            title=_("Application not selected"),
            message=_("Another developer was selected for \"%(title)s\".", title=req.title),
            action_data={"application_id": sibling.id, "request_id": req.id, "request_title": req.title},
        ))
    db.session.commit()
    send_email_copies(notes)

    log.info("Application approved id=%s request=%s (siblings rejected: %s, re-run: %s)",
             app.id, req.id, len(rejected), already)
    return {
        "application": app.to_dict(),
        "request": req.to_dict(),
        "rejected_application_ids": [a.id for a in rejected],
        "already_approved": already,
    }


@as_result
def reject(actor: Actor, application_id: str, reason: Optional[str] = None) -> dict:
    app = _load_application(application_id)
    req = app.request
    if req is None or not actor.owns(req):
        raise PermissionDenied(_("Only the client who posted this request can reject applications."))
    if app.status != APP_PENDING:
        raise ConflictError(
            _("Only pending applications can be rejected (this one is %(status)s).", status=app.status)
        )

    app.status = APP_REJECTED
    reason = reason.strip() if isinstance(reason, str) and reason.strip() else None
    note = add_notification(
        user_id=app.developer_id,
        entity_type=ENTITY_APPLICATION_STATUS,
        notification_type=NOTIFY_APPLICATION_REJECTED,
        related_entity_id=req.id,
        title=_("Application not selected"),
        message=_("Your application for \"%(title)s\" was declined.", title=req.title),
        action_data={
            "application_id": app.id,
            "request_id": req.id,
            "request_title": req.title,
            "reason": reason,
        },
    )
    db.session.commit()
    send_email_copies([note])

    log.info("Application rejected id=%s request=%s", app.id, req.id)
    return app.to_dict()


@as_result
def check_status(actor: Actor, request_id: str, developer_id: str) -> Optional[str]:
    if not request_id or not developer_id:
        return None
    if actor.user_id != developer_id and not actor.is_staff:
        req = db.session.get(HelpRequest, request_id)
        if req is None or not actor.owns(req):
            raise PermissionDenied(_("You cannot view this application."))
    app = HelpRequestMatch.query.filter_by(request_id=request_id, developer_id=developer_id).first()
    return app.status if app else None


def subscribe(request_id: str, on_change: Callable[[str, dict], None]) -> Subscription:
    """Inserts and updates of one request's applications, as (event, row)."""
    if not request_id:
        raise ValueError("request_id is required for an applications subscription")
    return feed.subscribe(
        "help_request_matches",
        f"request_id=eq.{request_id}",
        lambda change: on_change(change.event, change.row),
        events=(INSERT, UPDATE),
    )
