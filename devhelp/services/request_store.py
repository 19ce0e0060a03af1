# devhelp/services/request_store.py
"""
Request Store: lifecycle of a client's help request.

Create, edit and cancel are initiated by the owning client. The move to
``approved`` belongs to the Application Store; the remaining work states
go through ``set_status``. Completed and cancelled requests are immutable
except for administrative deletion.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from flask_babel import gettext as _
from sqlalchemy import func

from ..context import Actor
from ..errors import (
    AlreadyTerminalError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
    as_result,
)
from ..extensions import db
from ..models import HelpRequest, HelpRequestMatch, RequestHistory, User
from ..models.status import (
    APP_APPROVED,
    APP_CANCELLED,
    APP_COMPLETED,
    APP_PENDING,
    BUDGET_RANGES,
    OPEN_FOR_APPLICATIONS,
    REQUEST_CANCELLED_BY_CLIENT,
    REQUEST_COMPLETED,
    REQUEST_PENDING,
    REQUEST_TRANSITIONS,
    URGENCY_LEVELS,
)
from .matching import calculate_ticket_priority, rank_developers

log = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "technical_area",
    "urgency",
    "communication_preference",
    "estimated_duration",
    "budget_range",
    "code_snippet",
})
PROTECTED_FIELDS = frozenset({
    "id",
    "client_id",
    "status",
    "selected_developer_id",
    "cancellation_reason",
    "created_at",
    "updated_at",
})

DEFAULT_URGENCY = "low"
DEFAULT_BUDGET = "Under $50"
DEFAULT_DURATION = 30


# -----------------
# Helpers
# -----------------

def _clean_str(val) -> str:
    return val.strip() if isinstance(val, str) else ""


def _clean_tags(val) -> List[str]:
    if isinstance(val, str):
        val = [val]
    if not isinstance(val, (list, tuple, set)):
        return []
    out = []
    for tag in val:
        tag = _clean_str(tag)
        if tag and tag not in out:
            out.append(tag)
    return out


def _to_positive_int(val) -> Optional[int]:
    if isinstance(val, bool):
        return None
    try:
        num = int(val)
    except (TypeError, ValueError, OverflowError):
        return None
    if isinstance(val, float) and val != num:
        return None
    return num if num > 0 else None


def _normalize(fields: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """Validate request fields; collects every problem before raising."""
    missing: List[str] = []
    invalid: List[str] = []
    out: Dict[str, Any] = {}

    def present(name):
        return not partial or name in fields

    for name in ("title", "description"):
        if present(name):
            val = _clean_str(fields.get(name))
            if not val:
                missing.append(name)
            else:
                out[name] = val

    for name in ("technical_area", "communication_preference"):
        if present(name):
            tags = _clean_tags(fields.get(name))
            if not tags:
                missing.append(name)
            else:
                out[name] = tags

    if "urgency" in fields or not partial:
        urgency = _clean_str(fields.get("urgency")) or DEFAULT_URGENCY
        if urgency not in URGENCY_LEVELS:
            invalid.append("urgency")
        out["urgency"] = urgency

    if "budget_range" in fields or not partial:
        budget = _clean_str(fields.get("budget_range")) or DEFAULT_BUDGET
        if budget not in BUDGET_RANGES:
            invalid.append("budget_range")
        out["budget_range"] = budget

    if "estimated_duration" in fields or not partial:
        raw = fields.get("estimated_duration")
        if raw in (None, "") and not partial:
            out["estimated_duration"] = DEFAULT_DURATION
        else:
            duration = _to_positive_int(raw)
            if duration is None:
                invalid.append("estimated_duration")
            out["estimated_duration"] = duration

    if "code_snippet" in fields:
        out["code_snippet"] = fields.get("code_snippet") or None

    if missing:
        raise ValidationError(
            _("Missing required fields: %(fields)s", fields=", ".join(missing)),
            fields=missing + invalid,
        )
    if invalid:
        raise ValidationError(
            _("Invalid values for: %(fields)s", fields=", ".join(invalid)),
            fields=invalid,
        )
    return out


def load_request(request_id: str) -> HelpRequest:
    req = db.session.get(HelpRequest, request_id) if request_id else None
    if req is None:
        raise NotFoundError(_("Help request not found."))
    return req


def _ensure_owner(actor: Actor, req: HelpRequest) -> None:
    if not actor.owns(req):
        raise PermissionDenied(_("Only the client who posted this request can do that."))


def _ensure_not_terminal(req: HelpRequest) -> None:
    if req.is_terminal:
        raise AlreadyTerminalError(
            _("This request is already %(status)s and can no longer be changed.", status=req.status)
        )


def record_history(req: HelpRequest, user_id: Optional[str], action_type: str,
                   previous_value=None, new_value=None) -> RequestHistory:
    entry = RequestHistory(
        ticket_id=req.id,
        user_id=user_id,
        action_type=action_type,
        previous_value=previous_value,
        new_value=new_value,
    )
    db.session.add(entry)
    return entry


def _with_priority(req: HelpRequest) -> dict:
    data = req.to_dict()
    prio = calculate_ticket_priority(req)
    data["priority_score"] = prio.score
    data["priority_level"] = prio.level
    return data


# -----------------
# Operations
# -----------------

@as_result
def create(actor: Actor, fields: Dict[str, Any]) -> dict:
    if not actor.is_client:
        raise PermissionDenied(_("Only clients can create help requests."))
    clean = _normalize(fields or {}, partial=False)

    req = HelpRequest(client_id=actor.user_id, status=REQUEST_PENDING, **clean)
    db.session.add(req)
    db.session.flush()  # ensures req.id is available
    record_history(req, actor.user_id, "created", None, REQUEST_PENDING)
    db.session.commit()

    log.info("Help request created id=%s client=%s", req.id, actor.user_id)
    return _with_priority(req)


@as_result
def get_for_client(actor: Actor, client_id: str, include_counts: bool = False) -> List[dict]:
    if actor.user_id != client_id and not actor.is_staff:
        raise PermissionDenied(_("You can only list your own requests."))

    rows = (
        HelpRequest.query
        .filter_by(client_id=client_id)
        .order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc())
        .all()
    )
    out = [_with_priority(r) for r in rows]
    if include_counts and rows:
        counts = dict(
            db.session.query(HelpRequestMatch.request_id, func.count(HelpRequestMatch.id))
            .filter(HelpRequestMatch.request_id.in_([r.id for r in rows]))
            .group_by(HelpRequestMatch.request_id)
            .all()
        )
        for item in out:
            item["application_count"] = int(counts.get(item["id"], 0))
    return out


@as_result
def get_by_id(actor: Actor, request_id: str) -> dict:
    return _with_priority(load_request(request_id))


@as_result
def list_public(actor: Optional[Actor] = None) -> List[dict]:
    rows = (
        HelpRequest.query
        .filter(HelpRequest.status.in_(sorted(OPEN_FOR_APPLICATIONS)))
        .order_by(HelpRequest.created_at.desc(), HelpRequest.id.desc())
        .all()
    )
    return [_with_priority(r) for r in rows]


@as_result
def update(actor: Actor, request_id: str, partial: Dict[str, Any]) -> dict:
    partial = dict(partial or {})
    protected = sorted(PROTECTED_FIELDS.intersection(partial))
    unknown = sorted(set(partial) - EDITABLE_FIELDS - PROTECTED_FIELDS)
    if protected or unknown:
        raise ValidationError(
            _("These fields cannot be edited: %(fields)s", fields=", ".join(protected + unknown)),
            fields=protected + unknown,
        )
    if not partial:
        raise ValidationError(_("Nothing to update."))
    clean = _normalize(partial, partial=True)

    req = load_request(request_id)
    _ensure_owner(actor, req)
    _ensure_not_terminal(req)

    changed = []
    for name, value in clean.items():
        if getattr(req, name) != value:
            setattr(req, name, value)
            changed.append(name)
    if changed:
        record_history(req, actor.user_id, "edited", None, ",".join(changed))
    db.session.commit()

    log.info("Help request updated id=%s fields=%s", req.id, changed)
    return _with_priority(req)


@as_result
def cancel(actor: Actor, request_id: str, reason: Optional[str] = None) -> dict:
    req = load_request(request_id)
    _ensure_owner(actor, req)
    _ensure_not_terminal(req)

    previous = req.status
    req.status = REQUEST_CANCELLED_BY_CLIENT
    req.cancellation_reason = _clean_str(reason) or None

    withdrawn = 0
    for app in req.applications:
        if app.status == APP_PENDING:
            app.status = APP_CANCELLED
            withdrawn += 1

    record_history(req, actor.user_id, "cancelled", previous, req.status)
    db.session.commit()

    log.info("Help request cancelled id=%s (pending applications cancelled: %s)", req.id, withdrawn)
    return req.to_dict()


@as_result
def set_status(actor: Actor, request_id: str, new_status: str) -> dict:
    req = load_request(request_id)
    if not (actor.owns(req) or actor.user_id == req.selected_developer_id):
        raise PermissionDenied(_("Only the client or the selected developer can change the status."))
    _ensure_not_terminal(req)

    allowed = REQUEST_TRANSITIONS.get(req.status, set())
    if new_status not in allowed:
        raise ConflictError(
            _("Cannot move a request from %(old)s to %(new)s.", old=req.status, new=new_status)
        )

    previous = req.status
    req.status = new_status
    if new_status == REQUEST_COMPLETED:
        for app in req.applications:
            if app.status == APP_APPROVED:
                app.status = APP_COMPLETED

    record_history(req, actor.user_id, "status_change", previous, new_status)
    db.session.commit()

    log.info("Help request id=%s status %s -> %s", req.id, previous, new_status)
    return req.to_dict()


@as_result
def delete(actor: Actor, request_id: str) -> dict:
    if not actor.is_staff:
        raise PermissionDenied(_("Only administrators can delete help requests."))
    req = load_request(request_id)
    data = req.to_dict()
    db.session.delete(req)
    db.session.commit()
    log.warning("Help request hard-deleted id=%s by staff=%s", request_id, actor.user_id)
    return data


@as_result
def get_history(actor: Actor, request_id: str) -> List[dict]:
    req = load_request(request_id)
    is_party = actor.owns(req) or actor.user_id == req.selected_developer_id
    if not (is_party or actor.is_staff):
        raise PermissionDenied(_("You do not have access to this request's history."))
    rows = req.history.order_by(RequestHistory.created_at.asc(), RequestHistory.id.asc()).all()
    return [h.to_dict() for h in rows]


@as_result
def recommend_developers(actor: Actor, request_id: str, expand: bool = False) -> List[dict]:
    req = load_request(request_id)
    if not (actor.owns(req) or actor.is_staff):
        raise PermissionDenied(_("Only the client who posted this request can see recommendations."))
    developers = User.query.filter_by(user_type="developer").all()
    out = []
    for m in rank_developers(req, developers, expand=expand):
        item = asdict(m)
        item["score"] = m.score
        out.append(item)
    return out
