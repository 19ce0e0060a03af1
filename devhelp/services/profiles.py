# devhelp/services/profiles.py
"""
Profiles: editing your own profile and browsing the developer directory.

Base fields live on ``profiles``; skills, experience, hourly rate and
availability live on ``developer_profiles`` and can only be set by
developers.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from flask import current_app
from flask_babel import gettext as _
from sqlalchemy import cast, or_

from ..context import Actor
from ..errors import NotFoundError, PermissionDenied, ValidationError, as_result
from ..extensions import db
from ..models import DeveloperProfile, User

log = logging.getLogger(__name__)

BASE_FIELDS = ("name", "image", "description", "location")
DEVELOPER_FIELDS = ("skills", "experience", "hourly_rate", "availability")
# set by the system, never through profile edits
PROTECTED_FIELDS = frozenset({"id", "email", "user_type", "is_staff", "password_hash",
                              "rating", "online", "created_at", "updated_at"})
ALIASES = {"bio": "description", "avatar": "image"}

MAX_HOURLY_RATE = Decimal("99999.99")  # developer_profiles.hourly_rate is NUMERIC(7,2)
CENTS = Decimal("0.01")
FIELD_LIMITS = {"name": 120, "image": 512, "location": 120, "experience": 255}


def public_developer(user: User) -> Dict[str, Any]:
    """Directory card for one developer."""
    prof = user.developer_profile
    return {
        "id": user.id,
        "name": user.name,
        "image": user.image,
        "bio": user.description,
        "location": user.location,
        "skills": list(prof.skills or []) if prof else [],
        "experience": prof.experience if prof else None,
        "hourly_rate": float(prof.hourly_rate) if prof and prof.hourly_rate is not None else None,
        "rating": prof.rating if prof else None,
        "availability": bool(prof.availability) if prof else False,
        "online": bool(prof.online) if prof else False,
    }


# -----------------
# Field cleaning
# -----------------

def _clean_text(name: str, raw) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(_("%(field)s must be text.", field=name), fields=[name])
    val = raw.strip()
    limit = FIELD_LIMITS.get(name)
    if limit and len(val) > limit:
        raise ValidationError(_("%(field)s is too long (max %(limit)s characters).", field=name, limit=limit),
                              fields=[name])
    return val or None


def _clean_skills(raw) -> List[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(_("skills must be a list."), fields=["skills"])
    out: List[str] = []
    for skill in raw:
        skill = skill.strip() if isinstance(skill, str) else ""
        if skill and skill not in out:
            out.append(skill)
    return out


def _clean_hourly_rate(raw, field: str = "hourly_rate") -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    bad = ValidationError(_("Hourly rate must be a number between 0 and %(max)s.", max=MAX_HOURLY_RATE),
                          fields=[field])
    if isinstance(raw, bool):
        raise bad
    try:
        rate = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise bad
    if not rate.is_finite() or rate < 0 or rate > MAX_HOURLY_RATE:
        raise bad
    return rate.quantize(CENTS, rounding=ROUND_HALF_UP)


def _normalize(user: User, fields: Dict[str, Any]) -> Dict[str, Any]:
    fields = {ALIASES.get(k, k): v for k, v in (fields or {}).items()}

    protected = sorted(k for k in fields if k in PROTECTED_FIELDS)
    if protected:
        raise ValidationError(_("These fields cannot be edited: %(fields)s", fields=", ".join(protected)),
                              fields=protected)
    unknown = sorted(k for k in fields if k not in BASE_FIELDS and k not in DEVELOPER_FIELDS)
    if unknown:
        raise ValidationError(_("Unknown fields: %(fields)s", fields=", ".join(unknown)), fields=unknown)
    dev_only = sorted(k for k in fields if k in DEVELOPER_FIELDS)
    if dev_only and not user.is_developer:
        raise ValidationError(_("Only developers have %(fields)s.", fields=", ".join(dev_only)),
                              fields=dev_only)

    out: Dict[str, Any] = {}
    for name in ("name", "image", "description", "location", "experience"):
        if name in fields:
            out[name] = _clean_text(name, fields[name])
    if "name" in out and not out["name"]:
        raise ValidationError(_("Name cannot be empty."), fields=["name"])
    if "skills" in fields:
        out["skills"] = _clean_skills(fields["skills"])
    if "hourly_rate" in fields:
        out["hourly_rate"] = _clean_hourly_rate(fields["hourly_rate"])
    if "availability" in fields:
        if not isinstance(fields["availability"], bool):
            raise ValidationError(_("availability must be true or false."), fields=["availability"])
        out["availability"] = fields["availability"]
    return out


# -----------------
# Operations
# -----------------

@as_result
def update_profile(actor: Actor, fields: Dict[str, Any], user_id: Optional[str] = None) -> dict:
    user_id = user_id or actor.user_id
    if user_id != actor.user_id and not actor.is_staff:
        raise PermissionDenied(_("You can only edit your own profile."))
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(_("User not found."))

    clean = _normalize(user, fields)
    if not clean:
        raise ValidationError(_("Nothing to update."))

    for name in BASE_FIELDS:
        if name in clean:
            setattr(user, name, clean[name])

    dev_fields = {k: v for k, v in clean.items() if k in DEVELOPER_FIELDS}
    if dev_fields:
        prof = user.developer_profile
        if prof is None:
            prof = DeveloperProfile(user_id=user.id, skills=[], availability=True)
            db.session.add(prof)
            user.developer_profile = prof
        for name, value in dev_fields.items():
            setattr(prof, name, value)

    db.session.commit()
    log.info("Profile updated id=%s fields=%s", user.id, ",".join(sorted(clean)))
    data = user.to_dict()
    if user.is_developer:
        data["developer_profile"] = public_developer(user)
    return data


@as_result
def get_developer(developer_id: str) -> dict:
    user = db.session.get(User, developer_id) if developer_id else None
    if user is None or not user.is_developer:
        raise NotFoundError(_("Developer not found."))
    return public_developer(user)


@as_result
def search_developers(q: Optional[str] = None, available_only: bool = False,
                      page: int = 1, page_size: Optional[int] = None,
                      min_rate=None, max_rate=None) -> dict:
    """One page of the developer directory, newest profiles first."""
    max_page_size = current_app.config.get("DIRECTORY_MAX_PAGE_SIZE", 50)
    page_size = page_size or current_app.config.get("DIRECTORY_PAGE_SIZE", 12)
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError(_("page must be a positive number."), fields=["page"])
    if isinstance(page_size, bool) or not isinstance(page_size, int) or not 1 <= page_size <= max_page_size:
        raise ValidationError(_("page_size must be between 1 and %(max)s.", max=max_page_size),
                              fields=["page_size"])

    qry = (
        User.query
        .outerjoin(DeveloperProfile, DeveloperProfile.user_id == User.id)
        .filter(User.user_type == "developer")
    )
    q = (q or "").strip()
    if q:
        like = f"%{q}%"
        qry = qry.filter(or_(
            User.name.ilike(like),
            User.description.ilike(like),
            cast(DeveloperProfile.skills, db.String).ilike(like),
        ))
    if available_only:
        qry = qry.filter(DeveloperProfile.availability.is_(True))
    if min_rate is not None:
        qry = qry.filter(DeveloperProfile.hourly_rate >= _clean_hourly_rate(min_rate, "min_rate"))
    if max_rate is not None:
        qry = qry.filter(DeveloperProfile.hourly_rate <= _clean_hourly_rate(max_rate, "max_rate"))

    pager = (
        qry.order_by(User.created_at.desc(), User.id.desc())
        .paginate(page=page, per_page=page_size, error_out=False)
    )
    return {
        "items": [public_developer(u) for u in pager.items],
        "total": pager.total,
        "page": page,
        "page_size": page_size,
        "has_more": pager.has_next,
    }
