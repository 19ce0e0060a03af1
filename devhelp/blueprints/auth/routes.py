# devhelp/blueprints/auth/routes.py
import logging

from flask import jsonify
from flask_babel import gettext as _
from flask_login import current_user, login_required, login_user, logout_user

from ...extensions import db
from ...models.user import DeveloperProfile, User
from ...services import profiles
from ..utils import current_actor, json_body, respond
from . import auth_bp
from .forms import LoginForm, RegisterForm

log = logging.getLogger(__name__)


def _form_error(form, status=400):
    return jsonify(success=False, error=form.first_error(), code="validation",
                   fields=form.error_fields()), status


def _me(user: User) -> dict:
    data = user.to_dict()
    prof = user.developer_profile
    if prof is not None:
        data["developer_profile"] = {
            "skills": list(prof.skills or []),
            "experience": prof.experience,
            "hourly_rate": float(prof.hourly_rate) if prof.hourly_rate is not None else None,
            "rating": prof.rating,
            "availability": bool(prof.availability),
            "online": bool(prof.online),
        }
    return data


# -----------------
# Register
# -----------------

@auth_bp.route("/register", methods=["POST"])
def register():
    form = RegisterForm()
    if not form.validate_on_submit():
        return _form_error(form)

    body = json_body()
    user = User(
        name=form.name.data.strip(),
        email=form.email.data.strip().lower(),
        user_type=form.user_type.data,
        location=(form.location.data or "").strip() or None,
    )
    user.set_password(form.password.data)
    db.session.add(user)
    db.session.flush()  # get user.id

    if user.is_developer:
        skills = body.get("skills") or []
        if isinstance(skills, str):
            skills = [s.strip() for s in skills.split(",")]
        db.session.add(DeveloperProfile(
            user_id=user.id,
            skills=[s for s in skills if isinstance(s, str) and s.strip()],
            experience=(form.experience.data or "").strip() or None,
            availability=True,
        ))

    db.session.commit()
    log.info("Registered %s id=%s", user.user_type, user.id)
    return jsonify(success=True, data=_me(user)), 201


# -----------------
# Login / Logout
# -----------------

@auth_bp.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return _form_error(form)

    email = form.email.data.strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        log.info("Failed login for %s", email)
        return jsonify(success=False, error=_("Invalid email or password."), code="unauthenticated"), 401

    login_user(user, remember=bool(form.remember.data))
    if user.developer_profile is not None:
        user.developer_profile.online = True
        db.session.commit()
    return jsonify(success=True, data=_me(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    if current_user.developer_profile is not None:
        current_user.developer_profile.online = False
        db.session.commit()
    logout_user()
    return jsonify(success=True, data=None)


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(success=True, data=_me(current_user))


@auth_bp.route("/me", methods=["PATCH"])
@login_required
def update_me():
    res = profiles.update_profile(current_actor(), json_body())
    if not res.success:
        return respond(res)
    return jsonify(success=True, data=_me(current_user))
