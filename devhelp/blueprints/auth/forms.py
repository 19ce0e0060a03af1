# devhelp/blueprints/auth/forms.py
from __future__ import annotations

from flask_wtf import FlaskForm
from wtforms import BooleanField, PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Regexp, ValidationError

from ...models.user import User


# ---------------------
# Validators / Helpers
# ---------------------

PASSWORD_VALIDATORS = [
    DataRequired(),
    Length(min=8, message="Password must be at least 8 characters."),
    Regexp(r"^(?=.*[A-Za-z])(?=.*\d).+$", message="Use letters and numbers."),
]


def _email_exists(email: str) -> bool:
    return User.query.filter(User.email == (email or "").lower().strip()).first() is not None


class JSONForm(FlaskForm):
    """Forms fed from a JSON body; the API uses the session cookie, not form tokens."""

    class Meta:
        csrf = False

    def error_fields(self) -> list[str]:
        return sorted(self.errors)

    def first_error(self) -> str:
        for name in self.error_fields():
            msgs = self.errors[name]
            if msgs:
                return f"{name}: {msgs[0]}"
        return "Invalid input."


# -------------
# Auth Forms
# -------------

class RegisterForm(JSONForm):
    name = StringField("Full name", validators=[DataRequired(), Length(max=120)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    user_type = SelectField(
        "Account type",
        choices=[("client", "Client"), ("developer", "Developer")],
        validators=[DataRequired()],
        default="client",
    )
    password = PasswordField("Password", validators=PASSWORD_VALIDATORS)

    # developer profile (optional)
    experience = StringField("Experience", validators=[Length(max=255)])
    location = StringField("Location", validators=[Length(max=120)])

    def validate_email(self, field):
        if _email_exists(field.data):
            raise ValidationError("This email is already registered.")


class LoginForm(JSONForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember = BooleanField("Keep me signed in")
