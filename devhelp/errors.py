"""
Store error taxonomy and the uniform result shape.

Store functions raise the typed errors below internally; the ``as_result``
decorator turns every outcome into a ``StoreResult`` so that typed
exceptions never cross the store boundary. Callers branch on
``result.success`` and show ``result.error``.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from flask_babel import gettext as _
from sqlalchemy import exc as sa_exc

from .extensions import db

log = logging.getLogger(__name__)


class StoreError(Exception):
    code = "unexpected"

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StoreError):
    """Missing or malformed input, raised before any database work."""
    code = "validation"

    def __init__(self, message: str = "", fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])


class PermissionDenied(StoreError):
    code = "permission"


class NotFoundError(StoreError):
    code = "not_found"


class ConflictError(StoreError):
    code = "conflict"


class AlreadyTerminalError(StoreError):
    code = "already_terminal"


class StoreTimeoutError(StoreError):
    code = "timeout"


class UnexpectedError(StoreError):
    code = "unexpected"


# Codes that mean "try again later" to a caller.
TRANSIENT_CODES = frozenset({StoreTimeoutError.code})

# HTTP status per error code, used by the JSON API.
HTTP_STATUS = {
    ValidationError.code: 400,
    PermissionDenied.code: 403,
    NotFoundError.code: 404,
    ConflictError.code: 409,
    AlreadyTerminalError.code: 409,
    StoreTimeoutError.code: 504,
    UnexpectedError.code: 500,
}


@dataclass
class StoreResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None
    fields: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None) -> "StoreResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, err: StoreError) -> "StoreResult":
        return cls(
            success=False,
            error=err.message or _("Something went wrong. Please try again."),
            code=err.code,
            fields=list(getattr(err, "fields", []) or []),
        )

    @property
    def retryable(self) -> bool:
        return self.code in TRANSIENT_CODES

    @property
    def http_status(self) -> int:
        return 200 if self.success else HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        body = {"success": False, "error": self.error, "code": self.code}
        if self.fields:
            body["fields"] = self.fields
        if self.retryable:
            body["retry"] = True
        return body


def _is_statement_timeout(err: sa_exc.OperationalError) -> bool:
    msg = str(getattr(err, "orig", err)).lower()
    return "statement timeout" in msg or "canceling statement" in msg or "timed out" in msg


def translate_db_error(err: Exception) -> StoreError:
    """Map a SQLAlchemy failure onto the store taxonomy."""
    if isinstance(err, sa_exc.IntegrityError):
        return ConflictError(_("The change conflicts with the current state of the record."))
    if isinstance(err, sa_exc.TimeoutError):
        return StoreTimeoutError(_("The database did not respond in time. Please retry."))
    if isinstance(err, sa_exc.OperationalError) and _is_statement_timeout(err):
        return StoreTimeoutError(_("The database did not respond in time. Please retry."))
    return UnexpectedError(_("Something went wrong. Please try again."))


def as_result(fn: Callable[..., Any]) -> Callable[..., StoreResult]:
    """
    Run a store operation and wrap its outcome in a StoreResult.

    The session is rolled back on any failure. Expected failures are logged
    at WARNING; everything else is logged with the traceback.
    """
    op = fn.__qualname__

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> StoreResult:
        try:
            return StoreResult.ok(fn(*args, **kwargs))
        except StoreError as e:
            db.session.rollback()
            log.warning("%s failed [%s]: %s", op, e.code, e.message)
            return StoreResult.fail(e)
        except sa_exc.SQLAlchemyError as e:
            db.session.rollback()
            mapped = translate_db_error(e)
            if isinstance(mapped, UnexpectedError):
                log.exception("%s failed with database error: %s", op, e)
            else:
                log.warning("%s failed [%s]: %s", op, mapped.code, e)
            return StoreResult.fail(mapped)
        except Exception as e:
            db.session.rollback()
            log.exception("%s failed unexpectedly: %s", op, e)
            return StoreResult.fail(UnexpectedError(""))

    wrapper.raw = fn
    return wrapper
