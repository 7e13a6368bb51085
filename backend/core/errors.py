# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Expected-failure vocabulary shared by every service.

Services never raise for an expected outcome (wrong password, expired code,
unknown employee id).  They return a :class:`Result`; the routers translate a
failed result into an ``HTTPException`` via :func:`http_error`, which is the
single place where error kinds are collapsed into the generic messages the
client sees.

Unexpected faults (database down, misconfiguration) are *not* modelled here;
they propagate as ordinary exceptions and surface as 5xx.
"""

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from fastapi import HTTPException, status

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    INVALID_TWO_FACTOR_REQUEST = "invalid_two_factor_request"
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    INVALID_OR_EXPIRED_RESET_LINK = "invalid_or_expired_reset_link"
    INVALID_CURRENT_PASSWORD = "invalid_current_password"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    # Only surfaced for kinds that are allowed to be specific (see _PUBLIC)
    detail: Optional[str] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, detail: Optional[str] = None) -> "Result[T]":
        return cls(error=Failure(kind, detail))


# Generic message used for "no such email", "wrong password", "locked",
# "disabled" and "unconfirmed" alike
LOGIN_FAIL = "Invalid email or password"

# kind -> (HTTP status, client-facing message)
_HTTP_MAP = {
    ErrorKind.INVALID_CREDENTIALS: (status.HTTP_401_UNAUTHORIZED, LOGIN_FAIL),
    ErrorKind.ACCOUNT_LOCKED: (status.HTTP_401_UNAUTHORIZED, LOGIN_FAIL),
    ErrorKind.EMAIL_NOT_CONFIRMED: (status.HTTP_401_UNAUTHORIZED, LOGIN_FAIL),
    ErrorKind.INVALID_TWO_FACTOR_REQUEST: (status.HTTP_400_BAD_REQUEST, "Invalid two-factor request"),
    ErrorKind.INVALID_OR_EXPIRED_CODE: (status.HTTP_400_BAD_REQUEST, "Invalid or expired code"),
    ErrorKind.INVALID_OR_EXPIRED_RESET_LINK: (status.HTTP_400_BAD_REQUEST, "Invalid or expired reset link"),
    ErrorKind.INVALID_CURRENT_PASSWORD: (status.HTTP_400_BAD_REQUEST, "Current password is incorrect"),
    ErrorKind.UNAUTHENTICATED: (status.HTTP_401_UNAUTHORIZED, "Invalid or expired token"),
    ErrorKind.FORBIDDEN: (status.HTTP_403_FORBIDDEN, "Access denied"),
    ErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Not found"),
    ErrorKind.VALIDATION_ERROR: (status.HTTP_400_BAD_REQUEST, "Invalid request"),
    ErrorKind.CONFLICT: (status.HTTP_409_CONFLICT, "Conflict"),
}

# Kinds whose detail may reach an (already authenticated) caller verbatim
_PUBLIC = {ErrorKind.NOT_FOUND, ErrorKind.VALIDATION_ERROR, ErrorKind.CONFLICT}


def http_error(failure: Failure) -> HTTPException:
    """Map a service failure onto the HTTP response the client receives."""
    status_code, message = _HTTP_MAP[failure.kind]
    if failure.kind in _PUBLIC and failure.detail:
        message = failure.detail
    headers = {"WWW-Authenticate": "Bearer"} if failure.kind is ErrorKind.UNAUTHENTICATED else None
    return HTTPException(status_code=status_code, detail=message, headers=headers)


def unwrap(result: Result[T]) -> Optional[T]:
    """Return the value of a successful result or raise its HTTP error."""
    if not result.ok:
        raise http_error(result.error)
    return result.value
