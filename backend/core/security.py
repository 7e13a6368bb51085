# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Central security module.  Password hashing and the FastAPI auth guards live
here.  No other module should touch raw password hashes directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Password policy                          (length + character classes)
3. FastAPI dependency guards                (get_current_principal, require_admin)
4. Client IP extraction for the audit trail
"""

import re
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps

from core.config import settings
from core.errors import ErrorKind, Failure, http_error
from core.policy import Principal, allow
from core.tokens import TokenError, token_issuer

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------
# passlib embeds the salt and round count in the hash string, so old hashes
# keep verifying after ``password_hash_rounds`` is raised.


def hash_password(plain: str) -> str:
    """Hash a plaintext password with PBKDF2-SHA256."""
    return _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)


def verify_password(plain: str, stored_hash: str) -> bool:
    """
    Constant-time verification of a plaintext password against a
    pbkdf2_sha256 hash produced by :func:`hash_password`.
    """
    return _pbkdf2.verify(plain, stored_hash)


_dummy_hash: Optional[str] = None


def burn_password_check(plain: str) -> None:
    """
    Spend the same work as a real verification.  Called when no identity
    matched so that "unknown email" and "wrong password" take equally long.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("not-a-real-password")
    _pbkdf2.verify(plain, _dummy_hash)


# ---------------------------------------------------------------------------
# 2.  Password policy
# ---------------------------------------------------------------------------


def validate_new_password(pw: str) -> Optional[str]:
    """
    Return an error string if the password does not meet the minimum policy,
    or None if it is acceptable.

    Policy: >= 8 chars, at least one uppercase, one lowercase, one digit.
    """
    if len(pw) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", pw):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", pw):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", pw):
        return "Password must contain at least one digit"
    return None


# ---------------------------------------------------------------------------
# 3.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# The tokenUrl here is only used by the auto-generated OpenAPI docs;
# the actual login endpoint is POST /auth/login (JSON body).
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_current_principal(token: Optional[str] = Depends(oauth2_scheme)) -> Principal:
    """
    Dependency: verify the bearer token and rebuild the caller from its
    claims.  Raises 401 if the token is missing, expired or forged.

    The identity store is not consulted here.
    """
    if not token:
        raise http_error(Failure(ErrorKind.UNAUTHENTICATED))
    try:
        claims = token_issuer.decode(token)
    except TokenError:
        raise http_error(Failure(ErrorKind.UNAUTHENTICATED))
    return Principal(
        id=claims["sub"],
        email=claims.get("email", ""),
        roles=frozenset(claims.get("roles", [])),
    )


def require_roles(*required: str):
    """Build a dependency that admits callers holding any of *required*."""

    def _guard(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not allow(principal.roles, required):
            raise http_error(Failure(ErrorKind.FORBIDDEN))
        return principal

    return _guard


# Guard used by every /admin endpoint
require_admin = require_roles(*settings.admin_roles)


# ---------------------------------------------------------------------------
# 4.  IP Address extraction
# ---------------------------------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
