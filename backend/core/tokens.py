# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Access-token issuer (PyJWT / HS256).

``TokenIssuer.issue`` is a pure function of the identity's id, email, display
name and current role set plus the configured issuer, audience, secret and
lifetime.  It never writes to the database.  A key that is too short is
rejected in ``__init__`` so a misconfigured deployment fails at startup
instead of on the first login.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT

from core.config import MIN_SECRET_KEY_BYTES, settings

_ALGORITHM = "HS256"


class TokenError(Exception):
    """Raised by :meth:`TokenIssuer.decode` for any unusable token."""


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_at: datetime


class TokenIssuer:
    def __init__(self, secret: str, issuer: str, audience: str, lifetime_minutes: int = 60):
        if len(secret.encode("utf-8")) < MIN_SECRET_KEY_BYTES:
            raise RuntimeError(f"Token signing secret must be at least {MIN_SECRET_KEY_BYTES} bytes")
        if lifetime_minutes <= 0:
            raise RuntimeError("Access-token lifetime must be positive")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.lifetime = timedelta(minutes=lifetime_minutes)

    @classmethod
    def from_settings(cls, cfg=settings) -> "TokenIssuer":
        return cls(
            secret=cfg.secret_key,
            issuer=cfg.token_issuer,
            audience=cfg.token_audience,
            lifetime_minutes=cfg.access_token_expire_minutes,
        )

    def issue(self, identity, now: Optional[datetime] = None) -> IssuedToken:
        """Sign a token for *identity*.  ``exp`` is ``now + lifetime``."""
        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expires_at = issued_at + self.lifetime
        claims = {
            "sub": identity.id,
            "email": identity.email,
            "name": identity.full_name,
            "roles": [role.name for role in identity.roles],
            "iat": issued_at,
            "exp": expires_at,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return IssuedToken(_jwt.encode(claims, self._secret, algorithm=_ALGORITHM), expires_at)

    def decode(self, token: str) -> dict:
        """Verify signature, expiry, issuer and audience; return the claims."""
        try:
            return _jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["sub", "exp", "iat"]},
            )
        except _jwt.InvalidTokenError as exc:   # ExpiredSignatureError is a subclass
            raise TokenError(str(exc)) from exc


# Module-level singleton – built at import so a bad key aborts startup
token_issuer = TokenIssuer.from_settings()
