# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Authentication state machine.

    AwaitingCredentials ──password ok, 2FA off──▶ Authenticated (token)
           │
           └──password ok, 2FA on──▶ TwoFactorRequired ──code ok──▶ Authenticated
    any failure ──▶ Rejected

There is no server-side session between the two steps: the client sends the
identity id back with the emailed code, and the code itself is the secret.

Failure handling
----------------
* Unknown email, disabled account, unconfirmed email, active lockout and
  wrong password are separate error kinds internally (for logs and the audit
  trail) but all map to the same 401 body at the HTTP boundary.  A dummy hash
  is verified when nothing matched so the timing is the same too.
* Wrong passwords bump ``failed_access_count``; at ``lockout_max_attempts``
  the identity is locked for ``lockout_minutes`` and the counter restarts.
* Wrong 2FA codes bump the same counter when
  ``two_factor_failures_count_toward_lockout`` is set (the default).  When a
  lockout trips, any outstanding 2FA code is retired.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.clock import as_utc, utcnow
from core.config import settings
from core.errors import ErrorKind, Result
from core.logger import logger
from core.policy import Principal
from core.security import burn_password_check, verify_password
from core.tokens import TokenIssuer, token_issuer
from models.identity import Identity
from models.one_time_code import CodePurpose
from services import audit
from services.codes import OneTimeCodeIssuer
from services.notifications import Sender, two_factor_message
from store.identity_store import IdentityStore


@dataclass(frozen=True)
class LoginOutcome:
    """Shared result shape of ``login`` and ``verify_two_factor``."""

    requires_two_factor: bool
    user_id: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None


class AuthenticationService:
    def __init__(
        self,
        db: Session,
        send: Sender,
        *,
        issuer: TokenIssuer = token_issuer,
        codes: Optional[OneTimeCodeIssuer] = None,
        cfg=settings,
        clock: Callable[[], datetime] = utcnow,
        request_ip: Optional[str] = None,
    ):
        self.db = db
        self.store = IdentityStore(db)
        self.send = send
        self.issuer = issuer
        self.codes = codes or OneTimeCodeIssuer(db, clock=clock)
        self.cfg = cfg
        self.clock = clock
        self.request_ip = request_ip

    # -----------------------------------------------------------------------
    # Step 1: credentials
    # -----------------------------------------------------------------------

    def login(self, email: str, password: str) -> Result[LoginOutcome]:
        if not email or not email.strip() or not password:
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Email and password are required")

        now = self.clock()
        identity = self.store.find_by_email(email)

        if identity is None:
            burn_password_check(password)
            logger.info("login rejected | reason=unknown_email")
            return Result.fail(ErrorKind.INVALID_CREDENTIALS)

        rejection = self._precheck(identity, now)
        if rejection is not None:
            burn_password_check(password)
            logger.info("login rejected | user_id=%s reason=%s", identity.id, rejection.value)
            self._audit("login_rejected", identity, rejection.value)
            self.db.commit()
            return Result.fail(rejection)

        if not verify_password(password, identity.password_hash):
            self._register_failure(identity, now, "password")
            return Result.fail(ErrorKind.INVALID_CREDENTIALS)

        # Password accepted: whatever happens next, the failure streak is over
        identity.failed_access_count = 0
        identity.lockout_until = None

        if identity.two_factor_enabled:
            code = self.codes.issue(identity, CodePurpose.TWO_FACTOR)
            self._audit("two_factor_challenge", identity)
            self.store.update(identity)
            self.send(two_factor_message(identity, code, self.cfg.two_factor_code_minutes))
            logger.info("login step 1 ok, 2FA code dispatched | user_id=%s", identity.id)
            return Result.success(LoginOutcome(requires_two_factor=True, user_id=identity.id))

        return Result.success(self._sign_in(identity, now, "user_login"))

    # -----------------------------------------------------------------------
    # Step 2: second factor
    # -----------------------------------------------------------------------

    def verify_two_factor(self, user_id: str, code: str) -> Result[LoginOutcome]:
        identity = self.store.find_by_id(user_id) if user_id else None
        if (
            identity is None
            or not identity.is_active
            or not identity.email_confirmed
            or not identity.two_factor_enabled
        ):
            logger.info("2FA verification rejected | reason=invalid_request")
            return Result.fail(ErrorKind.INVALID_TWO_FACTOR_REQUEST)

        now = self.clock()
        if self._is_locked(identity, now):
            logger.info("2FA verification rejected | user_id=%s reason=locked", identity.id)
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_CODE)

        if not self.codes.validate(identity, CodePurpose.TWO_FACTOR, (code or "").strip()):
            if self.cfg.two_factor_failures_count_toward_lockout:
                self._register_failure(identity, now, "two_factor")
            else:
                self._audit("login_failed", identity, "two_factor")
                self.db.commit()
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_CODE)

        identity.failed_access_count = 0
        return Result.success(self._sign_in(identity, now, "two_factor_verified"))

    # -----------------------------------------------------------------------
    # 2FA toggles (authenticated caller)
    # -----------------------------------------------------------------------

    def enable_two_factor(self, principal: Principal, current_password: str) -> Result[None]:
        return self._set_two_factor(principal, current_password, True)

    def disable_two_factor(self, principal: Principal, current_password: str) -> Result[None]:
        return self._set_two_factor(principal, current_password, False)

    def _set_two_factor(self, principal: Principal, current_password: str, enabled: bool) -> Result[None]:
        identity = self.store.find_by_id(principal.id)
        if identity is None or not identity.is_active:
            return Result.fail(ErrorKind.UNAUTHENTICATED)
        if not current_password or not verify_password(current_password, identity.password_hash):
            return Result.fail(ErrorKind.INVALID_CURRENT_PASSWORD)

        if identity.two_factor_enabled != enabled:
            identity.two_factor_enabled = enabled
            if not enabled:
                self.codes.revoke(identity, CodePurpose.TWO_FACTOR)
            action = "two_factor_enabled" if enabled else "two_factor_disabled"
            self._audit(action, identity, actor=identity)
            self.store.update(identity)
            logger.info("%s | user_id=%s", action, identity.id)
        return Result.success()

    def current_identity(self, principal: Principal) -> Result[Identity]:
        identity = self.store.find_by_id(principal.id)
        if identity is None or not identity.is_active:
            return Result.fail(ErrorKind.UNAUTHENTICATED)
        return Result.success(identity)

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _is_locked(self, identity: Identity, now: datetime) -> bool:
        until = as_utc(identity.lockout_until)
        return until is not None and until > now

    def _precheck(self, identity: Identity, now: datetime) -> Optional[ErrorKind]:
        """Reasons to refuse before the password is even looked at."""
        if not identity.is_active:
            return ErrorKind.INVALID_CREDENTIALS
        if self._is_locked(identity, now):
            return ErrorKind.ACCOUNT_LOCKED
        if not identity.email_confirmed:
            return ErrorKind.EMAIL_NOT_CONFIRMED
        return None

    def _register_failure(self, identity: Identity, now: datetime, reason: str) -> None:
        identity_id = identity.id
        self._audit("login_failed", identity, reason)
        tripped = self.store.register_failed_attempt(
            identity_id,
            self.cfg.lockout_max_attempts,
            now + timedelta(minutes=self.cfg.lockout_minutes),
        )
        logger.info("login failed | user_id=%s reason=%s", identity_id, reason)
        if tripped:
            logger.warning(
                "account locked | user_id=%s minutes=%d", identity_id, self.cfg.lockout_minutes
            )
            self._audit("account_locked", identity, f"minutes={self.cfg.lockout_minutes}")
            self.codes.revoke(identity, CodePurpose.TWO_FACTOR)

    def _sign_in(self, identity: Identity, now: datetime, action: str) -> LoginOutcome:
        issued = self.issuer.issue(identity, now)
        identity.last_login_at = now
        self._audit(action, identity)
        self.store.update(identity)
        logger.info("%s | user_id=%s", action, identity.id)
        return LoginOutcome(
            requires_two_factor=False,
            user_id=identity.id,
            access_token=issued.access_token,
            expires_at=issued.expires_at,
        )

    def _audit(
        self,
        action: str,
        identity: Identity,
        detail: Optional[str] = None,
        actor: Optional[Identity] = None,
    ) -> None:
        audit.record(
            self.db,
            action,
            actor_id=actor.id if actor else None,
            target_id=identity.id,
            detail=detail,
            request_ip=self.request_ip,
        )
