# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Password and email lifecycle: change, forgot, reset, confirm, resend.

Anti-enumeration
----------------
``forgot_password`` and ``resend_confirmation`` always succeed with the same
value.  Whether a code was actually issued is visible only in the server log
and the audit trail, never to the caller.

Over HTTP both run through :func:`run_detached`, as a background task with
its own session: the lookup, code issuance and mail all happen after the
response, so a known and an unknown address cost the request the same.
"""

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.clock import utcnow
from core.config import settings
from core.errors import ErrorKind, Result
from core.logger import logger
from core.policy import Principal
from core.security import hash_password, validate_new_password, verify_password
from database import SessionLocal
from models.identity import Identity
from models.one_time_code import CodePurpose
from services import audit
from services.codes import OneTimeCodeIssuer
from services.notifications import (
    Notifier,
    Sender,
    build_link,
    confirmation_message,
    deliver,
    password_reset_message,
)
from store.identity_store import IdentityStore


class PasswordService:
    def __init__(
        self,
        db: Session,
        send: Sender,
        *,
        codes: Optional[OneTimeCodeIssuer] = None,
        cfg=settings,
        clock: Callable[[], datetime] = utcnow,
        request_ip: Optional[str] = None,
    ):
        self.db = db
        self.store = IdentityStore(db)
        self.send = send
        self.codes = codes or OneTimeCodeIssuer(db, clock=clock)
        self.cfg = cfg
        self.clock = clock
        self.request_ip = request_ip

    # -- authenticated -------------------------------------------------------

    def change_password(
        self, principal: Principal, current_password: str, new_password: str
    ) -> Result[None]:
        """
        Replace the caller's password after re-checking the current one.
        Two-factor state is left untouched and no second factor is asked for.
        """
        identity = self.store.find_by_id(principal.id)
        if identity is None or not identity.is_active:
            return Result.fail(ErrorKind.UNAUTHENTICATED)
        if not current_password or not verify_password(current_password, identity.password_hash):
            logger.info("password change rejected | user_id=%s", identity.id)
            return Result.fail(ErrorKind.INVALID_CURRENT_PASSWORD)

        err = validate_new_password(new_password or "")
        if err:
            return Result.fail(ErrorKind.VALIDATION_ERROR, err)

        identity.password_hash = hash_password(new_password)
        self._audit("password_changed", identity, actor=identity)
        self.store.update(identity)
        logger.info("password changed | user_id=%s", identity.id)
        return Result.success()

    # -- anonymous -----------------------------------------------------------

    def forgot_password(self, email: str) -> Result[bool]:
        identity = self.store.find_by_email(email) if email else None
        if identity is not None and identity.is_active and identity.email_confirmed:
            code = self.codes.issue(identity, CodePurpose.PASSWORD_RESET)
            link = build_link(self.cfg.reset_password_url, email=identity.email, token=code)
            self._audit("password_reset_requested", identity)
            self.db.commit()
            self.send(password_reset_message(identity, link, self.cfg.password_reset_code_minutes))
            logger.info("password reset link dispatched | user_id=%s", identity.id)
        else:
            logger.info("password reset requested for ineligible or unknown email")
        return Result.success(True)

    def reset_password(self, email: str, token: str, new_password: str) -> Result[None]:
        # Policy before lookup: the answer must not depend on whether the
        # account exists, and a rejected password must not burn the link
        err = validate_new_password(new_password or "")
        if err:
            return Result.fail(ErrorKind.VALIDATION_ERROR, err)

        identity = self.store.find_by_email(email) if email else None
        if identity is None or not identity.is_active:
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_RESET_LINK)

        if not self.codes.validate(identity, CodePurpose.PASSWORD_RESET, token):
            logger.info("password reset rejected | user_id=%s", identity.id)
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_RESET_LINK)

        identity.password_hash = hash_password(new_password)
        # Proving control of the mailbox lifts a temporary lockout
        identity.failed_access_count = 0
        identity.lockout_until = None
        self._audit("password_reset", identity)
        self.store.update(identity)
        logger.info("password reset completed | user_id=%s", identity.id)
        return Result.success()

    def confirm_email(self, user_id: str, token: str) -> Result[None]:
        identity = self.store.find_by_id(user_id) if user_id else None
        if identity is None or not self.codes.validate(identity, CodePurpose.EMAIL_CONFIRMATION, token):
            logger.info("email confirmation rejected")
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_CODE, "Invalid or expired confirmation link")

        if not identity.email_confirmed:
            identity.email_confirmed = True
            self._audit("email_confirmed", identity)
            self.store.update(identity)
            logger.info("email confirmed | user_id=%s", identity.id)
        return Result.success()

    def resend_confirmation(self, email: str) -> Result[bool]:
        identity = self.store.find_by_email(email) if email else None
        if identity is not None and identity.is_active and not identity.email_confirmed:
            self.send_confirmation(identity)
        else:
            logger.info("confirmation resend requested for ineligible or unknown email")
        return Result.success(True)

    # -- shared --------------------------------------------------------------

    def send_confirmation(self, identity: Identity) -> None:
        """Issue an email-confirmation code and queue the link."""
        code = self.codes.issue(identity, CodePurpose.EMAIL_CONFIRMATION)
        link = build_link(self.cfg.confirm_email_url, userId=identity.id, token=code)
        self._audit("email_confirmation_sent", identity)
        self.db.commit()
        self.send(confirmation_message(identity, link))
        logger.info("email confirmation link dispatched | user_id=%s", identity.id)

    def _audit(self, action: str, identity: Identity, actor: Optional[Identity] = None) -> None:
        audit.record(
            self.db,
            action,
            actor_id=actor.id if actor else None,
            target_id=identity.id,
            request_ip=self.request_ip,
        )


# Anonymous operations that may be run by run_detached
_DETACHED = ("forgot_password", "resend_confirmation")


def run_detached(operation: str, email: str, notifier: Notifier, request_ip: Optional[str] = None) -> None:
    """
    Run ``forgot_password`` or ``resend_confirmation`` in a session of its
    own, mailing synchronously through *notifier*.  Meant to be scheduled as
    a background task; failures are logged, never raised.
    """
    if operation not in _DETACHED:
        raise ValueError(f"not a detached operation: {operation}")

    db = SessionLocal()
    try:
        service = PasswordService(db, lambda message: deliver(notifier, message), request_ip=request_ip)
        getattr(service, operation)(email)
    except Exception:
        db.rollback()
        logger.exception("%s failed in background", operation)
    finally:
        db.close()
