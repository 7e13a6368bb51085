# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
One-time code issuer.

Codes are random (``secrets``), purpose-scoped, expiring and single-use:

* A two-factor code is six digits; confirmation and reset codes are
  URL-safe tokens, since they travel inside links.
* Only an HMAC-SHA256 of ``identity:purpose:code`` is stored, keyed with the
  application secret, so a database dump does not reveal live codes and a
  code issued for one purpose can never match a row of another.
* Issuing a new code for (identity, purpose) retires every outstanding one.
* Validation claims the row with a conditional UPDATE on ``consumed_at IS
  NULL``; of two racing requests presenting the same code only one wins.
"""

import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.clock import as_utc, utcnow
from core.config import settings
from models.one_time_code import CodePurpose, OneTimeCode


def code_lifetimes(cfg=settings) -> dict:
    return {
        CodePurpose.TWO_FACTOR: timedelta(minutes=cfg.two_factor_code_minutes),
        CodePurpose.EMAIL_CONFIRMATION: timedelta(minutes=cfg.email_confirmation_code_minutes),
        CodePurpose.PASSWORD_RESET: timedelta(minutes=cfg.password_reset_code_minutes),
    }


def _generate(purpose: CodePurpose) -> str:
    if purpose is CodePurpose.TWO_FACTOR:
        return f"{secrets.randbelow(1_000_000):06d}"
    return secrets.token_urlsafe(32)


class OneTimeCodeIssuer:
    def __init__(
        self,
        db: Session,
        secret: str = settings.secret_key,
        lifetimes: Optional[dict] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self._key = secret.encode("utf-8")
        self.lifetimes = lifetimes or code_lifetimes()
        self._clock = clock

    def _digest(self, identity_id: str, purpose: CodePurpose, code: str) -> str:
        msg = f"{identity_id}:{purpose.value}:{code}".encode("utf-8")
        return hmac.new(self._key, msg, hashlib.sha256).hexdigest()

    def _outstanding(self, identity_id: str, purpose: Optional[CodePurpose] = None):
        q = self.db.query(OneTimeCode).filter(
            OneTimeCode.identity_id == identity_id,
            OneTimeCode.consumed_at.is_(None),
        )
        if purpose is not None:
            q = q.filter(OneTimeCode.purpose == purpose)
        return q

    def issue(self, identity, purpose: CodePurpose) -> str:
        """Create, persist (hashed) and return a fresh code.  Commits."""
        now = self._clock()
        self._outstanding(identity.id, purpose).update(
            {OneTimeCode.consumed_at: now}, synchronize_session=False
        )
        code = _generate(purpose)
        self.db.add(
            OneTimeCode(
                identity_id=identity.id,
                purpose=purpose,
                code_hash=self._digest(identity.id, purpose, code),
                expires_at=now + self.lifetimes[purpose],
            )
        )
        self.db.commit()
        return code

    def validate(self, identity, purpose: CodePurpose, code: Optional[str]) -> bool:
        """
        True iff *code* was issued to *identity* for *purpose*, has not expired
        and has not been used.  A successful call consumes the code.  Commits
        only on success.
        """
        if not code:
            return False
        now = self._clock()
        expected = self._digest(identity.id, purpose, code)
        for row in self._outstanding(identity.id, purpose).all():
            if not hmac.compare_digest(row.code_hash, expected):
                continue
            if as_utc(row.expires_at) <= now:
                return False
            claimed = (
                self.db.query(OneTimeCode)
                .filter(OneTimeCode.id == row.id, OneTimeCode.consumed_at.is_(None))
                .update({OneTimeCode.consumed_at: now}, synchronize_session=False)
            )
            self.db.commit()
            return claimed == 1
        return False

    def revoke(self, identity, purpose: Optional[CodePurpose] = None) -> None:
        """Retire outstanding codes (all purposes when *purpose* is None).  Commits."""
        self._outstanding(identity.id, purpose).update(
            {OneTimeCode.consumed_at: self._clock()}, synchronize_session=False
        )
        self.db.commit()
