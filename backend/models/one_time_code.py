# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""OneTimeCode ORM model – single-use, expiring, purpose-scoped secrets."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func

from database import Base


class CodePurpose(str, enum.Enum):
    TWO_FACTOR = "two_factor"
    EMAIL_CONFIRMATION = "email_confirmation"
    PASSWORD_RESET = "password_reset"


class OneTimeCode(Base):
    __tablename__ = "one_time_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity_id = Column(
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    purpose = Column(
        Enum(CodePurpose, name="code_purpose", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    # HMAC-SHA256 of (identity, purpose, code).  The plaintext is never stored.
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Set exactly once; a consumed row never validates again
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
