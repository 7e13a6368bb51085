# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Identity ORM model – one row per bank employee who can authenticate."""

import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base
from models.role import Role, identity_roles


def normalize_email(email: str) -> str:
    """Canonical form used for the uniqueness constraint and every lookup."""
    return email.strip().lower()


class Identity(Base):
    __tablename__ = "identities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # ``email`` keeps the address as entered; ``normalized_email`` carries the
    # case-insensitive uniqueness guarantee.
    email = Column(String(255), nullable=False)
    normalized_email = Column(String(255), unique=True, nullable=False, index=True)
    # passlib embeds the salt in the hash string
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    phone_number = Column(String(32), nullable=True)
    email_confirmed = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    lockout_until = Column(DateTime(timezone=True), nullable=True)
    failed_access_count = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    roles = relationship(Role, secondary=identity_roles, lazy="selectin", order_by=Role.name)

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    def __repr__(self) -> str:
        return f"<Identity {self.id} {self.normalized_email}>"
