# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Role ORM model and the identity ↔ role association table."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Table
from sqlalchemy.sql import func

from database import Base

# Seeded by migration 0004 and by bin/seed_admin.py
BUILTIN_ROLES = ("Admin", "Manager", "Employee")

# Many-to-many membership.  Rows disappear with either side.
identity_roles = Table(
    "identity_roles",
    Base.metadata,
    Column(
        "identity_id",
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Role(Base):
    """Authorization tag.  No hierarchy: a role either matches or it doesn't."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
