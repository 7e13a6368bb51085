"""Seed the built-in roles

Revision ID: 0004_seed_roles
Revises: 0003_audit_logs
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa

revision = "0004_seed_roles"
down_revision = "0003_audit_logs"
branch_labels = None
depends_on = None

_ROLES = ["Admin", "Manager", "Employee"]


def upgrade() -> None:
    roles = sa.table("roles", sa.column("name", sa.String))
    op.bulk_insert(roles, [{"name": name} for name in _ROLES])


def downgrade() -> None:
    roles = sa.table("roles", sa.column("name", sa.String))
    op.execute(roles.delete().where(roles.c.name.in_(_ROLES)))
