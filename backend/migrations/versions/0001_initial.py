"""Initial schema – roles, identities and role membership

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16

Email uniqueness is enforced on ``normalized_email`` (lower-cased, trimmed)
so that two addresses differing only in case cannot both exist.
"""

from alembic import op
import sqlalchemy as sa

# Alembic revision identifiers
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # -- roles ----------------------------------------------------------
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_roles_name", "roles", ["name"], unique=True)

    # -- identities -----------------------------------------------------
    op.create_table(
        "identities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("normalized_email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("email_confirmed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("lockout_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_access_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_identities_normalized_email", "identities", ["normalized_email"], unique=True
    )

    # -- identity_roles -------------------------------------------------
    op.create_table(
        "identity_roles",
        sa.Column(
            "identity_id",
            sa.String(36),
            sa.ForeignKey("identities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "role_id",
            sa.Integer(),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    # "who holds role X" – the PK already covers lookups by identity
    op.create_index("idx_identity_roles_role_id", "identity_roles", ["role_id"])


def downgrade() -> None:
    op.drop_index("idx_identity_roles_role_id", table_name="identity_roles")
    op.drop_table("identity_roles")
    op.drop_index("idx_identities_normalized_email", table_name="identities")
    op.drop_table("identities")
    op.drop_index("idx_roles_name", table_name="roles")
    op.drop_table("roles")
