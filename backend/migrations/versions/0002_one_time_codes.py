"""Create one_time_codes table

Revision ID: 0002_one_time_codes
Revises: 0001_initial
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_one_time_codes"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "one_time_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "identity_id",
            sa.String(36),
            sa.ForeignKey("identities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "purpose",
            sa.Enum("two_factor", "email_confirmation", "password_reset", name="code_purpose"),
            nullable=False,
        ),
        # hex HMAC-SHA256 – never the code itself
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # Every lookup is "outstanding codes of identity X for purpose Y"
    op.create_index(
        "idx_one_time_codes_identity_purpose",
        "one_time_codes",
        ["identity_id", "purpose", "consumed_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_one_time_codes_identity_purpose", table_name="one_time_codes")
    op.drop_table("one_time_codes")
