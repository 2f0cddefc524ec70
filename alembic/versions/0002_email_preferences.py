"""Per-user email preferences

Revision ID: 0002_email_preferences
Revises: 0001_initial_schema
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_email_preferences"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def _has_table(insp: sa.Inspector, table: str) -> bool:
    return table in insp.get_table_names()


def upgrade() -> None:
    insp = sa.inspect(op.get_bind())
    if _has_table(insp, "user_email_preferences"):
        return

    op.create_table(
        "user_email_preferences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False, unique=True),
        sa.Column("email_reminders_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reminder_hours_before", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("monthly_digest_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    insp = sa.inspect(op.get_bind())
    if _has_table(insp, "user_email_preferences"):
        op.drop_table("user_email_preferences")
