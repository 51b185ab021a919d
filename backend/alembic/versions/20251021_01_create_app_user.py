"""create app_user

Revision ID: 20251021_01
Revises:
Create Date: 2025-10-21 12:00:00.000000

Creates the user table backing Google sign-in:
- google_id: Google subject identifier (unique, NULL for legacy accounts)
- email: unique, stored lowercased
- created_at / updated_at: set by the application, not the database
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20251021_01"
down_revision: str | None = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=180), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("google_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_app_user_email", "app_user", ["email"], unique=True)
    op.create_index("ix_app_user_google_id", "app_user", ["google_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_app_user_google_id", table_name="app_user")
    op.drop_index("ix_app_user_email", table_name="app_user")
    op.drop_table("app_user")
