"""Create accounts table

One row per person. UNIQUE constraints on email, google_id and github_id
are the conflict-detection point for concurrent sign-ups.

Revision ID: 0001_create_accounts
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_accounts'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("google_id", sa.String(255), nullable=True),
        sa.Column("github_id", sa.String(255), nullable=True),
        sa.Column("avatar", sa.String(1024), nullable=True),
        sa.Column("provider", sa.String(20), nullable=False, server_default="local"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.UniqueConstraint("google_id", name="uq_accounts_google_id"),
        sa.UniqueConstraint("github_id", name="uq_accounts_github_id"),
    )


def downgrade() -> None:
    op.drop_table("accounts")
