"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
The accounts table carries one UNIQUE constraint per identity key space
(email, google_id, github_id). Those constraints, not application code,
are what stop two concurrent sign-ups from materializing the same person
twice: the losing INSERT fails and the caller decides what that means.

Key concepts:
- UUID primary keys (never reused, safe to hand out in tokens)
- Emails are stored lower-cased so the UNIQUE index is case-insensitive
- Generic Uuid/DateTime types so the same model runs on SQLite and Postgres
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

PROVIDER_LOCAL = "local"
PROVIDER_GOOGLE = "google"
PROVIDER_GITHUB = "github"

# Column widths; callers bound input to these before it reaches the database
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255
MAX_AVATAR_LENGTH = 1024


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Account(Base):
    """A person who can sign in.

    Learn: `provider` records how the account was first created, not every
    identity linked to it. Local accounts always have a password_hash;
    OAuth-only accounts never do, which is what keeps password login from
    ever succeeding against them.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("email", name="uq_accounts_email"),
        UniqueConstraint("google_id", name="uq_accounts_google_id"),
        UniqueConstraint("github_id", name="uq_accounts_github_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    email: Mapped[str] = mapped_column(String(MAX_EMAIL_LENGTH), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth
    google_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    github_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar: Mapped[Optional[str]] = mapped_column(String(MAX_AVATAR_LENGTH), nullable=True)
    provider: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PROVIDER_LOCAL
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
