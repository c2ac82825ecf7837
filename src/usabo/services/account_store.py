"""Credential store — durable account records behind a small interface.

Learn: Every read normalizes the email the same way insert does, so the
database UNIQUE constraint on `email` behaves case-insensitively. insert()
does NOT check for an existing row first: it lets the constraint reject
the duplicate and turns the IntegrityError into ConflictError. That single
atomic INSERT is what makes get-or-create safe across processes.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from usabo.db.models import PROVIDER_GITHUB, PROVIDER_GOOGLE, Account, utcnow
from usabo.errors import ConflictError

_EXTERNAL_ID_COLUMNS = {
    PROVIDER_GOOGLE: Account.google_id,
    PROVIDER_GITHUB: Account.github_id,
}

# Column names the store allows update() to touch.
_UPDATABLE_FIELDS = frozenset({"name", "avatar", "password_hash"})


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class AccountDraft:
    """Fields for a not-yet-persisted account."""

    name: str
    email: str
    provider: str
    password_hash: Optional[str] = None
    google_id: Optional[str] = None
    github_id: Optional[str] = None
    avatar: Optional[str] = None


class AccountStore:
    """Find, insert and update accounts. One instance per DB session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, account_id: uuid.UUID) -> Account | None:
        return await self.db.get(Account, account_id)

    async def find_by_email(self, email: str) -> Account | None:
        result = await self.db.execute(
            select(Account).where(Account.email == normalize_email(email))
        )
        return result.scalars().first()

    async def find_by_external_id(
        self, provider: str, external_id: str
    ) -> Account | None:
        column = _EXTERNAL_ID_COLUMNS.get(provider)
        if column is None:
            raise ValueError(f"Unknown external provider: {provider}")
        result = await self.db.execute(select(Account).where(column == external_id))
        return result.scalars().first()

    async def insert(self, draft: AccountDraft) -> Account:
        """Persist a new account, committing immediately.

        Raises ConflictError when email or an external id is already taken.
        The session is rolled back in that case and stays usable for the
        re-read the caller will do next.
        """
        now = utcnow()
        account = Account(
            name=draft.name,
            email=normalize_email(draft.email),
            provider=draft.provider,
            password_hash=draft.password_hash,
            google_id=draft.google_id,
            github_id=draft.github_id,
            avatar=draft.avatar,
            created_at=now,
            updated_at=now,
        )
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(_conflicting_field(e)) from e
        return account

    async def update(self, account_id: uuid.UUID, **fields) -> Account | None:
        """Overwrite the given fields and bump updated_at.

        Returns None when no account has this id. Unknown field names
        raise ValueError.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        account = await self.find_by_id(account_id)
        if account is None:
            return None

        for key, value in fields.items():
            setattr(account, key, value)
        account.updated_at = utcnow()
        await self.db.commit()
        return account


def _conflicting_field(error: IntegrityError) -> str | None:
    """Best-effort column name from the driver's error text.

    SQLite says "UNIQUE constraint failed: accounts.email"; Postgres
    names the constraint ("uq_accounts_email").
    """
    text = str(error.orig)
    for field in ("google_id", "github_id", "email"):
        if f"accounts.{field}" in text or f"uq_accounts_{field}" in text:
            return field
    return None
