"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract and
validate the bearer token on protected routes. The token is the only
session state: there is no cookie session behind it.

- No Authorization header (or not "Bearer ...") → 401
- Bad signature, garbage, or expired token      → 403
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from usabo.auth.jwt import TokenExpired, TokenError, verify_token
from usabo.db.engine import get_db
from usabo.db.models import Account
from usabo.errors import NotFound, TokenInvalid, Unauthenticated
from usabo.services.account_store import AccountStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class CurrentIdentity:
    """Who the request is acting as, taken from a verified token."""

    account_id: uuid.UUID
    email: str


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_identity(
    authorization: Optional[str] = Header(None),
) -> CurrentIdentity:
    """Verify the bearer token and return the identity it is bound to."""
    token = _bearer_token(authorization)
    if token is None:
        raise Unauthenticated()

    try:
        claims = verify_token(token)
    except TokenExpired:
        logger.info("auth.token_rejected", reason="expired")
        raise TokenInvalid()
    except TokenError as e:
        logger.info("auth.token_rejected", reason="invalid", error=str(e))
        raise TokenInvalid()

    structlog.contextvars.bind_contextvars(account_id=str(claims.account_id))
    return CurrentIdentity(account_id=claims.account_id, email=claims.email)


async def get_current_account(
    identity: CurrentIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Account:
    """Load the account behind the token (404 if it no longer exists)."""
    account = await AccountStore(db).find_by_id(identity.account_id)
    if account is None:
        raise NotFound()
    return account
