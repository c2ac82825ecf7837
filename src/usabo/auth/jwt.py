"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: 7 days by default, carries the account id (sub) and email
- OAuth state token: 10 minutes, round-trips through the provider's
  consent screen so the callback can prove it started here. Its nonce
  must also match a cookie set on the browser that started the flow.

There is no revocation list: a token is good until it expires, and logout
means the client forgets it. Expired and malformed tokens raise different
exception types so logs can tell them apart, even though the API answers
both with the same 403.
"""

import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from usabo.config import settings

ACCESS_TOKEN = "access"
OAUTH_STATE_TOKEN = "oauth_state"


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenExpired(TokenError):
    """Signature is fine but the validity window has passed."""


class TokenMalformed(TokenError):
    """Bad signature, wrong type, or not a JWT at all."""


@dataclass(frozen=True)
class TokenClaims:
    account_id: uuid.UUID
    email: str


def issue_token(
    account_id: uuid.UUID,
    email: str,
    now: Optional[datetime] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Create a signed access token bound to one account."""
    issued = now or datetime.now(timezone.utc)
    expires = issued + (expires_in or timedelta(days=settings.token_expire_days))
    payload = {
        "sub": str(account_id),
        "email": email,
        "type": ACCESS_TOKEN,
        "iat": issued,
        "exp": expires,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> TokenClaims:
    """Verify an access token.

    Returns the bound account id and email. Raises TokenExpired or
    TokenMalformed on failure.
    """
    payload = _decode(token)
    if payload.get("type") != ACCESS_TOKEN:
        raise TokenMalformed("Not an access token")
    try:
        account_id = uuid.UUID(payload["sub"])
        email = payload["email"]
    except (KeyError, TypeError, ValueError):
        raise TokenMalformed("Token is missing identity claims")
    return TokenClaims(account_id=account_id, email=email)


def new_state_nonce() -> str:
    return secrets.token_urlsafe(32)


def issue_state_token(
    provider: str, nonce: str, now: Optional[datetime] = None
) -> str:
    """Create the short-lived `state` value for an OAuth redirect."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "type": OAUTH_STATE_TOKEN,
        "provider": provider,
        "nonce": nonce,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.oauth_state_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_state_token(token: str, provider: str, nonce: Optional[str]) -> None:
    """Raise TokenError unless `token` is a live state issued for `provider`
    to the browser holding `nonce`.
    """
    payload = _decode(token)
    if payload.get("type") != OAUTH_STATE_TOKEN or payload.get("provider") != provider:
        raise TokenMalformed("State was not issued for this provider")
    expected = payload.get("nonce")
    if not nonce or not isinstance(expected, str):
        raise TokenMalformed("State is not bound to this browser")
    if not hmac.compare_digest(expected.encode(), nonce.encode()):
        raise TokenMalformed("State is not bound to this browser")


def _decode(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenMalformed(f"Invalid token: {e}")
