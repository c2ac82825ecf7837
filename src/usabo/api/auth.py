"""Auth API — the session gateway.

Learn: Routes for signing in and finding out who you are:
- POST /auth/register         → create a local account, returns {token, user}
- POST /auth/login            → email/password → {token, user}
- GET  /auth/me               → current account (bearer token)
- PATCH /auth/me              → update name / avatar / password
- GET  /auth/config           → which OAuth buttons the UI should show
- GET  /auth/{google,github}  → redirect to the provider's consent screen
- GET  /auth/{...}/callback   → finish the handshake, redirect with token

Routes only shape requests and responses. Deciding which account a
sign-in attempt belongs to is IdentityResolver's job; minting and
checking tokens is auth.jwt's. Errors raised below are rendered as
{"message": ...} by the handlers in usabo.errors.
"""

import json
from urllib.parse import quote, urlencode

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from usabo.auth.dependencies import get_current_account
from usabo.auth.jwt import (
    TokenError,
    issue_state_token,
    issue_token,
    new_state_nonce,
    verify_state_token,
)
from usabo.auth.oauth import OAuthClient, get_oauth_client
from usabo.auth.password import hash_password_async
from usabo.config import settings
from usabo.db.engine import get_db
from usabo.db.models import (
    MAX_AVATAR_LENGTH,
    PROVIDER_GITHUB,
    PROVIDER_GOOGLE,
    PROVIDER_LOCAL,
    Account,
)
from usabo.errors import NotFound, ValidationError
from usabo.schemas.account import (
    AccountRead,
    AccountSummary,
    AuthResponse,
    LoginRequest,
    ProfileUpdate,
    ProvidersStatus,
    RegisterRequest,
)
from usabo.services.account_store import AccountStore
from usabo.services.identity_service import (
    IdentityResolver,
    validate_name,
    validate_password,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")

STATE_COOKIE_PATH = "/api/auth"


def _store(db: AsyncSession = Depends(get_db)) -> AccountStore:
    return AccountStore(db)


def _resolver(store: AccountStore = Depends(_store)) -> IdentityResolver:
    return IdentityResolver(store)


def _auth_response(account: Account, message: str) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=issue_token(account.id, account.email),
        user=AccountSummary.model_validate(account),
    )


# ─── Register / Login ───────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest, resolver: IdentityResolver = Depends(_resolver)
):
    """Create a local account and sign it in."""
    account = await resolver.register_local(body.name, body.email, body.password)
    return _auth_response(account, "User registered successfully")


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, resolver: IdentityResolver = Depends(_resolver)):
    """Login with email and password → bearer token."""
    account = await resolver.login_local(body.email, body.password)
    return _auth_response(account, "Login successful")


# ─── Current account ────────────────────────────────────


@router.get("/me", response_model=AccountRead)
async def get_me(account: Account = Depends(get_current_account)):
    return account


@router.patch("/me", response_model=AccountRead)
async def update_me(
    body: ProfileUpdate,
    account: Account = Depends(get_current_account),
    store: AccountStore = Depends(_store),
):
    """Update profile fields. Signing in never changes the account; this does."""
    fields = {}
    if body.name is not None:
        fields["name"] = validate_name(body.name)
    if body.avatar is not None:
        avatar = body.avatar.strip()
        if len(avatar) > MAX_AVATAR_LENGTH:
            raise ValidationError(
                f"Avatar URL must be at most {MAX_AVATAR_LENGTH} characters"
            )
        fields["avatar"] = avatar or None
    if body.password is not None:
        if account.provider != PROVIDER_LOCAL:
            raise ValidationError("Password can only be changed on email accounts")
        validate_password(body.password)
        fields["password_hash"] = await hash_password_async(body.password)
    if not fields:
        raise ValidationError("Nothing to update")

    updated = await store.update(account.id, **fields)
    if updated is None:
        raise NotFound()
    logger.info("account.updated", account_id=str(updated.id), fields=sorted(fields))
    return updated


# ─── OAuth ──────────────────────────────────────────────
#
# The `state` sent to the provider is a signed token carrying a nonce.
# The same nonce goes into a short-lived cookie scoped to /api/auth, one
# per provider, so a callback is only accepted by the browser that
# started that flow. The cookie is cleared once the callback succeeds.


def _state_cookie(provider: str) -> str:
    return f"usabo_oauth_state_{provider}"


@router.get("/config", response_model=ProvidersStatus)
async def providers_config():
    return ProvidersStatus(
        google=settings.google_configured,
        github=settings.github_configured,
    )


def _start(provider: str, request: Request, client: OAuthClient) -> RedirectResponse:
    nonce = new_state_nonce()
    url = client.authorization_url(provider, issue_state_token(provider, nonce))
    response = RedirectResponse(url, status_code=302)
    response.set_cookie(
        _state_cookie(provider),
        nonce,
        max_age=settings.oauth_state_expire_minutes * 60,
        path=STATE_COOKIE_PATH,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


async def _finish(
    provider: str,
    request: Request,
    code: str | None,
    state: str | None,
    error: str | None,
    client: OAuthClient,
    resolver: IdentityResolver,
) -> RedirectResponse:
    config = client.provider(provider)
    if error or not code:
        logger.info("oauth.callback_denied", provider=provider, error=error)
        raise ValidationError(f"{config.label} sign-in was cancelled")
    try:
        verify_state_token(
            state or "", provider, request.cookies.get(_state_cookie(provider))
        )
    except TokenError as e:
        logger.warning("oauth.bad_state", provider=provider, error=str(e))
        raise ValidationError("Invalid OAuth state")

    profile = await client.exchange_code(provider, code)
    account = await resolver.complete_oauth(profile)

    token = issue_token(account.id, account.email)
    user = {
        "id": str(account.id),
        "name": account.name,
        "email": account.email,
        "avatar": account.avatar,
    }
    # TODO: swap the inline user JSON for a one-time exchange code so
    # profile data stays out of browser history and referrer logs.
    query = urlencode({"token": token, "user": json.dumps(user)}, quote_via=quote)
    response = RedirectResponse(f"{settings.frontend_url}/?{query}", status_code=302)
    response.delete_cookie(_state_cookie(provider), path=STATE_COOKIE_PATH)
    return response


@router.get("/google")
async def google_login(
    request: Request, client: OAuthClient = Depends(get_oauth_client)
):
    return _start(PROVIDER_GOOGLE, request, client)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    client: OAuthClient = Depends(get_oauth_client),
    resolver: IdentityResolver = Depends(_resolver),
):
    return await _finish(PROVIDER_GOOGLE, request, code, state, error, client, resolver)


@router.get("/github")
async def github_login(
    request: Request, client: OAuthClient = Depends(get_oauth_client)
):
    return _start(PROVIDER_GITHUB, request, client)


@router.get("/github/callback")
async def github_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    client: OAuthClient = Depends(get_oauth_client),
    resolver: IdentityResolver = Depends(_resolver),
):
    return await _finish(PROVIDER_GITHUB, request, code, state, error, client, resolver)
