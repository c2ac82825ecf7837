"""OAuth handshakes for Google and GitHub.

Learn: Each provider is just data (endpoints, scopes, credentials) plus
a function that maps the provider's user JSON onto one ExternalProfile.
The gateway asks for a consent URL, the browser comes back with a code,
and exchange_code() swaps that code for a verified profile. What happens
to the profile next (find or create an account) is the identity
resolver's job, not this module's.

Any network or HTTP failure surfaces as UpstreamUnavailable. A provider
being down is not the same thing as a provider being unconfigured (501).
"""

from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx
import structlog

from usabo.config import Settings, settings
from usabo.db.models import (
    MAX_AVATAR_LENGTH,
    MAX_NAME_LENGTH,
    PROVIDER_GITHUB,
    PROVIDER_GOOGLE,
)
from usabo.errors import ProviderNotConfigured, UpstreamUnavailable

logger = structlog.get_logger()

GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


@dataclass(frozen=True)
class ExternalProfile:
    """Identity asserted by a provider after its own handshake."""

    provider: str
    external_id: str
    email: str
    name: str
    avatar: Optional[str] = None


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    label: str
    auth_url: str
    token_url: str
    userinfo_url: str
    scope: str
    client_id: str
    client_secret: str
    callback_url: str
    parse_profile: Callable[[dict], dict]

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


def _parse_google(userinfo: dict) -> dict:
    return {
        "external_id": userinfo.get("sub") or userinfo.get("id"),
        "email": userinfo.get("email"),
        "name": userinfo.get("name") or (userinfo.get("email") or "").split("@")[0],
        "avatar": userinfo.get("picture"),
    }


def _parse_github(userinfo: dict) -> dict:
    external_id = userinfo.get("id")
    return {
        "external_id": str(external_id) if external_id is not None else None,
        "email": userinfo.get("email"),
        "name": userinfo.get("name") or userinfo.get("login"),
        "avatar": userinfo.get("avatar_url"),
        "login": userinfo.get("login"),
    }


def provider_configs(cfg: Settings) -> dict[str, ProviderConfig]:
    return {
        PROVIDER_GOOGLE: ProviderConfig(
            name=PROVIDER_GOOGLE,
            label="Google",
            auth_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            scope="openid email profile",
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            callback_url=cfg.google_callback_url,
            parse_profile=_parse_google,
        ),
        PROVIDER_GITHUB: ProviderConfig(
            name=PROVIDER_GITHUB,
            label="GitHub",
            auth_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            scope="read:user user:email",
            client_id=cfg.github_client_id,
            client_secret=cfg.github_client_secret,
            callback_url=cfg.github_callback_url,
            parse_profile=_parse_github,
        ),
    }


class OAuthClient:
    """Builds consent URLs and exchanges authorization codes."""

    def __init__(
        self,
        cfg: Settings = settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cfg = cfg
        self.transport = transport

    def provider(self, name: str) -> ProviderConfig:
        """Return the provider config, or raise ProviderNotConfigured (501)."""
        config = provider_configs(self.cfg).get(name)
        if config is None:
            raise ProviderNotConfigured(f"Unknown OAuth provider: {name}")
        if not config.configured:
            raise ProviderNotConfigured(f"{config.label} OAuth not configured")
        return config

    def authorization_url(self, name: str, state: str) -> str:
        config = self.provider(name)
        params = {
            "client_id": config.client_id,
            "redirect_uri": config.callback_url,
            "response_type": "code",
            "scope": config.scope,
            "state": state,
        }
        return f"{config.auth_url}?{urlencode(params)}"

    async def exchange_code(self, name: str, code: str) -> ExternalProfile:
        """Trade an authorization code for the provider's view of the user."""
        config = self.provider(name)
        try:
            async with httpx.AsyncClient(
                timeout=self.cfg.oauth_timeout_seconds,
                follow_redirects=False,
                transport=self.transport,
            ) as client:
                token_response = await client.post(
                    config.token_url,
                    data={
                        "client_id": config.client_id,
                        "client_secret": config.client_secret,
                        "code": code,
                        "redirect_uri": config.callback_url,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                token_body = token_response.json()
                access_token = (
                    token_body.get("access_token") if isinstance(token_body, dict) else None
                )
                if not access_token:
                    logger.error("oauth.no_access_token", provider=name)
                    raise UpstreamUnavailable(f"{config.label} did not return an access token")

                headers = {"Authorization": f"Bearer {access_token}"}
                if name == PROVIDER_GITHUB:
                    headers["Accept"] = "application/vnd.github+json"

                userinfo_response = await client.get(config.userinfo_url, headers=headers)
                userinfo_response.raise_for_status()
                userinfo = userinfo_response.json()
                if not isinstance(userinfo, dict):
                    logger.error("oauth.userinfo_not_object", provider=name)
                    raise UpstreamUnavailable(f"Authentication with {config.label} failed")
                identity = config.parse_profile(userinfo)

                # GitHub hides private emails from /user
                if name == PROVIDER_GITHUB and not identity.get("email"):
                    identity["email"] = await _github_primary_email(client, headers)
        except httpx.HTTPStatusError as e:
            logger.error(
                "oauth.exchange_http_error",
                provider=name,
                status_code=e.response.status_code,
            )
            raise UpstreamUnavailable(f"Authentication with {config.label} failed")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("oauth.exchange_error", provider=name, error=str(e))
            raise UpstreamUnavailable(f"Authentication with {config.label} failed")

        return _build_profile(name, config.label, identity)


async def _github_primary_email(client: httpx.AsyncClient, headers: dict) -> Optional[str]:
    response = await client.get(GITHUB_EMAILS_URL, headers=headers)
    if response.status_code != 200:
        return None
    emails = response.json()
    if not isinstance(emails, list):
        logger.warning("oauth.github_emails_unexpected", body_type=type(emails).__name__)
        return None
    for entry in emails:
        if not isinstance(entry, dict):
            continue
        if entry.get("primary") and entry.get("verified") and entry.get("email"):
            return entry["email"]
    return None


def _build_profile(name: str, label: str, identity: dict) -> ExternalProfile:
    external_id = identity.get("external_id")
    if not external_id:
        logger.error("oauth.identity_missing_uid", provider=name)
        raise UpstreamUnavailable(f"{label} did not return a user id")

    email = identity.get("email")
    if not email and name == PROVIDER_GITHUB and identity.get("login"):
        email = f"{identity['login']}@github.local"
    if not email:
        logger.error("oauth.identity_missing_email", provider=name)
        raise UpstreamUnavailable(f"{label} did not return an email address")

    display_name = (identity.get("name") or email.split("@")[0]).strip()
    avatar = identity.get("avatar")
    if avatar and len(avatar) > MAX_AVATAR_LENGTH:
        avatar = None

    logger.info("oauth.exchange_success", provider=name, external_id=external_id)
    return ExternalProfile(
        provider=name,
        external_id=str(external_id),
        email=email,
        name=display_name[:MAX_NAME_LENGTH] or email.split("@")[0][:MAX_NAME_LENGTH],
        avatar=avatar,
    )


def get_oauth_client() -> OAuthClient:
    """FastAPI dependency — overridden in tests with a fake client."""
    return OAuthClient()
