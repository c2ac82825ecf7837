"""OAuthClient tests against a mocked provider (httpx.MockTransport)."""

import httpx
import pytest

from usabo.auth.oauth import OAuthClient
from usabo.config import Settings
from usabo.errors import ProviderNotConfigured, UpstreamUnavailable


def _settings(**overrides) -> Settings:
    values = {
        "jwt_secret": "x" * 40,
        "google_client_id": "gid",
        "google_client_secret": "gsecret",
        "github_client_id": "hid",
        "github_client_secret": "hsecret",
    }
    values.update(overrides)
    return Settings(**values)


def _transport(routes: dict) -> httpx.MockTransport:
    """Map "METHOD url" to a response (or a callable returning one)."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = request.url
        key = f"{request.method} {url.scheme}://{url.host}{url.path}"
        route = routes.get(key)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request) if callable(route) else route

    return httpx.MockTransport(handler)


GOOGLE_TOKEN = "POST https://oauth2.googleapis.com/token"
GOOGLE_USER = "GET https://openidconnect.googleapis.com/v1/userinfo"
GITHUB_TOKEN = "POST https://github.com/login/oauth/access_token"
GITHUB_USER = "GET https://api.github.com/user"
GITHUB_EMAILS = "GET https://api.github.com/user/emails"


@pytest.mark.asyncio
async def test_google_exchange():
    seen = {}

    def token(request):
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"access_token": "ya29"})

    def userinfo(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "sub": "1089",
                "email": "gina@gmail.com",
                "name": "Gina",
                "picture": "https://lh3.example.com/p.png",
            },
        )

    client = OAuthClient(
        _settings(), transport=_transport({GOOGLE_TOKEN: token, GOOGLE_USER: userinfo})
    )
    profile = await client.exchange_code("google", "the-code")

    assert profile.provider == "google"
    assert profile.external_id == "1089"
    assert profile.email == "gina@gmail.com"
    assert profile.avatar == "https://lh3.example.com/p.png"
    assert "code=the-code" in seen["body"]
    assert "grant_type=authorization_code" in seen["body"]
    assert seen["auth"] == "Bearer ya29"


@pytest.mark.asyncio
async def test_github_exchange_uses_primary_verified_email():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GITHUB_TOKEN: httpx.Response(200, json={"access_token": "gho"}),
                GITHUB_USER: httpx.Response(
                    200,
                    json={"id": 4242, "login": "octo", "name": None, "email": None,
                          "avatar_url": "https://avatars.example.com/o.png"},
                ),
                GITHUB_EMAILS: httpx.Response(
                    200,
                    json=[
                        {"email": "old@example.com", "primary": False, "verified": True},
                        {"email": "octo@example.com", "primary": True, "verified": True},
                    ],
                ),
            }
        ),
    )
    profile = await client.exchange_code("github", "c")

    assert profile.external_id == "4242"
    assert profile.email == "octo@example.com"
    assert profile.name == "octo"  # falls back to login


@pytest.mark.asyncio
async def test_github_without_any_email_falls_back_to_login():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GITHUB_TOKEN: httpx.Response(200, json={"access_token": "gho"}),
                GITHUB_USER: httpx.Response(
                    200, json={"id": 7, "login": "ghost", "email": None}
                ),
                GITHUB_EMAILS: httpx.Response(403, json={"message": "forbidden"}),
            }
        ),
    )
    profile = await client.exchange_code("github", "c")
    assert profile.email == "ghost@github.local"


@pytest.mark.asyncio
async def test_token_endpoint_failure_is_upstream_unavailable():
    client = OAuthClient(
        _settings(),
        transport=_transport({GOOGLE_TOKEN: httpx.Response(500, text="boom")}),
    )
    with pytest.raises(UpstreamUnavailable):
        await client.exchange_code("google", "c")


@pytest.mark.asyncio
async def test_missing_access_token_is_upstream_unavailable():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {GITHUB_TOKEN: httpx.Response(200, json={"error": "bad_verification_code"})}
        ),
    )
    with pytest.raises(UpstreamUnavailable):
        await client.exchange_code("github", "expired-code")


@pytest.mark.asyncio
async def test_network_error_is_upstream_unavailable():
    def explode(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = OAuthClient(_settings(), transport=_transport({GOOGLE_TOKEN: explode}))
    with pytest.raises(UpstreamUnavailable):
        await client.exchange_code("google", "c")


@pytest.mark.asyncio
async def test_unconfigured_provider():
    client = OAuthClient(_settings(google_client_secret=""))
    with pytest.raises(ProviderNotConfigured) as exc:
        await client.exchange_code("google", "c")
    assert exc.value.status_code == 501
    assert exc.value.message == "Google OAuth not configured"


def test_unknown_provider():
    with pytest.raises(ProviderNotConfigured):
        OAuthClient(_settings()).authorization_url("myspace", "state")


def test_authorization_url_carries_callback_and_state():
    url = httpx.URL(
        OAuthClient(_settings()).authorization_url("github", "abc123")
    )
    assert url.host == "github.com"
    assert url.params["state"] == "abc123"
    assert url.params["redirect_uri"] == "http://localhost:3002/api/auth/github/callback"
    assert url.params["client_id"] == "hid"


@pytest.mark.asyncio
async def test_github_emails_error_object_falls_back_to_login():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GITHUB_TOKEN: httpx.Response(200, json={"access_token": "gho"}),
                GITHUB_USER: httpx.Response(
                    200, json={"id": 5, "login": "octo", "email": None}
                ),
                GITHUB_EMAILS: httpx.Response(
                    200, json={"message": "Requires authentication"}
                ),
            }
        ),
    )
    profile = await client.exchange_code("github", "c")
    assert profile.email == "octo@github.local"


@pytest.mark.asyncio
async def test_github_emails_skips_odd_entries():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GITHUB_TOKEN: httpx.Response(200, json={"access_token": "gho"}),
                GITHUB_USER: httpx.Response(
                    200, json={"id": 6, "login": "mona", "email": None}
                ),
                GITHUB_EMAILS: httpx.Response(
                    200,
                    json=[
                        "stray",
                        None,
                        {"email": "mona@example.com", "primary": True, "verified": True},
                    ],
                ),
            }
        ),
    )
    profile = await client.exchange_code("github", "c")
    assert profile.email == "mona@example.com"


@pytest.mark.asyncio
async def test_userinfo_that_is_not_an_object_is_upstream_unavailable():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GOOGLE_TOKEN: httpx.Response(200, json={"access_token": "ya29"}),
                GOOGLE_USER: httpx.Response(200, json=["unexpected"]),
            }
        ),
    )
    with pytest.raises(UpstreamUnavailable):
        await client.exchange_code("google", "c")


@pytest.mark.asyncio
async def test_long_display_name_and_avatar_are_bounded():
    client = OAuthClient(
        _settings(),
        transport=_transport(
            {
                GOOGLE_TOKEN: httpx.Response(200, json={"access_token": "ya29"}),
                GOOGLE_USER: httpx.Response(
                    200,
                    json={
                        "sub": "1",
                        "email": "long@example.com",
                        "name": "N" * 300,
                        "picture": "https://lh3.example.com/" + "p" * 2000,
                    },
                ),
            }
        ),
    )
    profile = await client.exchange_code("google", "c")
    assert profile.name == "N" * 100
    assert profile.avatar is None
