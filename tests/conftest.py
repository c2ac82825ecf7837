"""Test fixtures — a fresh SQLite database per test, real unique constraints.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Environment is set before `usabo` is imported, because Settings()
   validates the signing secret at import time.
2. Each test gets its own SQLite file under tmp_path with the schema
   created, so nothing leaks between tests.
3. The `client` fixture overrides get_db with a NEW session per request.
   Two concurrent requests therefore use two connections, exactly like
   two production workers, and races are decided by the UNIQUE
   constraints rather than by a shared session.
4. get_oauth_client is overridden with FakeOAuthClient, which maps
   authorization codes to canned provider profiles.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="usabo-tests-")
os.environ["USABO_JWT_SECRET"] = "test-signing-secret-" + "s" * 44
os.environ["USABO_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/default.db"
for _key in (
    "USABO_GOOGLE_CLIENT_ID",
    "USABO_GOOGLE_CLIENT_SECRET",
    "USABO_GITHUB_CLIENT_ID",
    "USABO_GITHUB_CLIENT_SECRET",
    "USABO_FRONTEND_URL",
):
    os.environ[_key] = ""

import asyncio  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from usabo.auth.oauth import ExternalProfile, OAuthClient, get_oauth_client  # noqa: E402
from usabo.config import settings  # noqa: E402
from usabo.db.engine import build_engine, get_db, init_models  # noqa: E402
from usabo.main import app  # noqa: E402


class FakeOAuthClient(OAuthClient):
    """OAuthClient whose code exchange is a dictionary lookup.

    Provider configuration checks (501 when unconfigured) and consent URL
    building are inherited unchanged.
    """

    def __init__(self):
        super().__init__(settings)
        self.profiles: dict[str, ExternalProfile] = {}
        self.error: Exception | None = None
        self.exchanges = 0

    def add(self, code: str, profile: ExternalProfile) -> None:
        self.profiles[code] = profile

    async def exchange_code(self, name: str, code: str) -> ExternalProfile:
        self.provider(name)
        self.exchanges += 1
        # Yield so concurrent callbacks interleave
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.profiles[code]


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/usabo-test.db")
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_oauth():
    return FakeOAuthClient()


@pytest.fixture()
def oauth_configured(monkeypatch):
    """Turn both OAuth providers on for the duration of a test."""
    monkeypatch.setattr(settings, "google_client_id", "google-client")
    monkeypatch.setattr(settings, "google_client_secret", "google-secret")
    monkeypatch.setattr(settings, "github_client_id", "github-client")
    monkeypatch.setattr(settings, "github_client_secret", "github-secret")


@pytest_asyncio.fixture()
async def client(session_factory, fake_oauth):
    """HTTP client against the app, one DB session per request."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_oauth_client] = lambda: fake_oauth

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client, email: str, password: str = "secret1", name: str = "Test User"):
    return await client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password},
    )
