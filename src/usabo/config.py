"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with USABO_ prefix
(and an optional .env file). No YAML files, 12-factor style.

Learn: The signing secret is validated when Settings() is constructed.
A missing or short secret raises immediately, so a misconfigured process
never finishes booting. Run `usabo generate-secrets` to make one.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings

MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """All app configuration. Set via USABO_* env vars."""

    # Database (embedded SQLite by default, Postgres via asyncpg also works)
    database_url: str = "sqlite+aiosqlite:///./usabo.db"

    # Redis (optional, used for rate limiting)
    redis_url: str = "redis://localhost:6379/0"

    # Auth
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    token_expire_days: int = 7
    oauth_state_expire_minutes: int = 10

    # OAuth providers (each one is enabled only when id AND secret are set)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = "http://localhost:3002/api/auth/google/callback"
    github_client_id: str = ""
    github_client_secret: str = ""
    github_callback_url: str = "http://localhost:3002/api/auth/github/callback"
    oauth_timeout_seconds: float = 15.0

    # Where OAuth callbacks send the browser ("" = same origin)
    frontend_url: str = ""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3002

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3002",
        "http://127.0.0.1:3002",
    ]

    # Rate limiting
    rate_limit_rpm: int = 100  # requests per minute per IP
    rate_limit_auth_rpm: int = 5  # login/register attempts per minute per IP

    model_config = {"env_prefix": "USABO_", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def validate_jwt_secret(self):
        """Refuse to start without a strong signing secret."""
        if len(self.jwt_secret) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"USABO_JWT_SECRET must be set and at least {MIN_SECRET_LENGTH} "
                "characters long. Generate one with: usabo generate-secrets"
            )
        return self

    @property
    def google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def github_configured(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


# Singleton, import this everywhere
settings = Settings()
