"""USABO backend CLI — secrets, schema, server, and a token check.

Usage:
    usabo generate-secrets              # Print a fresh USABO_JWT_SECRET
    usabo generate-secrets --write      # ...or write it into a new .env
    usabo init-db                       # Create the accounts table
    usabo serve                         # Run the API with uvicorn
    usabo me --token <jwt>              # Who does this token belong to?

Settings are only imported inside the commands that need them, so
generate-secrets works before any secret exists.
"""

from __future__ import annotations

import asyncio
import json
import os
import secrets
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

DEFAULT_API_URL = "http://localhost:3002"
SECRET_BYTES = 64


def _api_url() -> str:
    return os.environ.get("USABO_API_URL", DEFAULT_API_URL).rstrip("/")


def generate_secret(length: int = SECRET_BYTES) -> str:
    """Hex-encoded random secret (2 chars per byte)."""
    return secrets.token_hex(length)


@click.group()
@click.version_option(version="0.1.0", prog_name="usabo")
def main():
    """USABO study platform backend."""


@main.command("generate-secrets")
@click.option("--write", is_flag=True, help="Write a new .env instead of printing")
@click.option(
    "--env-file",
    default=".env",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Target file for --write",
)
def generate_secrets(write: bool, env_file: Path):
    """Generate a signing secret for bearer tokens."""
    line = f"USABO_JWT_SECRET={generate_secret()}"
    if not write:
        click.echo(line)
        return

    if env_file.exists():
        click.secho(
            f"{env_file} already exists. Back it up and remove it first.",
            fg="red",
            err=True,
        )
        sys.exit(1)

    env_file.write_text(line + "\n")
    click.secho(f"Wrote a new {env_file} with a secure USABO_JWT_SECRET", fg="green")
    click.echo("Keep this file out of version control.")


@main.command("init-db")
def init_db():
    """Create missing tables on the configured database."""
    from usabo.config import settings
    from usabo.db.engine import engine, init_models

    async def _init():
        await init_models(engine)
        await engine.dispose()

    asyncio.run(_init())
    click.secho(f"Database ready: {settings.database_url}", fg="green")


@main.command()
@click.option("--reload", is_flag=True, help="Restart on code changes (dev only)")
def serve(reload: bool):
    """Run the API server."""
    import uvicorn

    from usabo.config import settings

    uvicorn.run(
        "usabo.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
    )


@main.command()
@click.option("--token", envvar="USABO_TOKEN", required=True, help="Bearer token")
@click.option("--api-url", default=None, help="API base URL")
def me(token: str, api_url: Optional[str]):
    """Show the account a bearer token belongs to."""
    url = f"{(api_url or _api_url()).rstrip('/')}/api/auth/me"
    try:
        r = httpx.get(url, headers={"Authorization": f"Bearer {token}"}, timeout=10.0)
    except httpx.HTTPError as e:
        click.secho(f"Could not reach {url}: {e}", fg="red", err=True)
        sys.exit(1)

    if r.status_code != 200:
        try:
            message = r.json().get("message", r.text)
        except ValueError:
            message = r.text or r.reason_phrase
        click.secho(f"{r.status_code}: {message}", fg="red", err=True)
        sys.exit(1)
    click.echo(json.dumps(r.json(), indent=2))


if __name__ == "__main__":
    main()
