"""Settings validation and CLI tests."""

import re

import pytest
from click.testing import CliRunner

from usabo.cli.main import main
from usabo.config import Settings


def test_missing_secret_is_fatal():
    with pytest.raises(ValueError):
        Settings(jwt_secret="")


def test_short_secret_is_fatal():
    with pytest.raises(ValueError):
        Settings(jwt_secret="x" * 31)


def test_provider_flags_need_id_and_secret():
    cfg = Settings(jwt_secret="x" * 32, google_client_id="id", github_client_secret="s")
    assert cfg.google_configured is False
    assert cfg.github_configured is False

    cfg = Settings(jwt_secret="x" * 32, google_client_id="id", google_client_secret="s")
    assert cfg.google_configured is True


def test_generate_secrets_prints_secret():
    result = CliRunner().invoke(main, ["generate-secrets"])
    assert result.exit_code == 0
    assert re.fullmatch(r"USABO_JWT_SECRET=[0-9a-f]{128}\n", result.output)


def test_generate_secrets_writes_env(tmp_path):
    env_file = tmp_path / ".env"
    result = CliRunner().invoke(
        main, ["generate-secrets", "--write", "--env-file", str(env_file)]
    )
    assert result.exit_code == 0
    assert env_file.read_text().startswith("USABO_JWT_SECRET=")
    secret = env_file.read_text().strip().split("=", 1)[1]
    Settings(jwt_secret=secret)  # long enough to boot


def test_generate_secrets_refuses_to_overwrite(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("USABO_JWT_SECRET=keep-me\n")
    result = CliRunner().invoke(
        main, ["generate-secrets", "--write", "--env-file", str(env_file)]
    )
    assert result.exit_code == 1
    assert env_file.read_text() == "USABO_JWT_SECRET=keep-me\n"
