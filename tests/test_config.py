"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from src.config import _ENV_KEYS, DEFAULT_API_PREFIX, ConfigError, load_settings

SECRET = "s" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Start from an empty environment and restore it even after load_dotenv writes."""
    monkeypatch.chdir(tmp_path)
    for env_key in _ENV_KEYS.values():
        monkeypatch.setenv(env_key, "placeholder")
        monkeypatch.delenv(env_key)


@pytest.mark.unit
def test_missing_jwt_secret_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="DEVMENTOR_JWT_SECRET"):
        load_settings()


@pytest.mark.unit
def test_environment_values_are_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEVMENTOR_JWT_SECRET", SECRET)
    monkeypatch.setenv("DEVMENTOR_BCRYPT_ROUNDS", "6")
    monkeypatch.setenv("DEVMENTOR_CORS_ORIGINS", "https://a.example, ,https://b.example")
    monkeypatch.setenv("GITHUB_OAUTH_CLIENT_ID", "client")
    monkeypatch.setenv("DEVMENTOR_LOG_LEVEL", "")

    settings = load_settings()

    assert settings.bcrypt_rounds == 6
    assert settings.cors_origins == ("https://a.example", "https://b.example")
    assert settings.api_prefix == DEFAULT_API_PREFIX
    assert settings.log_level == "INFO"
    assert not settings.github_oauth_configured


@pytest.mark.unit
def test_invalid_values_name_their_environment_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEVMENTOR_JWT_SECRET", "short")
    monkeypatch.setenv("DEVMENTOR_REVIEW_TEMPERATURE", "2.5")

    with pytest.raises(ConfigError) as exc_info:
        load_settings()

    message = str(exc_info.value)
    assert "DEVMENTOR_JWT_SECRET" in message
    assert "DEVMENTOR_REVIEW_TEMPERATURE" in message


@pytest.mark.unit
def test_env_file_and_overrides(tmp_path: Path) -> None:
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        f"DEVMENTOR_JWT_SECRET={SECRET}\nDEVMENTOR_API_PREFIX=/v2\n",
        encoding="utf-8",
    )

    settings = load_settings(env_file=env_file, db_path=tmp_path / "db.sqlite")

    assert settings.api_prefix == "/v2"
    assert settings.db_path == tmp_path / "db.sqlite"
    assert settings.jwt_secret == SECRET
