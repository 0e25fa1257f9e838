"""Runtime settings loaded from the environment and an optional .env file."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_DB_PATH = ".data/devmentor.sqlite"
DEFAULT_API_PREFIX = "/api"
DEFAULT_REVIEW_MODEL = "claude-sonnet-4-20250514"
MIN_JWT_SECRET_LENGTH = 32

_ENV_KEYS = {
    "db_path": "DEVMENTOR_DB_PATH",
    "jwt_secret": "DEVMENTOR_JWT_SECRET",
    "jwt_expiration_seconds": "DEVMENTOR_JWT_EXPIRATION_SECONDS",
    "bcrypt_rounds": "DEVMENTOR_BCRYPT_ROUNDS",
    "api_prefix": "DEVMENTOR_API_PREFIX",
    "log_level": "DEVMENTOR_LOG_LEVEL",
    "cors_origins": "DEVMENTOR_CORS_ORIGINS",
    "github_client_id": "GITHUB_OAUTH_CLIENT_ID",
    "github_client_secret": "GITHUB_OAUTH_CLIENT_SECRET",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "review_model": "DEVMENTOR_REVIEW_MODEL",
    "review_max_tokens": "DEVMENTOR_REVIEW_MAX_TOKENS",
    "review_temperature": "DEVMENTOR_REVIEW_TEMPERATURE",
    "llm_timeout_seconds": "DEVMENTOR_LLM_TIMEOUT_SECONDS",
}


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseModel):
    """Validated service configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    db_path: Path = Path(DEFAULT_DB_PATH)
    jwt_secret: str = Field(min_length=MIN_JWT_SECRET_LENGTH)
    jwt_expiration_seconds: int = Field(default=86_400, ge=60)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    api_prefix: str = DEFAULT_API_PREFIX
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    github_client_id: str | None = None
    github_client_secret: str | None = None
    anthropic_api_key: str | None = None
    review_model: str = DEFAULT_REVIEW_MODEL
    review_max_tokens: int = Field(default=8192, ge=1)
    review_temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    llm_timeout_seconds: float = Field(default=300.0, gt=0.0)

    @property
    def github_oauth_configured(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


def _split_origins(raw_value: str) -> tuple[str, ...]:
    """Split a comma-separated origin list, dropping blanks."""
    return tuple(origin.strip() for origin in raw_value.split(",") if origin.strip())


def load_settings(*, env_file: Path | None = None, **overrides: object) -> Settings:
    """Build settings from .env, the process environment, and explicit overrides."""
    load_dotenv(dotenv_path=env_file or Path.cwd() / ".env", override=False)

    values: dict[str, object] = {}
    for field_name, env_key in _ENV_KEYS.items():
        raw_value = os.getenv(env_key)
        if raw_value is None or raw_value == "":
            continue
        if field_name == "cors_origins":
            values[field_name] = _split_origins(raw_value)
        else:
            values[field_name] = raw_value
    values.update(overrides)

    if "jwt_secret" not in values:
        raise ConfigError(
            f"Missing JWT secret. Set {_ENV_KEYS['jwt_secret']} "
            f"(at least {MIN_JWT_SECRET_LENGTH} characters)."
        )

    try:
        return Settings.model_validate(values)
    except ValidationError as error:
        invalid_keys = sorted(
            _ENV_KEYS.get(str(detail["loc"][0]), str(detail["loc"][0]))
            for detail in error.errors()
            if detail["loc"]
        )
        raise ConfigError(f"Invalid configuration for: {', '.join(invalid_keys)}.") from error
