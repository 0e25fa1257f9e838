"""Anthropic model client used by the AI reviewer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import anthropic
import httpx
from dotenv import load_dotenv

# Retries after the first attempt; the SDK backs off and honors retry-after headers.
LLM_MAX_RETRIES = 2
DEFAULT_TIMEOUT_SECONDS = 300.0

logger = logging.getLogger(__name__)


class LlmApiError(RuntimeError):
    """Raised when a model request fails or returns an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class LlmCompletion:
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class ReviewModel(Protocol):
    """Text completion backend for the reviewer."""

    @property
    def model_name(self) -> str: ...

    def complete(self, prompt: str, *, system: str | None = None) -> LlmCompletion:
        """Return the model's reply to a single user prompt."""


class AnthropicClient:
    """ReviewModel backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: anthropic.Anthropic,
        *,
        model: str,
        max_tokens: int = 8192,
        temperature: float = 0.3,
    ) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model

    def complete(self, prompt: str, *, system: str | None = None) -> LlmCompletion:
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        try:
            message = self._client.messages.create(**request)
        except anthropic.APIStatusError as error:
            logger.warning("Model API returned %s", error.status_code)
            raise LlmApiError(
                f"Model request failed with status {error.status_code}.",
                status_code=error.status_code,
            ) from error
        except anthropic.APIError as error:
            raise LlmApiError(f"Model request failed: {error}") from error

        text = "".join(block.text for block in message.content if block.type == "text")
        if not text:
            raise LlmApiError("Model response contained no text blocks.")
        return LlmCompletion(
            text=text,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            model=message.model or self._model,
        )

    def close(self) -> None:
        self._client.close()


def build_anthropic_client(
    api_key: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = LLM_MAX_RETRIES,
    http_client: httpx.Client | None = None,
) -> anthropic.Anthropic:
    """Build an SDK client; tests pass an httpx client with a mock transport."""
    return anthropic.Anthropic(
        api_key=api_key,
        timeout=timeout_seconds,
        max_retries=max_retries,
        http_client=http_client,
    )


def get_anthropic_api_key() -> str:
    """Read the model API key from the environment or a local .env file."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise LlmApiError("Missing model API key. Set ANTHROPIC_API_KEY.")
    return api_key
