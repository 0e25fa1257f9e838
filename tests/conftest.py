"""Shared pytest fixtures and test-run configuration."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from src.app import create_app
from src.config import Settings
from src.github_client import build_github_client
from src.llm_client import LlmCompletion
from src.schema import UserRole
from src.storage import Database


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom pytest options for integration test execution."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (external dependencies).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly enabled."""
    run_integration = config.getoption("--run-integration")
    env_enabled = os.getenv("RUN_INTEGRATION_TESTS") == "1"
    if run_integration or env_enabled:
        return

    skip_marker = pytest.mark.skip(
        reason=(
            "Integration tests are disabled by default. "
            "Use --run-integration or set RUN_INTEGRATION_TESTS=1."
        )
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


REVIEW_REPLY = """```json
[
  {
    "title": "SQL built with string concatenation",
    "description": "User input flows into a raw SQL string.",
    "severity": "critical",
    "category": "security_vulnerability",
    "lineNumber": 3,
    "codeSnippet": "query = 'SELECT * FROM users WHERE id=' + user_id",
    "suggestedFix": "Use a parameterized query.",
    "metricsViolated": ["OWASP A03"]
  },
  {
    "title": "Missing tests",
    "description": "No tests cover this module.",
    "severity": "LOW",
    "category": "TESTING"
  }
]
```"""


class FakeReviewModel:
    """In-memory stand-in for the model client."""

    def __init__(
        self,
        reply: str = REVIEW_REPLY,
        *,
        summary: str = "## Summary\nTwo issues.",
    ) -> None:
        self.reply = reply
        self.summary = summary
        self.prompts: list[str] = []

    @property
    def model_name(self) -> str:
        return "fake-model"

    def complete(self, prompt: str, *, system: str | None = None) -> LlmCompletion:
        self.prompts.append(prompt)
        text = self.reply if system is not None else self.summary
        return LlmCompletion(text=text, input_tokens=120, output_tokens=80, model="fake-model")


@pytest.fixture
def fake_model() -> FakeReviewModel:
    return FakeReviewModel()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "devmentor.sqlite",
        jwt_secret="test-secret-that-is-long-enough-for-hs256",
        bcrypt_rounds=4,
        github_client_id="client-id",
        github_client_secret="client-secret",
    )


@pytest.fixture
def database(tmp_path: Path) -> Database:
    return Database(tmp_path / "repo.sqlite")


@pytest.fixture
def github_handler() -> dict[str, Callable[[httpx.Request], httpx.Response]]:
    """Mutable holder so a test can install the fake GitHub API handler."""
    return {}


@pytest.fixture
def app(
    settings: Settings,
    fake_model: FakeReviewModel,
    github_handler: dict[str, Callable[[httpx.Request], httpx.Response]],
) -> FastAPI:
    def client_factory(access_token: str | None) -> httpx.Client:
        def dispatch(request: httpx.Request) -> httpx.Response:
            return github_handler["handler"](request)

        return build_github_client(access_token, transport=httpx.MockTransport(dispatch))

    return create_app(settings, review_model=fake_model, github_client_factory=client_factory)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client: TestClient) -> Callable[..., dict[str, str]]:
    """Return a helper that registers an account and returns its bearer headers."""

    def _register(username: str = "alice") -> dict[str, str]:
        response = client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": "secret123",
            },
        )
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _register


@pytest.fixture
def admin_headers(client: TestClient, app: FastAPI) -> dict[str, str]:
    """Seed an admin account directly and log in through the API."""
    app.state.services.auth.create_account(
        "root",
        "root@example.com",
        "adminpass",
        role=UserRole.ADMIN,
    )
    response = client.post("/api/auth/login", json={"username": "root", "password": "adminpass"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
