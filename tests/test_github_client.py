"""Unit tests for GitHub client behavior."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from src.github_client import (
    GITHUB_RAW_MEDIA_TYPE,
    GitHubApiError,
    GitHubAuthError,
    GitHubInputError,
    GitHubOAuthError,
    GitHubRateLimitError,
    build_github_client,
    exchange_oauth_code,
    fetch_authenticated_user,
    fetch_authenticated_user_login,
    fetch_file_text,
    fetch_repository,
    fetch_repository_tree,
    get_github_token_with_source,
    list_user_repositories,
    parse_repo_full_name,
)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    """Create a GitHub client backed by mock transport."""
    return build_github_client("gho_test", transport=httpx.MockTransport(handler))


def make_repo_payload(**overrides: object) -> dict[str, object]:
    """Build a minimal valid repository API payload."""
    payload: dict[str, object] = {
        "id": 7,
        "name": "rocket",
        "full_name": "acme/rocket",
        "description": "Launch tooling",
        "html_url": "https://github.com/acme/rocket",
        "language": "Python",
        "default_branch": "main",
        "private": False,
    }
    payload.update(overrides)
    return payload


@pytest.mark.unit
def test_parse_repo_full_name_accepts_owner_repo() -> None:
    owner, repo = parse_repo_full_name("acme/rocket")
    assert owner == "acme"
    assert repo == "rocket"


@pytest.mark.unit
@pytest.mark.parametrize("value", ["acme", "acme/", "/rocket", "acme/rocket/extra"])
def test_parse_repo_full_name_rejects_invalid_format(value: str) -> None:
    with pytest.raises(GitHubInputError):
        parse_repo_full_name(value)


@pytest.mark.unit
def test_client_sends_auth_and_version_headers() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers["Authorization"]
        seen["version"] = request.headers["X-GitHub-Api-Version"]
        return httpx.Response(status_code=200, json={"id": 1, "login": "octocat"})

    with make_client(handler) as client:
        assert fetch_authenticated_user_login(client=client) == "octocat"

    assert seen == {"authorization": "Bearer gho_test", "version": "2022-11-28"}


@pytest.mark.unit
def test_fetch_authenticated_user_parses_profile() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/user"
        return httpx.Response(
            status_code=200,
            json={
                "id": 99,
                "login": "octocat",
                "name": "The Octocat",
                "email": None,
                "avatar_url": "https://avatars.example/octocat.png",
                "html_url": "https://github.com/octocat",
            },
        )

    with make_client(handler) as client:
        account = fetch_authenticated_user(client=client)

    assert account.id == 99
    assert account.email is None
    assert account.avatar_url == "https://avatars.example/octocat.png"


@pytest.mark.unit
def test_fetch_authenticated_user_rejects_invalid_shape() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"id": "99", "login": "octocat"})

    with make_client(handler) as client, pytest.raises(GitHubApiError):
        fetch_authenticated_user(client=client)


@pytest.mark.unit
def test_exchange_oauth_code_posts_credentials() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["accept"] = request.headers["Accept"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(status_code=200, json={"access_token": "gho_new"})

    with build_github_client(transport=httpx.MockTransport(handler)) as client:
        token = exchange_oauth_code(
            client=client,
            client_id="id",
            client_secret="secret",
            code="abc123",
        )

    assert token == "gho_new"
    assert seen["url"] == "https://github.com/login/oauth/access_token"
    assert seen["accept"] == "application/json"
    assert seen["body"] == {"client_id": "id", "client_secret": "secret", "code": "abc123"}


@pytest.mark.unit
@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (
            {"error": "bad_verification_code", "error_description": "The code is incorrect."},
            "The code is incorrect.",
        ),
        ({"error": "incorrect_client_credentials"}, "incorrect_client_credentials"),
        ({"token_type": "bearer"}, "no access token"),
    ],
)
def test_exchange_oauth_code_rejections(payload: dict[str, str], message: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json=payload)

    with (
        build_github_client(transport=httpx.MockTransport(handler)) as client,
        pytest.raises(GitHubOAuthError, match=message),
    ):
        exchange_oauth_code(client=client, client_id="id", client_secret="secret", code="x")


@pytest.mark.unit
def test_list_user_repositories_parses_rows() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/user/repos"
        assert request.url.params["sort"] == "updated"
        rows = [make_repo_payload(), make_repo_payload(id=8, name="ship", private=True)]
        return httpx.Response(status_code=200, json=rows)

    with make_client(handler) as client:
        repositories = list_user_repositories(client=client)

    assert [repository.name for repository in repositories] == ["rocket", "ship"]
    assert repositories[1].is_private
    assert repositories[0].url == "https://github.com/acme/rocket"


@pytest.mark.unit
def test_list_user_repositories_rejects_non_array() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"message": "nope"})

    with make_client(handler) as client, pytest.raises(GitHubApiError):
        list_user_repositories(client=client)


@pytest.mark.unit
def test_fetch_repository_validates_segments() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("No request expected")

    with make_client(handler) as client, pytest.raises(GitHubInputError):
        fetch_repository(client=client, owner="acme", repo="  ")


@pytest.mark.unit
def test_fetch_repository_tree_filters_source_blobs() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.raw_path == b"/repos/acme/rocket/git/trees/feature%2Fx?recursive=1"
        return httpx.Response(
            status_code=200,
            json={
                "sha": "tree-sha",
                "truncated": False,
                "tree": [
                    {"path": "src", "type": "tree", "sha": "a"},
                    {"path": "src/App.java", "type": "blob", "sha": "b", "size": 120},
                    {"path": "src/main.PY", "type": "blob", "sha": "c", "size": 40},
                    {"path": "README.md", "type": "blob", "sha": "d", "size": 10},
                ],
            },
        )

    with make_client(handler) as client:
        tree = fetch_repository_tree(client=client, owner="acme", repo="rocket", ref="feature/x")

    assert tree.sha == "tree-sha"
    assert len(tree.entries) == 4
    assert tree.entries[0].size is None
    blobs = tree.blobs_with_suffixes((".java", ".py"))
    assert [entry.path for entry in blobs] == ["src/App.java", "src/main.PY"]


@pytest.mark.unit
def test_fetch_file_text_uses_raw_media_type_and_ref() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/rocket/contents/src/app.py"
        assert request.url.params["ref"] == "main"
        assert request.headers["Accept"] == GITHUB_RAW_MEDIA_TYPE
        return httpx.Response(status_code=200, content="print('héllo')\n".encode())

    with make_client(handler) as client:
        text = fetch_file_text(
            client=client,
            owner="acme",
            repo="rocket",
            path="/src/app.py",
            ref="main",
        )

    assert text == "print('héllo')\n"


@pytest.mark.unit
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(status_code=404),
        httpx.Response(status_code=200, content=b"\xff\xfe\x00binary"),
    ],
)
def test_fetch_file_text_returns_none_for_missing_or_binary(response: httpx.Response) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    with make_client(handler) as client:
        assert fetch_file_text(client=client, owner="acme", repo="rocket", path="a.py") is None


@pytest.mark.unit
def test_fetch_file_text_rejects_empty_path() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("No request expected")

    with make_client(handler) as client, pytest.raises(GitHubInputError):
        fetch_file_text(client=client, owner="acme", repo="rocket", path="/")


@pytest.mark.unit
def test_retry_honors_retry_after_header(monkeypatch: pytest.MonkeyPatch) -> None:
    sleep_durations: list[float] = []
    monkeypatch.setattr("src.github_client._sleep_for_retry", sleep_durations.append)
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] == 1:
            return httpx.Response(status_code=429, headers={"Retry-After": "3"})
        return httpx.Response(status_code=200, json=make_repo_payload())

    with make_client(handler) as client:
        repository = fetch_repository(client=client, owner="acme", repo="rocket")

    assert repository.full_name == "acme/rocket"
    assert attempts["count"] == 2
    assert sleep_durations == [3.0]


@pytest.mark.unit
def test_retry_uses_exponential_backoff_for_server_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    sleep_durations: list[float] = []
    monkeypatch.setattr("src.github_client._sleep_for_retry", sleep_durations.append)
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] in {1, 2}:
            return httpx.Response(status_code=502)
        return httpx.Response(status_code=200, json=make_repo_payload())

    with make_client(handler) as client:
        fetch_repository(client=client, owner="acme", repo="rocket")

    assert attempts["count"] == 3
    assert sleep_durations == [0.5, 1.0]


@pytest.mark.unit
def test_non_retryable_404_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    sleep_durations: list[float] = []
    monkeypatch.setattr("src.github_client._sleep_for_retry", sleep_durations.append)
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(status_code=404)

    with make_client(handler) as client, pytest.raises(GitHubApiError) as exc_info:
        fetch_repository(client=client, owner="acme", repo="rocket")

    assert exc_info.value.status_code == 404
    assert exc_info.value.endpoint == "/repos/acme/rocket"
    assert attempts["count"] == 1
    assert sleep_durations == []


@pytest.mark.unit
def test_rate_limit_error_after_retry_exhaustion(monkeypatch: pytest.MonkeyPatch) -> None:
    sleep_durations: list[float] = []
    monkeypatch.setattr("src.github_client._sleep_for_retry", sleep_durations.append)
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(status_code=429)

    with make_client(handler) as client, pytest.raises(GitHubRateLimitError):
        list_user_repositories(client=client)

    assert attempts["count"] == 3
    assert sleep_durations == [0.5, 1.0]


@pytest.mark.unit
def test_get_github_token_with_source_prefers_github_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "github-token")
    monkeypatch.setenv("GH_TOKEN", "gh-token")

    token, source = get_github_token_with_source()

    assert token == "github-token"
    assert source == "GITHUB_TOKEN"


@pytest.mark.unit
def test_get_github_token_falls_back_to_gh_token(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", "gh-token")
    monkeypatch.chdir(tmp_path)

    assert get_github_token_with_source() == ("gh-token", "GH_TOKEN")


@pytest.mark.unit
def test_get_github_token_loads_from_dotenv(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    # Register GITHUB_TOKEN with monkeypatch so the value load_dotenv writes is undone.
    monkeypatch.setenv("GITHUB_TOKEN", "placeholder")
    monkeypatch.delenv("GITHUB_TOKEN")
    monkeypatch.delenv("GH_TOKEN", raising=False)
    (tmp_path / ".env").write_text("GITHUB_TOKEN=dotenv-token\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert get_github_token_with_source() == ("dotenv-token", "GITHUB_TOKEN")


@pytest.mark.unit
def test_get_github_token_with_source_raises_when_missing(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.chdir(tmp_path)

    with pytest.raises(GitHubAuthError):
        get_github_token_with_source()
