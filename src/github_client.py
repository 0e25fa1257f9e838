"""GitHub API wrapper and OAuth helpers."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from dotenv import load_dotenv

from src.observability import redact_code

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
GITHUB_OAUTH_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_JSON_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_RAW_MEDIA_TYPE = "application/vnd.github.raw"
GITHUB_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5

logger = logging.getLogger(__name__)


class GitHubAuthError(RuntimeError):
    """Raised when required GitHub authentication is missing."""


class GitHubInputError(ValueError):
    """Raised when repository input values are invalid."""


class GitHubOAuthError(RuntimeError):
    """Raised when GitHub rejects an OAuth code exchange."""


class GitHubApiError(RuntimeError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, *, status_code: int, endpoint: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class GitHubRateLimitError(GitHubApiError):
    """Raised when GitHub API rate limiting prevents request completion."""


@dataclass(frozen=True, slots=True)
class GitHubAccount:
    """Authenticated GitHub user profile."""

    id: int
    login: str
    name: str | None
    email: str | None
    avatar_url: str | None
    html_url: str | None


@dataclass(frozen=True, slots=True)
class GitHubRepository:
    """Repository summary as shown in the dashboard selector."""

    id: int
    name: str
    full_name: str
    description: str | None
    url: str
    language: str | None
    default_branch: str
    is_private: bool


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One entry of a recursive git tree listing."""

    path: str
    type: str
    sha: str
    size: int | None


@dataclass(frozen=True, slots=True)
class RepositoryTree:
    sha: str
    entries: tuple[TreeEntry, ...]
    truncated: bool

    def blobs_with_suffixes(self, suffixes: tuple[str, ...]) -> tuple[TreeEntry, ...]:
        """Return file entries whose path ends with one of the suffixes."""
        return tuple(
            entry
            for entry in self.entries
            if entry.type == "blob" and entry.path.lower().endswith(suffixes)
        )


def _ensure_mapping(value: object, *, context: str) -> dict[str, Any]:
    """Ensure a response fragment is a JSON object."""
    if not isinstance(value, dict):
        raise GitHubApiError(
            f"Expected JSON object for {context}.",
            status_code=500,
            endpoint=context,
        )
    return value


def _require_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str:
    """Read a required string field from payload."""
    value = payload.get(key)
    if not isinstance(value, str):
        raise GitHubApiError(
            f"Expected string field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _optional_str(payload: dict[str, Any], *, key: str, endpoint: str) -> str | None:
    """Read a string-or-null field from payload."""
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise GitHubApiError(
            f"Expected '{key}' to be a string or null in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_bool(payload: dict[str, Any], *, key: str, endpoint: str) -> bool:
    """Read a required boolean field from payload."""
    value = payload.get(key)
    if not isinstance(value, bool):
        raise GitHubApiError(
            f"Expected boolean field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _require_int(payload: dict[str, Any], *, key: str, endpoint: str) -> int:
    """Read a required integer field from payload."""
    value = payload.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise GitHubApiError(
            f"Expected integer field '{key}' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    return value


def _is_retryable_status(status_code: int) -> bool:
    """Return whether a status code is retryable under policy."""
    return status_code == 429 or 500 <= status_code < 600


def _parse_retry_after_seconds(response: httpx.Response) -> float | None:
    """Parse Retry-After header as seconds if present and valid."""
    retry_after = response.headers.get("Retry-After")
    if retry_after is None:
        return None
    try:
        parsed_value = float(retry_after)
    except ValueError:
        return None
    if parsed_value < 0:
        return None
    return parsed_value


def _compute_retry_delay_seconds(response: httpx.Response, *, attempt_number: int) -> float:
    """Compute retry delay from Retry-After header or exponential backoff."""
    retry_after_seconds = _parse_retry_after_seconds(response)
    if retry_after_seconds is not None:
        return retry_after_seconds
    return DEFAULT_RETRY_BACKOFF_SECONDS * (2 ** (attempt_number - 1))


def _sleep_for_retry(seconds: float) -> None:
    """Sleep helper for retry delays (wrapped for deterministic tests)."""
    time.sleep(seconds)


def _raise_http_error(response: httpx.Response, endpoint: str) -> None:
    """Raise a typed error for a non-success GitHub API response."""
    message = f"GitHub API request failed with status {response.status_code} for '{endpoint}'."
    if response.status_code == 429:
        raise GitHubRateLimitError(
            message,
            status_code=response.status_code,
            endpoint=endpoint,
        )
    raise GitHubApiError(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
    )


def _request_with_retries(
    client: httpx.Client,
    endpoint: str,
    *,
    method: str = "GET",
    accept_header: str | None = None,
    json_body: dict[str, Any] | None = None,
    max_attempts: int = GITHUB_MAX_RETRIES,
    allow_not_found: bool = False,
) -> httpx.Response:
    """Perform a request with retry handling for 429/5xx responses."""
    headers = {"Accept": accept_header} if accept_header else None
    for attempt_number in range(1, max_attempts + 1):
        response = client.request(method, endpoint, headers=headers, json=json_body)
        if response.status_code < 400:
            return response
        if allow_not_found and response.status_code == 404:
            return response

        should_retry = _is_retryable_status(response.status_code) and attempt_number < max_attempts
        if not should_retry:
            _raise_http_error(response, endpoint)

        delay_seconds = _compute_retry_delay_seconds(response, attempt_number=attempt_number)
        logger.warning(
            "GitHub returned %s for %s; retrying in %.1fs",
            response.status_code,
            endpoint,
            delay_seconds,
        )
        _sleep_for_retry(delay_seconds)

    raise RuntimeError("Unexpected retry loop exit without a response.")


def _request_json(client: httpx.Client, endpoint: str) -> dict[str, Any]:
    """Perform a JSON request against GitHub API."""
    response = _request_with_retries(client, endpoint, accept_header=GITHUB_JSON_MEDIA_TYPE)
    return _ensure_mapping(response.json(), context=endpoint)


def _request_json_list(client: httpx.Client, endpoint: str) -> list[dict[str, Any]]:
    """Perform a JSON request that returns an array of objects."""
    response = _request_with_retries(client, endpoint, accept_header=GITHUB_JSON_MEDIA_TYPE)
    payload = response.json()
    if not isinstance(payload, list):
        raise GitHubApiError(
            "Expected JSON array in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )
    rows: list[dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            raise GitHubApiError(
                "Expected all array items to be JSON objects in GitHub response.",
                status_code=500,
                endpoint=endpoint,
            )
        rows.append(item)
    return rows


def exchange_oauth_code(
    *,
    client: httpx.Client,
    client_id: str,
    client_secret: str,
    code: str,
) -> str:
    """Exchange an OAuth authorization code for a user access token."""
    logger.info("Exchanging GitHub OAuth code %s", redact_code(code))
    response = _request_with_retries(
        client,
        GITHUB_OAUTH_TOKEN_URL,
        method="POST",
        accept_header="application/json",
        json_body={"client_id": client_id, "client_secret": client_secret, "code": code},
    )
    payload = _ensure_mapping(response.json(), context=GITHUB_OAUTH_TOKEN_URL)

    # GitHub reports rejected codes with a 200 and an error body.
    error_code = payload.get("error")
    if error_code is not None:
        description = payload.get("error_description") or error_code
        logger.warning("GitHub OAuth exchange rejected: %s", error_code)
        raise GitHubOAuthError(f"GitHub OAuth exchange failed: {description}")

    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise GitHubOAuthError("GitHub OAuth exchange returned no access token.")
    return access_token


def fetch_authenticated_user(*, client: httpx.Client) -> GitHubAccount:
    """Fetch the GitHub profile behind the client's token."""
    endpoint = "/user"
    payload = _request_json(client, endpoint)
    return GitHubAccount(
        id=_require_int(payload, key="id", endpoint=endpoint),
        login=_require_str(payload, key="login", endpoint=endpoint),
        name=_optional_str(payload, key="name", endpoint=endpoint),
        email=_optional_str(payload, key="email", endpoint=endpoint),
        avatar_url=_optional_str(payload, key="avatar_url", endpoint=endpoint),
        html_url=_optional_str(payload, key="html_url", endpoint=endpoint),
    )


def fetch_authenticated_user_login(*, client: httpx.Client) -> str:
    """Fetch authenticated GitHub user login for token validation."""
    return fetch_authenticated_user(client=client).login


def _repository_from_payload(payload: dict[str, Any], *, endpoint: str) -> GitHubRepository:
    return GitHubRepository(
        id=_require_int(payload, key="id", endpoint=endpoint),
        name=_require_str(payload, key="name", endpoint=endpoint),
        full_name=_require_str(payload, key="full_name", endpoint=endpoint),
        description=_optional_str(payload, key="description", endpoint=endpoint),
        url=_require_str(payload, key="html_url", endpoint=endpoint),
        language=_optional_str(payload, key="language", endpoint=endpoint),
        default_branch=_require_str(payload, key="default_branch", endpoint=endpoint),
        is_private=_require_bool(payload, key="private", endpoint=endpoint),
    )


def list_user_repositories(*, client: httpx.Client) -> tuple[GitHubRepository, ...]:
    """List repositories of the authenticated user, most recently updated first."""
    endpoint = "/user/repos?sort=updated&per_page=100"
    rows = _request_json_list(client, endpoint)
    return tuple(_repository_from_payload(row, endpoint=endpoint) for row in rows)


def fetch_repository(*, client: httpx.Client, owner: str, repo: str) -> GitHubRepository:
    """Fetch one repository's metadata."""
    endpoint = f"/repos/{_validate_repo_part(owner)}/{_validate_repo_part(repo)}"
    payload = _request_json(client, endpoint)
    return _repository_from_payload(payload, endpoint=endpoint)


def fetch_repository_tree(
    *,
    client: httpx.Client,
    owner: str,
    repo: str,
    ref: str,
) -> RepositoryTree:
    """Fetch the recursive git tree for a ref."""
    if not ref:
        raise GitHubInputError("Invalid ref ''. Expected a non-empty git ref.")
    endpoint = (
        f"/repos/{_validate_repo_part(owner)}/{_validate_repo_part(repo)}"
        f"/git/trees/{quote(ref, safe='')}?recursive=1"
    )
    payload = _request_json(client, endpoint)
    raw_entries = payload.get("tree")
    if not isinstance(raw_entries, list):
        raise GitHubApiError(
            "Expected array field 'tree' in GitHub response.",
            status_code=500,
            endpoint=endpoint,
        )

    entries: list[TreeEntry] = []
    for raw_entry in raw_entries:
        entry = _ensure_mapping(raw_entry, context=endpoint)
        size = entry.get("size")
        entries.append(
            TreeEntry(
                path=_require_str(entry, key="path", endpoint=endpoint),
                type=_require_str(entry, key="type", endpoint=endpoint),
                sha=_require_str(entry, key="sha", endpoint=endpoint),
                size=size if isinstance(size, int) and not isinstance(size, bool) else None,
            )
        )

    truncated = payload.get("truncated") is True
    if truncated:
        logger.warning("GitHub truncated the tree listing for %s/%s@%s", owner, repo, ref)
    return RepositoryTree(
        sha=_require_str(payload, key="sha", endpoint=endpoint),
        entries=tuple(entries),
        truncated=truncated,
    )


def fetch_file_text(
    *,
    client: httpx.Client,
    owner: str,
    repo: str,
    path: str,
    ref: str | None = None,
) -> str | None:
    """Fetch raw file text, or None when the file does not exist."""
    normalized_path = path.lstrip("/")
    if not normalized_path:
        raise GitHubInputError("Invalid file path ''. Expected a non-empty repository path.")

    endpoint = (
        f"/repos/{_validate_repo_part(owner)}/{_validate_repo_part(repo)}"
        f"/contents/{quote(normalized_path, safe='/')}"
    )
    if ref:
        endpoint = f"{endpoint}?ref={quote(ref, safe='')}"
    response = _request_with_retries(
        client,
        endpoint,
        accept_header=GITHUB_RAW_MEDIA_TYPE,
        allow_not_found=True,
    )
    if response.status_code == 404:
        return None
    try:
        return response.content.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Skipping non-UTF-8 file %s in %s/%s", normalized_path, owner, repo)
        return None


def _validate_repo_part(value: str) -> str:
    """Validate an owner or repository name path segment."""
    stripped = value.strip()
    if not stripped or "/" in stripped:
        raise GitHubInputError(f"Invalid repository segment '{value}'.")
    return stripped


def parse_repo_full_name(repo_full_name: str) -> tuple[str, str]:
    """Parse and validate repository input in owner/repo format."""
    owner, separator, repo = repo_full_name.strip().partition("/")
    if not separator or not owner or not repo or "/" in repo:
        raise GitHubInputError(
            f"Invalid repo '{repo_full_name}'. Expected format is owner/repo."
        )
    return owner, repo


def get_github_token_with_source() -> tuple[str, str]:
    """Read a personal GitHub token and return it with its environment key."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    github_token = os.getenv("GITHUB_TOKEN")
    if github_token:
        return github_token, "GITHUB_TOKEN"

    gh_token = os.getenv("GH_TOKEN")
    if gh_token:
        return gh_token, "GH_TOKEN"

    message = "Missing GitHub token. Set GITHUB_TOKEN (preferred) or GH_TOKEN."
    raise GitHubAuthError(message)


def build_github_client(
    access_token: str | None = None,
    *,
    timeout_seconds: int = 20,
    trust_env: bool = True,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build a GitHub HTTP client, authenticated when a token is given."""
    headers = {
        "Accept": GITHUB_JSON_MEDIA_TYPE,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return httpx.Client(
        base_url=GITHUB_API_BASE_URL,
        headers=headers,
        timeout=timeout_seconds,
        trust_env=trust_env,
        transport=transport,
    )
