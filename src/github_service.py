"""GitHub OAuth login/linking and repository file collection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import httpx
from pydantic import ValidationError

from src.auth import AuthService
from src.config import Settings
from src.context import DEFAULT_BUDGET, AnalysisBudget
from src.errors import ConflictError, PermissionDeniedError, ServiceError, ValidationFailedError
from src.github_client import (
    GitHubAccount,
    GitHubRepository,
    build_github_client,
    exchange_oauth_code,
    fetch_authenticated_user,
    fetch_file_text,
    fetch_repository,
    fetch_repository_tree,
    list_user_repositories,
)
from src.schema import User
from src.storage import UserRepository

GitHubClientFactory = Callable[[str | None], httpx.Client]

logger = logging.getLogger(__name__)


class GitHubNotConnectedError(ValidationFailedError):
    """Raised when a GitHub route is used by an account without a linked token."""


class GitHubNotConfiguredError(ServiceError):
    """Raised when OAuth client credentials are missing from settings."""

    status_code = 503


class GitHubService:
    def __init__(
        self,
        users: UserRepository,
        auth: AuthService,
        settings: Settings,
        *,
        client_factory: GitHubClientFactory = build_github_client,
        budget: AnalysisBudget = DEFAULT_BUDGET,
    ) -> None:
        self._users = users
        self._auth = auth
        self._settings = settings
        self._client_factory = client_factory
        self._budget = budget

    def _exchange_code(self, code: str) -> tuple[str, GitHubAccount]:
        client_id = self._settings.github_client_id
        client_secret = self._settings.github_client_secret
        if not client_id or not client_secret:
            raise GitHubNotConfiguredError("GitHub OAuth is not configured on this server.")
        if not code.strip():
            raise ValidationFailedError("Missing OAuth code.")

        with self._client_factory(None) as client:
            access_token = exchange_oauth_code(
                client=client,
                client_id=client_id,
                client_secret=client_secret,
                code=code,
            )
        with self._client_factory(access_token) as client:
            account = fetch_authenticated_user(client=client)
        return access_token, account

    def _available_username(self, login: str) -> str:
        candidate = login[:50]
        suffix = 1
        while self._users.exists_by_username(candidate):
            tail = str(suffix)
            candidate = f"{login[: 50 - len(tail)]}{tail}"
            suffix += 1
        return candidate

    def oauth_login(self, code: str) -> tuple[User, str]:
        """Sign in with GitHub, creating an account on first use."""
        access_token, account = self._exchange_code(code)
        user = self._users.get_by_github_id(account.id)
        if user is None:
            email = account.email or f"{account.login}@github.com"
            if self._users.exists_by_email(email):
                raise ConflictError(
                    f"Email '{email}' already belongs to an account. "
                    "Log in with your password and link GitHub instead."
                )
            try:
                user = User(
                    username=self._available_username(account.login),
                    email=email,
                    full_name=account.name,
                    avatar_url=account.avatar_url,
                    email_verified=account.email is not None,
                )
            except ValidationError as error:
                raise ValidationFailedError(
                    f"GitHub profile for '{account.login}' cannot be used to create an account."
                ) from error
            user.connect_github(account.id, account.login, access_token)
            logger.info("Created account %s from GitHub login %s", user.username, account.login)
        else:
            if not user.is_active:
                raise PermissionDeniedError("Account is disabled.")
            user.update_github_info(account.login, access_token)
            if account.avatar_url:
                user.avatar_url = account.avatar_url

        user.record_login()
        self._users.save(user)
        return user, self._auth.issue_token(user)

    def link_account(self, user: User, code: str) -> User:
        """Attach a GitHub identity to an existing account."""
        access_token, account = self._exchange_code(code)
        owner = self._users.get_by_github_id(account.id)
        if owner is not None and owner.id != user.id:
            raise ConflictError("This GitHub account is already linked to another user.")
        user.connect_github(account.id, account.login, access_token)
        if user.avatar_url is None:
            user.avatar_url = account.avatar_url
        self._users.save(user)
        logger.info("Linked GitHub login %s to %s", account.login, user.username)
        return user

    def disconnect(self, user: User) -> User:
        user.disconnect_github()
        self._users.save(user)
        logger.info("Disconnected GitHub from %s", user.username)
        return user

    def _client_for(self, user: User) -> httpx.Client:
        if not user.has_github_connected():
            raise GitHubNotConnectedError("GitHub account not connected.")
        return self._client_factory(user.github_access_token)

    def list_repositories(self, user: User) -> tuple[GitHubRepository, ...]:
        with self._client_for(user) as client:
            return list_user_repositories(client=client)

    def get_repository(self, user: User, owner: str, repo: str) -> GitHubRepository:
        with self._client_for(user) as client:
            return fetch_repository(client=client, owner=owner, repo=repo)

    def analyze_repository(self, user: User, owner: str, repo: str) -> dict[str, str]:
        """Collect reviewable source files from the default branch."""
        with self._client_for(user) as client:
            repository = fetch_repository(client=client, owner=owner, repo=repo)
            tree = fetch_repository_tree(
                client=client,
                owner=owner,
                repo=repo,
                ref=repository.default_branch,
            )
            blobs = tree.blobs_with_suffixes(self._budget.source_suffixes)
            if len(blobs) > self._budget.max_repository_files:
                logger.warning(
                    "%s has %s source files; analyzing the first %s",
                    repository.full_name,
                    len(blobs),
                    self._budget.max_repository_files,
                )
                blobs = blobs[: self._budget.max_repository_files]

            files: dict[str, str] = {}
            for entry in blobs:
                content = fetch_file_text(
                    client=client,
                    owner=owner,
                    repo=repo,
                    path=entry.path,
                    ref=repository.default_branch,
                )
                if content is not None:
                    files[entry.path] = content
        logger.info("Fetched %s files from %s", len(files), repository.full_name)
        return files

    def fetch_files(
        self,
        user: User,
        owner: str,
        repo: str,
        paths: Sequence[str],
    ) -> dict[str, str]:
        """Fetch the named files; missing ones are skipped."""
        files: dict[str, str] = {}
        with self._client_for(user) as client:
            for path in paths:
                content = fetch_file_text(client=client, owner=owner, repo=repo, path=path)
                if content is None:
                    logger.info("Skipping missing file %s in %s/%s", path, owner, repo)
                    continue
                files[path] = content
        return files
