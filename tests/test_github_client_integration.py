"""Integration tests for GitHub client against live GitHub API."""

from __future__ import annotations

import os

import pytest
from src.context import REVIEWABLE_SOURCE_SUFFIXES
from src.github_client import (
    build_github_client,
    fetch_authenticated_user_login,
    fetch_file_text,
    fetch_repository,
    fetch_repository_tree,
    get_github_token_with_source,
    parse_repo_full_name,
)


def _integration_repo() -> tuple[str, str]:
    """Return the owner/repo configured for integration tests."""
    repo = os.getenv("GITHUB_TEST_REPO")
    if not repo:
        pytest.skip("Set GITHUB_TEST_REPO to run GitHub integration tests.")
    return parse_repo_full_name(repo)


def _has_github_token() -> bool:
    """Return whether a GitHub token is configured."""
    return bool(os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN"))


@pytest.mark.integration
def test_live_token_resolves_login() -> None:
    if not _has_github_token():
        pytest.skip("Set GITHUB_TOKEN or GH_TOKEN for integration tests.")
    token, _ = get_github_token_with_source()

    with build_github_client(token) as client:
        login = fetch_authenticated_user_login(client=client)

    assert login


@pytest.mark.integration
def test_live_default_branch_source_listing() -> None:
    if not _has_github_token():
        pytest.skip("Set GITHUB_TOKEN or GH_TOKEN for integration tests.")
    owner, repo = _integration_repo()
    token, _ = get_github_token_with_source()

    with build_github_client(token) as client:
        repository = fetch_repository(client=client, owner=owner, repo=repo)
        tree = fetch_repository_tree(
            client=client,
            owner=owner,
            repo=repo,
            ref=repository.default_branch,
        )
        blobs = tree.blobs_with_suffixes(REVIEWABLE_SOURCE_SUFFIXES)
        if not blobs:
            pytest.skip(f"{repository.full_name} has no reviewable source files.")
        content = fetch_file_text(
            client=client,
            owner=owner,
            repo=repo,
            path=blobs[0].path,
            ref=repository.default_branch,
        )

    assert repository.full_name.lower() == f"{owner}/{repo}".lower()
    assert tree.entries
    assert content is not None
