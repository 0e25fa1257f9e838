"""Typer CLI for the DevMentor review service."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import httpx
import typer
import uvicorn
from dotenv import load_dotenv

from src.agent import AiReviewer
from src.auth import AuthService
from src.config import DEFAULT_REVIEW_MODEL, ConfigError, load_settings
from src.context import REVIEWABLE_SOURCE_SUFFIXES
from src.dto import ReviewResponse
from src.errors import ServiceError
from src.github_client import (
    GitHubApiError,
    GitHubAuthError,
    GitHubInputError,
    build_github_client,
    fetch_authenticated_user_login,
    fetch_repository,
    get_github_token_with_source,
    parse_repo_full_name,
)
from src.llm_client import (
    AnthropicClient,
    LlmApiError,
    ReviewModel,
    build_anthropic_client,
    get_anthropic_api_key,
)
from src.observability import configure_logging
from src.output import render_markdown_report
from src.reviews import analyze_files_locally
from src.schema import UserRole
from src.security import PasswordHasher, TokenService
from src.storage import Database, UserRepository

app = typer.Typer(help="AI-assisted code review service and local review runner.")


@app.command("serve")
def serve_command(
    host: Annotated[str, typer.Option(help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port to listen on.")] = 8080,
    reload: Annotated[bool, typer.Option(help="Reload on source changes.")] = False,
) -> None:
    """Run the REST API with uvicorn."""
    uvicorn.run("src.app:app_from_env", factory=True, host=host, port=port, reload=reload)


@app.command("create-admin")
def create_admin_command(
    username: Annotated[str, typer.Option(help="Admin username.")],
    email: Annotated[str, typer.Option(help="Admin email address.")],
    password: Annotated[
        str,
        typer.Option(prompt=True, hide_input=True, help="Admin password."),
    ],
) -> None:
    """Seed an administrator account in the configured database."""
    try:
        settings = load_settings()
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=1) from error

    configure_logging(settings.log_level)
    auth = AuthService(
        UserRepository(Database(settings.db_path)),
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens=TokenService(
            settings.jwt_secret,
            expiration_seconds=settings.jwt_expiration_seconds,
        ),
    )
    try:
        user = auth.create_account(username, email, password, role=UserRole.ADMIN)
    except ServiceError as error:
        typer.echo(f"Could not create admin: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Created admin '{user.username}' ({user.id}).")


def collect_source_files(paths: list[Path]) -> dict[str, str]:
    """Read reviewable files from explicit paths and directory trees."""
    files: dict[str, str] = {}
    for path in paths:
        if path.is_file():
            files[path.as_posix()] = path.read_text(encoding="utf-8", errors="replace")
            continue
        for candidate in sorted(path.rglob("*")):
            relative = candidate.relative_to(path)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if candidate.is_file() and candidate.suffix.lower() in REVIEWABLE_SOURCE_SUFFIXES:
                files[candidate.as_posix()] = candidate.read_text(
                    encoding="utf-8",
                    errors="replace",
                )
    return files


@contextmanager
def open_review_model(model_name: str) -> Iterator[ReviewModel]:
    """Yield a model client for local reviews, closing its connection afterwards."""
    with build_anthropic_client(get_anthropic_api_key()) as client:
        yield AnthropicClient(client, model=model_name)


@app.command("review")
def review_command(
    paths: Annotated[
        list[Path],
        typer.Argument(exists=True, help="Files or directories to review."),
    ],
    title: Annotated[str, typer.Option(help="Review title.")] = "Local review",
    model: Annotated[str, typer.Option(help="Reviewer model.")] = DEFAULT_REVIEW_MODEL,
    output_format: Annotated[str, typer.Option(help="Report format: md|json.")] = "md",
    output: Annotated[
        Path | None,
        typer.Option(help="Write the report to this file instead of stdout."),
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Print progress and warnings.")] = False,
) -> None:
    """Review local source files without the web server."""
    if output_format not in {"md", "json"}:
        raise typer.BadParameter("Use md or json.", param_hint="--output-format")
    configure_logging("INFO" if verbose else "WARNING")

    files = collect_source_files(paths)
    try:
        with open_review_model(model) as review_model:
            review, telemetry = analyze_files_locally(
                files,
                AiReviewer(review_model),
                title=title,
            )
    except (LlmApiError, ServiceError) as error:
        typer.echo(f"Review failed: {error}")
        raise typer.Exit(code=1) from error

    if output_format == "json":
        report = ReviewResponse.from_review(review, reviewer_name=None).model_dump_json(
            by_alias=True,
            indent=2,
        )
    else:
        report = render_markdown_report(review)

    if output is None:
        typer.echo(report)
    else:
        output.write_text(report, encoding="utf-8")
        typer.echo(f"Wrote {output_format} report to {output}.")

    if verbose:
        for warning in telemetry.warnings:
            typer.echo(f"warning: {warning}", err=True)
    typer.echo(
        f"{len(review.findings)} findings, {telemetry.llm_calls} model calls, "
        f"{telemetry.tokens_used} tokens, ${telemetry.cost_usd:.4f}",
        err=True,
    )


@app.command("auth-check")
def auth_check_command(
    repo: Annotated[
        str | None,
        typer.Option(help="Optional repository in owner/repo format for an access check."),
    ] = None,
    timeout_seconds: Annotated[
        int, typer.Option(help="GitHub API timeout in seconds for the validation call.")
    ] = 20,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate GitHub OAuth settings and personal token access."""
    owner_repo = None
    if repo is not None:
        try:
            owner_repo = parse_repo_full_name(repo)
        except GitHubInputError as error:
            raise typer.BadParameter(str(error), param_hint="--repo") from error

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    if os.getenv("GITHUB_OAUTH_CLIENT_ID") and os.getenv("GITHUB_OAUTH_CLIENT_SECRET"):
        typer.echo("GitHub OAuth client is configured.")
    else:
        typer.echo(
            "GitHub OAuth client is not configured "
            "(set GITHUB_OAUTH_CLIENT_ID and GITHUB_OAUTH_CLIENT_SECRET)."
        )

    try:
        token, token_source = get_github_token_with_source()
    except GitHubAuthError as error:
        typer.echo(f"GitHub auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Token detected in {token_source}.")

    try:
        with build_github_client(
            token,
            timeout_seconds=timeout_seconds,
            trust_env=trust_env,
        ) as client:
            login = fetch_authenticated_user_login(client=client)
            typer.echo(f"Authenticated as GitHub user '{login}'.")

            if owner_repo is not None:
                owner, name = owner_repo
                repository = fetch_repository(client=client, owner=owner, repo=name)
                typer.echo(
                    f"Repository access check passed for {repository.full_name} "
                    f"(default branch {repository.default_branch})."
                )
    except GitHubApiError as error:
        typer.echo(
            "GitHub auth check failed: "
            f"status={error.status_code} endpoint={error.endpoint}."
        )
        raise typer.Exit(code=1) from error
    except httpx.HTTPError as error:
        typer.echo(f"GitHub auth check failed: network error ({error}).")
        raise typer.Exit(code=1) from error
    except ImportError as error:
        typer.echo(
            "GitHub auth check failed: proxy transport dependency is missing. "
            "Try `devmentor auth-check --no-trust-env`, or install `httpx[socks]`."
        )
        raise typer.Exit(code=1) from error

    typer.echo("GitHub token setup is valid.")
