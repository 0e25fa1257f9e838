"""FastAPI application factory wiring services to the REST routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.admin import AdminService
from src.agent import AiReviewer
from src.auth import AuthService
from src.config import ConfigError, Settings, load_settings
from src.dto import (
    AdminStatsDTO,
    AuthResponse,
    CreateReviewRequest,
    CreateSpecialUserRequest,
    GeneratedPromptDTO,
    GitHubRepositoryDTO,
    LoginRequest,
    RegisterRequest,
    RepositoryFilesRequest,
    ReviewFindingDTO,
    ReviewInsightsDTO,
    ReviewResponse,
    ReviewStatisticsDTO,
    UpdateUserRequest,
    UserDTO,
)
from src.errors import AuthenticationError, PermissionDeniedError, ServiceError
from src.github_client import (
    GitHubApiError,
    GitHubInputError,
    GitHubOAuthError,
    build_github_client,
)
from src.github_service import GitHubClientFactory, GitHubService
from src.llm_client import AnthropicClient, ReviewModel, build_anthropic_client
from src.observability import configure_logging
from src.reviews import ReviewService
from src.schema import User
from src.security import PasswordHasher, TokenService
from src.storage import Database, ReviewRepository, UserRepository

APP_TITLE = "DevMentor Code Review API"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class Services:
    auth: AuthService
    admin: AdminService
    reviews: ReviewService
    github: GitHubService


def get_services(request: Request) -> Services:
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


def current_user(
    services: ServicesDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    x_user_id: Annotated[str | None, Header()] = None,
) -> User:
    """Resolve the caller from the bearer token and optional X-User-Id header."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token.")
    return services.auth.authenticate(credentials.credentials, header_user_id=x_user_id)


CurrentUser = Annotated[User, Depends(current_user)]


def require_admin(user: CurrentUser) -> User:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required.")
    return user


AdminUser = Annotated[User, Depends(require_admin)]


def _error_body(error: Exception, message: str | None = None) -> dict[str, str]:
    return {"error": type(error).__name__, "message": message or str(error)}


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, error: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=error.status_code, content=_error_body(error))

    @app.exception_handler(GitHubApiError)
    async def handle_github_api_error(_: Request, error: GitHubApiError) -> JSONResponse:
        status_code = 404 if error.status_code == 404 else 502
        logger.warning("GitHub API error %s at %s", error.status_code, error.endpoint)
        return JSONResponse(status_code=status_code, content=_error_body(error))

    # Only GitHub calls run on the request path with a raw httpx client.
    @app.exception_handler(httpx.HTTPError)
    async def handle_github_network_error(_: Request, error: httpx.HTTPError) -> JSONResponse:
        logger.warning("GitHub request failed: %s", error)
        return JSONResponse(
            status_code=502,
            content=_error_body(error, f"Could not reach GitHub: {error}"),
        )

    @app.exception_handler(GitHubOAuthError)
    async def handle_github_oauth_error(_: Request, error: GitHubOAuthError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(error))

    @app.exception_handler(GitHubInputError)
    async def handle_github_input_error(_: Request, error: GitHubInputError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(error))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, error: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in detail['loc'][1:]) or 'body'}: {detail['msg']}"
            for detail in error.errors()
        )
        return JSONResponse(
            status_code=400,
            content=_error_body(error, f"Validation failed: {details}"),
        )


def _auth_router() -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/register", status_code=201)
    def register(body: RegisterRequest, services: ServicesDep) -> AuthResponse:
        user = services.auth.register(body.username, body.email, body.password, body.full_name)
        return AuthResponse.for_user(user, services.auth.issue_token(user))

    @router.post("/login")
    def login(body: LoginRequest, services: ServicesDep) -> AuthResponse:
        user, token = services.auth.login(body.username, body.password)
        return AuthResponse.for_user(user, token)

    @router.get("/me")
    def me(user: CurrentUser) -> UserDTO:
        return UserDTO.from_user(user)

    return router


def _admin_router() -> APIRouter:
    router = APIRouter(prefix="/admin", tags=["admin"])

    @router.get("/users")
    def list_users(_: AdminUser, services: ServicesDep) -> list[UserDTO]:
        return [UserDTO.from_user(user) for user in services.admin.list_users()]

    @router.get("/users/special")
    def list_special_users(_: AdminUser, services: ServicesDep) -> list[UserDTO]:
        return [UserDTO.from_user(user) for user in services.admin.list_special_users()]

    @router.post("/users/special", status_code=201)
    def create_special_user(
        body: CreateSpecialUserRequest,
        _: AdminUser,
        services: ServicesDep,
    ) -> UserDTO:
        return UserDTO.from_user(services.admin.create_special_user(body))

    @router.get("/users/{user_id}")
    def get_user(user_id: UUID, _: AdminUser, services: ServicesDep) -> UserDTO:
        return UserDTO.from_user(services.admin.get_user(user_id))

    @router.put("/users/{user_id}")
    def update_user(
        user_id: UUID,
        body: UpdateUserRequest,
        _: AdminUser,
        services: ServicesDep,
    ) -> UserDTO:
        return UserDTO.from_user(services.admin.update_user(user_id, body))

    @router.delete("/users/{user_id}", status_code=204)
    def delete_user(user_id: UUID, _: AdminUser, services: ServicesDep) -> Response:
        services.admin.delete_user(user_id)
        return Response(status_code=204)

    @router.post("/users/{user_id}/reset-usage")
    def reset_usage(user_id: UUID, _: AdminUser, services: ServicesDep) -> UserDTO:
        return UserDTO.from_user(services.admin.reset_usage(user_id))

    @router.get("/stats")
    def stats(_: AdminUser, services: ServicesDep) -> AdminStatsDTO:
        return services.admin.stats()

    return router


def _reviews_router() -> APIRouter:
    router = APIRouter(prefix="/reviews", tags=["reviews"])

    @router.post("", status_code=201)
    def create_review(
        body: CreateReviewRequest,
        user: CurrentUser,
        services: ServicesDep,
    ) -> ReviewResponse:
        review = services.reviews.create_review(
            user,
            title=body.title,
            description=body.description,
            files=body.files,
        )
        return services.reviews.to_response(review)

    @router.get("")
    def list_reviews(user: CurrentUser, services: ServicesDep) -> list[ReviewResponse]:
        return [
            services.reviews.to_response(review)
            for review in services.reviews.list_for_user(user)
        ]

    # Fixed paths must be registered before /{review_id}.
    @router.get("/recent")
    def recent_reviews(
        user: CurrentUser,
        services: ServicesDep,
        limit: Annotated[int, Query(ge=1, le=50)] = 10,
    ) -> list[ReviewResponse]:
        return [
            services.reviews.to_response(review)
            for review in services.reviews.recent_for_user(user, limit)
        ]

    @router.get("/stats")
    def review_stats(user: CurrentUser, services: ServicesDep) -> ReviewStatisticsDTO:
        return services.reviews.statistics(user)

    @router.get("/{review_id}")
    def get_review(review_id: UUID, user: CurrentUser, services: ServicesDep) -> ReviewResponse:
        return services.reviews.to_response(services.reviews.get_for_user(user, review_id))

    @router.get("/{review_id}/summary", response_class=PlainTextResponse)
    def review_summary(review_id: UUID, user: CurrentUser, services: ServicesDep) -> str:
        return services.reviews.summary(user, review_id)

    @router.get("/{review_id}/insights")
    def review_insights(
        review_id: UUID,
        user: CurrentUser,
        services: ServicesDep,
    ) -> ReviewInsightsDTO:
        return services.reviews.insights(user, review_id)

    @router.put("/{review_id}/findings/{finding_id}/resolve")
    def resolve_finding(
        review_id: UUID,
        finding_id: UUID,
        user: CurrentUser,
        services: ServicesDep,
    ) -> ReviewFindingDTO:
        finding = services.reviews.resolve_finding(user, review_id, finding_id)
        return ReviewFindingDTO.from_finding(finding)

    @router.delete("/{review_id}", status_code=204)
    def delete_review(review_id: UUID, user: CurrentUser, services: ServicesDep) -> Response:
        services.reviews.delete(user, review_id)
        return Response(status_code=204)

    @router.get("/{review_id}/download/{report_format}")
    def download_report(
        review_id: UUID,
        report_format: str,
        user: CurrentUser,
        services: ServicesDep,
    ) -> Response:
        content, filename, media_type = services.reviews.report(user, review_id, report_format)
        return Response(
            content=content,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @router.get("/{review_id}/generate-prompt")
    def generate_prompt(
        review_id: UUID,
        user: CurrentUser,
        services: ServicesDep,
    ) -> GeneratedPromptDTO:
        return services.reviews.fixing_prompt(user, review_id)

    return router


def _github_router() -> APIRouter:
    router = APIRouter(prefix="/github", tags=["github"])

    @router.post("/oauth/callback")
    def oauth_callback(code: Annotated[str, Query()], services: ServicesDep) -> AuthResponse:
        user, token = services.github.oauth_login(code)
        return AuthResponse.for_user(user, token)

    @router.post("/oauth/link")
    def oauth_link(
        code: Annotated[str, Query()],
        user: CurrentUser,
        services: ServicesDep,
    ) -> UserDTO:
        return UserDTO.from_user(services.github.link_account(user, code))

    @router.get("/repositories")
    def list_repositories(user: CurrentUser, services: ServicesDep) -> list[GitHubRepositoryDTO]:
        return [
            GitHubRepositoryDTO.from_repository(repository)
            for repository in services.github.list_repositories(user)
        ]

    @router.get("/repos/{owner}/{repo}")
    def get_repository(
        owner: str,
        repo: str,
        user: CurrentUser,
        services: ServicesDep,
    ) -> GitHubRepositoryDTO:
        repository = services.github.get_repository(user, owner, repo)
        return GitHubRepositoryDTO.from_repository(repository)

    @router.post("/repos/{owner}/{repo}/analyze")
    def analyze_repository(
        owner: str,
        repo: str,
        user: CurrentUser,
        services: ServicesDep,
    ) -> dict[str, str]:
        return services.github.analyze_repository(user, owner, repo)

    @router.post("/repos/{owner}/{repo}/files")
    def fetch_files(
        owner: str,
        repo: str,
        body: RepositoryFilesRequest,
        user: CurrentUser,
        services: ServicesDep,
    ) -> dict[str, str]:
        return services.github.fetch_files(user, owner, repo, body.files)

    @router.delete("/disconnect", status_code=204)
    def disconnect(user: CurrentUser, services: ServicesDep) -> Response:
        services.github.disconnect(user)
        return Response(status_code=204)

    return router


def create_app(
    settings: Settings,
    *,
    review_model: ReviewModel | None = None,
    github_client_factory: GitHubClientFactory | None = None,
) -> FastAPI:
    """Build the API application with its services and routes."""
    configure_logging(settings.log_level)

    owned_model: AnthropicClient | None = None
    if review_model is None:
        if not settings.anthropic_api_key:
            raise ConfigError("Missing ANTHROPIC_API_KEY; reviews cannot run without a model.")
        owned_model = AnthropicClient(
            build_anthropic_client(
                settings.anthropic_api_key,
                timeout_seconds=settings.llm_timeout_seconds,
            ),
            model=settings.review_model,
            max_tokens=settings.review_max_tokens,
            temperature=settings.review_temperature,
        )
        review_model = owned_model

    database = Database(settings.db_path)
    users = UserRepository(database)
    reviews = ReviewRepository(database)
    auth = AuthService(
        users,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens=TokenService(
            settings.jwt_secret,
            expiration_seconds=settings.jwt_expiration_seconds,
        ),
    )
    github = GitHubService(
        users,
        auth,
        settings,
        client_factory=github_client_factory or build_github_client,
    )
    services = Services(
        auth=auth,
        admin=AdminService(users, reviews, auth),
        reviews=ReviewService(users, reviews, AiReviewer(review_model)),
        github=github,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Serving with database %s", database.path)
        yield
        if owned_model is not None:
            owned_model.close()

    app = FastAPI(title=APP_TITLE, version=APP_VERSION, lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    @app.get(f"{settings.api_prefix}/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    for router in (_auth_router(), _admin_router(), _reviews_router(), _github_router()):
        app.include_router(router, prefix=settings.api_prefix)
    return app


def app_from_env() -> FastAPI:
    """Build the application from environment settings (uvicorn factory)."""
    return create_app(load_settings())
