"""Request and response bodies for the REST API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.github_client import GitHubRepository
from src.schema import (
    CodeQualityScore,
    CodeReview,
    FindingCategory,
    FindingSeverity,
    ReviewFinding,
    ReviewStatus,
    SubscriptionTier,
    User,
    UserRole,
)
from src.scoring import HiringImpact

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
MAX_FILES_PER_REQUEST = 100


class ApiModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(ApiModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(ApiModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    full_name: str | None = Field(default=None, max_length=100)


class AuthResponse(ApiModel):
    token: str
    type: str = "Bearer"
    user_id: UUID
    username: str
    email: str
    role: UserRole
    subscription_tier: SubscriptionTier
    github_username: str | None = None
    github_connected: bool = False

    @classmethod
    def for_user(cls, user: User, token: str) -> AuthResponse:
        return cls(
            token=token,
            user_id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            subscription_tier=user.subscription_tier,
            github_username=user.github_username,
            github_connected=user.has_github_connected(),
        )


class UserDTO(ApiModel):
    id: UUID
    username: str
    email: str
    full_name: str | None
    avatar_url: str | None
    github_username: str | None
    github_connected: bool
    role: UserRole
    subscription_tier: SubscriptionTier
    is_active: bool
    email_verified: bool
    is_special_user: bool
    usage_limit: int | None
    reviews_count: int
    total_files_reviewed: int
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserDTO:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            github_username=user.github_username,
            github_connected=user.has_github_connected(),
            role=user.role,
            subscription_tier=user.subscription_tier,
            is_active=user.is_active,
            email_verified=user.email_verified,
            is_special_user=user.is_special_user,
            usage_limit=user.usage_limit,
            reviews_count=user.reviews_count,
            total_files_reviewed=user.total_files_reviewed,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class CreateSpecialUserRequest(ApiModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    full_name: str | None = Field(default=None, max_length=100)
    usage_limit: int | None = Field(default=None, ge=1)


class UpdateUserRequest(ApiModel):
    """Partial user update; unset fields are left untouched."""

    full_name: str | None = Field(default=None, max_length=100)
    role: UserRole | None = None
    subscription_tier: SubscriptionTier | None = None
    is_active: bool | None = None
    is_special_user: bool | None = None
    usage_limit: int | None = Field(default=None, ge=1)


class AdminStatsDTO(ApiModel):
    total_users: int
    active_users: int
    special_users: int
    total_reviews: int
    reviews_today: int
    reviews_this_week: int
    reviews_this_month: int


class CreateReviewRequest(ApiModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    files: dict[str, str]

    @field_validator("files")
    @classmethod
    def validate_files(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("at least one file is required")
        if len(value) > MAX_FILES_PER_REQUEST:
            raise ValueError(f"at most {MAX_FILES_PER_REQUEST} files per review")
        if any(not path.strip() for path in value):
            raise ValueError("file paths must not be blank")
        return value


class QualityScoreDTO(ApiModel):
    overall_score: int
    security_score: int
    performance_score: int
    maintainability_score: int
    best_practices_score: int
    test_coverage_score: int
    grade: str

    @classmethod
    def from_score(cls, score: CodeQualityScore | None) -> QualityScoreDTO | None:
        if score is None:
            return None
        return cls.model_validate(score.model_dump())


class ReviewFindingDTO(ApiModel):
    id: UUID
    title: str
    description: str
    severity: FindingSeverity
    category: FindingCategory
    file_path: str | None
    line_number: int | None
    end_line_number: int | None
    code_snippet: str | None
    suggested_fix: str | None
    explanation: str | None
    resources_url: str | None
    impact_score: int | None
    metrics_violated: list[str]
    is_resolved: bool

    @classmethod
    def from_finding(cls, finding: ReviewFinding) -> ReviewFindingDTO:
        return cls.model_validate(finding.model_dump())


class ReviewResponse(ApiModel):
    id: UUID
    title: str
    description: str | None
    status: ReviewStatus
    reviewer_id: UUID
    reviewer_name: str | None
    quality_score: QualityScoreDTO | None
    findings: list[ReviewFindingDTO]
    total_files_analyzed: int
    total_lines_analyzed: int
    analysis_duration_ms: int | None
    ai_model_used: str | None
    tokens_used: int | None
    cost_usd: float | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_review(cls, review: CodeReview, *, reviewer_name: str | None) -> ReviewResponse:
        return cls(
            id=review.id,
            title=review.title,
            description=review.description,
            status=review.status,
            reviewer_id=review.reviewer_id,
            reviewer_name=reviewer_name,
            quality_score=QualityScoreDTO.from_score(review.quality_score),
            findings=[ReviewFindingDTO.from_finding(finding) for finding in review.findings],
            total_files_analyzed=review.total_files_analyzed,
            total_lines_analyzed=review.total_lines_analyzed,
            analysis_duration_ms=review.analysis_duration_ms,
            ai_model_used=review.ai_model_used,
            tokens_used=review.tokens_used,
            cost_usd=review.cost_usd,
            created_at=review.created_at,
            started_at=review.started_at,
            completed_at=review.completed_at,
        )


class ReviewStatisticsDTO(ApiModel):
    total_reviews: int
    completed_reviews: int
    average_quality_score: float
    total_findings: int
    critical_issues: int


class GeneratedPromptDTO(ApiModel):
    prompt: str
    total_findings: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    review_id: UUID
    generated_at: datetime
    instructions: str


class HireabilityDTO(ApiModel):
    level: str
    description: str
    percentile: int
    salary_range: str


class ImprovementDTO(ApiModel):
    time: str
    effort: str


class ReadinessDTO(ApiModel):
    status: str
    message: str


class EmployerSignalDTO(ApiModel):
    issue: str
    impact: str
    status: str
    description: str


class HiringImpactDTO(ApiModel):
    hireability: HireabilityDTO
    improvement: ImprovementDTO
    readiness: ReadinessDTO
    signals: list[EmployerSignalDTO]

    @classmethod
    def from_impact(cls, impact: HiringImpact) -> HiringImpactDTO:
        return cls(
            hireability=HireabilityDTO(
                level=impact.hireability.level,
                description=impact.hireability.description,
                percentile=impact.hireability.percentile,
                salary_range=impact.hireability.salary_range,
            ),
            improvement=ImprovementDTO(
                time=impact.improvement.time,
                effort=impact.improvement.effort,
            ),
            readiness=ReadinessDTO(
                status=impact.readiness.status,
                message=impact.readiness.message,
            ),
            signals=[
                EmployerSignalDTO(
                    issue=signal.issue,
                    impact=signal.impact,
                    status=signal.status,
                    description=signal.description,
                )
                for signal in impact.signals
            ],
        )


class ReviewInsightsDTO(ApiModel):
    review_id: UUID
    severity_counts: dict[FindingSeverity, int]
    category_counts: dict[FindingCategory, int]
    unresolved_count: int
    security_findings: int
    quality_score: QualityScoreDTO | None
    hiring_impact: HiringImpactDTO


class GitHubRepositoryDTO(ApiModel):
    id: int
    name: str
    full_name: str
    description: str | None
    url: str
    language: str | None
    default_branch: str
    is_private: bool

    @classmethod
    def from_repository(cls, repository: GitHubRepository) -> GitHubRepositoryDTO:
        return cls(
            id=repository.id,
            name=repository.name,
            full_name=repository.full_name,
            description=repository.description,
            url=repository.url,
            language=repository.language,
            default_branch=repository.default_branch,
            is_private=repository.is_private,
        )


class RepositoryFilesRequest(ApiModel):
    files: list[str] = Field(min_length=1, max_length=MAX_FILES_PER_REQUEST)
