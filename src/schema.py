"""Domain model for users, code reviews, findings, and quality scores."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

# RFC 5321 path limit; GitHub-provided addresses can exceed the registration form's cap.
MAX_EMAIL_LENGTH = 254


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(tz=UTC)


class FindingSeverity(StrEnum):
    """Supported finding severities, most severe first."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]

    @property
    def description(self) -> str:
        return _SEVERITY_DESCRIPTION[self]


_SEVERITY_PRIORITY = {
    FindingSeverity.CRITICAL: 4,
    FindingSeverity.HIGH: 3,
    FindingSeverity.MEDIUM: 2,
    FindingSeverity.LOW: 1,
    FindingSeverity.INFO: 0,
}

_SEVERITY_DESCRIPTION = {
    FindingSeverity.CRITICAL: "Must fix immediately",
    FindingSeverity.HIGH: "Should fix soon",
    FindingSeverity.MEDIUM: "Should fix eventually",
    FindingSeverity.LOW: "Nice to have",
    FindingSeverity.INFO: "Informational only",
}


class FindingCategory(StrEnum):
    """Supported finding categories."""

    SECURITY_VULNERABILITY = "SECURITY_VULNERABILITY"
    PERFORMANCE = "PERFORMANCE"
    CODE_SMELL = "CODE_SMELL"
    BUG = "BUG"
    ARCHITECTURE = "ARCHITECTURE"
    DESIGN_PATTERN = "DESIGN_PATTERN"
    BEST_PRACTICE = "BEST_PRACTICE"
    TESTING = "TESTING"
    DOCUMENTATION = "DOCUMENTATION"
    ERROR_HANDLING = "ERROR_HANDLING"
    DEPENDENCY = "DEPENDENCY"
    CONFIGURATION = "CONFIGURATION"
    DATABASE = "DATABASE"
    API_DESIGN = "API_DESIGN"
    NAMING = "NAMING"
    DUPLICATION = "DUPLICATION"


class ReviewStatus(StrEnum):
    """Review lifecycle status."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class UserRole(StrEnum):
    """Account roles."""

    USER = "USER"
    ADMIN = "ADMIN"


class SubscriptionTier(StrEnum):
    """Subscription tiers and their usage limits."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"

    @property
    def max_reviews_per_month(self) -> int:
        return _TIER_LIMITS[self][0]

    @property
    def max_files_per_review(self) -> int:
        return _TIER_LIMITS[self][1]

    @property
    def max_github_repos(self) -> int:
        return _TIER_LIMITS[self][2]


# reviews per month, files per review, connected GitHub repos
_TIER_LIMITS = {
    SubscriptionTier.FREE: (10, 10, 1),
    SubscriptionTier.PREMIUM: (100, 100, 20),
}


class User(BaseModel):
    """Registered account, optionally linked to a GitHub identity."""

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=MAX_EMAIL_LENGTH)
    password_hash: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    github_id: int | None = None
    github_username: str | None = None
    github_access_token: str | None = None
    role: UserRole = UserRole.USER
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    is_active: bool = True
    email_verified: bool = False
    is_special_user: bool = False
    usage_limit: int | None = Field(default=None, ge=1)
    reviews_count: int = Field(default=0, ge=0)
    total_files_reviewed: int = Field(default=0, ge=0)
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def record_login(self) -> None:
        self.last_login_at = utc_now()

    def can_create_review(self) -> bool:
        """Return whether the account has review quota left."""
        if not self.is_active:
            return False
        if self.is_admin:
            return True
        if self.is_special_user:
            return self.usage_limit is None or self.reviews_count < self.usage_limit
        if self.subscription_tier == SubscriptionTier.PREMIUM:
            return True
        return self.reviews_count < self.subscription_tier.max_reviews_per_month

    def max_files_per_review(self) -> int | None:
        """Return the per-review file cap, or None when uncapped."""
        if self.is_admin or self.is_special_user:
            return None
        return self.subscription_tier.max_files_per_review

    def has_github_connected(self) -> bool:
        return self.github_id is not None and self.github_access_token is not None

    def connect_github(self, github_id: int, github_username: str, access_token: str) -> None:
        self.github_id = github_id
        self.github_username = github_username
        self.github_access_token = access_token

    def update_github_info(self, github_username: str, access_token: str) -> None:
        self.github_username = github_username
        self.github_access_token = access_token

    def disconnect_github(self) -> None:
        self.github_id = None
        self.github_username = None
        self.github_access_token = None

    def make_special_user(self, usage_limit: int | None) -> None:
        self.is_special_user = True
        self.usage_limit = usage_limit

    def revoke_special_user(self) -> None:
        self.is_special_user = False
        self.usage_limit = None


class ReviewFinding(BaseModel):
    """Single issue or suggestion reported for reviewed code."""

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    severity: FindingSeverity
    category: FindingCategory
    file_path: str | None = None
    line_number: int | None = Field(default=None, ge=0)
    end_line_number: int | None = Field(default=None, ge=0)
    code_snippet: str | None = None
    suggested_fix: str | None = None
    explanation: str | None = None
    resources_url: str | None = None
    impact_score: int | None = Field(default=None, ge=1, le=10)
    metrics_violated: list[str] = Field(default_factory=list)
    is_resolved: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        """Reject whitespace-only titles."""
        if not value.strip():
            raise ValueError("title must not be blank")
        return value

    def mark_as_resolved(self) -> None:
        self.is_resolved = True

    def mark_as_unresolved(self) -> None:
        self.is_resolved = False

    @property
    def is_critical(self) -> bool:
        return self.severity == FindingSeverity.CRITICAL

    @property
    def is_security_related(self) -> bool:
        return self.category == FindingCategory.SECURITY_VULNERABILITY

    @property
    def location_display(self) -> str:
        if self.file_path is None:
            return "Unknown location"
        if self.line_number is None:
            return self.file_path
        return f"{self.file_path}:{self.line_number}"


class CodeQualityScore(BaseModel):
    """Aggregate 0-100 quality metric with per-area breakdown."""

    overall_score: int = Field(ge=0, le=100)
    security_score: int = Field(ge=0, le=100)
    performance_score: int = Field(ge=0, le=100)
    maintainability_score: int = Field(ge=0, le=100)
    best_practices_score: int = Field(ge=0, le=100)
    test_coverage_score: int = Field(ge=0, le=100)
    grade: str

    @classmethod
    def calculate(
        cls,
        security_score: int,
        performance_score: int,
        maintainability_score: int,
        best_practices_score: int,
        test_coverage_score: int,
    ) -> CodeQualityScore:
        """Build a score from sub-scores using the weighted average."""
        overall = int(
            security_score * 0.25
            + performance_score * 0.20
            + maintainability_score * 0.25
            + best_practices_score * 0.20
            + test_coverage_score * 0.10
        )
        return cls(
            overall_score=overall,
            security_score=security_score,
            performance_score=performance_score,
            maintainability_score=maintainability_score,
            best_practices_score=best_practices_score,
            test_coverage_score=test_coverage_score,
            grade=grade_for_score(overall),
        )

    @property
    def is_excellent(self) -> bool:
        return self.overall_score >= 90

    @property
    def is_good(self) -> bool:
        return self.overall_score >= 75

    @property
    def needs_improvement(self) -> bool:
        return self.overall_score < 60


GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (95, "A+"),
    (90, "A"),
    (85, "A-"),
    (80, "B+"),
    (75, "B"),
    (70, "B-"),
    (65, "C+"),
    (60, "C"),
    (55, "C-"),
    (50, "D"),
)


def grade_for_score(score: int) -> str:
    """Map an overall score to a letter grade."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


class CodeReview(BaseModel):
    """Aggregate root for one code review session."""

    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    reviewer_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    status: ReviewStatus = ReviewStatus.PENDING
    findings: list[ReviewFinding] = Field(default_factory=list)
    quality_score: CodeQualityScore | None = None
    total_files_analyzed: int = Field(default=0, ge=0)
    total_lines_analyzed: int = Field(default=0, ge=0)
    analysis_duration_ms: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    ai_model_used: str | None = None
    tokens_used: int | None = None
    cost_usd: float | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def add_finding(self, finding: ReviewFinding) -> None:
        self.findings.append(finding)

    def find_finding(self, finding_id: UUID) -> ReviewFinding | None:
        for finding in self.findings:
            if finding.id == finding_id:
                return finding
        return None

    def start(self) -> None:
        self.status = ReviewStatus.IN_PROGRESS
        self.started_at = utc_now()

    def complete(self, score: CodeQualityScore) -> None:
        self.status = ReviewStatus.COMPLETED
        self.completed_at = utc_now()
        self.quality_score = score
        if self.started_at is not None:
            elapsed = self.completed_at - self.started_at
            self.analysis_duration_ms = int(elapsed.total_seconds() * 1000)

    def fail(self, reason: str) -> None:
        self.status = ReviewStatus.FAILED
        self.description = reason[:1000]
        self.completed_at = utc_now()

    def findings_with_severity(self, severity: FindingSeverity) -> list[ReviewFinding]:
        return [finding for finding in self.findings if finding.severity == severity]

    def findings_in_category(self, category: FindingCategory) -> list[ReviewFinding]:
        return [finding for finding in self.findings if finding.category == category]

    @property
    def critical_findings(self) -> list[ReviewFinding]:
        return self.findings_with_severity(FindingSeverity.CRITICAL)

    @property
    def is_completed(self) -> bool:
        return self.status == ReviewStatus.COMPLETED

    @property
    def is_in_progress(self) -> bool:
        return self.status == ReviewStatus.IN_PROGRESS

    def has_critical_issues(self) -> bool:
        return any(finding.is_critical for finding in self.findings)

    @property
    def total_issues_count(self) -> int:
        return len(self.findings)

    def update_metrics(
        self,
        *,
        files_analyzed: int,
        lines_analyzed: int,
        tokens_used: int,
        cost_usd: float,
    ) -> None:
        self.total_files_analyzed = files_analyzed
        self.total_lines_analyzed = lines_analyzed
        self.tokens_used = tokens_used
        self.cost_usd = cost_usd
