"""Review pipeline and the review service behind the /reviews routes."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from uuid import UUID

from src.agent import AiReviewer
from src.dto import (
    MAX_FILES_PER_REQUEST,
    GeneratedPromptDTO,
    HiringImpactDTO,
    QualityScoreDTO,
    ReviewInsightsDTO,
    ReviewResponse,
    ReviewStatisticsDTO,
)
from src.errors import (
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    ReviewFailedError,
    ValidationFailedError,
)
from src.observability import RunTelemetry
from src.output import ReportFormat, render_report, report_filename
from src.prompt_generation import PROMPT_INSTRUCTIONS, generate_fixing_prompt
from src.schema import CodeReview, FindingSeverity, ReviewFinding, User, utc_now
from src.scoring import (
    assess_hiring_impact,
    calculate_quality_score,
    category_counts,
    severity_counts,
)
from src.static_analysis import run_static_analysis
from src.storage import ReviewRepository, UserRepository

logger = logging.getLogger(__name__)


def count_lines(files: Mapping[str, str]) -> int:
    return sum(len(content.splitlines()) for content in files.values())


def run_review_pipeline(
    review: CodeReview,
    files: Mapping[str, str],
    reviewer: AiReviewer,
) -> RunTelemetry:
    """Run both analysis passes over files and complete the review in place.

    Returns the model usage telemetry for the run.
    """
    telemetry = RunTelemetry(review_id=str(review.id), model=reviewer.model_name)
    review.start()
    logger.info("Review %s started for %s files", review.id, len(files))

    for finding in reviewer.analyze_project(files, telemetry=telemetry):
        review.add_finding(finding)
    for finding in run_static_analysis(files, telemetry=telemetry):
        review.add_finding(finding)

    score = calculate_quality_score(review.findings)
    review.update_metrics(
        files_analyzed=len(files),
        lines_analyzed=count_lines(files),
        tokens_used=telemetry.tokens_used,
        cost_usd=telemetry.cost_usd,
    )
    review.ai_model_used = reviewer.model_name
    review.complete(score)
    logger.info(
        "Review %s completed: %s findings, score %s, %s tokens",
        review.id,
        len(review.findings),
        score.overall_score,
        telemetry.tokens_used,
    )
    return telemetry


class ReviewService:
    """Creates, reads, and post-processes code reviews for one account at a time."""

    def __init__(
        self,
        users: UserRepository,
        reviews: ReviewRepository,
        reviewer: AiReviewer,
    ) -> None:
        self._users = users
        self._reviews = reviews
        self._reviewer = reviewer

    def create_review(
        self,
        user: User,
        *,
        title: str,
        description: str | None,
        files: Mapping[str, str],
    ) -> CodeReview:
        """Check quota, run the pipeline, and persist the outcome."""
        if not user.can_create_review():
            raise QuotaExceededError("Review limit reached for your account.")
        max_files = user.max_files_per_review()
        if max_files is not None and len(files) > max_files:
            raise ValidationFailedError(
                f"Too many files: {len(files)}. "
                f"Your {user.subscription_tier.value} plan allows {max_files} files per review."
            )

        # The caller's User may be stale; the stored row decides the quota.
        if not self._users.reserve_review_slot(user.id):
            raise QuotaExceededError("Review limit reached for your account.")

        review = CodeReview(reviewer_id=user.id, title=title, description=description)
        self._reviews.save(review)
        try:
            run_review_pipeline(review, files, self._reviewer)
        except Exception as error:
            logger.exception("Review %s failed", review.id)
            self._users.release_review_slot(user.id)
            review.fail(f"Analysis failed: {error}")
            self._reviews.save(review)
            raise ReviewFailedError(f"Analysis failed: {error}") from error

        self._reviews.save(review)
        self._users.add_files_reviewed(user.id, len(files))
        return review

    def get_for_user(self, user: User, review_id: UUID) -> CodeReview:
        review = self._reviews.get(review_id)
        if review is None:
            raise NotFoundError(f"Code review not found with id: {review_id}")
        if review.reviewer_id != user.id and not user.is_admin:
            raise PermissionDeniedError("You do not have access to this review.")
        return review

    def list_for_user(self, user: User) -> list[CodeReview]:
        return self._reviews.list_by_reviewer(user.id)

    def recent_for_user(self, user: User, limit: int = 10) -> list[CodeReview]:
        return self._reviews.list_by_reviewer(user.id, limit=limit)

    def statistics(self, user: User) -> ReviewStatisticsDTO:
        reviews = self._reviews.list_by_reviewer(user.id)
        scores = [
            review.quality_score.overall_score
            for review in reviews
            if review.quality_score is not None
        ]
        return ReviewStatisticsDTO(
            total_reviews=len(reviews),
            completed_reviews=sum(1 for review in reviews if review.is_completed),
            average_quality_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
            total_findings=sum(review.total_issues_count for review in reviews),
            critical_issues=sum(len(review.critical_findings) for review in reviews),
        )

    def summary(self, user: User, review_id: UUID) -> str:
        review = self.get_for_user(user, review_id)
        return self._reviewer.generate_summary(review.findings)

    def resolve_finding(self, user: User, review_id: UUID, finding_id: UUID) -> ReviewFinding:
        review = self.get_for_user(user, review_id)
        finding = review.find_finding(finding_id)
        if finding is None:
            raise NotFoundError(f"Finding not found with id: {finding_id}")
        finding.mark_as_resolved()
        self._reviews.set_finding_resolved(review.id, finding.id, resolved=True)
        return finding

    def delete(self, user: User, review_id: UUID) -> None:
        review = self.get_for_user(user, review_id)
        self._reviews.delete(review.id)
        logger.info("Deleted review %s", review.id)

    def insights(self, user: User, review_id: UUID) -> ReviewInsightsDTO:
        review = self.get_for_user(user, review_id)
        return ReviewInsightsDTO(
            review_id=review.id,
            severity_counts=severity_counts(review.findings),
            category_counts=category_counts(review.findings),
            unresolved_count=sum(1 for finding in review.findings if not finding.is_resolved),
            security_findings=sum(1 for finding in review.findings if finding.is_security_related),
            quality_score=QualityScoreDTO.from_score(review.quality_score),
            hiring_impact=HiringImpactDTO.from_impact(
                assess_hiring_impact(review.quality_score, review.findings)
            ),
        )

    def fixing_prompt(self, user: User, review_id: UUID) -> GeneratedPromptDTO:
        review = self.get_for_user(user, review_id)
        counts = severity_counts(review.findings)
        return GeneratedPromptDTO(
            prompt=generate_fixing_prompt(review),
            total_findings=len(review.findings),
            critical_count=counts[FindingSeverity.CRITICAL],
            high_count=counts[FindingSeverity.HIGH],
            medium_count=counts[FindingSeverity.MEDIUM],
            low_count=counts[FindingSeverity.LOW],
            review_id=review.id,
            generated_at=utc_now(),
            instructions=PROMPT_INSTRUCTIONS,
        )

    def report(self, user: User, review_id: UUID, report_format: str) -> tuple[str, str, str]:
        """Render a download as (content, filename, media type)."""
        try:
            resolved_format = ReportFormat(report_format.lower())
        except ValueError as error:
            raise ValidationFailedError(
                f"Unsupported format '{report_format}'. Use markdown, html, or csv."
            ) from error
        review = self.get_for_user(user, review_id)
        return (
            render_report(review, resolved_format),
            report_filename(review, resolved_format),
            resolved_format.media_type,
        )

    def to_response(self, review: CodeReview) -> ReviewResponse:
        reviewer = self._users.get(review.reviewer_id)
        return ReviewResponse.from_review(
            review,
            reviewer_name=reviewer.username if reviewer is not None else None,
        )


def analyze_files_locally(
    files: Mapping[str, str],
    reviewer: AiReviewer,
    *,
    title: str,
) -> tuple[CodeReview, RunTelemetry]:
    """Review files without an account or a database, for the CLI."""
    if not files:
        raise ValidationFailedError("No reviewable files found.")
    if len(files) > MAX_FILES_PER_REQUEST:
        raise ValidationFailedError(
            f"Too many files: {len(files)}. At most {MAX_FILES_PER_REQUEST} per review."
        )
    # Local runs have no owner; the nil UUID stands in for the reviewer.
    review = CodeReview(reviewer_id=UUID(int=0), title=title)
    try:
        telemetry = run_review_pipeline(review, files, reviewer)
    except Exception as error:
        review.fail(f"Analysis failed: {error}")
        raise ReviewFailedError(f"Analysis failed: {error}") from error
    return review, telemetry
