"""Quality scoring, finding rollups, and hiring-impact heuristics."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from src.schema import CodeQualityScore, FindingCategory, FindingSeverity, ReviewFinding

CATEGORY_DEDUCTIONS = {
    FindingSeverity.CRITICAL: 20,
    FindingSeverity.HIGH: 10,
    FindingSeverity.MEDIUM: 5,
    FindingSeverity.LOW: 2,
    FindingSeverity.INFO: 0,
}
MAINTAINABILITY_DEDUCTIONS = {
    FindingSeverity.CRITICAL: 15,
    FindingSeverity.HIGH: 8,
    FindingSeverity.MEDIUM: 4,
    FindingSeverity.LOW: 2,
    FindingSeverity.INFO: 0,
}
MAINTAINABILITY_CATEGORIES = frozenset(
    {FindingCategory.CODE_SMELL, FindingCategory.NAMING, FindingCategory.DUPLICATION}
)
IMPACT_SCORES = {
    FindingSeverity.CRITICAL: 10,
    FindingSeverity.HIGH: 7,
    FindingSeverity.MEDIUM: 5,
    FindingSeverity.LOW: 3,
    FindingSeverity.INFO: 1,
}
BASELINE_TEST_COVERAGE_SCORE = 70


def _deducted_score(
    findings: Iterable[ReviewFinding],
    *,
    categories: frozenset[FindingCategory],
    deductions: dict[FindingSeverity, int],
    start: int = 100,
) -> int:
    score = start
    for finding in findings:
        if finding.category in categories:
            score -= deductions[finding.severity]
    return max(0, score)


def category_score(findings: Iterable[ReviewFinding], category: FindingCategory) -> int:
    """Score one category from 100, deducting per finding severity."""
    return _deducted_score(
        findings,
        categories=frozenset({category}),
        deductions=CATEGORY_DEDUCTIONS,
    )


def maintainability_score(findings: Iterable[ReviewFinding]) -> int:
    """Score maintainability from smell, naming, and duplication findings."""
    return _deducted_score(
        findings,
        categories=MAINTAINABILITY_CATEGORIES,
        deductions=MAINTAINABILITY_DEDUCTIONS,
    )


def coverage_score(findings: Iterable[ReviewFinding]) -> int:
    """Score testing from a fixed baseline, lowered by testing findings."""
    return _deducted_score(
        findings,
        categories=frozenset({FindingCategory.TESTING}),
        deductions=CATEGORY_DEDUCTIONS,
        start=BASELINE_TEST_COVERAGE_SCORE,
    )


def calculate_quality_score(findings: Sequence[ReviewFinding]) -> CodeQualityScore:
    """Compose the overall quality score for a set of findings."""
    return CodeQualityScore.calculate(
        security_score=category_score(findings, FindingCategory.SECURITY_VULNERABILITY),
        performance_score=category_score(findings, FindingCategory.PERFORMANCE),
        maintainability_score=maintainability_score(findings),
        best_practices_score=category_score(findings, FindingCategory.BEST_PRACTICE),
        test_coverage_score=coverage_score(findings),
    )


def impact_score_for(severity: FindingSeverity) -> int:
    """Return the 1-10 impact score for a severity."""
    return IMPACT_SCORES[severity]


def severity_counts(findings: Iterable[ReviewFinding]) -> dict[FindingSeverity, int]:
    """Count findings per severity, including zero counts, most severe first."""
    counts = Counter(finding.severity for finding in findings)
    return {severity: counts.get(severity, 0) for severity in FindingSeverity}


def category_counts(findings: Iterable[ReviewFinding]) -> dict[FindingCategory, int]:
    """Count findings per category, omitting empty categories."""
    counts = Counter(finding.category for finding in findings)
    return {category: counts[category] for category in FindingCategory if counts[category]}


@dataclass(frozen=True, slots=True)
class HireabilityLevel:
    level: str
    description: str
    percentile: int
    salary_range: str


@dataclass(frozen=True, slots=True)
class ImprovementEstimate:
    time: str
    effort: str


@dataclass(frozen=True, slots=True)
class InterviewReadiness:
    status: str
    message: str


@dataclass(frozen=True, slots=True)
class EmployerSignal:
    issue: str
    impact: str
    status: str
    description: str


@dataclass(frozen=True, slots=True)
class HiringImpact:
    """How a review result would read to a prospective employer."""

    hireability: HireabilityLevel
    improvement: ImprovementEstimate
    readiness: InterviewReadiness
    signals: tuple[EmployerSignal, ...]


def hireability_level(overall_score: int) -> HireabilityLevel:
    if overall_score >= 85:
        return HireabilityLevel(
            level="Senior",
            description="Your code demonstrates senior-level craftsmanship",
            percentile=90,
            salary_range="$120K - $180K",
        )
    if overall_score >= 75:
        return HireabilityLevel(
            level="Mid-Level",
            description="Code quality meets mid-level professional standards",
            percentile=70,
            salary_range="$80K - $120K",
        )
    if overall_score >= 60:
        return HireabilityLevel(
            level="Junior+",
            description="Suitable for junior positions with some improvements",
            percentile=45,
            salary_range="$60K - $80K",
        )
    return HireabilityLevel(
        level="Entry Level",
        description="Needs significant improvement before job applications",
        percentile=25,
        salary_range="$45K - $60K",
    )


def improvement_estimate(critical_issues: int, high_issues: int) -> ImprovementEstimate:
    weighted = critical_issues * 3 + high_issues * 2
    if weighted > 20:
        return ImprovementEstimate(time="4-6 weeks", effort="High")
    if weighted > 10:
        return ImprovementEstimate(time="2-3 weeks", effort="Medium")
    if weighted > 5:
        return ImprovementEstimate(time="1-2 weeks", effort="Low")
    return ImprovementEstimate(time="< 1 week", effort="Minimal")


def interview_readiness(critical_issues: int, security_score: int) -> InterviewReadiness:
    if critical_issues == 0 and security_score >= 80:
        return InterviewReadiness(
            status="Ready",
            message="Your code is ready to showcase to employers",
        )
    if critical_issues <= 2:
        return InterviewReadiness(
            status="Almost Ready",
            message="Fix critical issues before applying",
        )
    return InterviewReadiness(
        status="Not Ready",
        message="Significant work needed before interviews",
    )


def employer_signals(
    *,
    overall_score: int,
    critical_issues: int,
    high_issues: int,
) -> tuple[EmployerSignal, ...]:
    security = (
        EmployerSignal(
            issue="Security Vulnerabilities",
            impact="Critical Red Flag",
            status="danger",
            description=(
                f"{critical_issues} critical security issues will raise immediate concerns"
            ),
        )
        if critical_issues > 0
        else EmployerSignal(
            issue="Security Vulnerabilities",
            impact="Looking Good",
            status="success",
            description="No critical security issues detected",
        )
    )
    architecture = (
        EmployerSignal(
            issue="Code Architecture",
            impact="Professional Level",
            status="success",
            description="Architecture demonstrates good design principles",
        )
        if overall_score >= 70
        else EmployerSignal(
            issue="Code Architecture",
            impact="Needs Improvement",
            status="warning",
            description="Architecture patterns need refinement",
        )
    )
    practices = (
        EmployerSignal(
            issue="Best Practices",
            impact="Industry Standard",
            status="success",
            description="Follows framework best practices",
        )
        if high_issues <= 3
        else EmployerSignal(
            issue="Best Practices",
            impact="Below Standard",
            status="warning",
            description=f"{high_issues} high-priority issues to address",
        )
    )
    return (security, architecture, practices)


def assess_hiring_impact(
    score: CodeQualityScore | None,
    findings: Sequence[ReviewFinding],
) -> HiringImpact:
    """Derive hiring-impact heuristics from a score and its findings."""
    counts = severity_counts(findings)
    critical = counts[FindingSeverity.CRITICAL]
    high = counts[FindingSeverity.HIGH]
    overall = score.overall_score if score is not None else 0
    security = score.security_score if score is not None else 0
    return HiringImpact(
        hireability=hireability_level(overall),
        improvement=improvement_estimate(critical, high),
        readiness=interview_readiness(critical, security),
        signals=employer_signals(
            overall_score=overall,
            critical_issues=critical,
            high_issues=high,
        ),
    )
