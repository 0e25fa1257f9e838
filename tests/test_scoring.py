"""Unit tests for quality scoring and hiring-impact heuristics."""

from __future__ import annotations

import pytest
from src.schema import CodeQualityScore, FindingCategory, FindingSeverity, ReviewFinding
from src.scoring import (
    assess_hiring_impact,
    calculate_quality_score,
    category_counts,
    category_score,
    coverage_score,
    impact_score_for,
    maintainability_score,
    severity_counts,
)


def finding(severity: FindingSeverity, category: FindingCategory) -> ReviewFinding:
    return ReviewFinding(title=f"{severity} {category}", severity=severity, category=category)


@pytest.mark.unit
def test_empty_findings_score_is_baseline() -> None:
    score = calculate_quality_score([])

    assert score.security_score == 100
    assert score.test_coverage_score == 70
    # 25 + 20 + 25 + 20 + 7
    assert score.overall_score == 97
    assert score.grade == "A+"


@pytest.mark.unit
def test_category_score_deducts_per_severity_and_floors_at_zero() -> None:
    findings = [
        finding(FindingSeverity.CRITICAL, FindingCategory.SECURITY_VULNERABILITY),
        finding(FindingSeverity.HIGH, FindingCategory.SECURITY_VULNERABILITY),
        finding(FindingSeverity.INFO, FindingCategory.SECURITY_VULNERABILITY),
        finding(FindingSeverity.CRITICAL, FindingCategory.PERFORMANCE),
    ]
    assert category_score(findings, FindingCategory.SECURITY_VULNERABILITY) == 70

    many = [finding(FindingSeverity.CRITICAL, FindingCategory.BEST_PRACTICE)] * 6
    assert category_score(many, FindingCategory.BEST_PRACTICE) == 0


@pytest.mark.unit
def test_maintainability_counts_smell_naming_and_duplication() -> None:
    findings = [
        finding(FindingSeverity.CRITICAL, FindingCategory.CODE_SMELL),
        finding(FindingSeverity.HIGH, FindingCategory.NAMING),
        finding(FindingSeverity.MEDIUM, FindingCategory.DUPLICATION),
        finding(FindingSeverity.CRITICAL, FindingCategory.BUG),
    ]
    assert maintainability_score(findings) == 100 - 15 - 8 - 4


@pytest.mark.unit
def test_coverage_score_starts_from_seventy() -> None:
    assert coverage_score([finding(FindingSeverity.HIGH, FindingCategory.TESTING)]) == 60
    assert coverage_score([finding(FindingSeverity.HIGH, FindingCategory.BUG)]) == 70


@pytest.mark.unit
def test_impact_scores_by_severity() -> None:
    assert [impact_score_for(severity) for severity in FindingSeverity] == [10, 7, 5, 3, 1]


@pytest.mark.unit
def test_rollups_include_all_severities_and_only_used_categories() -> None:
    findings = [
        finding(FindingSeverity.HIGH, FindingCategory.BUG),
        finding(FindingSeverity.HIGH, FindingCategory.BUG),
        finding(FindingSeverity.LOW, FindingCategory.NAMING),
    ]

    assert severity_counts(findings) == {
        FindingSeverity.CRITICAL: 0,
        FindingSeverity.HIGH: 2,
        FindingSeverity.MEDIUM: 0,
        FindingSeverity.LOW: 1,
        FindingSeverity.INFO: 0,
    }
    assert category_counts(findings) == {FindingCategory.BUG: 2, FindingCategory.NAMING: 1}


@pytest.mark.unit
def test_hiring_impact_for_clean_high_score() -> None:
    impact = assess_hiring_impact(calculate_quality_score([]), [])

    assert impact.hireability.level == "Senior"
    assert impact.improvement.effort == "Minimal"
    assert impact.readiness.status == "Ready"
    assert [signal.status for signal in impact.signals] == ["success", "success", "success"]


@pytest.mark.unit
def test_hiring_impact_for_many_critical_issues() -> None:
    findings = [finding(FindingSeverity.CRITICAL, FindingCategory.SECURITY_VULNERABILITY)] * 4
    findings += [finding(FindingSeverity.HIGH, FindingCategory.BUG)] * 5
    score = CodeQualityScore.calculate(
        security_score=20,
        performance_score=60,
        maintainability_score=60,
        best_practices_score=60,
        test_coverage_score=70,
    )

    impact = assess_hiring_impact(score, findings)

    assert impact.hireability.level == "Entry Level"
    # 4 * 3 + 5 * 2 = 22
    assert impact.improvement.time == "4-6 weeks"
    assert impact.readiness.status == "Not Ready"
    security, architecture, practices = impact.signals
    assert security.status == "danger"
    assert "4 critical" in security.description
    assert architecture.status == "warning"
    assert practices.description == "5 high-priority issues to address"


@pytest.mark.unit
def test_hiring_impact_without_score_uses_zero() -> None:
    impact = assess_hiring_impact(None, [])

    assert impact.hireability.level == "Entry Level"
    assert impact.readiness.status == "Almost Ready"
