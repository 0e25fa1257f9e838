"""Unit tests for downloadable review reports."""

from __future__ import annotations

import csv
import io
from uuid import uuid4

import pytest
from src.output import (
    CSV_HEADER,
    ReportFormat,
    render_csv_report,
    render_html_report,
    render_markdown_report,
    render_report,
    report_filename,
    sanitize_filename,
)
from src.schema import CodeReview, FindingCategory, FindingSeverity, ReviewFinding
from src.scoring import calculate_quality_score


def completed_review(title: str = "Checkout Service") -> CodeReview:
    review = CodeReview(reviewer_id=uuid4(), title=title)
    review.start()
    review.add_finding(
        ReviewFinding(
            title="Unused import",
            severity=FindingSeverity.LOW,
            category=FindingCategory.CODE_SMELL,
            file_path="cart.py",
        )
    )
    review.add_finding(
        ReviewFinding(
            title="<script> in template",
            description='User input rendered as "raw", with commas',
            severity=FindingSeverity.CRITICAL,
            category=FindingCategory.SECURITY_VULNERABILITY,
            file_path="views.py",
            line_number=12,
            code_snippet="return f'<p>{name}</p>'",
            suggested_fix="escape(name)",
        )
    )
    review.complete(calculate_quality_score(review.findings))
    return review


@pytest.mark.unit
@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Checkout Service", "checkout_service"),
        ("API v2: auth/login!", "api_v2_authlogin"),
        ("  spaced   out  ", "_spaced_out_"),
        ("keep-dashes_and_underscores", "keep-dashes_and_underscores"),
        ("コードレビュー", "review"),
        ("Обзор кода", "review"),
    ],
)
def test_sanitize_filename(title: str, expected: str) -> None:
    assert sanitize_filename(title) == expected


@pytest.mark.unit
def test_report_format_metadata() -> None:
    review = completed_review()

    assert report_filename(review, ReportFormat.MARKDOWN) == "checkout_service_review.md"
    assert report_filename(review, ReportFormat.HTML) == "checkout_service_review.html"
    assert report_filename(review, ReportFormat.CSV) == "checkout_service_findings.csv"
    assert ReportFormat("csv").media_type == "text/csv"
    with pytest.raises(ValueError):
        ReportFormat("pdf")


@pytest.mark.unit
def test_markdown_report_orders_findings_by_severity() -> None:
    report = render_markdown_report(completed_review())

    assert report.startswith("# Code Review: Checkout Service\n")
    assert "## Quality Score" in report
    assert "- CRITICAL: 1" in report
    assert "- SECURITY_VULNERABILITY: 1" in report
    assert report.index("### 1. <script> in template") < report.index("### 2. Unused import")
    assert "`views.py:12`" in report
    assert "**Suggested fix:**" in report


@pytest.mark.unit
def test_markdown_report_without_findings() -> None:
    review = CodeReview(reviewer_id=uuid4(), title="Empty")

    report = render_markdown_report(review)

    assert "- No issues found." in report
    assert "## Quality Score" not in report
    assert "## Summary by Category" not in report


@pytest.mark.unit
def test_html_report_escapes_user_content() -> None:
    report = render_html_report(completed_review("Tom & Jerry"))

    assert "<h1>Code Review: Tom &amp; Jerry</h1>" in report
    assert "&lt;script&gt; in template" in report
    assert "<script>" not in report
    assert "&#x27;&lt;p&gt;" in report


@pytest.mark.unit
def test_csv_report_has_one_row_per_finding() -> None:
    review = completed_review()
    review.findings[0].mark_as_resolved()

    rows = list(csv.reader(io.StringIO(render_csv_report(review))))

    assert tuple(rows[0]) == CSV_HEADER
    assert len(rows) == 3
    unused, script = rows[1], rows[2]
    assert unused[1] == "Unused import"
    assert unused[5] == ""
    assert unused[6] == "Yes"
    assert script[5] == "12"
    assert script[6] == "No"
    assert script[7] == 'User input rendered as "raw", with commas'


@pytest.mark.unit
def test_render_report_dispatches_on_format() -> None:
    review = completed_review()

    assert render_report(review, ReportFormat.MARKDOWN) == render_markdown_report(review)
    assert render_report(review, ReportFormat.HTML).startswith("<!DOCTYPE html>")
    assert render_report(review, ReportFormat.CSV).startswith("ID,Title")
