"""Downloadable review reports (markdown, HTML, CSV)."""

from __future__ import annotations

import csv
import html
import io
import re
from enum import StrEnum

from src.schema import CodeReview, FindingSeverity, ReviewFinding
from src.scoring import category_counts, severity_counts

CSV_HEADER = (
    "ID",
    "Title",
    "Severity",
    "Category",
    "File",
    "Line",
    "Resolved",
    "Description",
    "Suggested Fix",
)
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_\s]")
_WHITESPACE = re.compile(r"\s+")
FALLBACK_FILENAME_STEM = "review"


class ReportFormat(StrEnum):
    MARKDOWN = "markdown"
    HTML = "html"
    CSV = "csv"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def filename_suffix(self) -> str:
        return _FILENAME_SUFFIXES[self]


_MEDIA_TYPES = {
    ReportFormat.MARKDOWN: "text/markdown",
    ReportFormat.HTML: "text/html",
    ReportFormat.CSV: "text/csv",
}
_FILENAME_SUFFIXES = {
    ReportFormat.MARKDOWN: "_review.md",
    ReportFormat.HTML: "_review.html",
    ReportFormat.CSV: "_findings.csv",
}


def sanitize_filename(title: str) -> str:
    """Reduce a title to [a-z0-9-_] with underscores for whitespace.

    Titles with nothing usable left, such as non-Latin scripts, become "review".
    """
    cleaned = _WHITESPACE.sub("_", _UNSAFE_FILENAME_CHARS.sub("", title)).lower()
    if not cleaned.strip("_-"):
        return FALLBACK_FILENAME_STEM
    return cleaned


def report_filename(review: CodeReview, report_format: ReportFormat) -> str:
    return f"{sanitize_filename(review.title)}{report_format.filename_suffix}"


def _format_timestamp(review: CodeReview) -> str:
    moment = review.completed_at or review.created_at
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def render_markdown_report(review: CodeReview) -> str:
    """Render a review as a markdown document."""
    lines = [
        f"# Code Review: {review.title}",
        "",
        f"- **Status:** {review.status.value}",
        f"- **Date:** {_format_timestamp(review)}",
        f"- **Files analyzed:** {review.total_files_analyzed}",
        f"- **Lines analyzed:** {review.total_lines_analyzed}",
    ]
    if review.description:
        lines += ["", review.description]

    score = review.quality_score
    if score is not None:
        lines += [
            "",
            "## Quality Score",
            "",
            f"**Overall: {score.overall_score}/100 (Grade {score.grade})**",
            "",
            "| Area | Score |",
            "| --- | --- |",
            f"| Security | {score.security_score} |",
            f"| Performance | {score.performance_score} |",
            f"| Maintainability | {score.maintainability_score} |",
            f"| Best Practices | {score.best_practices_score} |",
            f"| Test Coverage | {score.test_coverage_score} |",
        ]

    lines += ["", "## Summary by Severity", ""]
    lines += [
        f"- {severity.value}: {count}"
        for severity, count in severity_counts(review.findings).items()
    ]
    categories = category_counts(review.findings)
    if categories:
        lines += ["", "## Summary by Category", ""]
        lines += [f"- {category.value}: {count}" for category, count in categories.items()]

    lines += ["", "## Findings", ""]
    if not review.findings:
        lines.append("- No issues found.")
        return "\n".join(lines) + "\n"

    for number, finding in enumerate(_ordered(review.findings), start=1):
        status = "resolved" if finding.is_resolved else "open"
        lines += [
            f"### {number}. {finding.title}",
            "",
            f"**{finding.severity.value} / {finding.category.value}** at "
            f"`{finding.location_display}` ({status})",
            "",
            finding.description or "No description provided.",
            "",
        ]
        if finding.code_snippet:
            lines += ["```", finding.code_snippet, "```", ""]
        if finding.suggested_fix:
            lines += ["**Suggested fix:**", "", finding.suggested_fix, ""]
        if finding.explanation:
            lines += [f"_Why it matters:_ {finding.explanation}", ""]
        if finding.resources_url:
            lines += [f"Reference: {finding.resources_url}", ""]
    return "\n".join(lines)


def _ordered(findings: list[ReviewFinding]) -> list[ReviewFinding]:
    return sorted(findings, key=lambda finding: -finding.severity.priority)


_SEVERITY_COLORS = {
    FindingSeverity.CRITICAL: "#b91c1c",
    FindingSeverity.HIGH: "#c2410c",
    FindingSeverity.MEDIUM: "#a16207",
    FindingSeverity.LOW: "#15803d",
    FindingSeverity.INFO: "#1d4ed8",
}


def render_html_report(review: CodeReview) -> str:
    """Render a review as a standalone HTML page with escaped content."""
    esc = html.escape
    parts = [
        "<!DOCTYPE html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="utf-8">',
        f"<title>Code Review: {esc(review.title)}</title>",
        "<style>body{font-family:sans-serif;max-width:960px;margin:2rem auto;}"
        "pre{background:#f4f4f5;padding:1rem;overflow-x:auto;}"
        ".finding{border-left:4px solid;padding-left:1rem;margin-bottom:1.5rem;}</style>",
        "</head>",
        "<body>",
        f"<h1>Code Review: {esc(review.title)}</h1>",
        f"<p>Status: {esc(review.status.value)} | Date: {esc(_format_timestamp(review))} | "
        f"Files: {review.total_files_analyzed} | Lines: {review.total_lines_analyzed}</p>",
    ]
    score = review.quality_score
    if score is not None:
        parts += [
            "<h2>Quality Score</h2>",
            f"<p><strong>{score.overall_score}/100 (Grade {esc(score.grade)})</strong></p>",
            "<table>",
            f"<tr><td>Security</td><td>{score.security_score}</td></tr>",
            f"<tr><td>Performance</td><td>{score.performance_score}</td></tr>",
            f"<tr><td>Maintainability</td><td>{score.maintainability_score}</td></tr>",
            f"<tr><td>Best Practices</td><td>{score.best_practices_score}</td></tr>",
            f"<tr><td>Test Coverage</td><td>{score.test_coverage_score}</td></tr>",
            "</table>",
        ]

    parts.append(f"<h2>Findings ({len(review.findings)})</h2>")
    if not review.findings:
        parts.append("<p>No issues found.</p>")
    for finding in _ordered(review.findings):
        color = _SEVERITY_COLORS[finding.severity]
        parts += [
            f'<div class="finding" style="border-color:{color}">',
            f"<h3>{esc(finding.title)}</h3>",
            f'<p><span style="color:{color}">{finding.severity.value}</span> '
            f"{finding.category.value} at <code>{esc(finding.location_display)}</code>"
            f"{' (resolved)' if finding.is_resolved else ''}</p>",
            f"<p>{esc(finding.description)}</p>",
        ]
        if finding.code_snippet:
            parts.append(f"<pre><code>{esc(finding.code_snippet)}</code></pre>")
        if finding.suggested_fix:
            parts.append("<h4>Suggested fix</h4>")
            parts.append(f"<pre><code>{esc(finding.suggested_fix)}</code></pre>")
        if finding.explanation:
            parts.append(f"<p><em>{esc(finding.explanation)}</em></p>")
        parts.append("</div>")
    parts += ["</body>", "</html>"]
    return "\n".join(parts) + "\n"


def render_csv_report(review: CodeReview) -> str:
    """Render one CSV row per finding."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for finding in review.findings:
        writer.writerow(
            (
                str(finding.id),
                finding.title,
                finding.severity.value,
                finding.category.value,
                finding.file_path or "",
                "" if finding.line_number is None else finding.line_number,
                "Yes" if finding.is_resolved else "No",
                finding.description,
                finding.suggested_fix or "",
            )
        )
    return buffer.getvalue()


def render_report(review: CodeReview, report_format: ReportFormat) -> str:
    if report_format == ReportFormat.MARKDOWN:
        return render_markdown_report(review)
    if report_format == ReportFormat.HTML:
        return render_html_report(review)
    return render_csv_report(review)
