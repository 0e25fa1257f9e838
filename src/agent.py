"""AI review pass: prompt the model per file and parse its findings."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import PurePosixPath
from typing import Any

from src.context import DEFAULT_BUDGET, AnalysisBudget
from src.llm_client import LlmApiError, ReviewModel
from src.observability import RunTelemetry
from src.prompts import (
    NO_FINDINGS_SUMMARY,
    SYSTEM_PROMPT,
    render_file_review_prompt,
    render_summary_prompt,
)
from src.schema import FindingCategory, FindingSeverity, ReviewFinding
from src.scoring import impact_score_for

LANGUAGE_BY_SUFFIX = {
    ".java": "java",
    ".kt": "kotlin",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".xml": "xml",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".properties": "properties",
}
ANALYSIS_ERROR_TITLE = "Analysis Error"
UNTITLED_FINDING = "Untitled finding"

logger = logging.getLogger(__name__)


def detect_language(file_path: str) -> str:
    """Guess the source language from a file extension."""
    return LANGUAGE_BY_SUFFIX.get(PurePosixPath(file_path).suffix.lower(), "text")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence from a model reply."""
    stripped = text.strip()
    if stripped.startswith("```json"):
        stripped = stripped[len("```json") :]
    elif stripped.startswith("```"):
        stripped = stripped[3:]
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def parse_severity(value: object) -> FindingSeverity:
    try:
        return FindingSeverity(str(value).strip().upper())
    except ValueError:
        return FindingSeverity.MEDIUM


def parse_category(value: object) -> FindingCategory:
    try:
        return FindingCategory(str(value).strip().upper())
    except ValueError:
        return FindingCategory.CODE_SMELL


def _optional_text(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    text = str(value)
    return text or None


def _optional_line(raw: Mapping[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _metrics(raw: Mapping[str, Any]) -> list[str]:
    value = raw.get("metricsViolated")
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    if isinstance(value, str) and value:
        return [value]
    return []


def parse_findings(reply_text: str, *, file_path: str) -> list[ReviewFinding]:
    """Parse a model reply holding a JSON array of findings.

    Raises ValueError when the reply is not a JSON array of objects.
    """
    payload = json.loads(strip_code_fences(reply_text))
    if not isinstance(payload, list):
        raise ValueError("Expected a JSON array of findings.")

    findings: list[ReviewFinding] = []
    for raw in payload:
        if not isinstance(raw, dict):
            raise ValueError("Expected every finding to be a JSON object.")
        severity = parse_severity(raw.get("severity"))
        title = str(raw.get("title") or "").strip() or UNTITLED_FINDING
        findings.append(
            ReviewFinding(
                title=title[:200],
                description=str(raw.get("description") or ""),
                severity=severity,
                category=parse_category(raw.get("category")),
                file_path=file_path,
                line_number=_optional_line(raw, "lineNumber"),
                end_line_number=_optional_line(raw, "endLineNumber"),
                code_snippet=_optional_text(raw, "codeSnippet"),
                suggested_fix=_optional_text(raw, "suggestedFix"),
                explanation=_optional_text(raw, "explanation"),
                resources_url=_optional_text(raw, "resourcesUrl"),
                impact_score=impact_score_for(severity),
                metrics_violated=_metrics(raw),
            )
        )
    return findings


def analysis_error_finding(file_path: str, error: Exception) -> ReviewFinding:
    return ReviewFinding(
        title=ANALYSIS_ERROR_TITLE,
        description=f"Failed to analyze file: {error}",
        severity=FindingSeverity.INFO,
        category=FindingCategory.CODE_SMELL,
        file_path=file_path,
        impact_score=impact_score_for(FindingSeverity.INFO),
    )


def _findings_for_summary(findings: Sequence[ReviewFinding]) -> str:
    rows = [
        {
            "title": finding.title,
            "severity": finding.severity.value,
            "category": finding.category.value,
            "location": finding.location_display,
            "description": finding.description,
        }
        for finding in findings
    ]
    return json.dumps(rows, indent=2)


class AiReviewer:
    """Runs the model-backed review pass over source files."""

    def __init__(self, model: ReviewModel, *, budget: AnalysisBudget = DEFAULT_BUDGET) -> None:
        self._model = model
        self._budget = budget

    @property
    def model_name(self) -> str:
        return self._model.model_name

    def analyze_file(
        self,
        file_path: str,
        content: str,
        language: str | None = None,
        *,
        telemetry: RunTelemetry | None = None,
    ) -> list[ReviewFinding]:
        """Review one file; model or parse failures become one INFO finding."""
        resolved_language = language or detect_language(file_path)
        code, truncated = self._budget.truncate_code(content)
        if truncated and telemetry is not None:
            telemetry.warn(f"{file_path} truncated to {self._budget.max_file_chars} characters.")

        prompt = render_file_review_prompt(
            file_path=file_path,
            language=resolved_language,
            code=code,
            categories=", ".join(category.value for category in FindingCategory),
        )
        logger.info("Analyzing %s (%s)", file_path, resolved_language)
        try:
            completion = self._model.complete(prompt, system=SYSTEM_PROMPT)
            if telemetry is not None:
                telemetry.record_call(
                    tokens_in=completion.input_tokens,
                    tokens_out=completion.output_tokens,
                )
            findings = parse_findings(completion.text, file_path=file_path)
        except (LlmApiError, ValueError) as error:
            logger.warning("Analysis of %s failed: %s", file_path, error)
            if telemetry is not None:
                telemetry.warn(f"Analysis of {file_path} failed: {error}")
            return [analysis_error_finding(file_path, error)]

        if len(findings) > self._budget.max_findings_per_file:
            logger.info(
                "Keeping %s of %s findings for %s",
                self._budget.max_findings_per_file,
                len(findings),
                file_path,
            )
            findings = findings[: self._budget.max_findings_per_file]
        return findings

    def analyze_project(
        self,
        files: Mapping[str, str],
        *,
        telemetry: RunTelemetry | None = None,
    ) -> list[ReviewFinding]:
        """Review each file in order and concatenate the findings."""
        findings: list[ReviewFinding] = []
        for file_path, content in files.items():
            findings.extend(self.analyze_file(file_path, content, telemetry=telemetry))
        return findings

    def generate_summary(
        self,
        findings: Sequence[ReviewFinding],
        *,
        telemetry: RunTelemetry | None = None,
    ) -> str:
        """Ask the model for a markdown summary of the findings."""
        if not findings:
            return NO_FINDINGS_SUMMARY
        try:
            prompt = render_summary_prompt(_findings_for_summary(findings))
            completion = self._model.complete(prompt)
        except LlmApiError as error:
            logger.warning("Summary generation failed: %s", error)
            return f"Error generating summary: {error}"
        if telemetry is not None:
            telemetry.record_call(
                tokens_in=completion.input_tokens,
                tokens_out=completion.output_tokens,
            )
        return completion.text
