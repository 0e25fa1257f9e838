"""Unit tests for the AI review pass with an injected model."""

from __future__ import annotations

import json

import pytest
from src.agent import (
    ANALYSIS_ERROR_TITLE,
    AiReviewer,
    detect_language,
    parse_findings,
    strip_code_fences,
)
from src.context import AnalysisBudget
from src.llm_client import LlmApiError, LlmCompletion
from src.observability import RunTelemetry
from src.prompts import NO_FINDINGS_SUMMARY
from src.schema import FindingCategory, FindingSeverity, ReviewFinding


class ScriptedModel:
    """Returns queued replies and raises queued errors in order."""

    def __init__(self, *replies: str | Exception) -> None:
        self._replies = list(replies)
        self.calls: list[tuple[str, str | None]] = []

    @property
    def model_name(self) -> str:
        return "scripted"

    def complete(self, prompt: str, *, system: str | None = None) -> LlmCompletion:
        self.calls.append((prompt, system))
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LlmCompletion(text=reply, input_tokens=10, output_tokens=5, model="scripted")


def finding_json(index: int, **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "title": f"Issue {index}",
        "description": "Something is off.",
        "severity": "HIGH",
        "category": "BUG",
        "lineNumber": index,
    }
    payload.update(fields)
    return payload


@pytest.mark.unit
@pytest.mark.parametrize(
    ("path", "language"),
    [
        ("src/Main.java", "java"),
        ("app/models.py", "python"),
        ("web/App.TSX", "typescript"),
        ("config/application.yml", "yaml"),
        ("README", "text"),
    ],
)
def test_detect_language(path: str, language: str) -> None:
    assert detect_language(path) == language


@pytest.mark.unit
def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fences("```\n[]\n```") == "[]"
    assert strip_code_fences("  []  ") == "[]"


@pytest.mark.unit
def test_parse_findings_maps_fields_with_fallbacks() -> None:
    reply = json.dumps(
        [
            finding_json(1, severity="critical", category="security_vulnerability"),
            finding_json(2, severity="URGENT", category="STYLE", title="  "),
            finding_json(3, lineNumber="12", metricsViolated=["Complexity: 12"]),
        ]
    )

    findings = parse_findings(reply, file_path="svc.py")

    assert findings[0].severity == FindingSeverity.CRITICAL
    assert findings[0].category == FindingCategory.SECURITY_VULNERABILITY
    assert findings[0].impact_score == 10
    assert findings[1].severity == FindingSeverity.MEDIUM
    assert findings[1].category == FindingCategory.CODE_SMELL
    assert findings[1].title == "Untitled finding"
    assert findings[2].line_number == 12
    assert findings[2].metrics_violated == ["Complexity: 12"]
    assert all(finding.file_path == "svc.py" for finding in findings)


@pytest.mark.unit
def test_parse_findings_rejects_non_array_payloads() -> None:
    with pytest.raises(ValueError):
        parse_findings('{"title": "x"}', file_path="a.py")
    with pytest.raises(ValueError):
        parse_findings("[1, 2]", file_path="a.py")
    with pytest.raises(ValueError):
        parse_findings("not json", file_path="a.py")


@pytest.mark.unit
def test_analyze_file_caps_findings_and_records_usage() -> None:
    reply = json.dumps([finding_json(index) for index in range(1, 14)])
    model = ScriptedModel(reply)
    telemetry = RunTelemetry(review_id="r", model="scripted")

    findings = AiReviewer(model).analyze_file("Main.java", "class Main {}", telemetry=telemetry)

    assert len(findings) == 10
    prompt, system = model.calls[0]
    assert "File: Main.java" in prompt
    assert "Language: java" in prompt
    assert system is not None
    assert telemetry.llm_calls == 1
    assert telemetry.tokens_used == 15


@pytest.mark.unit
def test_analyze_file_turns_failures_into_info_finding() -> None:
    model = ScriptedModel(LlmApiError("overloaded", status_code=529), "this is not json")
    reviewer = AiReviewer(model)

    api_failure = reviewer.analyze_file("a.py", "x = 1")
    parse_failure = reviewer.analyze_file("b.py", "y = 2")

    for findings, path in ((api_failure, "a.py"), (parse_failure, "b.py")):
        assert len(findings) == 1
        assert findings[0].title == ANALYSIS_ERROR_TITLE
        assert findings[0].severity == FindingSeverity.INFO
        assert findings[0].file_path == path
        assert findings[0].description.startswith("Failed to analyze file:")


@pytest.mark.unit
def test_analyze_file_truncates_oversized_code() -> None:
    model = ScriptedModel("[]")
    telemetry = RunTelemetry(review_id="r", model="scripted")
    reviewer = AiReviewer(model, budget=AnalysisBudget(max_file_chars=50))

    reviewer.analyze_file("big.py", "x" * 80, telemetry=telemetry)

    prompt, _ = model.calls[0]
    assert "x" * 50 in prompt
    assert "x" * 51 not in prompt
    assert telemetry.warnings == ["big.py truncated to 50 characters."]


@pytest.mark.unit
def test_analyze_project_keeps_file_order() -> None:
    model = ScriptedModel(
        json.dumps([finding_json(1)]),
        json.dumps([finding_json(2), finding_json(3)]),
    )

    findings = AiReviewer(model).analyze_project({"first.py": "a", "second.py": "b"})

    assert [finding.file_path for finding in findings] == ["first.py", "second.py", "second.py"]


@pytest.mark.unit
def test_generate_summary_paths() -> None:
    finding = ReviewFinding(
        title="Bug",
        severity=FindingSeverity.HIGH,
        category=FindingCategory.BUG,
    )

    assert AiReviewer(ScriptedModel()).generate_summary([]) == NO_FINDINGS_SUMMARY

    model = ScriptedModel("## Overall Assessment\nSolid.")
    assert AiReviewer(model).generate_summary([finding]).startswith("## Overall Assessment")
    assert '"severity": "HIGH"' in model.calls[0][0]

    failing = ScriptedModel(LlmApiError("down"))
    assert AiReviewer(failing).generate_summary([finding]) == "Error generating summary: down"
