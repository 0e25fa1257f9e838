"""Analysis limits applied when building model inputs and collecting files."""

from __future__ import annotations

from dataclasses import dataclass

REVIEWABLE_SOURCE_SUFFIXES = (".java", ".kt", ".py", ".js", ".ts", ".tsx", ".jsx", ".go")


@dataclass(frozen=True, slots=True)
class AnalysisBudget:
    """Caps that keep one review's model spend and GitHub traffic bounded."""

    max_findings_per_file: int = 10
    max_repository_files: int = 20
    max_file_chars: int = 100_000
    source_suffixes: tuple[str, ...] = REVIEWABLE_SOURCE_SUFFIXES

    def truncate_code(self, code: str) -> tuple[str, bool]:
        """Clip code to the per-file character cap."""
        if len(code) <= self.max_file_chars:
            return code, False
        return code[: self.max_file_chars], True


DEFAULT_BUDGET = AnalysisBudget()
