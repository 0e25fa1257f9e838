"""Build a copy-paste prompt asking an AI assistant to fix a review's findings."""

from __future__ import annotations

from src.agent import detect_language
from src.schema import CodeReview, FindingCategory, FindingSeverity, ReviewFinding
from src.scoring import severity_counts

PROMPT_INSTRUCTIONS = (
    "Copy this prompt and paste it into Claude AI or another AI assistant to fix all "
    "the issues in your code."
)

SEVERITY_LABELS = {
    FindingSeverity.CRITICAL: "Must fix immediately - security/data loss risks",
    FindingSeverity.HIGH: "Should fix before production",
    FindingSeverity.MEDIUM: "Important improvements",
    FindingSeverity.LOW: "Nice to have",
    FindingSeverity.INFO: "Suggestions",
}

# Lower value sorts first within one severity.
CATEGORY_IMPORTANCE = {
    category: rank
    for rank, category in enumerate(
        (
            FindingCategory.SECURITY_VULNERABILITY,
            FindingCategory.BUG,
            FindingCategory.PERFORMANCE,
            FindingCategory.ARCHITECTURE,
            FindingCategory.ERROR_HANDLING,
            FindingCategory.DATABASE,
            FindingCategory.TESTING,
            FindingCategory.CODE_SMELL,
            FindingCategory.BEST_PRACTICE,
            FindingCategory.API_DESIGN,
            FindingCategory.CONFIGURATION,
            FindingCategory.DEPENDENCY,
            FindingCategory.DOCUMENTATION,
            FindingCategory.NAMING,
            FindingCategory.DUPLICATION,
            FindingCategory.DESIGN_PATTERN,
        ),
        start=1,
    )
}

CATEGORY_ACTIONS: dict[FindingCategory, tuple[str, tuple[str, ...]]] = {
    FindingCategory.SECURITY_VULNERABILITY: (
        "SECURITY FIX REQUIRED",
        (
            "Implement proper security controls immediately",
            "Validate all inputs and sanitize outputs",
            "Use parameterized queries for database operations",
            "Apply proper authentication and authorization checks",
        ),
    ),
    FindingCategory.BUG: (
        "BUG FIX REQUIRED",
        (
            "Analyze the root cause of the issue",
            "Implement a fix that handles edge cases",
            "Add unit tests to prevent regression",
            "Verify the fix doesn't break existing functionality",
        ),
    ),
    FindingCategory.PERFORMANCE: (
        "PERFORMANCE OPTIMIZATION REQUIRED",
        (
            "Profile the code to identify bottlenecks",
            "Use efficient algorithms and data structures",
            "Add caching where appropriate",
            "Optimize database queries (add indexes, avoid N+1)",
        ),
    ),
    FindingCategory.ARCHITECTURE: (
        "ARCHITECTURAL IMPROVEMENT REQUIRED",
        (
            "Refactor to follow SOLID principles",
            "Separate domain, application, and infrastructure concerns",
            "Use appropriate design patterns",
            "Keep coupling loose and cohesion high",
        ),
    ),
    FindingCategory.CODE_SMELL: (
        "CODE REFACTORING REQUIRED",
        (
            "Simplify complex functions (reduce cyclomatic complexity)",
            "Extract reusable code into separate functions or classes",
            "Improve readability and maintainability",
            "Remove code duplication",
        ),
    ),
    FindingCategory.TESTING: (
        "TESTING IMPROVEMENT REQUIRED",
        (
            "Add focused unit tests",
            "Add integration tests for critical paths",
            "Raise coverage to 80%+",
            "Test edge cases and error scenarios",
        ),
    ),
    FindingCategory.ERROR_HANDLING: (
        "ERROR HANDLING REQUIRED",
        (
            "Catch specific exceptions instead of broad ones",
            "Introduce domain exceptions for business failures",
            "Log errors with useful context",
            "Return meaningful error messages to users",
        ),
    ),
    FindingCategory.DATABASE: (
        "DATABASE OPTIMIZATION REQUIRED",
        (
            "Add indexes for frequent queries",
            "Use transactions appropriately",
            "Use connection pooling",
            "Select only the columns you need",
        ),
    ),
}
DEFAULT_ACTION = (
    "FIX REQUIRED",
    (
        "Address the issue as described above",
        "Follow best practices for this type of problem",
        "Keep the fix maintainable and documented",
    ),
)


def category_importance(category: FindingCategory) -> int:
    return CATEGORY_IMPORTANCE[category]


def action_instruction(finding: ReviewFinding) -> str:
    heading, steps = CATEGORY_ACTIONS.get(finding.category, DEFAULT_ACTION)
    return "\n".join([f"**{heading}:**", *(f"- {step}" for step in steps)])


def _finding_section(number: int, finding: ReviewFinding) -> list[str]:
    location = f"`{finding.file_path or 'unknown'}`"
    if finding.line_number is not None:
        location = f"{location} (Line {finding.line_number})"
    lines = [
        f"#### Issue #{number}: {finding.title}",
        "",
        f"**Category:** {finding.category.value}",
        f"**Severity:** {finding.severity.value}",
        f"**File:** {location}",
        "",
        "**Problem Description:**",
        finding.description or "No description provided.",
        "",
    ]
    if finding.code_snippet and finding.code_snippet.strip():
        language = detect_language(finding.file_path or "")
        fence_language = "" if language == "text" else language
        lines += ["**Current Code:**", f"```{fence_language}", finding.code_snippet, "```", ""]
    if finding.suggested_fix and finding.suggested_fix.strip():
        lines += ["**Suggested Solution:**", finding.suggested_fix, ""]
    if finding.impact_score is not None:
        lines += ["**Impact Level:**", f"Impact Score: {finding.impact_score}/10", ""]
    lines += ["**Action Required:**", action_instruction(finding), "", "---", ""]
    return lines


def generate_fixing_prompt(review: CodeReview) -> str:
    """Render the full fixing prompt for a review."""
    score = review.quality_score
    counts = severity_counts(review.findings)
    lines = [
        "# Code Review Issue Resolution Request",
        "",
        "## Project Context",
        f"**Review ID:** {review.id}",
        f"**Project:** {review.title}",
        (
            f"**Files Analyzed:** {review.total_files_analyzed} files "
            f"({review.total_lines_analyzed} lines of code)"
        ),
        f"**Overall Quality Score:** {score.overall_score if score is not None else 0}/100",
        "",
    ]
    if score is not None:
        lines += [
            "### Quality Metrics",
            f"- Security: {score.security_score}/100",
            f"- Performance: {score.performance_score}/100",
            f"- Maintainability: {score.maintainability_score}/100",
            f"- Best Practices: {score.best_practices_score}/100",
            f"- Test Coverage: {score.test_coverage_score}/100",
            "",
        ]

    lines += [
        "## Issues Summary",
        f"**Total Issues:** {len(review.findings)}",
        "",
        "**By Severity:**",
    ]
    lines += [
        f"- {severity.value}: {counts[severity]} ({SEVERITY_LABELS[severity]})"
        for severity in FindingSeverity
    ]
    lines += [
        "",
        "---",
        "",
        "## YOUR TASK",
        "",
        (
            "You are an expert software engineer specializing in code quality and security. "
            "Fix ALL the issues listed below in the codebase, following these principles:"
        ),
        "",
        "### Core Principles:",
        "1. **Fix, Don't Just Comment** - Implement actual solutions, not TODO comments",
        "2. **Maintain Functionality** - Keep all existing features working",
        "3. **Follow Best Practices** - Apply industry-standard patterns and conventions",
        "4. **Prioritize by Severity** - Fix CRITICAL and HIGH severity issues first",
        "5. **Document Changes** - Explain complex fixes briefly",
        "6. **Test Your Changes** - Make sure fixes don't introduce new bugs",
        "7. **Preserve Code Style** - Match existing formatting and naming conventions",
        "",
        "---",
        "",
        "## DETAILED ISSUES TO FIX",
        "",
    ]

    number = 1
    for severity in FindingSeverity:
        group = sorted(
            review.findings_with_severity(severity),
            key=lambda finding: category_importance(finding.category),
        )
        if not group:
            continue
        lines += [f"### {severity.value} Priority Issues", ""]
        for finding in group:
            lines += _finding_section(number, finding)
            number += 1

    lines += [
        "## FINAL INSTRUCTIONS",
        "",
        "### Deliverables:",
        "1. **Complete Fixed Codebase** - All issues resolved with working code",
        "2. **Change Summary** - Brief description of each fix applied",
        "3. **Verification Steps** - How to verify the fixes",
        "4. **Testing Notes** - New or updated tests",
        "",
        "### Quality Checklist:",
        "- [ ] All CRITICAL issues fixed",
        "- [ ] All HIGH priority issues fixed",
        "- [ ] Code builds without errors",
        "- [ ] No new bugs introduced",
        "- [ ] Tests pass",
        "- [ ] Security vulnerabilities eliminated",
        "- [ ] Code follows project conventions",
        "",
        "### Success Criteria:",
        "1. The code quality score rises to 80+/100",
        "2. All security vulnerabilities are eliminated",
        "3. The application runs without errors",
        "",
    ]
    return "\n".join(lines)
