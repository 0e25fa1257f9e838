"""Deterministic, model-free checks that run alongside the AI pass."""

from __future__ import annotations

import ast
import logging
import re
from collections.abc import Iterator, Mapping
from pathlib import PurePosixPath

from src.observability import RunTelemetry
from src.schema import FindingCategory, FindingSeverity, ReviewFinding
from src.scoring import impact_score_for

COMPLEXITY_MEDIUM_THRESHOLD = 20
COMPLEXITY_HIGH_THRESHOLD = 30
MAX_PARAMETERS = 5
GOD_CLASS_METHODS = 20
SRP_METHODS = 15
MAX_IF_STATEMENTS = 5
BUILDER_PARAMETERS = 5
MAX_TITLE_LENGTH = 200

SRP_URL = "https://en.wikipedia.org/wiki/Single-responsibility_principle"
DIP_URL = "https://en.wikipedia.org/wiki/Dependency_inversion_principle"
HEXAGONAL_URL = "https://alistair.cockburn.us/hexagonal-architecture/"
COMPLEXITY_URL = "https://en.wikipedia.org/wiki/Cyclomatic_complexity"
STRATEGY_URL = "https://refactoring.guru/design-patterns/strategy"
BUILDER_URL = "https://refactoring.guru/design-patterns/builder"

JAVA_FIELD_INJECTION = re.compile(
    r"@Autowired\s+(?:(?:private|protected|public|final|static)\s+)*[\w<>,.?\[\]\s]+?\s+\w+\s*;"
)
JAVA_EMPTY_CATCH = re.compile(r"catch\s*\([^)]*\)\s*\{\s*\}")
JAVA_CLASS_NAME = re.compile(r"\bclass\s+(\w+)")
JAVA_GENERIC_CLASS_NAME = re.compile(r"\bclass\s+(\w+(?:Manager|Helper|Utils?|Processor))\b")
DOMAIN_FRAMEWORK_IMPORT = re.compile(
    r"^[ \t]*(?:"
    r"import\s+(?:javax\.persistence|jakarta\.persistence|org\.springframework)\S*"
    r"|(?:from|import)\s+(?:fastapi|flask|django|sqlalchemy)\b\S*"
    r")",
    re.MULTILINE,
)
OUTER_LAYER_IMPORT = re.compile(
    r"^[ \t]*(?:import|from)\s+(?:static\s+)?\.*(?:\w+\.)*"
    r"(application|infrastructure|interfaces)\b",
    re.MULTILINE,
)
JAVA_NEW_INSTANCE = re.compile(r"\bnew\s+([A-Z]\w*)\s*[(<]")
# Value and collection types that services may construct directly.
DIRECT_CONSTRUCTION_ALLOWED = re.compile(
    r"^(?:(?:Array|Linked|Hash|Tree|LinkedHash|Concurrent\w*)(?:List|Map|Set)"
    r"|ArrayDeque|StringBuilder|StringBuffer|BigDecimal|BigInteger|Object|String"
    r"|\w+Exception|\w+Error)$"
)

logger = logging.getLogger(__name__)


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


def _finding(
    *,
    title: str,
    description: str,
    severity: FindingSeverity,
    category: FindingCategory,
    file_path: str,
    line_number: int | None = None,
    suggested_fix: str | None = None,
    explanation: str | None = None,
    resources_url: str | None = None,
    metrics: list[str] | None = None,
) -> ReviewFinding:
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return ReviewFinding(
        title=title,
        description=description,
        severity=severity,
        category=category,
        file_path=file_path,
        line_number=line_number,
        suggested_fix=suggested_fix,
        explanation=explanation,
        resources_url=resources_url,
        impact_score=impact_score_for(severity),
        metrics_violated=metrics or [],
    )


def cyclomatic_complexity(node: ast.AST) -> int:
    """McCabe complexity of a function body, not descending into nested defs."""
    complexity = 1
    for child in _walk_function_body(node):
        if isinstance(child, (ast.If, ast.IfExp, ast.For, ast.AsyncFor, ast.While)):
            complexity += 1
        elif isinstance(child, ast.ExceptHandler):
            complexity += 1
        elif isinstance(child, ast.BoolOp):
            complexity += len(child.values) - 1
        elif isinstance(child, ast.comprehension):
            complexity += 1 + len(child.ifs)
        elif isinstance(child, ast.match_case):
            complexity += 1
    return complexity


def _walk_function_body(node: ast.AST) -> Iterator[ast.AST]:
    for child in ast.iter_child_nodes(node):
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)):
            continue
        yield child
        yield from _walk_function_body(child)


def _parameter_count(function: ast.FunctionDef | ast.AsyncFunctionDef) -> int:
    arguments = function.args
    names = [
        argument.arg
        for argument in (*arguments.posonlyargs, *arguments.args, *arguments.kwonlyargs)
    ]
    if names and names[0] in ("self", "cls"):
        names = names[1:]
    return len(names)


def _is_swallowing_handler(handler: ast.ExceptHandler) -> bool:
    if handler.type is None:
        return True
    return all(isinstance(statement, ast.Pass) for statement in handler.body)


def analyze_python_source(file_path: str, source: str) -> list[ReviewFinding]:
    """Run AST checks on one Python module.

    Raises SyntaxError when the source does not parse.
    """
    tree = ast.parse(source, filename=file_path)
    findings: list[ReviewFinding] = []

    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            findings.extend(_function_findings(file_path, node))
        elif isinstance(node, ast.ClassDef):
            findings.extend(_class_findings(file_path, node))
        elif isinstance(node, ast.ExceptHandler) and _is_swallowing_handler(node):
            findings.append(
                _finding(
                    title="Exception Swallowed by Handler",
                    description=(
                        "A bare 'except:' or a handler that only passes hides failures "
                        "and makes production incidents hard to diagnose."
                    ),
                    severity=FindingSeverity.MEDIUM,
                    category=FindingCategory.ERROR_HANDLING,
                    file_path=file_path,
                    line_number=node.lineno,
                    suggested_fix=(
                        "Catch the specific exception type and log or re-raise it "
                        "with context."
                    ),
                )
            )
    return findings


def _function_findings(
    file_path: str,
    function: ast.FunctionDef | ast.AsyncFunctionDef,
) -> list[ReviewFinding]:
    findings: list[ReviewFinding] = []
    complexity = cyclomatic_complexity(function)
    if complexity > COMPLEXITY_MEDIUM_THRESHOLD:
        severity = (
            FindingSeverity.HIGH
            if complexity > COMPLEXITY_HIGH_THRESHOLD
            else FindingSeverity.MEDIUM
        )
        findings.append(
            _finding(
                title=f"High Cyclomatic Complexity in '{function.name}'",
                description=(
                    f"'{function.name}' has cyclomatic complexity {complexity}, which makes "
                    "it hard to test and reason about."
                ),
                severity=severity,
                category=FindingCategory.CODE_SMELL,
                file_path=file_path,
                line_number=function.lineno,
                suggested_fix="Extract branches into smaller, well-named functions.",
                explanation=(
                    "Every independent path through a function needs its own test case; "
                    "high complexity also predicts defect density."
                ),
                resources_url=COMPLEXITY_URL,
                metrics=[
                    f"Cyclomatic Complexity: {complexity} "
                    f"(threshold: {COMPLEXITY_MEDIUM_THRESHOLD})"
                ],
            )
        )

    parameters = _parameter_count(function)
    if parameters > MAX_PARAMETERS:
        findings.append(
            _finding(
                title=f"Long Parameter List in '{function.name}'",
                description=(
                    f"'{function.name}' takes {parameters} parameters; long signatures are "
                    "error-prone to call and usually hide a missing abstraction."
                ),
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.CODE_SMELL,
                file_path=file_path,
                line_number=function.lineno,
                suggested_fix="Group related parameters into a dataclass or parameter object.",
                metrics=[f"Parameter Count: {parameters} (threshold: {MAX_PARAMETERS})"],
            )
        )

    if_count = sum(isinstance(child, ast.If) for child in _walk_function_body(function))
    if if_count > MAX_IF_STATEMENTS:
        findings.append(
            _finding(
                title=f"Conditional Chain in '{function.name}' Could Use Strategy Pattern",
                description=(
                    f"'{function.name}' contains {if_count} if statements. A lookup table or "
                    "strategy objects keep each case isolated and testable."
                ),
                severity=FindingSeverity.INFO,
                category=FindingCategory.DESIGN_PATTERN,
                file_path=file_path,
                line_number=function.lineno,
                resources_url=STRATEGY_URL,
            )
        )
    return findings


def _class_findings(file_path: str, class_node: ast.ClassDef) -> list[ReviewFinding]:
    method_count = sum(
        isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)) for child in class_node.body
    )
    if method_count > GOD_CLASS_METHODS:
        return [
            _finding(
                title=f"God Class: '{class_node.name}'",
                description=(
                    f"'{class_node.name}' defines {method_count} methods and likely owns "
                    "too many responsibilities."
                ),
                severity=FindingSeverity.HIGH,
                category=FindingCategory.CODE_SMELL,
                file_path=file_path,
                line_number=class_node.lineno,
                suggested_fix="Split the class along its responsibilities.",
                explanation=(
                    "A class should have one reason to change. Large classes couple "
                    "unrelated features, so a change to one risks breaking another."
                ),
                resources_url=SRP_URL,
                metrics=[f"Method Count: {method_count} (threshold: {GOD_CLASS_METHODS})"],
            )
        ]
    if method_count > SRP_METHODS:
        return [
            _finding(
                title=f"Possible Single Responsibility Violation in '{class_node.name}'",
                description=(
                    f"'{class_node.name}' defines {method_count} methods; check whether it "
                    "mixes unrelated concerns."
                ),
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.ARCHITECTURE,
                file_path=file_path,
                line_number=class_node.lineno,
                resources_url=SRP_URL,
                metrics=[f"Method Count: {method_count} (threshold: {SRP_METHODS})"],
            )
        ]
    return []


def analyze_java_source(file_path: str, source: str) -> list[ReviewFinding]:
    """Run regex heuristics on one Java source file."""
    findings: list[ReviewFinding] = []

    for match in JAVA_FIELD_INJECTION.finditer(source):
        findings.append(
            _finding(
                title="Field Injection with @Autowired",
                description=(
                    "Field injection hides dependencies, prevents immutability, and makes "
                    "the class hard to construct in unit tests."
                ),
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.BEST_PRACTICE,
                file_path=file_path,
                line_number=_line_of(source, match.start()),
                suggested_fix="Use constructor injection with final fields.",
            )
        )

    for match in JAVA_EMPTY_CATCH.finditer(source):
        findings.append(
            _finding(
                title="Empty Catch Block",
                description="The exception is caught and silently discarded.",
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.ERROR_HANDLING,
                file_path=file_path,
                line_number=_line_of(source, match.start()),
                suggested_fix="Log the exception with context or rethrow a domain exception.",
            )
        )

    for class_name in set(JAVA_CLASS_NAME.findall(source)):
        constructor = re.compile(
            rf"(?:public|protected|private)\s+{re.escape(class_name)}\s*\(([^)]*)\)"
        )
        for match in constructor.finditer(source):
            parameters = [part for part in match.group(1).split(",") if part.strip()]
            if len(parameters) >= BUILDER_PARAMETERS:
                findings.append(
                    _finding(
                        title=f"Complex Constructor in '{class_name}' Could Use Builder",
                        description=(
                            f"The constructor takes {len(parameters)} parameters, which is "
                            "easy to call with arguments in the wrong order."
                        ),
                        severity=FindingSeverity.LOW,
                        category=FindingCategory.DESIGN_PATTERN,
                        file_path=file_path,
                        line_number=_line_of(source, match.start()),
                        suggested_fix="Introduce a builder or a parameter object.",
                        resources_url=BUILDER_URL,
                        metrics=[f"Parameter Count: {len(parameters)}"],
                    )
                )

    for match in JAVA_GENERIC_CLASS_NAME.finditer(source):
        findings.append(
            _finding(
                title=f"Generic Class Name '{match.group(1)}'",
                description=(
                    "Names like Manager, Helper, Util, or Processor tend to collect unrelated "
                    "responsibilities."
                ),
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.ARCHITECTURE,
                file_path=file_path,
                line_number=_line_of(source, match.start()),
                suggested_fix="Rename after the single responsibility the class owns, or split it.",
                resources_url=SRP_URL,
            )
        )
    return findings


def _in_domain_package(file_path: str) -> bool:
    return "domain" in PurePosixPath(file_path).parts[:-1]


def check_domain_layering(file_path: str, source: str) -> list[ReviewFinding]:
    """Flag framework and outer-layer imports inside a domain package."""
    if not _in_domain_package(file_path):
        return []
    findings: list[ReviewFinding] = []

    layer_match = OUTER_LAYER_IMPORT.search(source)
    if layer_match is not None:
        findings.append(
            _finding(
                title="Layer Dependency Violation: Domain Depends on Outer Layers",
                description=(
                    f"Domain code imports from the {layer_match.group(1)} layer. "
                    "Dependencies must point inward, toward the domain."
                ),
                severity=FindingSeverity.CRITICAL,
                category=FindingCategory.ARCHITECTURE,
                file_path=file_path,
                line_number=_line_of(source, layer_match.start()),
                suggested_fix=(
                    "Declare the needed interface in the domain and implement it in the "
                    "outer layer."
                ),
                explanation=(
                    "Interfaces and infrastructure depend on application code, which depends "
                    "on the domain, never the reverse. When the domain imports outward, an "
                    "infrastructure change can break business rules."
                ),
                resources_url=HEXAGONAL_URL,
            )
        )

    framework_match = DOMAIN_FRAMEWORK_IMPORT.search(source)
    if framework_match is not None:
        findings.append(
            _finding(
                title="Framework Dependency in Domain Layer",
                description=(
                    "Domain code imports a web or persistence framework, coupling business "
                    "rules to infrastructure."
                ),
                severity=FindingSeverity.HIGH,
                category=FindingCategory.ARCHITECTURE,
                file_path=file_path,
                line_number=_line_of(source, framework_match.start()),
                suggested_fix=(
                    "Keep domain types framework-free and map them in an infrastructure "
                    "adapter."
                ),
                explanation=(
                    "The domain should run without the framework so it can be tested in "
                    "isolation and survive framework upgrades unchanged."
                ),
                resources_url=HEXAGONAL_URL,
            )
        )
    return findings


def check_service_construction(file_path: str, source: str) -> list[ReviewFinding]:
    """Flag Java services that build their collaborators with `new`."""
    path = PurePosixPath(file_path)
    if path.suffix.lower() != ".java" or not path.stem.endswith("Service"):
        return []
    for match in JAVA_NEW_INSTANCE.finditer(source):
        type_name = match.group(1)
        if DIRECT_CONSTRUCTION_ALLOWED.match(type_name):
            continue
        return [
            _finding(
                title="Possible Dependency Inversion Violation: Using 'new' in Service",
                description=(
                    f"{path.stem} constructs {type_name} directly instead of receiving an "
                    "abstraction through dependency injection."
                ),
                severity=FindingSeverity.MEDIUM,
                category=FindingCategory.ARCHITECTURE,
                file_path=file_path,
                line_number=_line_of(source, match.start()),
                suggested_fix=(
                    f"Depend on an interface for {type_name} and inject the implementation "
                    "through the constructor."
                ),
                explanation=(
                    "High-level policy should depend on abstractions. A hard-coded "
                    "collaborator cannot be replaced in tests or swapped for another "
                    "implementation."
                ),
                resources_url=DIP_URL,
            )
        ]
    return []


def _analyze_file(file_path: str, source: str) -> list[ReviewFinding]:
    suffix = PurePosixPath(file_path).suffix.lower()
    findings: list[ReviewFinding] = []
    if suffix == ".py":
        findings.extend(analyze_python_source(file_path, source))
    elif suffix == ".java":
        findings.extend(analyze_java_source(file_path, source))
        findings.extend(check_service_construction(file_path, source))
    findings.extend(check_domain_layering(file_path, source))
    return findings


def run_static_analysis(
    files: Mapping[str, str],
    *,
    telemetry: RunTelemetry | None = None,
) -> list[ReviewFinding]:
    """Run every applicable check; files whose checks fail are skipped."""
    findings: list[ReviewFinding] = []
    for file_path, source in files.items():
        try:
            findings.extend(_analyze_file(file_path, source))
        except (SyntaxError, ValueError, RecursionError) as error:
            logger.warning("Skipping static analysis of %s: %s", file_path, error)
            if telemetry is not None:
                telemetry.warn(f"Static analysis skipped {file_path}: {error}")
    return findings
