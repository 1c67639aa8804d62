"""
Per-file quality metrics: cyclomatic complexity, maintainability index and
logical lines of code.

Maintainability uses the classic formula
    MI = 171 - 5.2 * ln(V) - 0.23 * G - 16.2 * ln(SLOC)
where V is the Halstead volume and G the cyclomatic complexity, clamped to
0..100.
"""

import logging
import math
import re

from ..schemas import FileInfo, FileMetrics
from .structure import EXCLUDED_SOURCE_PATTERNS

logger = logging.getLogger(__name__)


QUALITY_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".go", ".rb", ".php",
    ".cs", ".c", ".cpp", ".rs", ".kt", ".swift",
)

_DECISIONS = re.compile(r"\b(?:if|elif|for|while|case|catch|except)\b|&&|\|\||\band\b|\bor\b|\?(?![.?])")
_TOKENS = re.compile(
    r"""(?P<operand>"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*'|`[^`]*`|\b[A-Za-z_$][\w$]*\b|\b\d+(?:\.\d+)?\b)"""
    r"""|(?P<operator>===|!==|==|!=|<=|>=|=>|&&|\|\||\+\+|--|\*\*|[-+*/%=<>!&|^~?:.,;()\[\]{}])"""
)
_KEYWORD_OPERATORS = {
    "if", "else", "elif", "for", "while", "return", "switch", "case", "break", "continue",
    "try", "catch", "except", "finally", "throw", "raise", "new", "def", "function", "class",
    "import", "from", "await", "async", "yield", "in", "of", "and", "or", "not", "is", "lambda",
    "const", "let", "var", "with", "typeof", "instanceof", "delete", "pass",
}
_LINE_COMMENT = re.compile(r"^\s*(?://|#|\*|/\*)")


def is_quality_source(path: str) -> bool:
    if any(pattern.search(path) for pattern in EXCLUDED_SOURCE_PATTERNS):
        return False
    return path.lower().endswith(QUALITY_EXTENSIONS)


def cyclomatic_complexity(content: str) -> int:
    return 1 + len(_DECISIONS.findall(content))


def logical_lines(content: str) -> int:
    return sum(1 for line in content.split("\n") if line.strip() and not _LINE_COMMENT.match(line))


def halstead_volume(content: str) -> float:
    operators: dict[str, int] = {}
    operands: dict[str, int] = {}
    for match in _TOKENS.finditer(content):
        token = match.group(0)
        if match.group("operator") or token in _KEYWORD_OPERATORS:
            operators[token] = operators.get(token, 0) + 1
        else:
            operands[token] = operands.get(token, 0) + 1

    vocabulary = len(operators) + len(operands)
    length = sum(operators.values()) + sum(operands.values())
    if vocabulary < 2 or length == 0:
        return 0.0
    return length * math.log2(vocabulary)


def maintainability_index(volume: float, complexity: int, sloc: int) -> float:
    if sloc <= 0:
        return 100.0
    mi = 171 - 5.2 * math.log(max(volume, 1.0)) - 0.23 * complexity - 16.2 * math.log(sloc)
    return round(min(100.0, max(0.0, mi)), 2)


def file_metrics(content: str) -> FileMetrics:
    complexity = cyclomatic_complexity(content)
    sloc = logical_lines(content)
    return FileMetrics(
        complexity=complexity,
        maintainability=maintainability_index(halstead_volume(content), complexity, sloc),
        lines_of_code=sloc,
    )


def calculate_quality_metrics(files: list[FileInfo]) -> dict[str, FileMetrics]:
    """Metrics for every source file that has content, keyed by path."""
    metrics = {}
    for f in files:
        if not f.content or not is_quality_source(f.path):
            continue
        metrics[f.path] = file_metrics(f.content)
    logger.debug(f"Quality metrics computed for {len(metrics)} files")
    return metrics
