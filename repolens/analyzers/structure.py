"""
Structural analysis: per-file classification, the import graph, and the tree
shaped feeds (file system tree, churn sunburst, contributor stream).
"""

import posixpath
import re
from collections import defaultdict
from datetime import datetime

from ..schemas import (
    ArchitectureData,
    ArchitectureLink,
    ArchitectureNode,
    ChurnNode,
    ContributorStreamPoint,
    FileInfo,
    FileNode,
    ProcessedCommit,
)


# =============================================================================
# FILE CLASSIFICATION
# =============================================================================

LANGUAGE_BY_EXTENSION = {
    "ts": "typescript", "tsx": "typescript",
    "js": "javascript", "jsx": "javascript",
    "py": "python", "java": "java",
    "cpp": "cpp", "c": "c", "cs": "csharp",
    "php": "php", "rb": "ruby", "go": "go",
    "rs": "rust", "swift": "swift", "kt": "kotlin",
}

COMPLEXITY_KEYWORDS = ("if", "else", "for", "while", "switch", "case", "catch")
COMPLEXITY_OPERATORS = ("&&", "||")

_KEYWORD_PATTERNS = [re.compile(rf"\b{kw}\b") for kw in COMPLEXITY_KEYWORDS]

MODULE_TYPE_HINTS = (
    ("component", "component"),
    ("service", "service"),
    ("api", "api"),
    ("page", "page"),
    ("hook", "hook"),
    ("util", "utility"),
)

JS_SOURCE_EXTENSIONS = (".js", ".ts", ".jsx", ".tsx")
EXCLUDED_SOURCE_PATTERNS = [
    re.compile(r"vite-env\.d\.ts$"),
    re.compile(r"\.config\.js$"),
    re.compile(r"eslint\.config\.js$"),
]


def detect_language(file_path: str) -> str:
    ext = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    return LANGUAGE_BY_EXTENSION.get(ext, "unknown")


def calculate_basic_complexity(content: str | None) -> int:
    """Branch-keyword count scaled to a 0-100 score."""
    if not content:
        return 0
    complexity = 1
    for pattern in _KEYWORD_PATTERNS:
        complexity += len(pattern.findall(content))
    for operator in COMPLEXITY_OPERATORS:
        complexity += content.count(operator)
    return min(100, complexity * 2)


def infer_module_type(file_path: str) -> str:
    lower = file_path.lower()
    for hint, module_type in MODULE_TYPE_HINTS:
        if hint in lower:
            return module_type
    return "module"


def is_source_file(file_path: str) -> bool:
    """Files that take part in the import graph."""
    if any(pattern.search(file_path) for pattern in EXCLUDED_SOURCE_PATTERNS):
        return False
    return file_path.endswith(JS_SOURCE_EXTENSIONS) or file_path.endswith(".py")


# =============================================================================
# IMPORT GRAPH
# =============================================================================

_ES_IMPORT = re.compile(r"""from\s+['"]([^'"]+)['"]""")
_REQUIRE = re.compile(r"""require\(['"]([^'"]+)['"]\)""")
_PY_FROM_IMPORT = re.compile(r"^\s*from\s+(\.+[\w.]*|[A-Za-z_][\w.]*)\s+import\b", re.MULTILINE)
_PY_IMPORT = re.compile(r"^\s*import\s+([A-Za-z_][\w.]*(?:\s*,\s*[A-Za-z_][\w.]*)*)", re.MULTILINE)

JS_RESOLVE_EXTENSIONS = (".js", ".ts", ".jsx", ".tsx", "")
JS_INDEX_FILES = ("/index.js", "/index.ts", "/index.jsx", "/index.tsx")


def parse_imports(content: str | None) -> list[str]:
    """Return the distinct import specifiers in a JS/TS or Python file, in order."""
    if not content:
        return []
    found: dict[str, None] = {}
    for pattern in (_ES_IMPORT, _REQUIRE, _PY_FROM_IMPORT):
        for match in pattern.finditer(content):
            found[match.group(1)] = None
    for match in _PY_IMPORT.finditer(content):
        for name in match.group(1).split(","):
            found[name.strip()] = None
    return list(found)


def resolve_import(specifier: str, current_path: str, known_paths: set[str]) -> str | None:
    """Map an import specifier to a repository path, or None for external modules."""
    if current_path.endswith(".py"):
        return _resolve_python_import(specifier, current_path, known_paths)

    if not specifier.startswith("."):
        return None

    base = posixpath.normpath(posixpath.join(posixpath.dirname(current_path), specifier)).lstrip("/")
    for ext in JS_RESOLVE_EXTENSIONS:
        if f"{base}{ext}" in known_paths:
            return f"{base}{ext}"
    for index_file in JS_INDEX_FILES:
        if f"{base}{index_file}" in known_paths:
            return f"{base}{index_file}"
    return None


def _resolve_python_import(specifier: str, current_path: str, known_paths: set[str]) -> str | None:
    if specifier.startswith("."):
        level = len(specifier) - len(specifier.lstrip("."))
        package_dir = posixpath.dirname(current_path)
        for _ in range(level - 1):
            package_dir = posixpath.dirname(package_dir)
        remainder = specifier[level:].replace(".", "/")
        base = posixpath.join(package_dir, remainder) if remainder else package_dir
    else:
        base = specifier.replace(".", "/")

    base = base.lstrip("/")
    for candidate in (f"{base}.py", f"{base}/__init__.py"):
        if candidate in known_paths:
            return candidate
    return None


def build_architecture_graph(files: list[FileInfo]) -> ArchitectureData:
    """One node per file; a link for every import that resolves inside the repo."""
    nodes = [
        ArchitectureNode(
            id=f.path,
            name=posixpath.basename(f.path),
            type=infer_module_type(f.path),
            path=f.path,
        )
        for f in files
    ]
    known_paths = {f.path for f in files}

    links: list[ArchitectureLink] = []
    seen: set[tuple[str, str]] = set()
    for f in files:
        if not f.content or not is_source_file(f.path):
            continue
        for specifier in parse_imports(f.content):
            target = resolve_import(specifier, f.path, known_paths)
            if target is None or target == f.path or (f.path, target) in seen:
                continue
            seen.add((f.path, target))
            links.append(ArchitectureLink(source=f.path, target=target))

    return ArchitectureData(nodes=nodes, links=links)


def summarize_module_types(graph: ArchitectureData) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for node in graph.nodes:
        counts[node.type] += 1
    return dict(counts)


# =============================================================================
# TREE FEEDS
# =============================================================================

def build_file_system_tree(files: list[FileInfo]) -> FileNode:
    root = FileNode(name="root", path="", size=0, type="directory", children=[])

    for f in files:
        parts = f.path.split("/")
        current = root
        for i, part in enumerate(parts):
            is_last = i == len(parts) - 1
            if current.children is None:
                current.children = []
            child = next((c for c in current.children if c.name == part), None)
            if child is None:
                child = FileNode(
                    name=part,
                    path="/".join(parts[: i + 1]),
                    size=f.size if is_last else 0,
                    type="file" if is_last else "directory",
                    children=None if is_last else [],
                )
                current.children.append(child)
            if is_last:
                child.size = f.size
                child.type = "file"
            current = child

    return root


def count_file_changes(commits: list[ProcessedCommit]) -> dict[str, int]:
    """Number of commits touching each path."""
    changes: dict[str, int] = defaultdict(int)
    for commit in commits:
        for path in {cf.filename for cf in commit.files}:
            changes[path] += 1
    return changes


def build_churn_sunburst(files: list[FileInfo], commits: list[ProcessedCommit]) -> ChurnNode:
    """Directory tree of files that changed at least once, weighted by change count."""
    changes = count_file_changes(commits)
    root = ChurnNode(name="root", path="", churn_rate=0, type="directory", children=[])

    for f in files:
        churn_rate = changes.get(f.path, 0)
        if churn_rate == 0:
            continue
        parts = f.path.split("/")
        current = root
        for i, part in enumerate(parts):
            is_last = i == len(parts) - 1
            if current.children is None:
                current.children = []
            child = next((c for c in current.children if c.name == part), None)
            if child is None:
                child = ChurnNode(
                    name=part,
                    path="/".join(parts[: i + 1]),
                    churn_rate=churn_rate if is_last else 0,
                    type="file" if is_last else "directory",
                    children=None if is_last else [],
                )
                current.children.append(child)
            if is_last:
                child.churn_rate = churn_rate
                child.type = "file"
            current = child

    return root


def build_contributor_stream(commits: list[ProcessedCommit]) -> list[ContributorStreamPoint]:
    """Commits per author per calendar month, oldest month first."""
    monthly: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for commit in commits:
        try:
            date = datetime.fromisoformat(commit.date.replace("Z", "+00:00"))
        except ValueError:
            continue
        monthly[f"{date.year}-{date.month:02d}"][commit.author] += 1

    return [
        ContributorStreamPoint(date=month, contributors=dict(authors))
        for month, authors in sorted(monthly.items())
    ]
