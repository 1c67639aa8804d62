"""
RepoLens Analyzers

Pure functions over fetched repository files:
- Structure: language/module classification, import graph, tree feeds
- Quality: complexity and maintainability per file
- Security: committed secrets, plus an optional LLM vulnerability review
- Technical debt, API endpoints, performance (LLM-assisted where configured)
- Dependencies: package.json, requirements.txt, pyproject.toml
- Derived: hotspots, key functions, headline metrics
"""

from .dependencies import analyze_dependencies, build_dependency_wheel
from .derived import calculate_metrics, find_hotspots, find_key_functions
from .endpoints import detect_api_endpoints, extract_endpoints
from .functions import parse_functions
from .performance import analyze_performance
from .quality import calculate_quality_metrics
from .security import analyze_security, scan_secrets
from .structure import (
    build_architecture_graph,
    build_churn_sunburst,
    build_contributor_stream,
    build_file_system_tree,
    calculate_basic_complexity,
    detect_language,
    infer_module_type,
    parse_imports,
    resolve_import,
    summarize_module_types,
)
from .technical_debt import analyze_technical_debt, find_debt_markers

__all__ = [
    "analyze_dependencies",
    "build_dependency_wheel",
    "calculate_metrics",
    "find_hotspots",
    "find_key_functions",
    "detect_api_endpoints",
    "extract_endpoints",
    "parse_functions",
    "analyze_performance",
    "calculate_quality_metrics",
    "analyze_security",
    "scan_secrets",
    "build_architecture_graph",
    "build_churn_sunburst",
    "build_contributor_stream",
    "build_file_system_tree",
    "calculate_basic_complexity",
    "detect_language",
    "infer_module_type",
    "parse_imports",
    "resolve_import",
    "summarize_module_types",
    "analyze_technical_debt",
    "find_debt_markers",
]
