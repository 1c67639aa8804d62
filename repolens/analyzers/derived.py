"""
Report-level figures computed from the per-file results: hotspots, key
functions and the headline metrics.
"""

import math

from ..schemas import (
    FileInfo,
    Hotspot,
    KeyFunction,
    PerformanceMetric,
    ProcessedCommit,
    ProcessedContributor,
    RepoMetrics,
    RiskLevel,
    SecurityIssue,
    Severity,
    TechnicalDebt,
)
from .structure import count_file_changes

HOTSPOT_MIN_COMPLEXITY = 20
MAX_HOTSPOTS = 20
MAX_KEY_FUNCTIONS = 10


def risk_level(complexity: int) -> RiskLevel:
    if complexity > 60:
        return RiskLevel.CRITICAL
    if complexity > 40:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def find_hotspots(files: list[FileInfo], commits: list[ProcessedCommit]) -> list[Hotspot]:
    changes = count_file_changes(commits)
    hotspots = [
        Hotspot(
            file=f.name,
            path=f.path,
            complexity=f.complexity,
            changes=changes.get(f.path, 0),
            risk_level=risk_level(f.complexity),
            size=len(f.content.split("\n")) if f.content else 0,
        )
        for f in files
        if f.complexity and f.complexity > HOTSPOT_MIN_COMPLEXITY
    ]
    return hotspots[:MAX_HOTSPOTS]


def find_key_functions(files: list[FileInfo]) -> list[KeyFunction]:
    """The most complex parsed functions across the repository."""
    candidates = [
        KeyFunction(
            name=fn.name,
            file=f.path,
            complexity=fn.complexity,
            explanation=fn.description or f"Function {fn.name} in {f.name}",
            lines_of_code=fn.sloc,
        )
        for f in files
        for fn in f.functions
    ]
    candidates.sort(key=lambda kf: kf.complexity, reverse=True)
    return candidates[:MAX_KEY_FUNCTIONS]


def calculate_metrics(
    commits: list[ProcessedCommit],
    contributors: list[ProcessedContributor],
    files: list[FileInfo],
    security_issues: list[SecurityIssue],
    technical_debt: list[TechnicalDebt],
    performance_metrics: list[PerformanceMetric],
) -> RepoMetrics:
    file_count = len(files)
    lines_of_code = sum(len(f.content.split("\n")) for f in files if f.content)
    avg_complexity = sum(f.complexity or 0 for f in files) / file_count if file_count else 0
    test_files = sum(1 for f in files if "test" in f.path)
    n_contributors = len(contributors)

    def count(severity: Severity) -> int:
        return sum(1 for issue in security_issues if issue.severity == severity)

    return RepoMetrics(
        total_commits=len(commits),
        total_contributors=n_contributors,
        lines_of_code=lines_of_code,
        code_quality=round(max(0.0, 10 - avg_complexity / 10), 2),
        test_coverage=round(test_files / file_count * 100, 2) if file_count else 0,
        bus_factor=min(n_contributors, math.ceil(n_contributors * 0.2)),
        security_score=max(0, 10 - len(security_issues)),
        technical_debt_score=max(0.0, 10 - len(technical_debt) / 2),
        performance_score=max(0, 10 - len(performance_metrics)),
        critical_vulnerabilities=count(Severity.CRITICAL),
        high_vulnerabilities=count(Severity.HIGH),
        medium_vulnerabilities=count(Severity.MEDIUM),
        low_vulnerabilities=count(Severity.LOW),
    )
