"""
RepoLens API Schema Definitions

Pydantic models for everything the dashboard consumes. Field names are
snake_case in Python and camelCase on the wire, which is what the front end's
chart components read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# ENUMS
# =============================================================================

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# GITHUB DATA
# =============================================================================

class License(CamelModel):
    name: str
    spdx_id: str | None = None


class Repository(CamelModel):
    """Repository metadata as returned by the GitHub repos endpoint."""
    name: str
    full_name: str
    description: str = ""
    language: str = "Unknown"
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    default_branch: str = "main"
    size: int = 0
    open_issues: int = 0
    has_wiki: bool = False
    has_pages: bool = False
    license: License | None = None


class BasicRepositoryInfo(CamelModel):
    name: str
    full_name: str
    description: str | None = None
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    language: str | None = None
    url: str
    owner: str
    created_at: str | None = None
    updated_at: str | None = None
    default_branch: str = "main"
    size: int = 0
    open_issues: int = 0
    has_wiki: bool = False
    has_pages: bool = False


class CommitAuthor(CamelModel):
    name: str = "N/A"
    email: str = "N/A"
    date: str


class CommitStats(CamelModel):
    additions: int = 0
    deletions: int = 0
    total: int = 0


class CommitFile(CamelModel):
    filename: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    status: str = "modified"
    patch: str | None = None


class Commit(CamelModel):
    sha: str
    message: str
    author: CommitAuthor
    stats: CommitStats | None = None
    files: list[CommitFile] = Field(default_factory=list)


class ProcessedCommit(CamelModel):
    """Flattened commit used by the history charts."""
    sha: str
    author: str
    date: str
    message: str
    stats: CommitStats = Field(default_factory=CommitStats)
    files: list[CommitFile] = Field(default_factory=list)


class Contributor(CamelModel):
    login: str
    contributions: int = 0
    avatar_url: str = ""
    type: str = "User"
    html_url: str | None = None


class ProcessedContributor(CamelModel):
    login: str
    avatar_url: str = ""
    contributions: int = 0
    profile_url: str


class PullRequest(CamelModel):
    id: int
    title: str
    author: str
    state: Literal["open", "closed", "merged"]
    created_at: str
    closed_at: str | None = None
    merged_at: str | None = None


# =============================================================================
# FILES
# =============================================================================

class FunctionInfo(CamelModel):
    name: str
    complexity: int = 1
    start_line: int
    end_line: int
    sloc: int = 0
    is_async: bool = False
    description: str | None = None


class FileInfo(CamelModel):
    """A file from the repository tree, optionally with its content."""
    name: str
    path: str
    size: int = 0
    type: str = "file"
    content: str | None = None
    language: str | None = None
    complexity: int | None = None
    functions: list[FunctionInfo] = Field(default_factory=list)


# =============================================================================
# ANALYSIS OUTPUTS
# =============================================================================

class ArchitectureNode(CamelModel):
    id: str
    name: str
    type: str
    path: str


class ArchitectureLink(CamelModel):
    source: str
    target: str


class ArchitectureData(CamelModel):
    nodes: list[ArchitectureNode] = Field(default_factory=list)
    links: list[ArchitectureLink] = Field(default_factory=list)


class FileMetrics(CamelModel):
    complexity: int
    maintainability: float
    lines_of_code: int


class SecurityIssue(CamelModel):
    type: Literal["secret", "vulnerability", "configuration"]
    severity: Severity
    file: str
    line: int | None = None
    description: str
    recommendation: str = ""
    cwe: str | None = None
    code_snippet: str | None = None


class TechnicalDebt(CamelModel):
    type: Literal["complexity", "duplication", "smell", "outdated", "documentation"]
    severity: Literal["low", "medium", "high"]
    file: str
    line: int | None = None
    description: str
    effort: str = ""
    impact: str = ""
    recommendation: str | None = None


class PerformanceMetric(CamelModel):
    function: str
    file: str
    complexity: str
    estimated_runtime: str
    recommendation: str = ""


class APIEndpoint(CamelModel):
    method: str
    path: str
    file: str
    handler_function: str = "Unknown"
    parameters: list[dict[str, Any]] | None = None
    responses: list[dict[str, Any]] | None = None
    documentation: str | None = None
    security: list[str] | None = None


class Hotspot(CamelModel):
    file: str
    path: str
    complexity: int
    changes: int
    risk_level: RiskLevel
    size: int = 0


class KeyFunction(CamelModel):
    name: str
    file: str
    complexity: int
    explanation: str
    lines_of_code: int | None = None


class DependencyNode(CamelModel):
    id: str
    name: str
    version: str | None = None
    type: str
    size: int = 1


class DependencyLink(CamelModel):
    source: str
    target: str
    type: str
    strength: float = 1.0
    value: int | None = None


class DependencyInfo(CamelModel):
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    nodes: list[DependencyNode] = Field(default_factory=list)
    links: list[DependencyLink] = Field(default_factory=list)


class WheelLink(CamelModel):
    source: str
    target: str
    value: int = 1


class FileNode(CamelModel):
    name: str
    path: str
    size: int = 0
    type: Literal["file", "directory"]
    children: list[FileNode] | None = None


class ChurnNode(CamelModel):
    name: str
    path: str
    churn_rate: int = 0
    type: Literal["file", "directory"]
    children: list[ChurnNode] | None = None


class ContributorStreamPoint(CamelModel):
    date: str
    contributors: dict[str, int] = Field(default_factory=dict)


class RepoMetrics(CamelModel):
    total_commits: int = 0
    total_contributors: int = 0
    lines_of_code: int = 0
    code_quality: float = 0
    test_coverage: float = 0
    bus_factor: int = 0
    security_score: float = 10
    technical_debt_score: float = 10
    performance_score: float = 10
    critical_vulnerabilities: int = 0
    high_vulnerabilities: int = 0
    medium_vulnerabilities: int = 0
    low_vulnerabilities: int = 0


# =============================================================================
# FULL ANALYSIS RESULT
# =============================================================================

class AnalysisResult(CamelModel):
    """The aggregate report for one repository."""
    id: str
    repository_url: str
    created_at: str

    # Core data
    basic_info: BasicRepositoryInfo
    repository: Repository
    commits: list[ProcessedCommit] = Field(default_factory=list)
    contributors: list[ProcessedContributor] = Field(default_factory=list)
    files: list[FileInfo] = Field(default_factory=list)
    languages: dict[str, int] = Field(default_factory=dict)

    # Architecture & dependencies
    dependencies: DependencyInfo = Field(default_factory=DependencyInfo)
    dependency_graph: ArchitectureData = Field(default_factory=ArchitectureData)
    system_architecture: ArchitectureData | None = None
    quality_metrics: dict[str, FileMetrics] = Field(default_factory=dict)

    # Findings
    security_issues: list[SecurityIssue] = Field(default_factory=list)
    technical_debt: list[TechnicalDebt] = Field(default_factory=list)
    performance_metrics: list[PerformanceMetric] = Field(default_factory=list)
    hotspots: list[Hotspot] = Field(default_factory=list)
    key_functions: list[KeyFunction] = Field(default_factory=list)
    api_endpoints: list[APIEndpoint] = Field(default_factory=list)
    pull_requests: list[PullRequest] = Field(default_factory=list)

    metrics: RepoMetrics = Field(default_factory=RepoMetrics)

    # Diagram feeds
    dependency_wheel_data: list[WheelLink] = Field(default_factory=list)
    file_system_tree: FileNode | None = None
    churn_sunburst_data: ChurnNode | None = None
    contributor_stream_data: list[ContributorStreamPoint] = Field(default_factory=list)

    # AI narrative
    ai_summary: str | None = None
    architecture_analysis: str | None = None


# =============================================================================
# REQUEST BODIES
# =============================================================================

class LLMConfigPayload(CamelModel):
    """LLM provider settings supplied by the browser."""
    provider: Literal["openai", "claude", "gemini"] | None = None
    api_key: str | None = None
    model: str | None = None


class LLMConfigRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None


class DiagramFileInfo(CamelModel):
    path: str = "diagram.mmd"


class EnhanceDiagramRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None
    diagram_code: str | None = None
    file_info: DiagramFileInfo = Field(default_factory=DiagramFileInfo)


class GenerateSummaryRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None
    codebase_context: str | None = None


class AnalyzeArchitectureRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None
    code_structure: dict[str, Any] | None = None


class SecurityAnalysisRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None
    security_data: dict[str, Any] | None = None


class GenerateInsightsRequest(CamelModel):
    llm_config: LLMConfigPayload | None = None
    repo_data: dict[str, Any] | None = None


class ValidateTokenRequest(CamelModel):
    token: str | None = None


class AnalyzeRequestBody(CamelModel):
    repo_url: str | None = None
    llm_config: LLMConfigPayload | str | None = None
    github_token: str | None = None


class ArchitectureRequest(CamelModel):
    files: list[FileInfo] | None = None
