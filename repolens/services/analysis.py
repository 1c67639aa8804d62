"""
Repository analysis pipeline.

BackendAnalysisService pulls everything RepoLens knows how to get from GitHub,
runs the analyzers selected by AnalysisOptions and assembles one
AnalysisResult. Progress is reported through an optional callback as
(step, percent) pairs so the SSE route can stream it.
"""

import asyncio
import logging
import tarfile
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from .. import analyzers
from ..config import Settings, get_settings
from ..errors import GitHubAPIError, LLMError
from ..schemas import (
    AnalysisResult,
    ArchitectureData,
    BasicRepositoryInfo,
    Commit,
    Contributor,
    DependencyInfo,
    FileInfo,
    ProcessedCommit,
    ProcessedContributor,
    Repository,
)
from .cache import RedisCacheService, analysis_cache_key
from .github import GitHubClient, parse_repo_url, validate_repo_url
from .llm import LLMConfig, LLMService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

CONTENT_FETCH_CONCURRENCY = 8
ARCHITECTURE_SAMPLE_FILES = 50


@dataclass
class AnalysisOptions:
    """Which parts of the report to build."""
    architecture: bool = True
    security: bool = True
    quality: bool = True
    dependencies: bool = True
    technical_debt: bool = True
    performance: bool = True
    api_endpoints: bool = True
    hotspots: bool = True
    key_functions: bool = True
    pr_analysis: bool = True
    contributor_analysis: bool = True
    ai_summary: bool = True
    ai_architecture: bool = True
    use_cache: bool = False

    @classmethod
    def visualizations_only(cls) -> "AnalysisOptions":
        """Architecture, security and quality; everything else off."""
        disabled = {name: False for name in cls.__dataclass_fields__ if name not in ("architecture", "security", "quality")}
        return cls(**disabled)


# =============================================================================
# DATA SHAPING
# =============================================================================

def to_basic_info(repository: Repository) -> BasicRepositoryInfo:
    return BasicRepositoryInfo(
        name=repository.name,
        full_name=repository.full_name,
        description=repository.description,
        stars=repository.stars,
        forks=repository.forks,
        watchers=repository.watchers,
        language=repository.language,
        url=f"https://github.com/{repository.full_name}",
        owner=repository.full_name.split("/")[0],
        created_at=repository.created_at,
        updated_at=repository.updated_at,
        default_branch=repository.default_branch,
        size=repository.size,
        open_issues=repository.open_issues,
        has_wiki=repository.has_wiki,
        has_pages=repository.has_pages,
    )


def process_commits(commits: list[Commit]) -> list[ProcessedCommit]:
    processed = []
    for commit in commits:
        data: dict[str, Any] = {
            "sha": commit.sha,
            "author": commit.author.name or "Unknown",
            "date": commit.author.date,
            "message": commit.message,
            "files": commit.files,
        }
        if commit.stats is not None:
            data["stats"] = commit.stats
        processed.append(ProcessedCommit(**data))
    return processed


def process_contributors(contributors: list[Contributor]) -> list[ProcessedContributor]:
    return [
        ProcessedContributor(
            login=c.login,
            avatar_url=c.avatar_url,
            contributions=c.contributions,
            profile_url=c.html_url or f"https://github.com/{c.login}",
        )
        for c in contributors
    ]


def enrich_file(file: FileInfo, content: str | None) -> FileInfo:
    """Attach content plus the per-file facts derived from it."""
    language = analyzers.detect_language(file.path)
    if content is None:
        return file.model_copy(update={"language": language})
    return file.model_copy(update={
        "content": content,
        "language": language,
        "complexity": analyzers.calculate_basic_complexity(content),
        "functions": analyzers.parse_functions(content, language),
    })


def build_visualization_data(result: AnalysisResult | dict[str, Any]) -> dict[str, Any]:
    """The subset of a report the visualization page needs, in wire format."""
    data = result.to_json_dict() if isinstance(result, AnalysisResult) else result
    return {
        "systemArchitecture": data.get("systemArchitecture"),
        "vulnerabilityDistribution": data.get("securityIssues") or [],
        "complexityScatterPlot": data.get("qualityMetrics") or {},
        "interactiveArchitecture": data.get("systemArchitecture") or {},
    }


# =============================================================================
# SERVICE
# =============================================================================

class BackendAnalysisService:
    def __init__(
        self,
        github_token: str | None = None,
        llm_config: LLMConfig | None = None,
        cache: RedisCacheService | None = None,
        github_client: GitHubClient | None = None,
        llm_service: LLMService | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        token = github_token or self.settings.github_token
        self.github = github_client or GitHubClient(token=token, max_file_size=self.settings.max_file_size)

        if llm_service is None:
            if llm_config is None and self.settings.llm_provider:
                llm_config = LLMConfig(
                    provider=self.settings.llm_provider,
                    api_key=self.settings.llm_api_key,
                    model=self.settings.llm_model,
                )
            llm_service = LLMService(llm_config)
        self.llm = llm_service
        self.cache = cache
        # True when the last analyze() call was answered from the analysis cache
        self.served_from_cache = False

    async def aclose(self) -> None:
        await self.github.aclose()

    async def analyze(
        self,
        repo_url: str,
        options: AnalysisOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        options = options or AnalysisOptions()
        self.served_from_cache = False

        def progress(step: str, percent: int) -> None:
            logger.info(f"[{percent:3d}%] {step}")
            if on_progress is not None:
                on_progress(step, percent)

        progress("Validating repository URL", 0)
        repo_url = validate_repo_url(repo_url)
        owner, repo = parse_repo_url(repo_url)

        if options.use_cache and self.cache is not None:
            cached = await self._cached_result(repo_url)
            if cached is not None:
                self.served_from_cache = True
                progress("Complete", 100)
                return cached

        if self.github.has_token():
            progress("Verifying GitHub token", 5)
            if not await self.github.verify_token():
                raise GitHubAPIError("GitHub token is invalid or has expired.", 401)

        progress("Fetching repository data", 10)
        repository = await self.github.get_repository(owner, repo)

        progress("Fetching commits", 20)
        commits = process_commits(await self.github.get_commits(owner, repo))

        contributors: list[ProcessedContributor] = []
        if options.contributor_analysis:
            progress("Fetching contributors", 30)
            contributors = process_contributors(await self.github.get_contributors(owner, repo))

        progress("Fetching repository tree", 40)
        tree = await self.github.get_repo_tree(owner, repo, repository.default_branch)

        progress("Fetching languages", 45)
        languages = await self.github.get_languages(owner, repo)

        progress("Processing files with content", 50)
        files = await self._load_files(owner, repo, repository.default_branch, tree)

        dependency_graph = ArchitectureData()
        quality_metrics = {}
        if options.architecture or options.quality:
            progress("Analyzing architecture", 60)
            if options.architecture:
                dependency_graph = analyzers.build_architecture_graph(files)
            if options.quality:
                quality_metrics = analyzers.calculate_quality_metrics(files)

        security_issues = []
        if options.security:
            progress("Running security analysis", 70)
            security_issues = await analyzers.analyze_security(
                files,
                self.llm,
                llm_file_limit=self.settings.llm_vuln_file_limit,
                llm_delay=self.settings.llm_vuln_delay_ms / 1000,
            )

        technical_debt = []
        if options.technical_debt:
            progress("Analyzing technical debt", 75)
            technical_debt = await analyzers.analyze_technical_debt(
                files, self.llm, file_limit=self.settings.tech_debt_file_limit
            )

        api_endpoints = []
        if options.api_endpoints:
            progress("Detecting API endpoints", 80)
            api_endpoints = await analyzers.detect_api_endpoints(
                files, self.llm, file_limit=self.settings.api_endpoint_file_limit
            )

        performance_metrics = []
        if options.performance:
            progress("Analyzing performance", 85)
            performance_metrics = await analyzers.analyze_performance(
                files, self.llm, file_limit=self.settings.perf_metrics_file_limit
            )

        dependencies = DependencyInfo()
        if options.dependencies:
            progress("Parsing dependencies", 90)
            dependencies = analyzers.analyze_dependencies(files)

        pull_requests = []
        if options.pr_analysis:
            try:
                pull_requests = await self.github.get_pull_requests(owner, repo)
            except GitHubAPIError as e:
                logger.warning(f"Skipping pull requests for {owner}/{repo}: {e.message}")

        progress("Generating analysis insights", 95)
        hotspots = analyzers.find_hotspots(files, commits) if options.hotspots else []
        key_functions = analyzers.find_key_functions(files) if options.key_functions else []
        metrics = analyzers.calculate_metrics(
            commits, contributors, files, security_issues, technical_debt, performance_metrics
        )

        ai_summary = await self._ai_summary(repository, files) if options.ai_summary else None
        architecture_analysis = await self._architecture_analysis(files) if options.ai_architecture else None

        result = AnalysisResult(
            id=uuid.uuid4().hex,
            repository_url=repo_url,
            created_at=datetime.now(timezone.utc).isoformat(),
            basic_info=to_basic_info(repository),
            repository=repository,
            commits=commits,
            contributors=contributors,
            files=files,
            languages=languages,
            dependencies=dependencies,
            dependency_graph=dependency_graph,
            system_architecture=dependency_graph if options.architecture else None,
            quality_metrics=quality_metrics,
            security_issues=security_issues,
            technical_debt=technical_debt,
            performance_metrics=performance_metrics,
            hotspots=hotspots,
            key_functions=key_functions,
            api_endpoints=api_endpoints,
            pull_requests=pull_requests,
            metrics=metrics,
            dependency_wheel_data=analyzers.build_dependency_wheel(dependencies),
            file_system_tree=analyzers.build_file_system_tree(files),
            churn_sunburst_data=analyzers.build_churn_sunburst(files, commits),
            contributor_stream_data=analyzers.build_contributor_stream(commits),
            ai_summary=ai_summary,
            architecture_analysis=architecture_analysis,
        )

        if options.use_cache and self.cache is not None:
            await self.cache.set(analysis_cache_key(repo_url), result.to_json_dict())

        progress("Complete", 100)
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _cached_result(self, repo_url: str) -> AnalysisResult | None:
        cached = await self.cache.get(analysis_cache_key(repo_url))
        if cached is None:
            return None
        try:
            return AnalysisResult.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable cached analysis for {repo_url}: {e.error_count()} errors")
            return None

    async def _load_files(self, owner: str, repo: str, ref: str, tree: list[FileInfo]) -> list[FileInfo]:
        selected = [
            f for f in tree
            if f.type == "file" and f.size < self.settings.max_file_size
        ][: self.settings.max_analyzed_files]

        try:
            archive = await self.github.download_archive(owner, repo, ref)
        except (GitHubAPIError, httpx.HTTPError, tarfile.TarError, EOFError) as e:
            logger.warning(f"Archive download failed for {owner}/{repo}, fetching files one by one: {e}")
            return await self._load_files_individually(owner, repo, selected)

        logger.info(f"Archive for {owner}/{repo} contained {len(archive)} text files")
        return [enrich_file(f, archive.get(f.path)) for f in selected]

    async def _load_files_individually(self, owner: str, repo: str, files: list[FileInfo]) -> list[FileInfo]:
        semaphore = asyncio.Semaphore(CONTENT_FETCH_CONCURRENCY)

        async def load(f: FileInfo) -> FileInfo:
            async with semaphore:
                try:
                    content = await self.github.get_file_content(owner, repo, f.path)
                except (GitHubAPIError, httpx.HTTPError) as e:
                    logger.warning(f"Could not fetch {f.path}: {e}")
                    return enrich_file(f, None)
            return enrich_file(f, content)

        return list(await asyncio.gather(*(load(f) for f in files)))

    async def _ai_summary(self, repository: Repository, files: list[FileInfo]) -> str:
        if not self.llm.is_configured():
            return (
                f"{repository.full_name} is a {repository.language} repository with {len(files)} files. "
                f"{repository.description or 'No description provided.'}"
            )
        try:
            return await self.llm.generate_executive_summary(
                repository.name, repository.description, repository.language, repository.stars
            )
        except LLMError as e:
            logger.warning(f"AI summary failed: {e.message}")
            return (
                f"{repository.full_name} analysis completed. "
                f"Repository contains {len(files)} files with {repository.stars} stars."
            )

    async def _architecture_analysis(self, files: list[FileInfo]) -> str:
        if not self.llm.is_configured():
            return f"Architecture analysis shows {len(files)} files organized in a standard project structure."
        languages = Counter(f.language for f in files if f.language)
        try:
            return await self.llm.analyze_architecture(
                [(f.path, f.size) for f in files[:ARCHITECTURE_SAMPLE_FILES]], dict(languages)
            )
        except LLMError as e:
            logger.warning(f"Architecture narrative failed: {e.message}")
            return "Architecture analysis indicates a well-structured codebase with multiple components."
