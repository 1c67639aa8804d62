"""End-to-end tests for BackendAnalysisService against the fake GitHub repository."""

import asyncio
import json

import pytest

from repolens.errors import GitHubAPIError, InvalidRepoUrlError
from repolens.schemas import AnalysisResult
from repolens.services.analysis import AnalysisOptions, build_visualization_data
from repolens.services.cache import analysis_cache_key

REPO_URL = "https://github.com/octo/hello"

FULL_RUN_PERCENTAGES = [0, 10, 20, 30, 40, 45, 50, 60, 70, 75, 80, 85, 90, 95, 100]


def analyze(service, options=None, progress=None):
    on_progress = progress.append_step if progress is not None else None

    async def go():
        try:
            return await service.analyze(REPO_URL, options, on_progress)
        finally:
            await service.aclose()
    return asyncio.run(go())


class ProgressLog(list):
    def append_step(self, step, percent):
        self.append((step, percent))


def test_full_analysis(make_service):
    progress = ProgressLog()
    result = analyze(make_service(), progress=progress)

    assert [percent for _, percent in progress] == FULL_RUN_PERCENTAGES
    assert progress[-1] == ("Complete", 100)

    assert result.repository_url == REPO_URL
    assert result.basic_info.url == "https://github.com/octo/hello"
    assert result.basic_info.owner == "octo"
    assert len(result.commits) == 2
    assert result.commits[0].author == "bob"
    assert [c.login for c in result.contributors] == ["alice", "bob"]
    assert result.contributors[1].profile_url == "https://github.com/bob"
    assert result.languages == {"JavaScript": 1200, "Markdown": 8}

    files = {f.path: f for f in result.files}
    assert set(files) == {"README.md", "package.json", "src/index.js", "src/utils/greet.js", "src/config.js"}
    assert files["src/index.js"].language == "javascript"
    assert files["src/index.js"].content.startswith("const express")
    assert [fn.name for fn in files["src/index.js"].functions] == ["hello"]

    assert [(link.source, link.target) for link in result.dependency_graph.links] == [
        ("src/index.js", "src/utils/greet.js"),
    ]
    assert result.system_architecture == result.dependency_graph
    assert set(result.quality_metrics) == {"src/index.js", "src/utils/greet.js", "src/config.js"}

    assert [(i.file, i.severity.value) for i in result.security_issues] == [("src/config.js", "critical")]
    assert [(d.file, d.line) for d in result.technical_debt] == [("src/index.js", 13)]
    assert [(e.method, e.path) for e in result.api_endpoints] == [("GET", "/api/hello")]
    assert result.performance_metrics == []

    assert result.dependencies.dependencies == {"express": "^4.18.0"}
    assert result.dependencies.dev_dependencies == {"jest": "^29.0.0"}
    assert [w.target for w in result.dependency_wheel_data] == ["express"]
    assert [pr.state for pr in result.pull_requests] == ["merged"]

    assert result.metrics.total_commits == 2
    assert result.metrics.total_contributors == 2
    assert result.metrics.critical_vulnerabilities == 1
    assert result.hotspots == []
    assert {kf.name for kf in result.key_functions} == {"hello", "greet"}

    assert [p.date for p in result.contributor_stream_data] == ["2024-01", "2024-02"]
    src = next(c for c in result.churn_sunburst_data.children if c.name == "src")
    assert {c.name: c.churn_rate for c in src.children} == {"index.js": 2, "config.js": 1}
    assert [c.name for c in result.file_system_tree.children] == ["README.md", "package.json", "src"]

    assert result.ai_summary == "octo/hello is a JavaScript repository with 5 files. Demo"
    assert result.architecture_analysis == (
        "Architecture analysis shows 5 files organized in a standard project structure."
    )


def test_result_serializes_to_camel_case(make_service):
    data = analyze(make_service()).to_json_dict()

    for key in ("repositoryUrl", "basicInfo", "securityIssues", "qualityMetrics", "apiEndpoints",
                "dependencyWheelData", "fileSystemTree", "churnSunburstData", "contributorStreamData"):
        assert key in data
    assert data["metrics"]["totalCommits"] == 2
    assert json.loads(json.dumps(data)) == data


def test_visualizations_only_skips_the_rest(make_service, github):
    progress = ProgressLog()
    result = analyze(make_service(), AnalysisOptions.visualizations_only(), progress)

    assert [p for _, p in progress] == [0, 10, 20, 40, 45, 50, 60, 70, 95, 100]
    assert result.contributors == []
    assert result.technical_debt == []
    assert result.api_endpoints == []
    assert result.pull_requests == []
    assert result.ai_summary is None
    assert result.system_architecture is not None
    assert "/repos/octo/hello/pulls" not in github.paths
    assert "/repos/octo/hello/contributors" not in github.paths


def test_architecture_off_leaves_system_architecture_empty(make_service):
    result = analyze(make_service(), AnalysisOptions(architecture=False))
    assert result.system_architecture is None
    assert result.dependency_graph.nodes == []


def test_archive_failure_falls_back_to_contents_api(make_service, github):
    github.archive_status = 500

    result = analyze(make_service())

    content_requests = [p for p in github.paths if "/contents/" in p]
    assert len(content_requests) == 5
    files = {f.path: f for f in result.files}
    assert files["src/utils/greet.js"].content.startswith("function greet")
    assert result.security_issues[0].file == "src/config.js"


def test_valid_token_is_verified(make_service, github):
    progress = ProgressLog()
    analyze(make_service(github_token="ghp_valid"), progress=progress)

    assert ("Verifying GitHub token", 5) in progress
    assert github.paths[0] == "/user"
    assert github.requests[1].headers["authorization"] == "token ghp_valid"


def test_invalid_token_fails_with_401(make_service, github):
    github.token_valid = False

    with pytest.raises(GitHubAPIError) as exc:
        analyze(make_service(github_token="ghp_revoked"))
    assert exc.value.status_code == 401
    assert "/repos/octo/hello" not in github.paths


def test_invalid_url_is_rejected_before_any_request(make_service, github):
    service = make_service()

    with pytest.raises(InvalidRepoUrlError):
        asyncio.run(service.analyze("https://gitlab.com/octo/hello"))
    assert github.requests == []


def test_cached_result_is_reused(make_service, github, cache, fake_redis):
    fresh = make_service()
    first = analyze(fresh, AnalysisOptions(use_cache=True))
    assert not fresh.served_from_cache
    assert analysis_cache_key(REPO_URL) in fake_redis.store
    requests_after_first = len(github.requests)

    progress = ProgressLog()
    service = make_service()
    second = analyze(service, AnalysisOptions(use_cache=True), progress)

    assert len(github.requests) == requests_after_first
    assert progress == [("Validating repository URL", 0), ("Complete", 100)]
    assert service.served_from_cache
    assert isinstance(second, AnalysisResult)
    assert second.id == first.id
    assert second.to_json_dict() == first.to_json_dict()


def test_unreadable_cache_entry_is_ignored(make_service, github, fake_redis):
    fake_redis.store[analysis_cache_key(REPO_URL)] = json.dumps({"unexpected": True})

    result = analyze(make_service(), AnalysisOptions(use_cache=True))

    assert result.repository_url == REPO_URL
    assert "/repos/octo/hello" in github.paths


def test_cache_is_ignored_unless_requested(make_service, fake_redis):
    analyze(make_service())
    assert analysis_cache_key(REPO_URL) not in fake_redis.store


def test_llm_powered_sections(make_service, scripted_llm):
    summary = json.dumps({"summary": "Express demo app", "keyPoints": [], "recommendations": []})
    llm = scripted_llm()

    async def reply(prompt, max_tokens):
        llm.prompts.append(prompt)
        if "structured summary" in prompt:
            return summary
        if "Analyze the architecture" in prompt:
            return "Layered Express service."
        if "algorithmic complexity" in prompt:
            return '{"complexity": "O(1)", "runtime": "Likely fast"}'
        return "[]"

    llm._complete = reply
    result = analyze(make_service(llm_service=llm))

    assert result.ai_summary == "Express demo app"
    assert result.architecture_analysis == "Layered Express service."
    assert [m.file for m in result.performance_metrics] == ["src/index.js"]
    # regex endpoint detection is replaced by the (empty) LLM answer
    assert result.api_endpoints == []
    assert [i.type for i in result.security_issues] == ["secret"]


def test_build_visualization_data_from_result_and_dict(make_service):
    result = analyze(make_service())

    from_model = build_visualization_data(result)
    from_dict = build_visualization_data(result.to_json_dict())

    assert from_model == from_dict
    assert from_model["systemArchitecture"]["links"] == [{"source": "src/index.js", "target": "src/utils/greet.js"}]
    assert from_model["interactiveArchitecture"] == from_model["systemArchitecture"]
    assert from_model["vulnerabilityDistribution"][0]["file"] == "src/config.js"
    assert "src/index.js" in from_model["complexityScatterPlot"]


def test_build_visualization_data_defaults():
    assert build_visualization_data({}) == {
        "systemArchitecture": None,
        "vulnerabilityDistribution": [],
        "complexityScatterPlot": {},
        "interactiveArchitecture": {},
    }
