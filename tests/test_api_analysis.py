"""API tests for the analysis stream, visualizations and report history."""

import json

from repolens.services.cache import analysis_cache_key, visualization_cache_key

REPO_URL = "https://github.com/octo/hello"


def parse_sse(text: str) -> list[tuple[str, dict]]:
    """Split an event stream into (event name, payload) pairs."""
    events = []
    for block in text.strip().split("\n\n"):
        name = "message"
        data = None
        for line in block.split("\n"):
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        if data is not None:
            events.append((name, data))
    return events


# =============================================================================
# ROOT
# =============================================================================

def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "RepoLens API"
    assert response.json()["status"] == "running"


def test_health_reports_redis(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "redis": True, "cache": {"hits": 0, "misses": 0}}


# =============================================================================
# VISUALIZATIONS
# =============================================================================

def test_visualizations_require_url(client):
    response = client.get("/api/visualizations")
    assert response.status_code == 400
    assert response.json() == {"error": "Repository URL is required"}


def test_visualizations_reject_invalid_url(client):
    response = client.get("/api/visualizations", params={"repoUrl": "https://gitlab.com/octo/hello"})
    assert response.status_code == 400
    assert "GitHub" in response.json()["error"]


def test_visualizations_are_computed_then_cached(client, github, fake_redis):
    response = client.get("/api/visualizations", params={"repoUrl": REPO_URL})

    assert response.status_code == 200
    data = response.json()
    assert set(data) == {"systemArchitecture", "vulnerabilityDistribution", "complexityScatterPlot",
                         "interactiveArchitecture"}
    assert data["systemArchitecture"]["links"] == [{"source": "src/index.js", "target": "src/utils/greet.js"}]
    assert [v["file"] for v in data["vulnerabilityDistribution"]] == ["src/config.js"]
    assert visualization_cache_key(REPO_URL) in fake_redis.store

    requests_before = len(github.requests)
    again = client.get("/api/visualizations", params={"repoUrl": REPO_URL})
    assert again.json() == data
    assert len(github.requests) == requests_before


def test_visualizations_reuse_cached_analysis(client, github, fake_redis):
    cached_analysis = {
        "systemArchitecture": {"nodes": [{"id": "a.js", "name": "a.js", "type": "module", "path": "a.js"}],
                               "links": []},
        "securityIssues": [{"type": "secret", "severity": "high", "file": "a.js", "description": "d"}],
        "qualityMetrics": {"a.js": {"complexity": 3, "maintainability": 80.5, "linesOfCode": 10}},
    }
    fake_redis.store[analysis_cache_key(REPO_URL)] = json.dumps(cached_analysis)

    response = client.get("/api/visualizations", params={"repoUrl": REPO_URL})

    assert response.status_code == 200
    assert response.json()["complexityScatterPlot"] == cached_analysis["qualityMetrics"]
    assert response.json()["interactiveArchitecture"] == cached_analysis["systemArchitecture"]
    assert github.requests == []
    assert visualization_cache_key(REPO_URL) in fake_redis.store


def test_visualizations_forward_bearer_token(client, github):
    response = client.get(
        "/api/visualizations",
        params={"repoUrl": REPO_URL},
        headers={"Authorization": "Bearer ghp_header"},
    )
    assert response.status_code == 200
    assert github.paths[0] == "/user"
    assert github.requests[0].headers["authorization"] == "token ghp_header"


def test_visualizations_upstream_failure_is_500(client):
    response = client.get("/api/visualizations", params={"repoUrl": "https://github.com/octo/missing"})
    assert response.status_code == 500
    assert "octo/missing not found" in response.json()["error"]


# =============================================================================
# ANALYSIS STREAM
# =============================================================================

def test_analysis_stream_reports_progress_then_result(client):
    response = client.get("/api/analyze", params={"repoUrl": REPO_URL})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_sse(response.text)

    progress = [data for name, data in events if data.get("type") == "progress"]
    assert progress[0]["step"] == "Validating repository URL"
    assert progress[0]["progress"] == 0
    assert progress[-1]["progress"] == 100
    assert all(isinstance(p["timestamp"], int) for p in progress)

    name, result = events[-1]
    assert name == "complete"
    assert result["repositoryUrl"] == REPO_URL
    assert result["metrics"]["totalCommits"] == 2
    assert result["basicInfo"]["fullName"] == "octo/hello"


def test_analysis_stream_caches_and_persists(client, github, fake_redis):
    client.get("/api/analyze", params={"repoUrl": REPO_URL})
    assert analysis_cache_key(REPO_URL) in fake_redis.store

    requests_before = len(github.requests)
    events = parse_sse(client.get("/api/analyze", params={"repoUrl": REPO_URL}).text)
    assert events[-1][0] == "complete"
    assert len(github.requests) == requests_before

    # the cached replay is not recorded as a second report
    reports = client.get("/api/reports", params={"repoUrl": REPO_URL}).json()["reports"]
    assert len(reports) == 1
    assert reports[0]["repositoryUrl"] == REPO_URL
    assert reports[0]["securityIssueCount"] == 1
    assert reports[0]["totalCommits"] == 2


def test_analysis_stream_post_body(client):
    response = client.post("/api/analyze", json={"repoUrl": REPO_URL, "githubToken": "  "})
    events = parse_sse(response.text)
    assert events[-1][0] == "complete"


def test_analysis_stream_requires_url(client):
    events = parse_sse(client.get("/api/analyze").text)
    assert events == [("error", {"error": "Repository URL is required"})]


def test_analysis_stream_rejects_bad_llm_config(client):
    events = parse_sse(client.get("/api/analyze", params={"repoUrl": REPO_URL, "llmConfig": "{oops"}).text)
    assert len(events) == 1
    assert events[0][0] == "error"
    assert events[0][1]["error"].startswith("Invalid llmConfig parameter")


def test_analysis_stream_reports_failures(client):
    events = parse_sse(client.get("/api/analyze", params={"repoUrl": "https://github.com/octo/missing"}).text)

    name, payload = events[-1]
    assert name == "error"
    assert "octo/missing not found" in payload["error"]
    assert not any(name == "complete" for name, _ in events)

    reports = client.get("/api/reports", params={"repoUrl": "https://github.com/octo/missing"}).json()["reports"]
    assert reports == []


def test_analysis_stream_invalid_url_is_an_error_event(client):
    events = parse_sse(client.get("/api/analyze", params={"repoUrl": "https://example.com/a/b"}).text)
    assert events[-1][0] == "error"
    assert "GitHub" in events[-1][1]["error"]


# =============================================================================
# REPORTS
# =============================================================================

def test_report_detail_includes_full_result(client):
    client.get("/api/analyze", params={"repoUrl": REPO_URL})
    summary = client.get("/api/reports", params={"repoUrl": f"{REPO_URL}.git"}).json()["reports"][0]

    detail = client.get(f"/api/reports/{summary['id']}")

    assert detail.status_code == 200
    body = detail.json()
    assert body["id"] == summary["id"]
    assert body["result"]["repositoryUrl"] == REPO_URL
    assert body["result"]["securityIssues"][0]["file"] == "src/config.js"


def test_reports_require_valid_url(client):
    assert client.get("/api/reports").status_code == 400
    response = client.get("/api/reports", params={"repoUrl": "not a url"})
    assert response.status_code == 400
    assert response.json() == {"error": "Could not extract owner and repo from URL"}


def test_unknown_report_is_404(client):
    response = client.get("/api/reports/999")
    assert response.status_code == 404
    assert response.json() == {"error": "Report not found"}
