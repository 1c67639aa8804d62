"""Tests for the GitHub REST client and URL helpers."""

import asyncio

import httpx
import pytest

from repolens.errors import GitHubAPIError, InvalidRepoUrlError
from repolens.services.github import (
    GitHubClient,
    bearer_token,
    extract_text_files,
    parse_repo_url,
    validate_repo_url,
)


def run(coro):
    return asyncio.run(coro)


def client_for(handler, token=None) -> GitHubClient:
    return GitHubClient(token=token, transport=httpx.MockTransport(handler))


# =============================================================================
# URL HELPERS
# =============================================================================

@pytest.mark.parametrize("url, expected", [
    ("https://github.com/octo/hello", ("octo", "hello")),
    ("https://github.com/octo/hello.git", ("octo", "hello")),
    ("https://github.com/octo/hello/tree/main/src", ("octo", "hello")),
    ("git@github.com/octo/hello?tab=readme", ("octo", "hello")),
])
def test_parse_repo_url(url, expected):
    assert parse_repo_url(url) == expected


def test_parse_repo_url_rejects_non_github():
    with pytest.raises(InvalidRepoUrlError):
        parse_repo_url("https://gitlab.com/octo/hello")


@pytest.mark.parametrize("url", [
    None,
    "",
    "https://gitlab.com/octo/hello",
    "https://github.com/octo",
    "https://github.com/octo/hello;rm -rf",
    "https://evil.com/github.com/octo/hello",
])
def test_validate_repo_url_rejects(url):
    with pytest.raises(InvalidRepoUrlError) as exc:
        validate_repo_url(url)
    assert exc.value.status_code == 400


def test_validate_repo_url_accepts_and_strips():
    assert validate_repo_url("  https://github.com/octo/hello ") == "https://github.com/octo/hello"


def test_bearer_token():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("Bearer   ") is None
    assert bearer_token("token abc") is None
    assert bearer_token(None) is None


# =============================================================================
# CLIENT
# =============================================================================

def test_token_goes_in_authorization_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"login": "octo"})

    assert run(client_for(handler, token="ghp_x").verify_token()) is True
    assert seen["auth"] == "token ghp_x"


def test_verify_token_without_token_is_false():
    def handler(request):
        raise AssertionError("no request expected")

    assert run(client_for(handler).verify_token()) is False


def test_get_repository_maps_fields(github):
    client = GitHubClient(transport=github.transport())
    repo = run(client.get_repository("octo", "hello"))

    assert repo.full_name == "octo/hello"
    assert repo.stars == 42
    assert repo.default_branch == "main"
    assert repo.license.spdx_id == "MIT"


def test_not_found_maps_to_404():
    def handler(request):
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(GitHubAPIError) as exc:
        run(client_for(handler).get_repository("octo", "missing"))
    assert exc.value.status_code == 404
    assert "octo/missing not found" in exc.value.message


def test_rate_limit_message_depends_on_token():
    def handler(request):
        return httpx.Response(
            403,
            json={"message": "API rate limit exceeded"},
            headers={"x-ratelimit-limit": "60", "x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"},
        )

    with pytest.raises(GitHubAPIError) as exc:
        run(client_for(handler).get_repository("octo", "hello"))
    assert exc.value.status_code == 403
    assert "Personal Access Token" in exc.value.message
    assert "Rate Limit: 0/60" in exc.value.message

    with pytest.raises(GitHubAPIError) as exc:
        run(client_for(handler, token="ghp_x").get_repository("octo", "hello"))
    assert "even with token" in exc.value.message


def test_server_error_maps_to_bad_gateway():
    def handler(request):
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(GitHubAPIError) as exc:
        run(client_for(handler).get_commits("octo", "hello"))
    assert exc.value.status_code == 502
    assert exc.value.github_status == 500


def test_unprocessable_request_maps_to_bad_gateway():
    def handler(request):
        return httpx.Response(422, json={"message": "Git Repository is empty."})

    with pytest.raises(GitHubAPIError) as exc:
        run(client_for(handler).get_repo_tree("octo", "empty", "main"))
    assert exc.value.status_code == 502
    assert exc.value.github_status == 422
    assert "might be empty" in exc.value.message


def test_transport_failure_raises_github_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(GitHubAPIError):
        run(client_for(handler).get_repository("octo", "hello"))


def test_contributors_follow_next_links():
    pages = {
        "1": ([{"login": "a", "contributions": 3}], '<https://api.github.com/repos/o/r/contributors?page=2>; rel="next"'),
        "2": ([{"login": "b", "contributions": 1}], None),
    }

    def handler(request):
        body, link = pages[request.url.params.get("page", "1")]
        headers = {"link": link} if link else {}
        return httpx.Response(200, json=body, headers=headers)

    contributors = run(client_for(handler).get_contributors("o", "r"))
    assert [c.login for c in contributors] == ["a", "b"]


def test_contributors_of_empty_repository():
    def handler(request):
        return httpx.Response(204)

    assert run(client_for(handler).get_contributors("o", "r")) == []


def test_commits_respect_limit():
    def handler(request):
        per_page = int(request.url.params["per_page"])
        body = [
            {"sha": f"s{i}", "commit": {"message": "m", "author": {"name": "n", "date": "2024-01-01T00:00:00Z"}}}
            for i in range(per_page)
        ]
        return httpx.Response(200, json=body, headers={"link": '<https://api.github.com/next>; rel="next"'})

    commits = run(client_for(handler).get_commits("o", "r", limit=150))
    assert len(commits) == 150


def test_pull_request_state_reports_merges(github):
    client = GitHubClient(transport=github.transport())
    pulls = run(client.get_pull_requests("octo", "hello"))
    assert pulls[0].state == "merged"
    assert pulls[0].author == "bob"


def test_languages_failure_is_empty():
    def handler(request):
        return httpx.Response(500, json={"message": "boom"})

    assert run(client_for(handler).get_languages("o", "r")) == {}


def test_file_content_decodes_base64(github):
    client = GitHubClient(transport=github.transport())
    assert run(client.get_file_content("octo", "hello", "src/utils/greet.js")).startswith("function greet")


def test_file_content_skips_binary_paths():
    def handler(request):
        raise AssertionError("no request expected")

    assert run(client_for(handler).get_file_content("o", "r", "logo.png")) == ""


def test_repo_tree_lists_files_and_dirs(github):
    client = GitHubClient(transport=github.transport())
    tree = run(client.get_repo_tree("octo", "hello", "main"))

    by_path = {f.path: f for f in tree}
    assert by_path["src/index.js"].type == "file"
    assert by_path["src/index.js"].name == "index.js"
    assert by_path["src"].type == "dir"


def test_commit_details_include_stats_and_files():
    def handler(request):
        assert request.url.path == "/repos/o/r/commits/abc123"
        return httpx.Response(200, json={
            "sha": "abc123",
            "commit": {"message": "Fix bug", "author": {"name": "alice", "date": "2024-03-01T00:00:00Z"}},
            "stats": {"additions": 4, "deletions": 1, "total": 5},
            "files": [{"filename": "app.py", "additions": 4, "deletions": 1, "changes": 5, "patch": "@@"}],
        })

    commit = run(client_for(handler).get_commit_details("o", "r", "abc123"))
    assert commit.author.name == "alice"
    assert commit.author.email == "N/A"
    assert commit.stats.total == 5
    assert [(f.filename, f.changes, f.status) for f in commit.files] == [("app.py", 5, "modified")]


def test_directory_contents():
    def handler(request):
        return httpx.Response(200, json=[
            {"name": "src", "path": "src", "type": "dir"},
            {"name": "README.md", "path": "README.md", "size": 12, "type": "file"},
            {"name": "vendor", "path": "vendor", "type": "submodule"},
        ])

    listing = run(client_for(handler).get_directory_contents("o", "r"))
    assert [(f.path, f.type, f.size) for f in listing] == [("src", "dir", 0), ("README.md", "file", 12)]


def test_directory_contents_failure_is_empty(github):
    client = GitHubClient(transport=github.transport())
    assert run(client.get_directory_contents("octo", "hello", "missing")) == []


def test_download_archive(github):
    client = GitHubClient(transport=github.transport())
    files = run(client.download_archive("octo", "hello", "main"))
    assert set(files) == set(github.files)


# =============================================================================
# ARCHIVE EXTRACTION
# =============================================================================

def test_extract_text_files_filters(make_archive):
    archive = make_archive({
        "src/app.py": "print('hi')\n",
        "node_modules/lib/index.js": "module.exports = 1;\n",
        "logo.png": "not really a png",
        "big.txt": "x" * 500,
        "blob.dat": "abc\x00def",
    })

    files = extract_text_files(archive, max_file_size=100)
    assert files == {"src/app.py": "print('hi')\n"}
