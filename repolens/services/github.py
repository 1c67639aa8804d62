"""
GitHub REST client used by the analysis pipeline.

Wraps the handful of endpoints RepoLens needs (repo metadata, commits,
contributors, trees, contents, pulls) plus a tarball download that pulls a
whole branch in one request. HTTP failures are turned into GitHubAPIError
with a message a user can act on.
"""

import base64
import io
import logging
import re
import tarfile
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx

from ..errors import GitHubAPIError, InvalidRepoUrlError
from ..schemas import (
    Commit,
    CommitAuthor,
    CommitFile,
    CommitStats,
    Contributor,
    FileInfo,
    License,
    PullRequest,
    Repository,
)

logger = logging.getLogger(__name__)


GITHUB_API_URL = "https://api.github.com"
REQUEST_TIMEOUT = 30.0
MAX_CONTRIBUTOR_PAGES = 5

BINARY_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp",
                     ".pdf", ".zip", ".tar", ".gz", ".tgz", ".7z", ".rar",
                     ".woff", ".woff2", ".ttf", ".eot", ".otf",
                     ".mp3", ".mp4", ".wav", ".mov",
                     ".exe", ".dll", ".so", ".dylib", ".pyc", ".class", ".jar")

# Only these are skipped by the contents API (matches what the UI expects)
CONTENT_SKIP_PATTERN = re.compile(r"\.(png|jpg|gif|svg|pdf|zip|tar|gz)$", re.IGNORECASE)

ARCHIVE_SKIP_DIRS = {"node_modules", ".git", "dist", "build", "vendor", ".next",
                     "__pycache__", ".venv", "venv", "coverage", "target"}

_REPO_PATH_PATTERN = re.compile(r"github\.com/([^/]+)/([^/?#]+)")
_UNSAFE_URL_CHARS = re.compile(r"[<>$(){}\[\];']")


# =============================================================================
# URL HELPERS
# =============================================================================

def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Return (owner, repo) for any github.com/<owner>/<repo> URL."""
    match = _REPO_PATH_PATTERN.search(repo_url or "")
    if not match:
        raise InvalidRepoUrlError("Could not extract owner and repo from URL")
    repo = match.group(2)
    if repo.endswith(".git"):
        repo = repo[:-4]
    return match.group(1), repo


def validate_repo_url(repo_url: str | None) -> str:
    """Reject anything that is not a plausible github.com repository URL."""
    if not repo_url or not isinstance(repo_url, str) or "github.com" not in repo_url:
        raise InvalidRepoUrlError("Invalid repository URL. Must be a valid GitHub repository URL.")

    if _UNSAFE_URL_CHARS.search(repo_url):
        raise InvalidRepoUrlError("Repository URL contains potentially unsafe characters.")

    parsed = urlparse(repo_url.strip())
    if parsed.hostname != "github.com":
        raise InvalidRepoUrlError("Invalid URL format. Hostname must be github.com")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise InvalidRepoUrlError("Invalid URL format. URL path must include owner and repository name.")

    return repo_url.strip()


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        return token or None
    return None


# =============================================================================
# CLIENT
# =============================================================================

class GitHubClient:
    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        max_file_size: int = 200 * 1024,
    ):
        self.token = token or None
        self.base_url = base_url.rstrip("/")
        self.max_file_size = max_file_size
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def has_token(self) -> bool:
        return bool(self.token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    def _error_for(self, response: httpx.Response, context: str, owner: str, repo: str) -> GitHubAPIError:
        status = response.status_code
        try:
            message = response.json().get("message", response.reason_phrase)
        except ValueError:
            message = response.reason_phrase or "Unknown error"
        target = f"{owner}/{repo}"

        if status == 403:
            if "rate limit" in message.lower():
                if self.token:
                    text = ("GitHub API rate limit exceeded even with token. Your token may be invalid, "
                            "expired, revoked, or missing the required scopes. Please check your token in Settings.")
                else:
                    text = ("GitHub API rate limit exceeded. Please configure a valid GitHub Personal Access Token "
                            "in Settings to increase your rate limit from 60 to 5,000 requests per hour.")
            elif "Bad credentials" in message:
                text = ("Invalid GitHub Personal Access Token. Please check your token in Settings "
                        "and ensure it has the correct permissions.")
            elif self.token:
                text = (f"Access forbidden while {context} for {target}. Your GitHub token may lack "
                        "necessary permissions (e.g. repo scope for private repos).")
            else:
                text = (f"Access forbidden while {context} for {target}. Please configure a GitHub Personal "
                        "Access Token in Settings to access this repository or enhance rate limits.")
        elif status == 404:
            text = (f"Repository {target} not found. Please check the URL and ensure the repository "
                    "exists and is accessible.")
        elif status == 401:
            text = "Authentication failed with GitHub. Please check your GitHub Personal Access Token in Settings."
        elif status == 422:
            text = (f"Invalid request to GitHub API while {context} for {target}. "
                    "The repository might be empty or the request malformed.")
        else:
            text = f"GitHub API error ({status}) while {context} for {target}: {message}."
            if not self.token:
                text += " Consider adding a GitHub Personal Access Token in Settings for better reliability."

        limit = response.headers.get("x-ratelimit-limit")
        remaining = response.headers.get("x-ratelimit-remaining")
        if limit and remaining:
            text += f"\nRate Limit: {remaining}/{limit} requests remaining."
            reset = response.headers.get("x-ratelimit-reset")
            if reset and reset.isdigit():
                reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
                text += f" Resets at: {reset_at.isoformat()}."

        return GitHubAPIError(text, status)

    async def _get(self, url: str, context: str, owner: str, repo: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.get(url, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"Failed to {context} for {owner}/{repo}: {e}") from e
        if response.status_code >= 400:
            raise self._error_for(response, context, owner, repo)
        return response

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def verify_token(self) -> bool:
        if not self.token:
            return False
        try:
            response = await self._client.get("/user")
        except httpx.HTTPError as e:
            logger.warning(f"Token verification failed: {e}")
            return False
        return response.status_code == 200

    async def get_repository(self, owner: str, repo: str) -> Repository:
        response = await self._get(f"/repos/{owner}/{repo}", "fetching repository information", owner, repo)
        data = response.json()
        license_data = data.get("license")
        return Repository(
            name=data["name"],
            full_name=data["full_name"],
            description=data.get("description") or "",
            language=data.get("language") or "Unknown",
            stars=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            watchers=data.get("watchers_count", 0),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            default_branch=data.get("default_branch") or "main",
            size=data.get("size", 0),
            open_issues=data.get("open_issues_count", 0),
            has_wiki=bool(data.get("has_wiki")),
            has_pages=bool(data.get("has_pages")),
            license=License(name=license_data["name"], spdx_id=license_data.get("spdx_id")) if license_data else None,
        )

    async def get_contributors(self, owner: str, repo: str) -> list[Contributor]:
        contributors: list[Contributor] = []
        url: str | None = f"/repos/{owner}/{repo}/contributors"
        params: dict | None = {"per_page": 100}
        pages = 0

        while url and pages < MAX_CONTRIBUTOR_PAGES:
            response = await self._get(url, "fetching contributors", owner, repo, params=params)
            # An empty repository answers 204 with no body
            if response.status_code == 204 or not response.content:
                break
            for c in response.json():
                contributors.append(Contributor(
                    login=c.get("login") or "unknown",
                    contributions=c.get("contributions", 0),
                    avatar_url=c.get("avatar_url") or "",
                    type=c.get("type") or "User",
                    html_url=c.get("html_url"),
                ))
            pages += 1
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query

        return contributors

    async def get_commits(self, owner: str, repo: str, sha: str | None = None, limit: int = 2000) -> list[Commit]:
        commits: list[Commit] = []
        url: str | None = f"/repos/{owner}/{repo}/commits"

        while url and len(commits) < limit:
            params = {"per_page": min(100, limit - len(commits))}
            if sha:
                params["sha"] = sha
            response = await self._get(url, "fetching commits", owner, repo, params=params)
            page = response.json()
            if not page:
                break
            for c in page:
                commits.append(_commit_from_api(c))
            if len(commits) >= limit:
                break
            url = response.links.get("next", {}).get("url")

        return commits[:limit]

    async def get_commit_details(self, owner: str, repo: str, sha: str) -> Commit:
        response = await self._get(
            f"/repos/{owner}/{repo}/commits/{sha}", f"fetching commit details for {sha}", owner, repo
        )
        return _commit_from_api(response.json())

    async def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        try:
            response = await self._get(f"/repos/{owner}/{repo}/languages", "fetching languages", owner, repo)
        except GitHubAPIError as e:
            logger.warning(f"Could not fetch languages for {owner}/{repo}: {e.message}")
            return {}
        return response.json()

    async def get_file_content(self, owner: str, repo: str, path: str) -> str:
        if CONTENT_SKIP_PATTERN.search(path):
            return ""
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{path}", f"fetching file content for {path}", owner, repo
        )
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("content"), str):
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        return ""

    async def get_repo_tree(self, owner: str, repo: str, branch: str) -> list[FileInfo]:
        response = await self._get(
            f"/repos/{owner}/{repo}/git/trees/{branch}",
            "fetching repository tree",
            owner,
            repo,
            params={"recursive": "1"},
        )
        data = response.json()
        if data.get("truncated"):
            logger.warning(f"Repository tree for {owner}/{repo} was truncated by GitHub")
        return [
            FileInfo(
                name=item["path"].split("/")[-1],
                path=item["path"],
                size=item.get("size") or 0,
                type="file" if item["type"] == "blob" else "dir",
            )
            for item in data.get("tree", [])
            if item.get("type") in ("blob", "tree")
        ]

    async def get_directory_contents(self, owner: str, repo: str, path: str = "") -> list[FileInfo]:
        try:
            response = await self._get(
                f"/repos/{owner}/{repo}/contents/{path}", f"listing {path or '/'}", owner, repo
            )
        except GitHubAPIError as e:
            logger.warning(f"Could not fetch directory contents for {path} in {owner}/{repo}: {e.message}")
            return []

        data = response.json()
        if not isinstance(data, list):
            return []
        return [
            FileInfo(name=item["name"], path=item["path"], size=item.get("size") or 0, type=item["type"])
            for item in data
            if item.get("type") in ("file", "dir")
        ]

    async def get_pull_requests(self, owner: str, repo: str) -> list[PullRequest]:
        response = await self._get(
            f"/repos/{owner}/{repo}/pulls",
            "fetching pull requests",
            owner,
            repo,
            params={"state": "all", "per_page": 100, "sort": "created", "direction": "desc"},
        )
        pulls = []
        for pr in response.json():
            state = "merged" if pr.get("merged_at") else pr.get("state", "open")
            pulls.append(PullRequest(
                id=pr["id"],
                title=pr.get("title") or "",
                author=(pr.get("user") or {}).get("login") or "unknown",
                state=state,
                created_at=pr["created_at"],
                closed_at=pr.get("closed_at"),
                merged_at=pr.get("merged_at"),
            ))
        return pulls

    async def download_archive(self, owner: str, repo: str, ref: str) -> dict[str, str]:
        """Fetch the branch tarball and return {relative path: text} for readable files."""
        response = await self._get(
            f"/repos/{owner}/{repo}/tarball/{ref}",
            "downloading repository archive",
            owner,
            repo,
            follow_redirects=True,
        )
        return extract_text_files(response.content, self.max_file_size)


# =============================================================================
# HELPERS
# =============================================================================

def _commit_from_api(data: dict) -> Commit:
    commit = data.get("commit") or {}
    git_author = commit.get("author") or {}
    user = data.get("author") or {}
    stats = data.get("stats")
    return Commit(
        sha=data["sha"],
        message=commit.get("message", ""),
        author=CommitAuthor(
            name=git_author.get("name") or user.get("login") or "N/A",
            email=git_author.get("email") or "N/A",
            date=git_author.get("date") or datetime.now(timezone.utc).isoformat(),
        ),
        stats=CommitStats(**stats) if stats else None,
        files=[
            CommitFile(
                filename=f["filename"],
                additions=f.get("additions", 0),
                deletions=f.get("deletions", 0),
                changes=f.get("changes", 0),
                status=f.get("status", "modified"),
                patch=f.get("patch"),
            )
            for f in data.get("files") or []
        ],
    )


def extract_text_files(archive: bytes, max_file_size: int) -> dict[str, str]:
    """Unpack a GitHub tarball in memory, dropping its `<owner>-<repo>-<sha>/` root."""
    files: dict[str, str] = {}
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:*") as tar:
        for member in tar:
            if not member.isfile() or member.size > max_file_size:
                continue
            parts = member.name.split("/", 1)
            if len(parts) < 2 or not parts[1]:
                continue
            rel_path = parts[1]
            if any(part in ARCHIVE_SKIP_DIRS for part in rel_path.split("/")[:-1]):
                continue
            if rel_path.lower().endswith(BINARY_EXTENSIONS):
                continue

            handle = tar.extractfile(member)
            if handle is None:
                continue
            data = handle.read()
            if b"\x00" in data[:1024]:
                continue
            files[rel_path] = data.decode("utf-8", errors="replace")
    return files
