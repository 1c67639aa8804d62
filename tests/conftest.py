"""
Pytest fixtures for RepoLens tests.

GitHub is faked with an httpx.MockTransport serving one small repository
(octo/hello), Redis with an in-memory stand-in, and report history with a
temporary SQLite database.
"""

import base64
import fnmatch
import io
import json
import tarfile

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from repolens.config import Settings
from repolens.database import init_db, make_engine
from repolens.services.analysis import BackendAnalysisService
from repolens.services.cache import RedisCacheService
from repolens.services.github import GitHubClient
from repolens.services.llm import LLMConfig, LLMService

REPO_URL = "https://github.com/octo/hello"


# =============================================================================
# SAMPLE REPOSITORY
# =============================================================================

INDEX_JS = """const express = require('express');
const { greet } = require('./utils/greet');
const app = express();

app.get('/api/hello', function hello(req, res) {
  if (req.query.name && req.query.name.length > 0) {
    res.json({ message: greet(req.query.name) });
  } else {
    res.json({ message: 'hi' });
  }
});

// TODO: add auth
app.listen(3000);
"""

GREET_JS = """function greet(name) {
  return `Hello ${name}`;
}
module.exports = { greet };
"""

CONFIG_JS = """const password = "hunter2hunter2";
module.exports = { password };
"""

PACKAGE_JSON = json.dumps({
    "name": "hello",
    "dependencies": {"express": "^4.18.0"},
    "devDependencies": {"jest": "^29.0.0"},
})

SAMPLE_FILES = {
    "README.md": "# Hello\n",
    "package.json": PACKAGE_JSON,
    "src/index.js": INDEX_JS,
    "src/utils/greet.js": GREET_JS,
    "src/config.js": CONFIG_JS,
}

SAMPLE_REPOSITORY = {
    "name": "hello",
    "full_name": "octo/hello",
    "description": "Demo",
    "language": "JavaScript",
    "stargazers_count": 42,
    "forks_count": 3,
    "watchers_count": 42,
    "created_at": "2023-12-01T00:00:00Z",
    "updated_at": "2024-02-03T00:00:00Z",
    "default_branch": "main",
    "size": 12,
    "open_issues_count": 1,
    "license": {"name": "MIT License", "spdx_id": "MIT"},
}

SAMPLE_COMMITS = [
    {
        "sha": "b2",
        "commit": {"message": "Add config", "author": {"name": "bob", "email": "b@example.com",
                                                         "date": "2024-02-03T09:00:00Z"}},
        "author": {"login": "bob"},
        "stats": {"additions": 10, "deletions": 2, "total": 12},
        "files": [{"filename": "src/index.js"}, {"filename": "src/config.js"}],
    },
    {
        "sha": "a1",
        "commit": {"message": "Initial commit", "author": {"name": "alice", "email": "a@example.com",
                                                             "date": "2024-01-10T10:00:00Z"}},
        "author": {"login": "alice"},
        "files": [{"filename": "src/index.js"}],
    },
]

SAMPLE_CONTRIBUTORS = [
    {"login": "alice", "contributions": 5, "avatar_url": "https://avatars/alice", "type": "User",
     "html_url": "https://github.com/alice"},
    {"login": "bob", "contributions": 2, "avatar_url": "https://avatars/bob", "type": "User"},
]

SAMPLE_PULLS = [
    {"id": 1, "title": "Add greet", "user": {"login": "bob"}, "state": "closed",
     "created_at": "2024-01-20T00:00:00Z", "closed_at": "2024-01-21T00:00:00Z",
     "merged_at": "2024-01-21T00:00:00Z"},
]


def make_tarball(files: dict[str, str], root: str = "octo-hello-abc1234") -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for path, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(f"{root}/{path}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeGitHub:
    """Routes GitHub REST paths for octo/hello and records every request."""

    def __init__(self, files=None, archive_status=200, token_valid=True, commits=None):
        self.files = dict(SAMPLE_FILES if files is None else files)
        self.archive_status = archive_status
        self.token_valid = token_valid
        self.commits = SAMPLE_COMMITS if commits is None else commits
        self.requests: list[httpx.Request] = []

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        base = "/repos/octo/hello"

        if path == "/user":
            if self.token_valid:
                return httpx.Response(200, json={"login": "octo"})
            return httpx.Response(401, json={"message": "Bad credentials"})
        if path == base:
            return httpx.Response(200, json=SAMPLE_REPOSITORY)
        if path == f"{base}/commits":
            return httpx.Response(200, json=self.commits)
        if path == f"{base}/contributors":
            return httpx.Response(200, json=SAMPLE_CONTRIBUTORS)
        if path == f"{base}/languages":
            return httpx.Response(200, json={"JavaScript": 1200, "Markdown": 8})
        if path == f"{base}/pulls":
            return httpx.Response(200, json=SAMPLE_PULLS)
        if path == f"{base}/git/trees/main":
            tree = [
                {"path": p, "type": "blob", "size": len(c.encode("utf-8"))}
                for p, c in self.files.items()
            ]
            tree.append({"path": "src", "type": "tree"})
            return httpx.Response(200, json={"tree": tree, "truncated": False})
        if path == f"{base}/tarball/main":
            if self.archive_status != 200:
                return httpx.Response(self.archive_status, json={"message": "Server Error"})
            return httpx.Response(200, content=make_tarball(self.files))
        if path.startswith(f"{base}/contents/"):
            file_path = path[len(f"{base}/contents/"):]
            if file_path not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            encoded = base64.b64encode(self.files[file_path].encode("utf-8")).decode("ascii")
            return httpx.Response(200, json={"content": encoded, "encoding": "base64"})

        return httpx.Response(404, json={"message": "Not Found"})


# =============================================================================
# REDIS
# =============================================================================

class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        results = [await getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis the cache uses, kept in dicts."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            if self.zsets.pop(key, None) is not None:
                removed += 1
        return removed

    async def flushdb(self):
        self.store.clear()
        self.zsets.clear()
        return True

    async def zadd(self, key, mapping):
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zcard(self, key):
        return len(self.zsets.get(key, {}))

    async def zrange(self, key, start, end):
        members = [m for m, _ in sorted(self.zsets.get(key, {}).items(), key=lambda item: (item[1], item[0]))]
        if end == -1:
            return members[start:]
        return members[start:end + 1]

    async def zrem(self, key, *members):
        zset = self.zsets.get(key, {})
        return sum(1 for member in members if zset.pop(member, None) is not None)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def ping(self):
        return True

    async def scan_iter(self, match="*"):
        for key in list(self.store) + list(self.zsets):
            if fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self):
        self.closed = True


# =============================================================================
# LLM
# =============================================================================

class ScriptedLLM(LLMService):
    """LLMService whose provider call returns queued replies (or raises queued exceptions)."""

    def __init__(self, responses=None, config=None):
        super().__init__(config or LLMConfig(provider="openai", api_key="sk-test-0123456789"), retry_delay=0)
        self.responses = responses if responses is not None else []
        self.prompts: list[str] = []

    async def _complete(self, prompt, max_tokens):
        self.prompts.append(prompt)
        if not self.responses:
            return "[]"
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_llm_state():
    """Circuit breaker and validation cooldown are process-wide."""
    from repolens.routers import credentials

    LLMService._quota_exhausted_until.clear()
    credentials._last_validation.clear()
    yield
    LLMService._quota_exhausted_until.clear()
    credentials._last_validation.clear()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return RedisCacheService(client=fake_redis, max_entries=10)


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def make_archive():
    return make_tarball


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def settings():
    return Settings(llm_vuln_delay_ms=0)


@pytest.fixture
def session_factory(tmp_path):
    """Sessions bound to a fresh SQLite file."""
    engine = make_engine(f"sqlite:///{tmp_path / 'repolens-test.db'}")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def make_service(github, cache, settings):
    """Build a BackendAnalysisService wired to the fake GitHub."""
    def factory(github_token=None, llm_config=None, cache=cache, llm_service=None, **kwargs):
        return BackendAnalysisService(
            github_token=github_token,
            llm_config=llm_config,
            cache=cache,
            github_client=GitHubClient(token=github_token, transport=github.transport()),
            llm_service=llm_service,
            settings=settings,
        )
    return factory


@pytest.fixture
def llm_responses():
    """Replies handed out, in order, by LLMs the app creates during a test."""
    return []


@pytest.fixture
def client(cache, session_factory, github, make_service, llm_responses, monkeypatch):
    """FastAPI TestClient with every external dependency replaced."""
    from fastapi.testclient import TestClient

    from repolens.database import get_db
    from repolens.dependencies import (
        get_analysis_factory,
        get_github_factory,
        get_llm_factory,
        get_session_factory,
        limiter,
    )
    from repolens.main import app
    from repolens.services.cache_provider import get_cache_service

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def github_factory(token=None):
        return GitHubClient(token=token, transport=github.transport())

    def llm_factory(config=None):
        return ScriptedLLM(llm_responses, config)

    monkeypatch.setattr(limiter, "enabled", False)
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_analysis_factory] = lambda: make_service
    app.dependency_overrides[get_github_factory] = lambda: github_factory
    app.dependency_overrides[get_llm_factory] = lambda: llm_factory

    yield TestClient(app)

    app.dependency_overrides.clear()
