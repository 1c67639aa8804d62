"""
Runtime configuration for RepoLens.

Values come from the environment (a local .env is loaded first).
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:8080",
)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _origins_env() -> list[str]:
    raw = os.getenv("ALLOWED_ORIGINS")
    if not raw:
        return list(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass
class Settings:
    """Snapshot of the environment taken at startup."""

    # Redis cache
    redis_url: str = "redis://localhost:6379"
    redis_key_prefix: str | None = None
    cache_default_ttl: int = 300
    visualization_cache_ttl: int = 60 * 60 * 24 * 7
    cache_max_entries: int = 10

    # Report history
    database_url: str = "sqlite:///./repolens.db"

    # GitHub / LLM fallbacks
    github_token: str | None = None
    llm_provider: str | None = None
    llm_api_key: str | None = None
    llm_model: str | None = None

    # Analysis limits
    max_analyzed_files: int = 200
    max_file_size: int = 200 * 1024
    tech_debt_file_limit: int = 5
    api_endpoint_file_limit: int = 5
    perf_metrics_file_limit: int = 5
    llm_vuln_file_limit: int = 10
    llm_vuln_delay_ms: int = 2000

    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))


@lru_cache
def get_settings() -> Settings:
    return Settings(
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
        redis_key_prefix=os.getenv("REDIS_KEY_PREFIX") or None,
        cache_default_ttl=_int_env("CACHE_DEFAULT_TTL", 300),
        visualization_cache_ttl=_int_env("VISUALIZATION_CACHE_TTL", 60 * 60 * 24 * 7),
        cache_max_entries=_int_env("CACHE_MAX_ENTRIES", 10),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./repolens.db"),
        github_token=os.getenv("GITHUB_TOKEN") or None,
        llm_provider=os.getenv("LLM_PROVIDER") or None,
        llm_api_key=os.getenv("LLM_API_KEY") or None,
        llm_model=os.getenv("LLM_MODEL") or None,
        max_analyzed_files=_int_env("MAX_ANALYZED_FILES", 200),
        max_file_size=_int_env("MAX_FILE_SIZE", 200 * 1024),
        tech_debt_file_limit=_int_env("TECH_DEBT_FILE_LIMIT", 5),
        api_endpoint_file_limit=_int_env("API_ENDPOINT_FILE_LIMIT", 5),
        perf_metrics_file_limit=_int_env("PERF_METRICS_FILE_LIMIT", 5),
        llm_vuln_file_limit=_int_env("LLM_VULN_FILE_LIMIT", 10),
        llm_vuln_delay_ms=_int_env("LLM_VULN_DELAY_MS", 2000),
        allowed_origins=_origins_env(),
    )
