"""
FastAPI dependencies shared by the routers.

Factories are returned instead of instances so each request gets a client
bound to its own credentials; tests override them with fakes.
"""

from typing import Callable

from slowapi import Limiter
from slowapi.util import get_remote_address

from .database import SessionLocal
from .services.analysis import BackendAnalysisService
from .services.github import GitHubClient
from .services.llm import LLMService

# Rate limiting
limiter = Limiter(key_func=get_remote_address)


def get_analysis_factory() -> Callable[..., BackendAnalysisService]:
    return BackendAnalysisService


def get_github_factory() -> Callable[..., GitHubClient]:
    return GitHubClient


def get_llm_factory() -> Callable[..., LLMService]:
    return LLMService


def get_session_factory():
    """Session factory for code that outlives the request scope (SSE streams)."""
    return SessionLocal
