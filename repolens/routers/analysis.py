"""
Full repository analysis streamed as server-sent events.

Progress updates are plain `data:` events; the stream ends with either
`event: complete` carrying the report or `event: error` carrying `{error}`.
"""

import asyncio
import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError

from ..dependencies import get_analysis_factory, get_session_factory, limiter
from ..schemas import AnalyzeRequestBody
from ..services.analysis import AnalysisOptions
from ..services.cache import RedisCacheService
from ..services.cache_provider import get_cache_service
from ..services.llm import LLMConfig
from ..services.reports import save_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])

KEEP_ALIVE_SECONDS = 30.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_data(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def sse_event(event: str, payload: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


def _error_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


async def stream_analysis(
    repo_url: str | None,
    raw_llm_config: Any,
    github_token: str | None,
    cache: RedisCacheService,
    analysis_factory,
    session_factory,
):
    if not repo_url:
        yield sse_event("error", {"error": "Repository URL is required"})
        return

    try:
        llm_config = LLMConfig.from_payload(raw_llm_config) if raw_llm_config else None
    except ValueError as e:
        yield sse_event("error", {"error": f"Invalid llmConfig parameter: {e}"})
        return

    token = github_token.strip() if isinstance(github_token, str) and github_token.strip() else None
    service = analysis_factory(github_token=token, llm_config=llm_config, cache=cache)
    queue: asyncio.Queue = asyncio.Queue()

    def on_progress(step: str, percent: int) -> None:
        queue.put_nowait(sse_data({
            "type": "progress",
            "step": step,
            "progress": percent,
            "timestamp": int(time.time() * 1000),
        }))

    logger.info(f"Starting analysis for {repo_url}")
    task = asyncio.create_task(service.analyze(repo_url, AnalysisOptions(use_cache=True), on_progress))
    task.add_done_callback(lambda _: queue.put_nowait(None))

    try:
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=KEEP_ALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield sse_data({"type": "keep-alive", "timestamp": int(time.time() * 1000)})
                continue
            if item is None:
                break
            yield item

        try:
            result = task.result()
        except Exception as e:
            logger.error(f"Analysis failed for {repo_url}: {e}")
            yield sse_event("error", {"error": _error_message(e)})
            return

        if service.served_from_cache:
            logger.info(f"Served cached analysis for {repo_url}; report history unchanged")
        else:
            try:
                with session_factory() as session:
                    save_report(session, result)
            except SQLAlchemyError as e:
                logger.error(f"Could not persist report for {repo_url}: {e}")

        logger.info(f"Analysis completed for {repo_url}")
        yield sse_event("complete", result.to_json_dict())
    finally:
        if not task.done():
            logger.warning(f"Client disconnected before analysis of {repo_url} completed")
            task.cancel()
        await service.aclose()


@router.get("/analyze")
@limiter.limit("10/minute")
async def analyze_get(
    request: Request,
    repo_url: str | None = Query(None, alias="repoUrl"),
    llm_config: str | None = Query(None, alias="llmConfig"),
    github_token: str | None = Query(None, alias="githubToken"),
    cache: RedisCacheService = Depends(get_cache_service),
    analysis_factory=Depends(get_analysis_factory),
    session_factory=Depends(get_session_factory),
):
    return StreamingResponse(
        stream_analysis(repo_url, llm_config, github_token, cache, analysis_factory, session_factory),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/analyze")
@limiter.limit("10/minute")
async def analyze_post(
    request: Request,
    body: AnalyzeRequestBody,
    cache: RedisCacheService = Depends(get_cache_service),
    analysis_factory=Depends(get_analysis_factory),
    session_factory=Depends(get_session_factory),
):
    return StreamingResponse(
        stream_analysis(body.repo_url, body.llm_config, body.github_token, cache, analysis_factory, session_factory),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
