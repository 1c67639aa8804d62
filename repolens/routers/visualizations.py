import logging

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..dependencies import get_analysis_factory, limiter
from ..errors import InvalidRepoUrlError
from ..services.analysis import AnalysisOptions, build_visualization_data
from ..services.cache import RedisCacheService, analysis_cache_key, visualization_cache_key
from ..services.cache_provider import get_cache_service
from ..services.github import bearer_token, validate_repo_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["visualizations"])


@router.get("/visualizations")
@limiter.limit("30/minute")
async def get_visualizations(
    request: Request,
    repo_url: str | None = Query(None, alias="repoUrl"),
    authorization: str | None = Header(None),
    cache: RedisCacheService = Depends(get_cache_service),
    analysis_factory=Depends(get_analysis_factory),
):
    """Architecture, vulnerability and complexity data for one repository.

    Served from the visualization cache, then from a cached full analysis,
    and only then computed with a reduced analysis run.
    """
    if not repo_url:
        return JSONResponse(status_code=400, content={"error": "Repository URL is required"})
    try:
        repo_url = validate_repo_url(repo_url)
    except InvalidRepoUrlError as e:
        return JSONResponse(status_code=400, content={"error": e.message})

    ttl = get_settings().visualization_cache_ttl
    viz_key = visualization_cache_key(repo_url)

    cached = await cache.get(viz_key)
    if cached is not None:
        logger.info(f"Serving cached visualization data for {repo_url}")
        return cached

    cached_analysis = await cache.get(analysis_cache_key(repo_url))
    if isinstance(cached_analysis, dict):
        logger.info(f"Building visualization data from cached analysis for {repo_url}")
        data = build_visualization_data(cached_analysis)
        await cache.set(viz_key, data, ttl=ttl)
        return data

    service = analysis_factory(github_token=bearer_token(authorization))
    try:
        result = await service.analyze(repo_url, AnalysisOptions.visualizations_only())
    except Exception as e:
        logger.error(f"Visualization analysis failed for {repo_url}: {e}")
        return JSONResponse(status_code=500, content={"error": getattr(e, "message", None) or str(e)})
    finally:
        await service.aclose()

    data = build_visualization_data(result)
    await cache.set(viz_key, data, ttl=ttl)
    return data
