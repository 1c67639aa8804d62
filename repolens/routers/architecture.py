import hashlib
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..analyzers import build_architecture_graph, summarize_module_types
from ..dependencies import limiter
from ..schemas import ArchitectureRequest
from ..services.cache import RedisCacheService
from ..services.cache_provider import get_cache_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/architecture", tags=["architecture"])


def architecture_cache_key(files_payload: list[dict]) -> str:
    digest = hashlib.sha256(json.dumps(files_payload, sort_keys=True).encode("utf-8")).hexdigest()
    return f"architecture:{digest}"


@router.post("/analyze")
@limiter.limit("20/minute")
async def analyze_architecture(
    request: Request,
    body: ArchitectureRequest,
    cache: RedisCacheService = Depends(get_cache_service),
):
    if body.files is None:
        return JSONResponse(status_code=400, content={"error": "Files array is required"})

    cache_key = architecture_cache_key([f.to_json_dict() for f in body.files])
    cached = await cache.get(cache_key)
    if cached is not None:
        logger.info(f"Returning cached architecture for {cache_key}")
        return cached

    graph = build_architecture_graph(body.files)
    analysis = {
        **graph.to_json_dict(),
        "moduleTypes": summarize_module_types(graph),
        "fileCount": len(body.files),
    }
    await cache.set(cache_key, analysis)
    return analysis
