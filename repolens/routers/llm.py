"""
LLM passthrough endpoints used by the dashboard's on-demand AI panels.

Every request carries its own provider config; nothing is stored server side.
LLM failures propagate as LLMError and are rendered by the app's handlers.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ..dependencies import get_llm_factory, limiter
from ..schemas import (
    AnalyzeArchitectureRequest,
    EnhanceDiagramRequest,
    GenerateInsightsRequest,
    GenerateSummaryRequest,
    LLMConfigRequest,
    SecurityAnalysisRequest,
)
from ..services.llm import LLMConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/llm", tags=["llm"])

MISSING_PARAMETERS = {"error": "Missing required parameters"}


def _missing() -> JSONResponse:
    return JSONResponse(status_code=400, content=MISSING_PARAMETERS)


@router.post("/check")
async def check_llm(body: LLMConfigRequest):
    # No upstream call; the key is validated separately
    config = body.llm_config
    if not config or not config.provider or not config.api_key:
        return {"success": False, "message": "LLM configuration missing."}
    return {"success": True}


@router.post("/enhance-diagram")
@limiter.limit("20/minute")
async def enhance_diagram(request: Request, body: EnhanceDiagramRequest, llm_factory=Depends(get_llm_factory)):
    if not body.llm_config or not body.diagram_code:
        return _missing()
    llm = llm_factory(LLMConfig.from_payload(body.llm_config))
    enhanced = await llm.enhance_mermaid_diagram(body.diagram_code, body.file_info.path)
    return {"enhancedDiagram": enhanced}


@router.post("/generate-summary")
@limiter.limit("20/minute")
async def generate_summary(request: Request, body: GenerateSummaryRequest, llm_factory=Depends(get_llm_factory)):
    if not body.llm_config or not body.codebase_context:
        return _missing()
    llm = llm_factory(LLMConfig.from_payload(body.llm_config))
    return await llm.generate_summary(body.codebase_context)


@router.post("/analyze-architecture")
@limiter.limit("20/minute")
async def analyze_architecture(
    request: Request, body: AnalyzeArchitectureRequest, llm_factory=Depends(get_llm_factory)
):
    if not body.llm_config or not body.code_structure:
        return _missing()
    llm = llm_factory(LLMConfig.from_payload(body.llm_config))
    return {"analysis": await llm.analyze_code_structure(body.code_structure)}


@router.post("/security-analysis")
@limiter.limit("20/minute")
async def security_analysis(request: Request, body: SecurityAnalysisRequest, llm_factory=Depends(get_llm_factory)):
    if not body.llm_config or not body.security_data:
        return _missing()
    llm = llm_factory(LLMConfig.from_payload(body.llm_config))
    return {"analysis": await llm.perform_security_analysis(body.security_data)}


@router.post("/generate-insights")
@limiter.limit("20/minute")
async def generate_insights(request: Request, body: GenerateInsightsRequest, llm_factory=Depends(get_llm_factory)):
    if not body.llm_config or not body.repo_data:
        return _missing()
    llm = llm_factory(LLMConfig.from_payload(body.llm_config))
    return PlainTextResponse(await llm.generate_insights(body.repo_data))
