"""Key and token checks for the settings panel."""

import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..dependencies import get_github_factory, get_llm_factory, limiter
from ..errors import RepoLensError
from ..schemas import LLMConfigRequest, ValidateTokenRequest
from ..services.llm import LLMConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["credentials"])

VALIDATION_COOLDOWN_SECONDS = 5.0

# provider_keyprefix -> monotonic time of the last validation attempt
_last_validation: dict[str, float] = {}


def _prune_validations(now: float) -> None:
    for key in [k for k, at in _last_validation.items() if now - at >= VALIDATION_COOLDOWN_SECONDS]:
        del _last_validation[key]


@router.post("/validate-github-token")
@limiter.limit("10/minute")
async def validate_github_token(
    request: Request, body: ValidateTokenRequest, github_factory=Depends(get_github_factory)
):
    if not body.token:
        return JSONResponse(
            status_code=400,
            content={"isValid": False, "error": "Token is required and must be a string."},
        )
    async with github_factory(token=body.token) as github:
        is_valid = await github.verify_token()
    return {"isValid": is_valid}


@router.post("/validate-llm-key")
async def validate_llm_key(body: LLMConfigRequest, llm_factory=Depends(get_llm_factory)):
    config = body.llm_config
    if not config or not config.provider or not config.api_key:
        return {"isValid": False, "error": "LLM configuration missing."}

    rate_key = f"{config.provider}_{config.api_key[:8]}"
    now = time.monotonic()
    last = _last_validation.get(rate_key)
    if last is not None and now - last < VALIDATION_COOLDOWN_SECONDS:
        logger.info("Rate limiting LLM key validation")
        return {"isValid": False, "error": "Validation rate limited. Please wait a moment before retrying."}
    _prune_validations(now)
    _last_validation[rate_key] = now

    try:
        llm = llm_factory(LLMConfig.from_payload(config))
        if llm.is_quota_exhausted():
            return {
                "isValid": False,
                "error": "LLM service temporarily unavailable due to quota limits. Please try again later.",
            }
        is_valid = await llm.check_availability()
    except RepoLensError as e:
        logger.error(f"LLM validation error: {e.message}")
        if "quota" in e.message.lower():
            return {
                "isValid": False,
                "error": "LLM service temporarily unavailable due to quota limits. Please try again later.",
            }
        return {"isValid": False, "error": f"Failed to validate LLM key: {e.message}"}

    return {"isValid": is_valid}


@router.get("/check-env-keys")
async def check_env_keys():
    settings = get_settings()
    has_llm_key = bool(settings.llm_provider and settings.llm_api_key)
    has_github_token = bool(settings.github_token)
    if has_llm_key or has_github_token:
        message = "Server-side keys are configured; keys entered in settings take precedence."
    else:
        message = "This is an open source project. Please provide your own API keys in settings."
    return {"hasLlmKey": has_llm_key, "hasGithubToken": has_github_token, "message": message}
