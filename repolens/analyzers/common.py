"""Shared plumbing for the LLM-assisted analyzers."""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import LLMError
from ..services.llm import LLMService

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

LLM_CONTENT_CHARS = 4000


def llm_available(llm: LLMService | None) -> bool:
    return llm is not None and llm.is_configured()


def file_extension(name: str) -> str:
    return f".{name.rsplit('.', 1)[-1].lower()}" if "." in name else ""


async def request_llm_items(
    llm: LLMService,
    prompt: str,
    model: type[ModelT],
    file_path: str,
    overrides: dict[str, Any],
    required: tuple[str, ...],
    max_tokens: int = 600,
) -> list[ModelT]:
    """Ask for a JSON array and keep the entries that validate as `model`.

    LLM failures are logged and produce an empty list.
    """
    try:
        response = await llm.generate_text(prompt, max_tokens)
    except LLMError as e:
        logger.warning(f"LLM error while analyzing {file_path}: {e.message}")
        return []

    parsed = llm.clean_json_response(response)
    if not isinstance(parsed, list):
        logger.warning(f"LLM returned no JSON array for {file_path}")
        return []

    items = []
    for entry in parsed:
        if not isinstance(entry, dict) or not all(entry.get(key) for key in required):
            continue
        try:
            items.append(model.model_validate({**entry, **overrides}))
        except ValidationError as e:
            logger.debug(f"Dropping malformed LLM item for {file_path}: {e.error_count()} errors")
    return items
