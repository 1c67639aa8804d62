"""Algorithmic complexity estimates. Requires an LLM; returns nothing otherwise."""

import logging

from ..errors import LLMError
from ..schemas import FileInfo, PerformanceMetric
from ..services.llm import LLMService
from .common import file_extension, llm_available

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = {
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".cs",
    ".php", ".rb", ".go", ".rs", ".kt", ".scala", ".swift",
}
MIN_CONTENT_LENGTH = 100


async def analyze_performance(
    files: list[FileInfo],
    llm: LLMService | None = None,
    file_limit: int = 5,
) -> list[PerformanceMetric]:
    if not llm_available(llm):
        return []

    code_files = [
        f for f in files
        if file_extension(f.path) in CODE_EXTENSIONS and f.content and len(f.content) > MIN_CONTENT_LENGTH
    ]
    if len(code_files) > file_limit:
        logger.warning(
            f"Performance analysis limited to {file_limit} of {len(code_files)} eligible files. "
            f"Set PERF_METRICS_FILE_LIMIT to adjust."
        )

    metrics = []
    for f in code_files[:file_limit]:
        try:
            estimate = await llm.analyze_algorithmic_complexity(f.content, f.path)
        except LLMError as e:
            logger.warning(f"LLM error during performance analysis for {f.path}: {e.message}")
            continue
        if estimate:
            metrics.append(PerformanceMetric(
                function=f.name,
                file=f.path,
                complexity=estimate["complexity"],
                estimated_runtime=estimate["runtime"],
                recommendation=estimate.get("recommendation") or "",
            ))
    return metrics
