"""
Technical Debt Analyzer for RepoLens

Without an LLM: unresolved TODO/FIXME/XXX markers and very long files.
With an LLM: a JSON review of the first few non-trivial files.
"""

import logging
import re

from ..schemas import FileInfo, TechnicalDebt
from ..services.llm import LLMService
from .common import LLM_CONTENT_CHARS, llm_available, request_llm_items

logger = logging.getLogger(__name__)

MARKER_PATTERN = re.compile(r"\b(TODO|FIXME|XXX)\b", re.IGNORECASE)
LONG_FILE_LINES = 1000
MIN_LLM_CONTENT_LENGTH = 100


def find_debt_markers(file: FileInfo) -> list[TechnicalDebt]:
    if not file.content:
        return []

    debt = []
    lines = file.content.split("\n")
    for index, line in enumerate(lines):
        if MARKER_PATTERN.search(line):
            debt.append(TechnicalDebt(
                type="smell",
                severity="low",
                file=file.path,
                line=index + 1,
                description=f"Unresolved marker: {line.strip()}",
                effort="0.5h",
                impact="Improves clarity and completes pending tasks",
            ))

    if len(lines) > LONG_FILE_LINES:
        debt.append(TechnicalDebt(
            type="complexity",
            severity="medium",
            file=file.path,
            description=f"File is very long ({len(lines)} lines), consider splitting.",
            effort="4h",
            impact="Improves maintainability",
        ))
    return debt


async def review_debt_llm(file: FileInfo, llm: LLMService) -> list[TechnicalDebt]:
    prompt = f"""
Analyze the following code from "{file.path}" for technical debt.
Identify issues like code smells (e.g., long methods, large classes, duplicated code, dead code, magic numbers), outdated practices, or areas needing refactoring for better maintainability or readability.
For each issue, provide a JSON object: {{"type": "complexity|duplication|smell|outdated|documentation", "severity": "low|medium|high", "line": number (approximate), "description": string, "effort": "e.g., 1h, 4h, 1d", "impact": "e.g., Improved readability, Reduced bugs", "recommendation": "string"}}.
If no significant debt is found, return an empty array [].

Code:
```{file.language or ''}
{file.content[:LLM_CONTENT_CHARS]}
```
Return ONLY a JSON array of technical debt objects, or an empty array.
"""
    return await request_llm_items(
        llm,
        prompt,
        TechnicalDebt,
        file.path,
        overrides={"file": file.path},
        required=("description", "severity"),
    )


async def analyze_technical_debt(
    files: list[FileInfo],
    llm: LLMService | None = None,
    file_limit: int = 5,
) -> list[TechnicalDebt]:
    if not llm_available(llm):
        debt = [item for f in files for item in find_debt_markers(f)]
        logger.info(f"Technical debt scan found {len(debt)} items")
        return debt

    eligible = [f for f in files if f.content and len(f.content) > MIN_LLM_CONTENT_LENGTH]
    if len(eligible) > file_limit:
        logger.warning(
            f"Technical debt review limited to {file_limit} of {len(eligible)} eligible files. "
            f"Set TECH_DEBT_FILE_LIMIT to adjust."
        )

    debt = []
    for f in eligible[:file_limit]:
        debt.extend(await review_debt_llm(f, llm))
    return debt
