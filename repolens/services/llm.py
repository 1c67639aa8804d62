"""
LLM access for the analysis pipeline and the /api/llm endpoints.

Gemini is called through google-genai; OpenAI and Claude go through LiteLLM.
A per-key circuit breaker stops calls for an hour once a provider reports
quota exhaustion.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any

import litellm
from google import genai

from ..errors import LLMError, LLMQuotaExceededError

logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "gemini": "gemini-2.0-flash",
    "claude": "claude-3-5-sonnet-20240620",
}

# LiteLLM routes on a "<provider>/<model>" prefix
LITELLM_PREFIXES = {
    "openai": "openai",
    "claude": "anthropic",
}

QUOTA_COOLDOWN_SECONDS = 60 * 60
GEMINI_MAX_ATTEMPTS = 4

QUOTA_MARKERS = ("429", "too many requests", "quota", "resource_exhausted")
NON_RETRYABLE_MARKERS = ("404", "model not found", "could not find model", "api key not valid",
                         "permission denied", "invalid argument")
CONTEXT_MARKERS = ("context", "token limit", "exceeds maximum", "maximum context length")


def _is_quota_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


@dataclass
class LLMConfig:
    provider: str | None = None
    api_key: str | None = None
    model: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "LLMConfig | None":
        """Accept a dict, a JSON string, or an object with provider/api_key attributes."""
        if payload is None:
            return None
        if isinstance(payload, str):
            payload = json.loads(payload)
        if isinstance(payload, dict):
            return cls(
                provider=payload.get("provider"),
                api_key=payload.get("apiKey") or payload.get("api_key"),
                model=payload.get("model"),
            )
        return cls(
            provider=getattr(payload, "provider", None),
            api_key=getattr(payload, "api_key", None),
            model=getattr(payload, "model", None),
        )


class LLMService:
    # provider_keyprefix -> monotonic deadline
    _quota_exhausted_until: dict[str, float] = {}

    def __init__(self, config: LLMConfig | None = None, retry_delay: float = 2.0):
        config = config or LLMConfig()
        self.provider = config.provider
        self.api_key = config.api_key
        self.model = config.model or DEFAULT_MODELS.get(config.provider or "", "")
        self.retry_delay = retry_delay
        self._gemini: genai.Client | None = None

        if self.is_configured() and self.provider == "gemini":
            self._gemini = genai.Client(api_key=self.api_key)
        elif self.is_configured() and self.provider not in LITELLM_PREFIXES:
            logger.warning(f"Unsupported LLM provider: {self.provider}")

    def is_configured(self) -> bool:
        return bool(self.provider and self.api_key and self.api_key.strip())

    # -------------------------------------------------------------------------
    # Circuit breaker
    # -------------------------------------------------------------------------

    @property
    def _breaker_key(self) -> str:
        return f"{self.provider}_{(self.api_key or 'no-key')[:8]}"

    def is_quota_exhausted(self) -> bool:
        until = self._quota_exhausted_until.get(self._breaker_key)
        if until is None:
            return False
        if time.monotonic() < until:
            return True
        del self._quota_exhausted_until[self._breaker_key]
        return False

    def mark_quota_exhausted(self) -> None:
        self._quota_exhausted_until[self._breaker_key] = time.monotonic() + QUOTA_COOLDOWN_SECONDS
        logger.warning(f"LLM quota exhausted for {self.provider}; pausing calls for {QUOTA_COOLDOWN_SECONDS}s")

    # -------------------------------------------------------------------------
    # Core generation
    # -------------------------------------------------------------------------

    async def generate_text(self, prompt: str, max_tokens: int = 1000) -> str:
        if not self.model:
            raise LLMError(f"No model specified for provider {self.provider}")
        if self.is_quota_exhausted():
            raise LLMQuotaExceededError("LLM service unavailable due to quota exhaustion. Please wait before retrying.")

        try:
            return await self._complete(prompt, max_tokens)
        except LLMError:
            raise
        except Exception as e:
            message = str(e)
            logger.error(f"LLM generation error ({self.provider}): {message}")
            if any(marker in message for marker in CONTEXT_MARKERS):
                raise LLMError("The input is too long for the model's context window. "
                               "Please try with a shorter input or use a model with a larger context window.", e) from e
            if "api key" in message.lower():
                raise LLMError(f"Invalid or missing API key for {self.provider}. Please check Settings.", e) from e
            if _is_quota_error(message):
                self.mark_quota_exhausted()
                raise LLMQuotaExceededError(
                    f"API quota exceeded for {self.provider}. Please check your billing or wait for reset.", e
                ) from e
            raise LLMError(f"LLM request failed for {self.provider}: {message}", e) from e

    async def _complete(self, prompt: str, max_tokens: int) -> str:
        if self.provider == "gemini":
            return await self._complete_gemini(prompt)
        if self.provider in LITELLM_PREFIXES:
            return await self._complete_litellm(prompt, max_tokens)
        raise LLMError("Unsupported LLM provider configured.")

    async def _complete_gemini(self, prompt: str) -> str:
        if self._gemini is None:
            raise LLMError("Google AI (Gemini) not initialized.")

        for attempt in range(1, GEMINI_MAX_ATTEMPTS + 1):
            try:
                response = await self._gemini.aio.models.generate_content(model=self.model, contents=prompt)
                text = response.text
                if not text:
                    raise LLMError("Empty or invalid response from Gemini.")
                return text
            except Exception as e:
                message = str(e)
                lowered = message.lower()
                if any(marker in lowered for marker in NON_RETRYABLE_MARKERS):
                    raise LLMError(f'Non-retryable Gemini error: "{message}". Model: {self.model}.', e) from e
                if _is_quota_error(message):
                    self.mark_quota_exhausted()
                    raise LLMQuotaExceededError(f'Quota exhausted for Gemini: "{message}". Model: {self.model}.', e) from e
                if attempt == GEMINI_MAX_ATTEMPTS:
                    raise LLMError(f"Max retries exceeded for Gemini model {self.model}. Last error: {message}", e) from e

                logger.warning(f"Gemini error (attempt {attempt}/{GEMINI_MAX_ATTEMPTS}): {message}")
                await asyncio.sleep(self.retry_delay * 2 ** (attempt - 1))

        raise LLMError(f"Max retries exceeded for Gemini model {self.model}.")

    async def _complete_litellm(self, prompt: str, max_tokens: int) -> str:
        response = await litellm.acompletion(
            model=f"{LITELLM_PREFIXES[self.provider]}/{self.model}",
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=0.5,
            api_key=self.api_key,
        )
        return response.choices[0].message.content or ""

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    async def check_availability(self) -> bool:
        if not self.is_configured():
            return False
        if self.is_quota_exhausted():
            logger.warning("LLM availability check skipped due to quota exhaustion cooldown")
            return False
        try:
            await self.generate_text("hello", 5)
        except LLMError as e:
            logger.error(f"LLM availability check failed: {e.message}")
            if _is_quota_error(e.message) and not self.is_quota_exhausted():
                self.mark_quota_exhausted()
            return False
        return True

    # -------------------------------------------------------------------------
    # JSON handling
    # -------------------------------------------------------------------------

    @staticmethod
    def clean_json_response(text: str | None) -> Any | None:
        """Parse JSON out of a model reply, tolerating fences and sloppy syntax."""
        if not isinstance(text, str) or not text.strip():
            return None

        cleaned = text.strip()
        fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", cleaned)
        if fenced:
            cleaned = fenced.group(1).strip()

        candidates = [cleaned]
        no_trailing_commas = re.sub(r",\s*([}\]])", r"\1", cleaned)
        candidates.append(no_trailing_commas)
        candidates.append(re.sub(r"([{\[,])\s*([A-Za-z0-9_]+)\s*:", r'\1"\2":', no_trailing_commas))

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except ValueError:
                continue

        logger.warning(f"Could not parse JSON from LLM response: {text[:200]}")
        return None

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    async def generate_summary(self, codebase_context: str) -> dict[str, Any]:
        prompt = f"""Analyze the following codebase context and provide a structured summary.
Context (e.g., key file contents, structure overview):
{codebase_context[:3500]}
Respond with a JSON object with three keys:
1. "summary": a heading 'Codebase Overview' followed by exactly 10 bullet points, each a plain-English statement of at most 20 words.
2. "keyPoints": an array of 3-5 short phrases about main functionality, technologies and architectural style.
3. "recommendations": an array of 2-3 actionable recommendations.
Return ONLY the JSON object."""
        try:
            response = await self.generate_text(prompt, 800)
        except LLMError as e:
            logger.error(f"Summary generation failed: {e.message}")
            return _summary_fallback()

        parsed = self.clean_json_response(response)
        if (
            isinstance(parsed, dict)
            and isinstance(parsed.get("summary"), str)
            and isinstance(parsed.get("keyPoints"), list)
            and isinstance(parsed.get("recommendations"), list)
        ):
            return {
                "summary": parsed["summary"],
                "keyPoints": [str(p) for p in parsed["keyPoints"]],
                "recommendations": [str(r) for r in parsed["recommendations"]],
            }

        logger.warning("Summary response was not the expected JSON; returning raw text")
        return _summary_fallback(response if response and len(response) > 20 else None)

    async def generate_executive_summary(self, name: str, description: str, language: str, stars: int) -> str:
        if not self.is_configured():
            return "LLM not configured. Summary unavailable."
        summary = await self.generate_summary(
            f"Repository: {name}, Description: {description}, Language: {language}, Stars: {stars}"
        )
        return summary["summary"]

    async def analyze_architecture(self, file_listing: list[tuple[str, int]], languages: dict[str, int]) -> str:
        if not self.is_configured():
            return "LLM not configured. Architecture analysis unavailable."
        paths = "\n".join(f"- {path} ({size} bytes)" for path, size in file_listing[:100])
        language_summary = ", ".join(f"{lang}: {amount}" for lang, amount in languages.items())
        prompt = f"""Analyze the architecture of this codebase in detail:
Languages used: {language_summary}
Key files and directories:
{paths}
Cover the probable architectural pattern(s) with evidence, the key modules and their responsibilities,
data flow and state management, code organization and separation of concerns, scalability and
maintainability risks, and specific improvements. Write 400-500 words of plain English without markdown.
Return only the analysis text."""
        return await self.generate_text(prompt, 800)

    async def analyze_algorithmic_complexity(self, content: str, file_name: str) -> dict[str, str] | None:
        if not self.is_configured():
            return None
        prompt = f"""Analyze the algorithmic complexity of the core logic in the following code from "{file_name}".
Respond with a JSON object containing: "complexity" (Big O notation, e.g. "O(n log n)"),
"runtime" (e.g. "Likely fast", "May be slow for large inputs"), and an optional "recommendation".
Code:
```
{content[:2000]}
```
Return ONLY the JSON object."""
        response = await self.generate_text(prompt, 300)
        parsed = self.clean_json_response(response)
        if not isinstance(parsed, dict) or "complexity" not in parsed or "runtime" not in parsed:
            raise LLMError("LLM response did not contain valid JSON for algorithmic complexity analysis.",
                           {"file": file_name, "response": response})
        return {
            "complexity": str(parsed["complexity"]),
            "runtime": str(parsed["runtime"]),
            "recommendation": str(parsed.get("recommendation") or ""),
        }

    async def enhance_mermaid_diagram(self, diagram_code: str, file_path: str, timeout: float = 15.0) -> str:
        """Return an improved diagram, or the original on any problem."""
        if not self.is_configured():
            logger.warning("enhance_mermaid_diagram called without LLM configuration; returning original")
            return diagram_code

        prompt = f"""Analyze the following Mermaid diagram code from the file "{file_path}".
Enhance it by improving clarity, layout, adding relevant details, or correcting syntax if necessary.
Return ONLY the enhanced Mermaid diagram code. Do not include any explanations or surrounding text.

Original Mermaid Code:
```mermaid
{diagram_code}
```

Enhanced Mermaid Code:
"""
        try:
            response = await asyncio.wait_for(self.generate_text(prompt, 1024), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Diagram enhancement timed out for {file_path}")
            return diagram_code
        except LLMError as e:
            logger.error(f"Diagram enhancement failed for {file_path}: {e.message}")
            return diagram_code

        response = (response or "").strip()
        if response and "```" not in response:
            return response
        fenced = re.search(r"```mermaid\s*([\s\S]*?)\s*```", response)
        if fenced and fenced.group(1).strip():
            return fenced.group(1).strip()

        logger.warning(f"Unexpected diagram enhancement response for {file_path}; returning original")
        return diagram_code

    async def analyze_code_structure(self, code_structure: dict[str, Any]) -> str:
        prompt = f"""Analyze the architecture of this codebase:
File Structure: {json.dumps(code_structure.get("files"))}
Dependencies: {json.dumps(code_structure.get("dependencies"))}

Provide:
1. Architecture pattern identification
2. Structural analysis
3. Improvement recommendations
4. Potential issues or anti-patterns"""
        return await self.generate_text(prompt, 1500)

    async def perform_security_analysis(self, security_data: dict[str, Any]) -> str:
        prompt = f"""Perform security analysis on this repository:
Security Issues: {json.dumps(security_data.get("issues"))}
Dependencies: {json.dumps(security_data.get("dependencies"))}

Analyze:
1. Vulnerability assessment
2. Security best practices compliance
3. Risk level evaluation
4. Remediation recommendations"""
        return await self.generate_text(prompt, 1200)

    async def generate_insights(self, repo_data: dict[str, Any]) -> str:
        context = f"""Repository Analysis Data:
Name: {repo_data.get("name")}
Description: {repo_data.get("description")}
Languages: {json.dumps(repo_data.get("languages"))}
Metrics: {json.dumps(repo_data.get("metrics"))}

Generate comprehensive insights about this repository including technology stack assessment,
project health indicators, development patterns, key strengths and areas for improvement,
and recommendations for maintainers."""
        summary = await self.generate_summary(context)
        return summary["summary"]


def _summary_fallback(text: str | None = None) -> dict[str, Any]:
    return {
        "summary": text or "Analysis unavailable - AI service error",
        "keyPoints": [],
        "recommendations": [],
    }
