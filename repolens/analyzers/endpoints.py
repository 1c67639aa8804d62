"""
API endpoint detection.

Route declarations are matched per framework; controller files additionally
map conventional RESTful action names to routes. With an LLM configured, a
handful of likely files are described by the model instead.
"""

import logging
import re
from dataclasses import dataclass

from ..schemas import APIEndpoint, FileInfo
from ..services.llm import LLMService
from .common import LLM_CONTENT_CHARS, llm_available, request_llm_items

logger = logging.getLogger(__name__)


@dataclass
class RoutePattern:
    framework: str
    regex: re.Pattern
    method_group: int
    path_group: int


ROUTE_PATTERNS = [
    RoutePattern(
        "Express.js",
        re.compile(r"""(?<!@)\b(?:app|router)\.(get|post|put|delete|patch|use)\s*\(\s*['"`]([^'"`]+)['"`]"""),
        1, 2,
    ),
    RoutePattern(
        "FastAPI",
        re.compile(r"""@(?:app|router)\.(get|post|put|delete|patch)\s*\(\s*['"`]([^'"`]+)['"`]"""),
        1, 2,
    ),
    RoutePattern(
        "Flask",
        re.compile(r"""@app\.route\s*\(\s*['"`]([^'"`]+)['"`].*?methods\s*=\s*\[['"`]([^'"`]+)['"`]\]"""),
        2, 1,
    ),
    RoutePattern(
        "ASP.NET",
        re.compile(r"""\[Http(Get|Post|Put|Delete|Patch)\s*\(\s*['"`]([^'"`]+)['"`]\s*\)\]"""),
        1, 2,
    ),
    RoutePattern(
        "Spring Boot",
        re.compile(r"""@(Get|Post|Put|Delete|Patch)Mapping\s*\(\s*['"`]([^'"`]+)['"`]"""),
        1, 2,
    ),
    RoutePattern(
        "Gin",
        re.compile(r"""router\.(GET|POST|PUT|DELETE|PATCH)\s*\(\s*['"`]([^'"`]+)['"`]"""),
        1, 2,
    ),
]

RESTFUL_PATTERNS = [
    ("Laravel", re.compile(r"public.*?function\s+(index|show|store|update|destroy)\s*\(")),
    ("Rails", re.compile(r"def\s+(index|show|create|update|destroy)\b")),
]

RESTFUL_ROUTES = {
    "index": ("GET", "/"),
    "show": ("GET", "/:id"),
    "store": ("POST", "/"),
    "create": ("POST", "/"),
    "update": ("PUT", "/:id"),
    "destroy": ("DELETE", "/:id"),
}

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
# inline arrow handlers: `, (req, res) => ...` or `, async (req, res) => ...`
_ANONYMOUS_HANDLER = re.compile(r"\s*,\s*(?:async\s*)?\(")
_LLM_FILE_HINT = re.compile(r"\.(?:js|ts|py|go|java|rb)$", re.IGNORECASE)
MIN_LLM_CONTENT_LENGTH = 100

# declaration keywords that precede the handler name
_HANDLER_SKIP = {"def", "async", "function", "public", "private", "protected", "static", "func", "await", "req", "res"}


def _handler_after(content: str, position: int) -> str:
    """First identifier following a route declaration."""
    if _ANONYMOUS_HANDLER.match(content, position):
        return "anonymous"
    for match in _IDENTIFIER.finditer(content, position, position + 300):
        if match.group(0) not in _HANDLER_SKIP:
            return match.group(0)
    return "Unknown"


def extract_endpoints(file: FileInfo) -> list[APIEndpoint]:
    if not file.content:
        return []
    content = file.content
    endpoints = []

    for route in ROUTE_PATTERNS:
        for match in route.regex.finditer(content):
            method = match.group(route.method_group)
            path = match.group(route.path_group)
            if not method or not path:
                continue
            handler_name = _handler_after(content, match.end())
            endpoints.append(APIEndpoint(
                method=method.upper(),
                path=path,
                file=file.path,
                handler_function=f"{handler_name} ({route.framework})",
            ))

    if "controller" in file.path.lower():
        for framework, regex in RESTFUL_PATTERNS:
            for match in regex.finditer(content):
                action = match.group(1)
                method, path = RESTFUL_ROUTES[action]
                endpoints.append(APIEndpoint(
                    method=method,
                    path=path,
                    file=file.path,
                    handler_function=f"{action} ({framework} RESTful)",
                ))

    return endpoints


def is_llm_candidate(file: FileInfo) -> bool:
    path = file.path
    looks_like_api = (
        "route" in path or "controller" in path or "api" in path or bool(_LLM_FILE_HINT.search(file.name))
    )
    return looks_like_api and bool(file.content) and len(file.content) > MIN_LLM_CONTENT_LENGTH


async def describe_endpoints_llm(file: FileInfo, llm: LLMService) -> list[APIEndpoint]:
    prompt = f"""
Analyze the following code from "{file.path}" to detect API endpoint definitions.
For each endpoint, provide a JSON object: {{"method": "GET|POST|PUT|DELETE|PATCH", "path": string, "handlerFunction": "string (name of handler function/method)", "parameters": [{{"name": string, "type": string, "in": "query|path|body"}}], "responses": [{{"statusCode": string, "description": string, "schema": any}}], "documentation": "string (brief description if available from comments or context)", "security": ["array of security schemes"]}}.
If no endpoints are found, return an empty array [].

Code:
```{file.language or ''}
{file.content[:LLM_CONTENT_CHARS]}
```
Return ONLY a JSON array of endpoint objects, or an empty array.
"""
    return await request_llm_items(
        llm,
        prompt,
        APIEndpoint,
        file.path,
        overrides={"file": file.path},
        required=("method", "path"),
    )


async def detect_api_endpoints(
    files: list[FileInfo],
    llm: LLMService | None = None,
    file_limit: int = 5,
) -> list[APIEndpoint]:
    if not llm_available(llm):
        endpoints = [ep for f in files for ep in extract_endpoints(f)]
        logger.info(f"Detected {len(endpoints)} API endpoints")
        return endpoints

    eligible = [f for f in files if is_llm_candidate(f)]
    if len(eligible) > file_limit:
        logger.warning(
            f"API endpoint detection limited to {file_limit} of {len(eligible)} eligible files. "
            f"Set API_ENDPOINT_FILE_LIMIT to adjust."
        )

    endpoints = []
    for f in eligible[:file_limit]:
        endpoints.extend(await describe_endpoints_llm(f, llm))
    return endpoints
