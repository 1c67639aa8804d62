"""
Security Analyzer for RepoLens

Two passes over the fetched files:
- Secrets: line-by-line regex scan for credentials committed to the repo
- Vulnerabilities: optional LLM review of a limited number of source files
"""

import asyncio
import logging
import re
from dataclasses import dataclass

from ..schemas import FileInfo, SecurityIssue, Severity
from ..services.llm import LLMService
from .common import LLM_CONTENT_CHARS, file_extension, llm_available, request_llm_items

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

CODE_SNIPPET_CONTEXT_LINES = 2
MAX_MATCHES_PER_LINE = 1000
MIN_LLM_CONTENT_LENGTH = 50

LLM_ANALYZABLE_EXTENSIONS = {
    ".js", ".ts", ".py", ".java", ".php", ".rb", ".go", ".cs",
    ".c", ".cpp", ".jsx", ".tsx", ".html", ".sql",
}

SECRET_RECOMMENDATION = "Validate and remove credentials from code; use secure vaults instead."


# =============================================================================
# SECRET PATTERNS
# =============================================================================

@dataclass
class SecretPattern:
    """A credential shape to look for."""
    label: str
    severity: Severity
    pattern: re.Pattern
    cwe: str


SECRET_PATTERNS = [
    SecretPattern(
        label="Generic API Key/Token",
        severity=Severity.HIGH,
        pattern=re.compile(r"""(?:api[_-]?key|token|secret)\s*[:=]\s*['"]([a-zA-Z0-9\-_]{20,})['"]""", re.IGNORECASE),
        cwe="CWE-798",
    ),
    SecretPattern(
        label="Password",
        severity=Severity.CRITICAL,
        pattern=re.compile(r"""(?:password|pwd)\s*[:=]\s*['"](.{8,})['"]""", re.IGNORECASE),
        cwe="CWE-798",
    ),
    SecretPattern(
        label="Private Key Block",
        severity=Severity.CRITICAL,
        pattern=re.compile(r"-----BEGIN ((?:RSA|EC|OPENSSH|PGP|DSA) )?PRIVATE KEY-----", re.IGNORECASE),
        cwe="CWE-320",
    ),
    SecretPattern(
        label="AWS Access Key ID",
        severity=Severity.CRITICAL,
        pattern=re.compile(r"""AWS_ACCESS_KEY_ID\s*[:=]\s*['"](AKIA[0-9A-Z]{16})['"]""", re.IGNORECASE),
        cwe="CWE-798",
    ),
    SecretPattern(
        label="AWS Secret Access Key",
        severity=Severity.CRITICAL,
        pattern=re.compile(r"""AWS_SECRET_ACCESS_KEY\s*[:=]\s*['"]([a-zA-Z0-9/+=]{40})['"]""", re.IGNORECASE),
        cwe="CWE-798",
    ),
    SecretPattern(
        label="Database Connection String with Credentials",
        severity=Severity.HIGH,
        pattern=re.compile(r"(?:mongodb|mysql|postgres|sqlserver|redis)://(?:[^:@\s]+:[^@\s]+@)", re.IGNORECASE),
        cwe="CWE-798",
    ),
]


def scan_secrets(file: FileInfo) -> list[SecurityIssue]:
    """One issue per pattern match, with a few lines of surrounding code."""
    if not file.content:
        return []

    issues = []
    lines = file.content.split("\n")
    for index, line in enumerate(lines):
        for secret in SECRET_PATTERNS:
            matches = 0
            for _ in secret.pattern.finditer(line):
                matches += 1
                if matches > MAX_MATCHES_PER_LINE:
                    break
                start = max(0, index - CODE_SNIPPET_CONTEXT_LINES)
                end = min(len(lines), index + CODE_SNIPPET_CONTEXT_LINES + 1)
                issues.append(SecurityIssue(
                    type="secret",
                    severity=secret.severity,
                    file=file.path,
                    line=index + 1,
                    description=f"Potential {secret.label} detected.",
                    recommendation=SECRET_RECOMMENDATION,
                    cwe=secret.cwe,
                    code_snippet="\n".join(lines[start:end]),
                ))
    return issues


# =============================================================================
# LLM VULNERABILITY CHECK
# =============================================================================

def is_llm_candidate(file: FileInfo) -> bool:
    return (
        file_extension(file.name) in LLM_ANALYZABLE_EXTENSIONS
        and bool(file.content)
        and len(file.content) >= MIN_LLM_CONTENT_LENGTH
    )


async def check_vulnerabilities_llm(file: FileInfo, llm: LLMService) -> list[SecurityIssue]:
    prompt = f"""
Analyze the following code snippet from "{file.path}" for common security vulnerabilities like XSS, SQL Injection, CSRF, insecure deserialization, command injection, path traversal, hardcoded secrets (if missed by regex), or insecure library usage.
For each potential vulnerability found, provide a JSON object with: "type": "vulnerability", "severity": "low|medium|high|critical", "line": number, "description": string, "recommendation": string, "cwe": "CWE-ID (optional)".
If no significant vulnerabilities are found, return an empty array [].

Code:
```{file.language or ''}
{file.content[:LLM_CONTENT_CHARS]}
```
Return ONLY a JSON array of vulnerability objects, or an empty array.
"""
    return await request_llm_items(
        llm,
        prompt,
        SecurityIssue,
        file.path,
        overrides={"file": file.path, "type": "vulnerability"},
        required=("description", "severity"),
        max_tokens=500,
    )


async def analyze_security(
    files: list[FileInfo],
    llm: LLMService | None = None,
    llm_file_limit: int = 10,
    llm_delay: float = 0.0,
) -> list[SecurityIssue]:
    """Regex secret scan of every file plus LLM review of the first eligible files."""
    issues: list[SecurityIssue] = []
    llm_checked = 0
    use_llm = llm_available(llm)

    for file in files:
        if not file.content:
            continue
        issues.extend(scan_secrets(file))

        if use_llm and llm_checked < llm_file_limit and is_llm_candidate(file):
            issues.extend(await check_vulnerabilities_llm(file, llm))
            llm_checked += 1
            if llm_delay > 0:
                await asyncio.sleep(llm_delay)

    logger.info(f"Security analysis found {len(issues)} issues ({llm_checked} files reviewed by LLM)")
    return issues
