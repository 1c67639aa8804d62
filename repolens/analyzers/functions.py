"""
Regex function parser for JavaScript/TypeScript and Python sources.

Not a real parser: it finds declarations by pattern and estimates where each
body ends (brace matching for JS, indentation for Python).
"""

import re

from ..schemas import FunctionInfo

_JS_FUNCTION = re.compile(
    r"(?P<async1>async\s+)?function\s*\*?\s*(?P<name1>[A-Za-z0-9_$]+)\s*\("
    r"|(?:const|let|var)\s+(?P<name2>[A-Za-z0-9_$]+)\s*=\s*(?P<async2>async\s*)?"
    r"(?:\([^)]*\)|[A-Za-z0-9_$]+)\s*=>"
)
_PY_FUNCTION = re.compile(r"^(?P<indent>[ \t]*)(?P<async>async\s+)?def\s+(?P<name>[A-Za-z0-9_]+)\s*\(", re.MULTILINE)

_BRANCH = re.compile(r"\b(?:if|elif|for|while|case|catch|except)\b|&&|\|\||\band\b|\bor\b|\?(?!\.)")


def function_complexity(body: str) -> int:
    """Cyclomatic-style count: 1 plus one per branch point."""
    return 1 + len(_BRANCH.findall(body))


def parse_functions(content: str | None, language: str | None) -> list[FunctionInfo]:
    if not content:
        return []
    language = (language or "").lower()
    if language in ("javascript", "typescript"):
        return _parse_js(content)
    if language == "python":
        return _parse_python(content)
    return []


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def _parse_js(content: str) -> list[FunctionInfo]:
    functions = []
    lines = content.split("\n")
    for match in _JS_FUNCTION.finditer(content):
        name = match.group("name1") or match.group("name2") or "anonymous"
        is_async = bool(match.group("async1") or match.group("async2"))
        start_line = _line_of(content, match.start())

        end_index = _match_braces(content, match.end())
        end_line = _line_of(content, end_index) if end_index is not None else start_line
        body = "\n".join(lines[start_line - 1:end_line])

        functions.append(FunctionInfo(
            name=name,
            complexity=function_complexity(body),
            start_line=start_line,
            end_line=end_line,
            sloc=end_line - start_line + 1,
            is_async=is_async,
            description=f"Function {name}",
        ))
    return functions


def _match_braces(content: str, start: int) -> int | None:
    """Index where the body that follows `start` ends."""
    rest = content[start:]
    stripped = rest.lstrip()
    # arrow function with an expression body ends at the line break
    if content[:start].rstrip().endswith("=>") and not stripped.startswith("{"):
        newline = content.find("\n", start)
        return len(content) - 1 if newline == -1 else newline - 1

    open_index = content.find("{", start)
    if open_index == -1:
        return None
    depth = 0
    for i in range(open_index, len(content)):
        ch = content[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def _parse_python(content: str) -> list[FunctionInfo]:
    functions = []
    lines = content.split("\n")
    for match in _PY_FUNCTION.finditer(content):
        name = match.group("name")
        indent = len(match.group("indent").expandtabs())
        start_line = _line_of(content, match.start("async") if match.group("async") else match.start("name"))

        end_line = start_line
        for number in range(start_line, len(lines)):
            line = lines[number]
            if not line.strip():
                continue
            if len(line) - len(line.lstrip()) <= indent and not line.lstrip().startswith((")", "#")):
                break
            end_line = number + 1

        body = "\n".join(lines[start_line - 1:end_line])
        functions.append(FunctionInfo(
            name=name,
            complexity=function_complexity(body),
            start_line=start_line,
            end_line=end_line,
            sloc=sum(1 for line in lines[start_line - 1:end_line] if line.strip()),
            is_async=bool(match.group("async")),
            description=f"Function {name}",
        ))
    return functions
