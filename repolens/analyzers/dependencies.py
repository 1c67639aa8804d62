"""
Dependency manifests: package.json, requirements.txt and pyproject.toml.
"""

import json
import logging
import re
import tomllib

from ..schemas import DependencyInfo, DependencyLink, DependencyNode, FileInfo, WheelLink

logger = logging.getLogger(__name__)

ROOT_NODE_ID = "main"

_REQUIREMENT = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._\-]*)\s*(?:\[[^\]]*\])?\s*(.*)$")


def _split_requirement(line: str) -> tuple[str, str] | None:
    line = line.split("#", 1)[0].split(";", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT.match(line)
    if not match:
        return None
    return match.group(1), match.group(2).strip() or "*"


def parse_package_json(content: str) -> tuple[dict[str, str], dict[str, str]]:
    try:
        parsed = json.loads(content)
    except ValueError as e:
        logger.error(f"Failed to parse package.json: {e}")
        return {}, {}
    if not isinstance(parsed, dict):
        return {}, {}
    return dict(parsed.get("dependencies") or {}), dict(parsed.get("devDependencies") or {})


def parse_requirements(content: str) -> dict[str, str]:
    deps = {}
    for line in content.splitlines():
        parsed = _split_requirement(line)
        if parsed:
            deps[parsed[0]] = parsed[1]
    return deps


def parse_pyproject(content: str) -> tuple[dict[str, str], dict[str, str]]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.error(f"Failed to parse pyproject.toml: {e}")
        return {}, {}

    deps: dict[str, str] = {}
    dev: dict[str, str] = {}
    project = data.get("project") or {}
    for line in project.get("dependencies") or []:
        parsed = _split_requirement(line)
        if parsed:
            deps[parsed[0]] = parsed[1]
    for extra in (project.get("optional-dependencies") or {}).values():
        for line in extra:
            parsed = _split_requirement(line)
            if parsed:
                dev[parsed[0]] = parsed[1]

    # Poetry layout
    poetry = (data.get("tool") or {}).get("poetry") or {}
    for name, spec in (poetry.get("dependencies") or {}).items():
        version = _poetry_version(spec)
        if version is not None and name.lower() != "python":
            deps[name] = version
    for group in (poetry.get("group") or {}).values():
        for name, spec in (group.get("dependencies") or {}).items():
            version = _poetry_version(spec)
            if version is not None:
                dev[name] = version

    return deps, dev


def _poetry_version(spec) -> str | None:
    """Version text for a Poetry constraint: a string, a table, or a list of tables."""
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return str(spec.get("version", "*"))
    if isinstance(spec, list):
        versions = [str(s["version"]) for s in spec if isinstance(s, dict) and "version" in s]
        return " || ".join(versions) if versions else "*"
    return None


def _manifest(files: list[FileInfo], name: str) -> FileInfo | None:
    """Shallowest file with this name that has content."""
    candidates = [f for f in files if f.name == name and f.content]
    if not candidates:
        return None
    return min(candidates, key=lambda f: f.path.count("/"))


def analyze_dependencies(files: list[FileInfo]) -> DependencyInfo:
    dependencies: dict[str, str] = {}
    dev_dependencies: dict[str, str] = {}

    package_json = _manifest(files, "package.json")
    if package_json:
        deps, dev = parse_package_json(package_json.content)
        dependencies.update(deps)
        dev_dependencies.update(dev)

    requirements = _manifest(files, "requirements.txt")
    if requirements:
        dependencies.update(parse_requirements(requirements.content))

    pyproject = _manifest(files, "pyproject.toml")
    if pyproject:
        deps, dev = parse_pyproject(pyproject.content)
        dependencies.update(deps)
        dev_dependencies.update(dev)

    info = build_dependency_graph(dependencies, dev_dependencies)
    logger.info(f"Found {len(dependencies)} dependencies and {len(dev_dependencies)} dev dependencies")
    return info


def build_dependency_graph(dependencies: dict[str, str], dev_dependencies: dict[str, str]) -> DependencyInfo:
    if not dependencies and not dev_dependencies:
        return DependencyInfo()

    nodes = [DependencyNode(id=ROOT_NODE_ID, name=ROOT_NODE_ID, type="project",
                            size=len(dependencies) + len(dev_dependencies))]
    links = []
    for name, version in dependencies.items():
        nodes.append(DependencyNode(id=name, name=name, version=version, type="dependency"))
        links.append(DependencyLink(source=ROOT_NODE_ID, target=name, type="runtime", value=1))
    for name, version in dev_dependencies.items():
        if name in dependencies:
            continue
        nodes.append(DependencyNode(id=name, name=name, version=version, type="devDependency"))
        links.append(DependencyLink(source=ROOT_NODE_ID, target=name, type="dev", strength=0.5, value=1))

    return DependencyInfo(
        dependencies=dependencies,
        dev_dependencies=dev_dependencies,
        nodes=nodes,
        links=links,
    )


def build_dependency_wheel(info: DependencyInfo) -> list[WheelLink]:
    return [WheelLink(source=ROOT_NODE_ID, target=name, value=1) for name in info.dependencies]
