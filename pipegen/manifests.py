"""Parsers for dependency manifests across supported ecosystems."""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Set

_REQUIREMENT_SPLIT = re.compile(r"[<>=!~;\[\s@]")

# Python


def parse_requirements(text: str) -> List[str]:
    packages: List[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-")):
            continue
        name = _REQUIREMENT_SPLIT.split(stripped, 1)[0].strip()
        if name:
            packages.append(name)
    return packages


def load_toml(text: str) -> Dict[str, Any]:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def parse_pyproject(data: Dict[str, Any]) -> List[str]:
    """Collect PEP 621 and poetry dependency names from a parsed pyproject."""
    dependencies: List[Any] = []
    project = data.get("project")
    if isinstance(project, dict):
        dependencies.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        if isinstance(optional, dict):
            for values in optional.values():
                dependencies.extend(values or [])

    tool = data.get("tool") if isinstance(data.get("tool"), dict) else {}
    poetry = tool.get("poetry", {})
    if isinstance(poetry, dict):
        poetry_deps = poetry.get("dependencies", {}) or {}
        if isinstance(poetry_deps, dict):
            dependencies.extend(poetry_deps.keys())

    packages: Set[str] = set()
    for dep in dependencies:
        if not isinstance(dep, str):
            continue
        name = _REQUIREMENT_SPLIT.split(dep.strip(), 1)[0].strip()
        if name and name.lower() != "python":
            packages.add(name)
    return sorted(packages)


def pyproject_tools(data: Dict[str, Any]) -> List[str]:
    tool = data.get("tool")
    if not isinstance(tool, dict):
        return []
    return sorted(str(key) for key in tool.keys())


def parse_pipfile(data: Dict[str, Any]) -> List[str]:
    packages: Set[str] = set()
    for section in ("packages", "dev-packages"):
        values = data.get(section)
        if isinstance(values, dict):
            packages.update(str(key) for key in values.keys())
    return sorted(packages)


# Node.js


def load_package_json(text: str) -> Optional[Dict[str, Any]]:
    """Return the parsed package.json or None when it is not valid JSON."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def package_json_dependencies(data: Dict[str, Any]) -> List[str]:
    names: Set[str] = set()
    for key in ("dependencies", "devDependencies"):
        deps = data.get(key)
        if isinstance(deps, dict):
            names.update(str(name) for name in deps.keys())
    return sorted(names)


def package_json_scripts(data: Dict[str, Any]) -> List[str]:
    scripts = data.get("scripts")
    if not isinstance(scripts, dict):
        return []
    return sorted(str(name) for name in scripts.keys())


def package_json_node_engine(data: Dict[str, Any]) -> Optional[str]:
    engines = data.get("engines")
    if isinstance(engines, dict) and isinstance(engines.get("node"), str):
        return engines["node"]
    return None


# Java


def parse_pom_dependencies(text: str) -> List[str]:
    deps: Set[str] = set()
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return []

    namespace = _detect_xml_namespace(root)
    tag = f"{{{namespace}}}dependency" if namespace else "dependency"
    group_tag = f"{{{namespace}}}groupId" if namespace else "groupId"
    artifact_tag = f"{{{namespace}}}artifactId" if namespace else "artifactId"

    for dep in root.findall(f".//{tag}"):
        group = dep.findtext(group_tag, default="")
        artifact = dep.findtext(artifact_tag, default="")
        if group and artifact:
            deps.add(f"{group}:{artifact}")
    return sorted(deps)


def _detect_xml_namespace(element: ET.Element) -> str | None:
    match = re.match(r"\{(.+)}", element.tag)
    return match.group(1) if match else None


_GRADLE_COORDINATE = re.compile(r"['\"]([\w\-.]+:[\w\-.]+)(?::[\w\-.]+)?['\"]")


def parse_gradle_dependencies(text: str) -> List[str]:
    deps: Set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        if any(token in line for token in ("implementation", "api", "compile", "runtimeOnly")):
            match = _GRADLE_COORDINATE.search(line)
            if match:
                deps.add(match.group(1))
    return sorted(deps)


# Go


_GO_DIRECTIVE = re.compile(r"^go\s+(\S+)", re.MULTILINE)


def parse_go_mod(text: str) -> List[str]:
    deps: Set[str] = set()
    in_block = False
    for raw in text.splitlines():
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue
        if in_block:
            if line == ")":
                in_block = False
                continue
            deps.add(line.split()[0])
        elif line.startswith("require ("):
            in_block = True
        elif line.startswith("require "):
            parts = line.split()
            if len(parts) >= 2:
                deps.add(parts[1])
    return sorted(deps)


def go_directive(text: str) -> Optional[str]:
    match = _GO_DIRECTIVE.search(text)
    return match.group(0).strip() if match else None


# Rust


def parse_cargo_dependencies(data: Dict[str, Any]) -> List[str]:
    deps: Set[str] = set()
    for section in ("dependencies", "dev-dependencies", "build-dependencies"):
        values = data.get(section)
        if isinstance(values, dict):
            deps.update(str(key) for key in values.keys())
    return sorted(deps)


def cargo_rust_version(data: Dict[str, Any]) -> Optional[str]:
    package = data.get("package")
    if isinstance(package, dict) and isinstance(package.get("rust-version"), str):
        return package["rust-version"]
    return None


# Ruby


_GEM_LINE = re.compile(r"^\s*gem\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
_RUBY_VERSION = re.compile(r"^\s*ruby\s+['\"]([^'\"]+)['\"]", re.MULTILINE)


def parse_gemfile(text: str) -> List[str]:
    return sorted(set(_GEM_LINE.findall(text)))


def gemfile_ruby_version(text: str) -> Optional[str]:
    match = _RUBY_VERSION.search(text)
    return match.group(1) if match else None
