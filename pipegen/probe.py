"""Repository prober: finds manifest and lockfiles within a bounded depth."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import manifests
from .config import DEFAULT_MAX_DEPTH
from .logging import get_logger
from .models import FileMeta, ProbeResult
from .repo_scanner import RepoWalker

MANIFEST_NAMES: Tuple[str, ...] = (
    "requirements.txt",
    "pyproject.toml",
    "Pipfile",
    "Pipfile.lock",
    "poetry.lock",
    "setup.py",
    "setup.cfg",
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "tsconfig.json",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "mvnw",
    "gradlew",
    "go.mod",
    "go.sum",
    "Cargo.toml",
    "Cargo.lock",
    "Gemfile",
    "Gemfile.lock",
    "Rakefile",
    "config.ru",
    "mypy.ini",
    ".mypy.ini",
    "pyrightconfig.json",
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
)

# Snippet keys recorded for tool tables found in pyproject.toml.
PYPROJECT_MYPY_SNIPPET = "pyproject.toml#tool.mypy"
PYPROJECT_POETRY_SNIPPET = "pyproject.toml#tool.poetry"

_MAX_MANIFEST_CHARS = 500_000


class _Extraction:
    """Accumulates dependency lists and snippets while manifests are read."""

    def __init__(self) -> None:
        self.snippets: Dict[str, str] = {}
        self.dependencies: Dict[str, Tuple[str, ...]] = {}
        self.scripts: Tuple[str, ...] = ()

    def deps(self, manifest: str, names: Sequence[str]) -> None:
        self.dependencies[manifest] = tuple(names)


def _extract_requirements(text: str, out: _Extraction) -> None:
    out.deps("requirements.txt", manifests.parse_requirements(text))


def _extract_pyproject(text: str, out: _Extraction) -> None:
    data = manifests.load_toml(text)
    out.deps("pyproject.toml", manifests.parse_pyproject(data))
    tools = manifests.pyproject_tools(data)
    if "poetry" in tools:
        out.snippets[PYPROJECT_POETRY_SNIPPET] = "[tool.poetry]"
    if "mypy" in tools:
        out.snippets[PYPROJECT_MYPY_SNIPPET] = "[tool.mypy]"


def _extract_pipfile(text: str, out: _Extraction) -> None:
    out.deps("Pipfile", manifests.parse_pipfile(manifests.load_toml(text)))


def _extract_package_json(text: str, out: _Extraction) -> None:
    data = manifests.load_package_json(text)
    if data is None:
        # Unparseable package.json; the estimator applies its fallback count.
        out.snippets["package.json"] = "unparsed"
        return
    out.deps("package.json", manifests.package_json_dependencies(data))
    out.scripts = tuple(manifests.package_json_scripts(data))
    engine = manifests.package_json_node_engine(data)
    if engine:
        out.snippets["package.json"] = f"engines.node: {engine}"


def _extract_pom(text: str, out: _Extraction) -> None:
    out.deps("pom.xml", manifests.parse_pom_dependencies(text))


def _extract_gradle(name: str) -> Callable[[str, _Extraction], None]:
    def _extract(text: str, out: _Extraction) -> None:
        out.deps(name, manifests.parse_gradle_dependencies(text))

    return _extract


def _extract_go_mod(text: str, out: _Extraction) -> None:
    out.deps("go.mod", manifests.parse_go_mod(text))
    directive = manifests.go_directive(text)
    if directive:
        out.snippets["go.mod"] = directive


def _extract_cargo(text: str, out: _Extraction) -> None:
    data = manifests.load_toml(text)
    out.deps("Cargo.toml", manifests.parse_cargo_dependencies(data))
    version = manifests.cargo_rust_version(data)
    if version:
        out.snippets["Cargo.toml"] = f"rust-version = {version}"


def _extract_gemfile(text: str, out: _Extraction) -> None:
    out.deps("Gemfile", manifests.parse_gemfile(text))
    version = manifests.gemfile_ruby_version(text)
    if version:
        out.snippets["Gemfile"] = f"ruby {version}"


_EXTRACTORS: Dict[str, Callable[[str, _Extraction], None]] = {
    "requirements.txt": _extract_requirements,
    "pyproject.toml": _extract_pyproject,
    "Pipfile": _extract_pipfile,
    "package.json": _extract_package_json,
    "pom.xml": _extract_pom,
    "build.gradle": _extract_gradle("build.gradle"),
    "build.gradle.kts": _extract_gradle("build.gradle.kts"),
    "go.mod": _extract_go_mod,
    "Cargo.toml": _extract_cargo,
    "Gemfile": _extract_gemfile,
}


class RepositoryProber:
    """Scans a repository root for the fixed manifest list."""

    def __init__(
        self,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        exclude_paths: Sequence[str] = (),
        manifest_names: Sequence[str] = MANIFEST_NAMES,
    ) -> None:
        self.max_depth = max_depth
        self.exclude_paths = tuple(exclude_paths)
        self.manifest_names = frozenset(manifest_names)
        self.logger = get_logger("probe")

    def probe(self, root: str | Path) -> ProbeResult:
        """Return which manifests exist (shallowest occurrence wins) and their content."""
        walker = RepoWalker(Path(root), exclude_paths=self.exclude_paths)

        candidates: List[FileMeta] = [
            meta
            for meta in walker.iter_files(max_depth=self.max_depth)
            if meta.path.rsplit("/", 1)[-1] in self.manifest_names
        ]
        candidates.sort(key=lambda meta: (meta.depth, meta.path))

        found: Dict[str, str] = {}
        for meta in candidates:
            name = meta.path.rsplit("/", 1)[-1]
            found.setdefault(name, meta.path)

        extraction = _Extraction()
        for name, rel_path in found.items():
            extractor = _EXTRACTORS.get(name)
            if extractor is None:
                continue
            text = walker.read(rel_path, max_chars=_MAX_MANIFEST_CHARS)
            extractor(text, extraction)

        if found:
            self.logger.info("Manifests found: %s", ", ".join(found))
        else:
            self.logger.info("No manifest files found under %s", walker.root)
        for name, deps in extraction.dependencies.items():
            self.logger.debug("%s declares %d dependencies", name, len(deps))

        return ProbeResult(
            root=str(walker.root),
            found=found,
            snippets=extraction.snippets,
            dependencies=extraction.dependencies,
            scripts=extraction.scripts,
        )


def describe(probe: ProbeResult, *, limit: Optional[int] = None) -> List[str]:
    """Return ``name -> path`` lines for reports and fallback notices."""
    lines = [f"{name} ({path})" if path != name else name for name, path in probe.found.items()]
    return lines[:limit] if limit is not None else lines
