"""Repository walking utilities shared by the prober and text scans."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .logging import get_logger
from .models import FileMeta

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".tox",
    ".idea",
    ".vscode",
    "dist",
    "build",
    "target",
    "vendor",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

logger = get_logger("scanner")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or exclude_paths."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            if self.directory_only and rel_path.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in rel_path.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.is_file():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in safe_read(path, max_chars=100_000).splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def load_ignore_rules(root: Path, exclude_paths: Sequence[str] = ()) -> List[IgnoreRule]:
    """Combine the repository's .gitignore with configured exclusions."""
    rules = _parse_gitignore(root / ".gitignore")
    for pattern in exclude_paths:
        rule = build_ignore_rule(pattern)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


class RepoWalker:
    """Walks a repository tree, skipping dependency and VCS directories."""

    def __init__(self, root: Path, *, exclude_paths: Sequence[str] = ()) -> None:
        self.root = Path(root).expanduser().resolve()
        if not self.root.exists():
            raise FileNotFoundError(f"Repository path not found: {root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {root}")
        self._rules = load_ignore_rules(self.root, exclude_paths)

    def iter_files(self, max_depth: Optional[int] = None) -> Iterator[FileMeta]:
        """Yield files in sorted order; ``max_depth`` 0 means root files only."""
        for dirpath, dirnames, filenames in os.walk(self.root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(self.root).as_posix() if current_dir != self.root else ""
            depth = rel_dir.count("/") + 1 if rel_dir else 0

            if max_depth is not None and depth >= max_depth:
                dirnames[:] = []
            else:
                kept = []
                for name in sorted(dirnames):
                    if name in _EXCLUDED_DIRS:
                        continue
                    rel_path = f"{rel_dir}/{name}" if rel_dir else name
                    if _should_ignore(rel_path, True, self._rules):
                        continue
                    kept.append(name)
                dirnames[:] = kept

            for filename in sorted(filenames):
                if filename in _EXCLUDED_FILES:
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if _should_ignore(rel_path, False, self._rules):
                    continue
                path = current_dir / filename
                try:
                    size = path.stat().st_size
                except OSError:
                    continue
                yield FileMeta(path=rel_path, size=size, depth=depth)

    def read(self, rel_path: str, *, max_chars: int) -> str:
        return safe_read(self.root / rel_path, max_chars=max_chars)


def measure_size_kb(root: Path) -> int | None:
    """Return the on-disk size of ``root`` in KB (du-style), or None if unmeasurable."""
    root = Path(root)
    if not root.is_dir():
        return None
    total = 0
    try:
        for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            for filename in filenames:
                path = Path(dirpath) / filename
                if path.is_symlink():
                    continue
                total += path.stat().st_size
    except OSError as exc:
        logger.warning("Unable to measure repository size: %s", exc)
        return None
    return (total + 1023) // 1024


def _raise_walk_error(exc: OSError) -> None:
    raise exc


def safe_read(path: Path, *, max_chars: int) -> str:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return handle.read(max_chars)
    except (OSError, UnicodeDecodeError):
        return ""


__all__ = ["IgnoreRule", "RepoWalker", "build_ignore_rule", "load_ignore_rules", "measure_size_kb", "safe_read"]
