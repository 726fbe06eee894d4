"""Source text scans for persistent-write, entry point and web signals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Pattern, Sequence, Set, Tuple

from .config import DEFAULT_MAX_FILE_BYTES
from .models import ProbeResult, SourceSignals
from .repo_scanner import RepoWalker
from .rules import EcosystemRule, all_source_suffixes

# Files beyond this count are not read; keeps scans bounded on huge monorepos.
MAX_SCANNED_FILES = 5000

_CONTAINER_FILES = ("Dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")


@dataclass(frozen=True)
class PatternCategory:
    name: str
    patterns: Tuple[Pattern[str], ...]

    def search(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


def _compile(*patterns: str, flags: int = 0) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern, re.MULTILINE | flags) for pattern in patterns)


WRITE_CATEGORIES: Tuple[PatternCategory, ...] = (
    PatternCategory(
        "file_write",
        _compile(
            r"""\bopen\([^)\n]*['"][wax]b?\+?['"]""",
            r"\.write_(?:text|bytes)\(",
            r"\bfs\.(?:writeFile|appendFile|createWriteStream)(?:Sync)?\(",
            r"\bFileOutputStream\(",
            r"\bFileWriter\(",
            r"\bFiles\.write(?:String)?\(",
            r"\bos\.(?:Create|WriteFile)\(",
            r"\bioutil\.WriteFile\(",
            r"\bFile::create\(",
            r"\bfs::write\(",
            r"""\bFile\.(?:write|open)\([^)\n]*['"][wa]""",
        ),
    ),
    PatternCategory(
        "log_handler",
        _compile(
            r"\b(?:Timed)?(?:Rotating)?FileHandler\(",
            r"logging\.basicConfig\([^)]*filename\s*=",
            r"\btransports\.File\(",
            r"\b(?:Rolling)?FileAppender\b",
            r"""\bLogger\.new\(\s*['"][^'"]+\.log['"]""",
            r"\btracing_appender::rolling\b",
        ),
    ),
    PatternCategory(
        "cache_temp",
        _compile(
            r"\btempfile\.",
            r"\bmkdtemp\(",
            r"/tmp/",
            r"\bos\.(?:TempDir|tmpdir)\(",
            r"\bcache_dir\b",
            r"\bCACHE_DIR\b",
            r"\.cache/",
            r"\bdiskcache\b",
            r"\bFiles\.createTemp(?:File|Directory)\(",
        ),
    ),
    PatternCategory(
        "embedded_database",
        _compile(
            r"\bsqlite3?\b",
            r"\bleveldb\b",
            r"\brocksdb\b",
            r"\blmdb\b",
            r"\bbolt\.Open\(",
            r"\bbadger\.Open\(",
            r"jdbc:h2:",
            r"\bshelve\.open\(",
            r"\bduckdb\b",
            r"\bsled::",
            r"\bPStore\.new\(",
            flags=re.IGNORECASE,
        ),
    ),
    PatternCategory(
        "container_volume",
        _compile(
            r"^\s*VOLUME\s",
            r"^\s*volumes\s*:",
        ),
    ),
)


def iter_source_texts(
    root: Path,
    suffixes: Sequence[str],
    *,
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    include_container_files: bool = False,
    exclude_paths: Sequence[str] = (),
) -> Iterator[Tuple[str, str]]:
    """Yield ``(rel_path, text)`` for source files, shallowest first."""
    walker = RepoWalker(root, exclude_paths=exclude_paths)
    wanted = tuple(suffixes)
    selected = []
    for meta in walker.iter_files():
        name = meta.path.rsplit("/", 1)[-1]
        if meta.path.endswith(wanted) or (include_container_files and name in _CONTAINER_FILES):
            selected.append(meta)
    selected.sort(key=lambda meta: (meta.depth, meta.path))

    for meta in selected[:MAX_SCANNED_FILES]:
        text = walker.read(meta.path, max_chars=max_file_bytes)
        if text:
            yield meta.path, text


def scan_write_categories(
    texts: Iterable[Tuple[str, str]],
    categories: Sequence[PatternCategory] = WRITE_CATEGORIES,
) -> List[str]:
    """Return the names of categories matching at least once, in table order."""
    matched: Set[str] = set()
    for _path, text in texts:
        for category in categories:
            if category.name not in matched and category.search(text):
                matched.add(category.name)
        if len(matched) == len(categories):
            break
    return [category.name for category in categories if category.name in matched]


def scan_data_loading(texts: Iterable[Tuple[str, str]], patterns: Sequence[str]) -> bool:
    compiled = _compile(*patterns)
    if not compiled:
        return False
    return any(pattern.search(text) for _path, text in texts for pattern in compiled)


def detect_source_signals(
    root: Path,
    rule: EcosystemRule,
    probe: ProbeResult,
    *,
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    exclude_paths: Sequence[str] = (),
) -> SourceSignals:
    """Find the main entry point and web-application signals for ``rule``."""
    entry_patterns = _compile(*rule.entry_patterns)
    web_patterns = _compile(*rule.web_patterns)

    entry_point: Optional[str] = None
    reasons: Dict[str, None] = {}

    for script in rule.web_scripts:
        if script in probe.scripts:
            reasons[f"package.json script '{script}'"] = None

    for rel_path, text in iter_source_texts(
        root, rule.source_suffixes, max_file_bytes=max_file_bytes, exclude_paths=exclude_paths
    ):
        if entry_point is None and any(pattern.search(text) for pattern in entry_patterns):
            entry_point = rel_path
        for pattern in web_patterns:
            if pattern.search(text):
                reasons.setdefault(f"{rel_path}: {pattern.pattern}", None)
                break

    return SourceSignals(
        entry_point=entry_point,
        web_application=bool(reasons),
        web_reasons=tuple(reasons),
    )


__all__ = [
    "MAX_SCANNED_FILES",
    "PatternCategory",
    "WRITE_CATEGORIES",
    "all_source_suffixes",
    "detect_source_signals",
    "iter_source_texts",
    "scan_data_loading",
    "scan_write_categories",
]
