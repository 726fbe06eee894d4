"""Resource estimation: disk and memory requirements and disk usage level."""

from __future__ import annotations

import math
import shutil
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from .config import DEFAULT_MAX_FILE_BYTES
from .errors import DiskWarning
from .logging import get_logger
from .models import Classification, DiskUsageLevel, ProbeResult, ResourceEstimate
from .patterns import iter_source_texts, scan_data_loading, scan_write_categories
from .repo_scanner import measure_size_kb
from .rules import EcosystemRule, ResourceProfile, all_source_suffixes, rule_for

MIN_DISK_MB = 500

logger = get_logger("resources")


def dependency_count(probe: ProbeResult, profile: ResourceProfile) -> int:
    """Count declared dependencies, falling back when a manifest could not be parsed."""
    count = probe.dependency_count(profile.dependency_manifests)
    if count == 0 and profile.unparsed_dependency_count:
        unparsed = [
            name
            for name in profile.dependency_manifests
            if probe.has(name) and name not in probe.dependencies
        ]
        if unparsed:
            return profile.unparsed_dependency_count
    return count


def disk_multiplier(profile: ResourceProfile, dependencies: int) -> int:
    scaled = int(profile.base_multiplier + dependencies * profile.dependency_weight)
    return min(profile.multiplier_cap, scaled)


def estimate_disk_mb(repo_size_kb: Optional[int], multiplier: int) -> int:
    """``max(500, ceil(size_kb / 1024) * multiplier)``; unknown size gives the floor."""
    size_mb = math.ceil(repo_size_kb / 1024) if repo_size_kb else 0
    return max(MIN_DISK_MB, size_mb * multiplier)


def estimate_memory_mb(
    profile: ResourceProfile, repo_size_kb: Optional[int], dependencies: int
) -> int:
    size_mb = math.ceil(repo_size_kb / 1024) if repo_size_kb else 0
    scaled = size_mb * profile.memory_per_repo_mb + dependencies * profile.memory_per_dependency_mb
    return profile.memory_floor_mb + min(profile.memory_cap_mb, scaled)


def classify_disk_usage(category_count: int) -> str:
    if category_count == 0:
        return DiskUsageLevel.LOW
    if category_count <= 3:
        return DiskUsageLevel.MEDIUM
    return DiskUsageLevel.HIGH


class ResourceEstimator:
    """Derives advisory disk/memory needs from repository size and content."""

    def __init__(
        self,
        *,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        exclude_paths: Sequence[str] = (),
        size_probe: Callable[[Path], Optional[int]] = measure_size_kb,
    ) -> None:
        self.max_file_bytes = max_file_bytes
        self.exclude_paths = tuple(exclude_paths)
        self._size_probe = size_probe

    def estimate(
        self, root: str | Path, classification: Classification, probe: ProbeResult
    ) -> ResourceEstimate:
        root_path = Path(root)
        rule = rule_for(classification.ecosystem)
        profile = rule.profile

        repo_size_kb = self._size_probe(root_path)
        if repo_size_kb is None:
            logger.warning("Repository size could not be measured; using minimum estimates")

        deps = dependency_count(probe, profile)
        multiplier = disk_multiplier(profile, deps)
        disk_mb = estimate_disk_mb(repo_size_kb, multiplier)
        memory_mb = estimate_memory_mb(profile, repo_size_kb, deps)

        categories = self._write_categories(root_path)
        level = classify_disk_usage(len(categories))
        promoted = False
        if level == DiskUsageLevel.LOW and self._loads_data(root_path, rule):
            level = DiskUsageLevel.MEDIUM
            promoted = True

        justification = _justify(
            classification.ecosystem,
            repo_size_kb,
            deps,
            multiplier,
            categories,
            promoted,
        )
        logger.info(
            "Estimated %d MB disk, %d MB memory, disk usage %s", disk_mb, memory_mb, level
        )
        logger.debug("Estimate basis: %s", justification)

        return ResourceEstimate(
            disk_required_mb=disk_mb,
            memory_required_mb=memory_mb,
            disk_usage_level=level,
            justification=justification,
            repo_size_kb=repo_size_kb,
            dependency_count=deps,
            multiplier=multiplier,
            write_categories=tuple(categories),
        )

    def _write_categories(self, root: Path) -> List[str]:
        texts = iter_source_texts(
            root,
            all_source_suffixes(),
            max_file_bytes=self.max_file_bytes,
            include_container_files=True,
            exclude_paths=self.exclude_paths,
        )
        return scan_write_categories(texts)

    def _loads_data(self, root: Path, rule: EcosystemRule) -> bool:
        if not rule.data_load_patterns:
            return False
        texts = iter_source_texts(
            root,
            rule.source_suffixes,
            max_file_bytes=self.max_file_bytes,
            exclude_paths=self.exclude_paths,
        )
        return scan_data_loading(texts, rule.data_load_patterns)


def _justify(
    ecosystem: str,
    repo_size_kb: Optional[int],
    deps: int,
    multiplier: int,
    categories: Sequence[str],
    promoted: bool,
) -> str:
    size = f"{repo_size_kb} KB" if repo_size_kb is not None else "unknown size"
    parts = [f"{ecosystem} repository of {size}, {deps} dependencies, disk multiplier x{multiplier}"]
    if categories:
        parts.append("persistent writes: " + ", ".join(categories))
    elif promoted:
        parts.append("data loading without explicit writes")
    else:
        parts.append("no persistent-write patterns")
    return "; ".join(parts)


def check_disk_space(
    required_mb: int,
    path: str | Path = "/",
    *,
    usage: Callable[[str], Any] = shutil.disk_usage,
) -> Optional[DiskWarning]:
    """Return (and log) a DiskWarning when free space at ``path`` is below ``required_mb``."""
    try:
        free_mb = usage(str(path)).free // (1024 * 1024)
    except OSError as exc:
        logger.warning("Unable to determine free disk space: %s", exc)
        return None

    logger.info("Free disk space: %d MB", free_mb)
    if free_mb < required_mb:
        warning = DiskWarning(required_mb, free_mb)
        logger.warning("%s", warning)
        return warning
    logger.debug("Enough disk space for build and run")
    return None
