"""Configuration loading for pipegen (.pipegen.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".pipegen.yml"

DEFAULT_BRANCH = "main"
DEFAULT_PORT = 3000
DEFAULT_OUTPUT = "pipeline.yaml"
DEFAULT_MAX_DEPTH = 3
DEFAULT_MAX_FILE_BYTES = 200_000
DEFAULT_IMAGE = "ubuntu:22.04"
DEFAULT_PROJECT_ROOT = "/app"


@dataclass
class DefaultsConfig:
    """Fallback values for CLI flags."""

    branch: str = DEFAULT_BRANCH
    port: int = DEFAULT_PORT
    output: str = DEFAULT_OUTPUT
    report: Optional[str] = None


@dataclass
class ProbeConfig:
    """Manifest search depth and walker exclusions."""

    max_depth: int = DEFAULT_MAX_DEPTH
    exclude_paths: List[str] = field(default_factory=list)


@dataclass
class ScanConfig:
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES


@dataclass
class PipelineConfig:
    """Settings applied to every generated job."""

    image: str = DEFAULT_IMAGE
    project_root: str = DEFAULT_PROJECT_ROOT


@dataclass
class PipegenConfig:
    """Represents the settings defined in .pipegen.yml."""

    root: Path
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def load_config(config_path: Path) -> PipegenConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return PipegenConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    defaults = DefaultsConfig()
    defaults_data = _as_dict(data.get("defaults"))
    if defaults_data:
        defaults.branch = _as_str(defaults_data.get("branch")) or DEFAULT_BRANCH
        port = _as_int(defaults_data.get("port"))
        if defaults_data.get("port") is not None and port is None:
            raise ConfigError("defaults.port must be an integer")
        defaults.port = port if port is not None else DEFAULT_PORT
        defaults.output = _as_str(defaults_data.get("output")) or DEFAULT_OUTPUT
        defaults.report = _as_str(defaults_data.get("report"))

    probe = ProbeConfig()
    probe_data = _as_dict(data.get("probe"))
    if probe_data:
        max_depth = _as_int(probe_data.get("max_depth"))
        if max_depth is not None:
            if max_depth < 0:
                raise ConfigError("probe.max_depth must not be negative")
            probe.max_depth = max_depth
        probe.exclude_paths = _as_str_list(probe_data.get("exclude_paths"))

    scan = ScanConfig()
    scan_data = _as_dict(data.get("scan"))
    if scan_data:
        max_bytes = _as_int(scan_data.get("max_file_bytes"))
        if max_bytes is not None and max_bytes > 0:
            scan.max_file_bytes = max_bytes

    pipeline = PipelineConfig()
    pipeline_data = _as_dict(data.get("pipeline"))
    if pipeline_data:
        pipeline.image = _as_str(pipeline_data.get("image")) or DEFAULT_IMAGE
        pipeline.project_root = (
            _as_str(pipeline_data.get("project_root")) or DEFAULT_PROJECT_ROOT
        )

    return PipegenConfig(
        root=root,
        defaults=defaults,
        probe=probe,
        scan=scan,
        pipeline=pipeline,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []
