"""Core data models shared across pipegen stages."""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Tuple


class Ecosystem:
    """Closed set of ecosystems the classifier can output."""

    PYTHON = "python"
    NODE = "node"
    JAVA = "java"
    GO = "go"
    RUST = "rust"
    RUBY = "ruby"
    UNKNOWN = "unknown"

    KNOWN: Tuple[str, ...] = (PYTHON, NODE, JAVA, GO, RUST, RUBY)


class Provenance:
    """Where a classification value came from."""

    DETECTED = "detected"
    OVERRIDE = "override"
    HINT = "hint"


class DiskUsageLevel:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class FileMeta:
    """Metadata for an individual repository file."""

    path: str
    size: int
    depth: int


@dataclass(frozen=True)
class ProbeResult:
    """Manifest files found in a repository plus content later stages need."""

    root: str
    found: Mapping[str, str] = field(default_factory=dict)
    snippets: Mapping[str, str] = field(default_factory=dict)
    dependencies: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    scripts: Tuple[str, ...] = ()

    def has(self, name: str) -> bool:
        return name in self.found

    def dependency_count(self, manifests: Iterable[str]) -> int:
        names = set()
        for manifest in manifests:
            names.update(self.dependencies.get(manifest, ()))
        return len(names)

    @property
    def is_empty(self) -> bool:
        return not self.found


@dataclass(frozen=True)
class Classification:
    """The single ecosystem chosen for a repository and how it was chosen."""

    ecosystem: str
    provenance: str
    detected: str = Ecosystem.UNKNOWN
    hint: Optional[str] = None


@dataclass(frozen=True)
class ResourceEstimate:
    """Advisory disk and memory requirements for the generated pipeline."""

    disk_required_mb: int
    memory_required_mb: int
    disk_usage_level: str
    justification: str
    repo_size_kb: Optional[int] = None
    dependency_count: int = 0
    multiplier: int = 0
    write_categories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PortAllocation:
    requested_port: int
    resolved_port: int
    window_end: int

    @property
    def moved(self) -> bool:
        return self.resolved_port != self.requested_port


@dataclass(frozen=True)
class SourceSignals:
    """Secondary facts scanned from source text."""

    entry_point: Optional[str] = None
    web_application: bool = False
    web_reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineStep:
    """One build step: a single command or a multi-line script body."""

    name: str
    command: Optional[str] = None
    script: Optional[str] = None
    phase: str = ""

    def __post_init__(self) -> None:
        if (self.command is None) == (self.script is None):
            raise ValueError(f"Step '{self.name}' needs exactly one of command or script")

    @property
    def body(self) -> str:
        return self.command if self.command is not None else self.script  # type: ignore[return-value]


@dataclass(frozen=True)
class PipelineJob:
    name: str
    stage: str
    image: str
    steps: Tuple[PipelineStep, ...]
    before_script: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineDocument:
    """Structured CI pipeline; serialized once, never mutated."""

    stages: Tuple[str, ...]
    variables: Mapping[str, str]
    jobs: Tuple[PipelineJob, ...]
    comments: Tuple[str, ...] = ()

    def job(self, name: str) -> Optional[PipelineJob]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None
