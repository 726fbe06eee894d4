"""Pipeline orchestration: acquire, probe, classify, estimate, allocate, synthesize."""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from .acquisition import RepositoryAcquirer, is_remote
from .classifier import Confirmer, LanguageClassifier, decline, normalise_hint
from .config import DEFAULT_BRANCH, DEFAULT_OUTPUT, DEFAULT_PORT, PipegenConfig, load_config
from .emitter import render_document, write_document, write_report
from .errors import DetectionError, DiskWarning, ValidationError
from .logging import get_logger
from .models import (
    Classification,
    PipelineDocument,
    PortAllocation,
    ProbeResult,
    ResourceEstimate,
    SourceSignals,
)
from .patterns import detect_source_signals
from .ports import PortAllocator, SocketEnumerator, resolve_socket_enumerator, validate_port
from .probe import RepositoryProber
from .resources import ResourceEstimator, check_disk_space
from .rules import rule_for
from .synthesizer import PipelineSynthesizer


@dataclass
class GenerationRequest:
    """Inputs for one pipeline generation run."""

    source: str
    branch: str = DEFAULT_BRANCH
    lang: Optional[str] = None
    port: Any = DEFAULT_PORT
    output: Path = Path(DEFAULT_OUTPUT)
    report: Optional[Path] = None


@dataclass
class GenerationOutcome:
    """Everything one run produced; the document is already on disk."""

    path: Path
    document: PipelineDocument
    probe: ProbeResult
    classification: Classification
    estimate: ResourceEstimate
    allocation: PortAllocation
    signals: SourceSignals
    report_path: Optional[Path] = None
    warnings: List[DiskWarning] = field(default_factory=list)


class Orchestrator:
    """Runs the generation stages in order, writing the document once at the end."""

    def __init__(
        self,
        config: PipegenConfig | None = None,
        *,
        acquirer: RepositoryAcquirer | None = None,
        enumerator: SocketEnumerator | None = None,
        enumerator_factory: Callable[[], SocketEnumerator] = resolve_socket_enumerator,
        confirmer: Confirmer = decline,
        disk_usage: Callable[[str], Any] = shutil.disk_usage,
        estimator: ResourceEstimator | None = None,
    ) -> None:
        self.config = config or load_config(Path.cwd())
        self.acquirer = acquirer or RepositoryAcquirer()
        self._enumerator = enumerator
        self._enumerator_factory = enumerator_factory
        self.classifier = LanguageClassifier(confirmer)
        self.prober = RepositoryProber(
            max_depth=self.config.probe.max_depth,
            exclude_paths=self.config.probe.exclude_paths,
        )
        self.estimator = estimator or ResourceEstimator(
            max_file_bytes=self.config.scan.max_file_bytes,
            exclude_paths=self.config.probe.exclude_paths,
        )
        self.synthesizer = PipelineSynthesizer(
            image=self.config.pipeline.image,
            project_root=self.config.pipeline.project_root,
        )
        self._disk_usage = disk_usage
        self.logger = get_logger("orchestrator")

    def run(self, request: GenerationRequest) -> GenerationOutcome:
        if not request.source or not str(request.source).strip():
            raise ValidationError("A repository source (--repo or --dir) is required")
        port = validate_port(request.port)
        hint = normalise_hint(request.lang)

        # Socket enumeration must exist before any repository work starts.
        enumerator = self._enumerator or self._enumerator_factory()
        allocator = PortAllocator(enumerator)

        warnings: List[DiskWarning] = []
        with tempfile.TemporaryDirectory(prefix="pipegen-") as workdir:
            root = self.acquirer.acquire(request.source, request.branch, Path(workdir))
            probe = self.prober.probe(root)
            repo_url = (
                request.source if is_remote(request.source) else self.acquirer.origin_url(root)
            )

            try:
                classification = self.classifier.classify(probe, hint)
            except DetectionError:
                notice = self.synthesizer.fallback_notice(
                    probe, repo_url=repo_url, branch=request.branch
                )
                self.logger.warning(
                    "Manual follow-up required; no pipeline written.\n%s",
                    render_document(notice),
                )
                raise

            estimate = self.estimator.estimate(root, classification, probe)
            disk_warning = check_disk_space(
                estimate.disk_required_mb, workdir, usage=self._disk_usage
            )
            if disk_warning is not None:
                warnings.append(disk_warning)

            allocation = allocator.allocate(port)

            signals = detect_source_signals(
                root,
                rule_for(classification.ecosystem),
                probe,
                max_file_bytes=self.config.scan.max_file_bytes,
                exclude_paths=self.config.probe.exclude_paths,
            )
            if signals.entry_point:
                self.logger.debug("Entry point: %s", signals.entry_point)

            document = self.synthesizer.synthesize(
                classification,
                probe,
                estimate,
                allocation,
                signals,
                repo_url=repo_url,
                branch=request.branch,
            )

        output_path = write_document(document, Path(request.output))
        self.logger.info("Pipeline written to %s", output_path)

        report_path = None
        if request.report is not None:
            report_path = write_report(probe, classification, Path(request.report))
            self.logger.info("Detection report written to %s", report_path)

        return GenerationOutcome(
            path=output_path,
            document=document,
            probe=probe,
            classification=classification,
            estimate=estimate,
            allocation=allocation,
            signals=signals,
            report_path=report_path,
            warnings=warnings,
        )
