"""Pipeline synthesis from the classification, estimate and port allocation."""

from __future__ import annotations

import posixpath
from typing import Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_IMAGE, DEFAULT_PROJECT_ROOT
from .errors import DetectionError
from .logging import get_logger
from .models import (
    Classification,
    Ecosystem,
    PipelineDocument,
    PipelineJob,
    PipelineStep,
    PortAllocation,
    ProbeResult,
    ResourceEstimate,
    SourceSignals,
)
from .probe import describe
from .rules import EcosystemRule, InstallVariant, Phase, StepTemplate, rule_for

BUILD_STAGE = "build"
DEPLOY_STAGE = "deploy"
BUILD_JOB = "build_application"
DEPLOY_JOB = "deploy_application"
FALLBACK_JOB = "manual_review"

_BOOTSTRAP = "apt-get update && apt-get install -y git curl"
_CHECKOUT = (
    'git clone --branch "$TARGET_BRANCH" "$REPO_URL" "$PROJECT_ROOT"',
    'cd "$PROJECT_ROOT"',
)
_STARTUP_WAIT_SECONDS = 10


def project_dir(rule: EcosystemRule, probe: ProbeResult) -> str:
    """Directory (relative to the repository root) of the shallowest detecting manifest."""
    paths = [probe.found[name] for name in rule.manifests if name in probe.found]
    if not paths:
        return "."
    shallowest = min(paths, key=lambda path: (path.count("/"), path))
    return posixpath.dirname(shallowest) or "."


def before_script(repo_url: Optional[str], workdir: str = ".") -> Tuple[str, ...]:
    """Bootstrap, then clone when a cloneable URL is known, then enter ``workdir``.

    Without a URL the job builds the runner's own checkout.
    """
    lines: List[str] = [_BOOTSTRAP]
    if repo_url:
        lines.extend(_CHECKOUT)
    if workdir != ".":
        lines.append(f'cd "{workdir}"')
    return tuple(lines)


def select_install_variant(rule: EcosystemRule, probe: ProbeResult) -> InstallVariant:
    """Return the first variant whose marker manifest (or snippet) is present."""
    for variant in rule.install_variants:
        if variant.marker is None:
            return variant
        if probe.has(variant.marker) or variant.marker in probe.snippets:
            return variant
    return rule.install_variants[-1]


def has_type_config(rule: EcosystemRule, probe: ProbeResult) -> bool:
    return any(probe.has(name) or name in probe.snippets for name in rule.type_config)


def render_step(template: StepTemplate, context: Dict[str, str], phase: str) -> PipelineStep:
    body = template.template.format_map(context)
    if "\n" in body:
        return PipelineStep(name=template.name, script=body, phase=phase)
    return PipelineStep(name=template.name, command=body, phase=phase)


class PipelineSynthesizer:
    """Assembles the pipeline document from the rule table."""

    def __init__(
        self,
        *,
        image: str = DEFAULT_IMAGE,
        project_root: str = DEFAULT_PROJECT_ROOT,
    ) -> None:
        self.image = image
        self.project_root = project_root
        self.logger = get_logger("synthesizer")

    def build_steps(
        self,
        classification: Classification,
        probe: ProbeResult,
        signals: SourceSignals,
    ) -> List[PipelineStep]:
        """Ordered build steps: install, type-check/lint, build, test, entry check."""
        rule = self._rule(classification, probe)
        variant = select_install_variant(rule, probe)
        context = self._context(variant, signals, project_dir(rule, probe))

        steps: List[PipelineStep] = []
        steps.extend(render_step(t, context, Phase.INSTALL) for t in rule.setup)
        steps.extend(render_step(t, context, Phase.INSTALL) for t in variant.steps)
        if has_type_config(rule, probe):
            steps.extend(render_step(t, context, Phase.TYPECHECK) for t in rule.typecheck)
        steps.extend(render_step(t, context, Phase.LINT) for t in rule.lint)
        steps.extend(render_step(t, context, Phase.BUILD) for t in rule.build)
        steps.extend(render_step(t, context, Phase.TEST) for t in rule.test)
        if signals.entry_point:
            steps.extend(render_step(t, context, Phase.VERIFY) for t in rule.verify_entry)
        return steps

    def synthesize(
        self,
        classification: Classification,
        probe: ProbeResult,
        estimate: ResourceEstimate,
        allocation: PortAllocation,
        signals: SourceSignals,
        *,
        repo_url: Optional[str],
        branch: str,
    ) -> PipelineDocument:
        """Assemble the document. ``repo_url`` None builds the runner's own checkout."""
        rule = self._rule(classification, probe)
        workdir = project_dir(rule, probe)
        setup = before_script(repo_url, workdir)
        build_steps = self.build_steps(classification, probe, signals)

        jobs = [
            PipelineJob(
                name=BUILD_JOB,
                stage=BUILD_STAGE,
                image=self.image,
                before_script=setup,
                steps=tuple(build_steps),
            )
        ]
        stages: Tuple[str, ...] = (BUILD_STAGE,)

        if signals.web_application:
            jobs.append(self._deploy_job(rule, probe, signals, build_steps, setup, workdir))
            stages = (BUILD_STAGE, DEPLOY_STAGE)
            self.logger.info("Web application detected; adding %s job", DEPLOY_JOB)
            for reason in signals.web_reasons:
                self.logger.debug("Web signal: %s", reason)

        variables = {
            "APP_LANG": classification.ecosystem,
            "EXPOSED_PORT": str(allocation.resolved_port),
            "REQUESTED_PORT": str(allocation.requested_port),
            "REQUIRED_DISK_MB": str(estimate.disk_required_mb),
            "REQUIRED_MEMORY_MB": str(estimate.memory_required_mb),
            "DISK_USAGE_LEVEL": estimate.disk_usage_level,
        }
        variables.update(self._source_variables(repo_url, branch))

        comments = (
            "Generated CI/CD pipeline",
            f"Language: {classification.ecosystem} ({classification.provenance})",
            f"Repository: {repo_url or 'runner checkout'}",
            f"Branch: {branch}",
            f"Project directory: {workdir}",
            f"Port: {allocation.resolved_port} (requested {allocation.requested_port})",
            f"Estimated disk: {estimate.disk_required_mb} MB, "
            f"memory: {estimate.memory_required_mb} MB, "
            f"disk usage: {estimate.disk_usage_level}",
            f"Basis: {estimate.justification}",
        )

        self.logger.info(
            "Synthesized %d job(s); build job has %d steps", len(jobs), len(build_steps)
        )
        return PipelineDocument(
            stages=stages,
            variables=variables,
            jobs=tuple(jobs),
            comments=comments,
        )

    def fallback_notice(
        self, probe: ProbeResult, *, repo_url: Optional[str], branch: str
    ) -> PipelineDocument:
        """Notice-only document listing discovered files for manual follow-up."""
        discovered = describe(probe)
        lines = ['echo "Project type not recognized."', 'echo "Project files:"', "ls -la"]
        if discovered:
            lines.append('echo "Manifest files found:"')
            lines.extend(f'echo "  {item}"' for item in discovered)
        else:
            lines.append('echo "No manifest files found."')
        lines.append('echo "No build steps were generated; write this pipeline by hand."')
        lines.append("exit 1")

        job = PipelineJob(
            name=FALLBACK_JOB,
            stage=BUILD_STAGE,
            image=self.image,
            before_script=before_script(repo_url),
            steps=(
                PipelineStep(
                    name="Project type not recognized",
                    script="\n".join(lines),
                    phase=Phase.INSTALL,
                ),
            ),
        )
        return PipelineDocument(
            stages=(BUILD_STAGE,),
            variables={
                "APP_LANG": Ecosystem.UNKNOWN,
                **self._source_variables(repo_url, branch),
            },
            jobs=(job,),
            comments=("Project type not recognized; manual pipeline required",),
        )

    def _rule(self, classification: Classification, probe: ProbeResult) -> EcosystemRule:
        if classification.ecosystem == Ecosystem.UNKNOWN:
            raise DetectionError("Cannot synthesize a pipeline for an unknown ecosystem", probe=probe)
        return rule_for(classification.ecosystem)

    def _source_variables(self, repo_url: Optional[str], branch: str) -> Dict[str, str]:
        if not repo_url:
            return {"TARGET_BRANCH": branch}
        return {
            "REPO_URL": repo_url,
            "TARGET_BRANCH": branch,
            "PROJECT_ROOT": self.project_root,
        }

    @staticmethod
    def _context(
        variant: InstallVariant, signals: SourceSignals, workdir: str = "."
    ) -> Dict[str, str]:
        context = {"tool": "", "run": "", "exec": "", "pip": "pip3"}
        context.update(variant.context)
        entry = signals.entry_point or ""
        if entry and workdir != ".":
            # Steps run inside workdir; entry points are recorded from the repository root.
            entry = posixpath.relpath(entry, workdir)
        context["entry"] = entry
        return context

    def _deploy_job(
        self,
        rule: EcosystemRule,
        probe: ProbeResult,
        signals: SourceSignals,
        build_steps: Sequence[PipelineStep],
        setup: Tuple[str, ...],
        workdir: str,
    ) -> PipelineJob:
        # The deploy job runs in a fresh container: reinstall and rebuild first.
        prepared = [
            step for step in build_steps if step.phase in (Phase.INSTALL, Phase.BUILD)
        ]
        variant = select_install_variant(rule, probe)
        start = self._start_command(rule, probe, signals, self._context(variant, signals, workdir))
        if start is None:
            launch = PipelineStep(
                name="Start application",
                script=(
                    f'echo "No start command detected for {rule.ecosystem}; '
                    'edit the deploy job."\n'
                    "exit 1"
                ),
                phase=Phase.DEPLOY,
            )
        else:
            launch = PipelineStep(
                name="Start application",
                script=(
                    "export PORT=$EXPOSED_PORT\n"
                    f"{start} &\n"
                    f"sleep {_STARTUP_WAIT_SECONDS}\n"
                    'curl --silent --output /dev/null "http://localhost:$EXPOSED_PORT/"'
                    ' && echo "Application is listening on port $EXPOSED_PORT"'
                ),
                phase=Phase.DEPLOY,
            )
        return PipelineJob(
            name=DEPLOY_JOB,
            stage=DEPLOY_STAGE,
            image=self.image,
            before_script=setup,
            steps=(*prepared, launch),
        )

    @staticmethod
    def _start_command(
        rule: EcosystemRule,
        probe: ProbeResult,
        signals: SourceSignals,
        context: Dict[str, str],
    ) -> Optional[str]:
        for option in rule.start:
            if option.requires_script and option.requires_script not in probe.scripts:
                continue
            if option.requires_manifest and not probe.has(option.requires_manifest):
                continue
            if option.requires_entry and not signals.entry_point:
                continue
            return option.template.format_map(context)
        return None
