"""Serialization of pipeline documents and detection reports."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from .models import Classification, PipelineDocument, PipelineJob, ProbeResult
from .probe import describe


class _PipelineDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_PipelineDumper.add_representer(str, _represent_str)


def _job_to_dict(job: PipelineJob) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"stage": job.stage, "image": job.image}
    if job.before_script:
        payload["before_script"] = list(job.before_script)
    payload["steps"] = [{"name": step.name, "run": step.body} for step in job.steps]
    return payload


def document_to_dict(document: PipelineDocument) -> Dict[str, Any]:
    """Return the document as plain mappings in output order."""
    return {
        "stages": list(document.stages),
        "variables": dict(document.variables),
        "jobs": {job.name: _job_to_dict(job) for job in document.jobs},
    }


def render_document(document: PipelineDocument) -> str:
    header = "".join(f"# {line}\n" for line in document.comments)
    body = yaml.dump(
        document_to_dict(document),
        Dumper=_PipelineDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )
    return f"{header}\n{body}" if header else body


def write_document(document: PipelineDocument, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_document(document), encoding="utf-8")
    return path


def render_report(probe: ProbeResult, classification: Classification) -> str:
    lines: List[str] = ["Dependency analysis:"]
    lines.append(f"ecosystem: {classification.ecosystem} ({classification.provenance})")
    if classification.hint and classification.hint != classification.ecosystem:
        lines.append(f"declared: {classification.hint}")
    if classification.detected != classification.ecosystem:
        lines.append(f"detected: {classification.detected}")
    found = describe(probe)
    if found:
        lines.append("manifest files:")
        lines.extend(f"  {item}" for item in found)
    else:
        lines.append("manifest files: none")
    for manifest, deps in probe.dependencies.items():
        lines.append(f"{manifest}: {len(deps)} dependencies")
    return "\n".join(lines) + "\n"


def write_report(probe: ProbeResult, classification: Classification, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report(probe, classification), encoding="utf-8")
    return path
