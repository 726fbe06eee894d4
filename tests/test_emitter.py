"""Tests for pipeline document serialization."""

from __future__ import annotations

from pathlib import Path

import yaml

from pipegen.emitter import document_to_dict, render_document, render_report, write_document
from pipegen.models import (
    Classification,
    PipelineDocument,
    PipelineJob,
    PipelineStep,
    ProbeResult,
    Provenance,
)


def _document() -> PipelineDocument:
    job = PipelineJob(
        name="build_application",
        stage="build",
        image="ubuntu:22.04",
        before_script=("apt-get update", 'cd "$PROJECT_ROOT"'),
        steps=(
            PipelineStep(name="Install", command="npm ci", phase="install"),
            PipelineStep(name="Test", script="npm test\nnpm run lint", phase="test"),
        ),
    )
    return PipelineDocument(
        stages=("build",),
        variables={"APP_LANG": "node", "EXPOSED_PORT": "3000"},
        jobs=(job,),
        comments=("Generated CI/CD pipeline", "Language: node (detected)"),
    )


def test_rendered_document_round_trips_through_yaml() -> None:
    rendered = render_document(_document())

    assert rendered.startswith("# Generated CI/CD pipeline\n# Language: node (detected)\n")
    assert yaml.safe_load(rendered) == document_to_dict(_document())


def test_rendering_preserves_variable_and_job_order() -> None:
    rendered = render_document(_document())

    assert rendered.index("APP_LANG") < rendered.index("EXPOSED_PORT")
    assert rendered.index("stages:") < rendered.index("variables:") < rendered.index("jobs:")


def test_multiline_script_uses_literal_block() -> None:
    rendered = render_document(_document())

    assert "run: |" in rendered


def test_port_variable_is_serialized_as_string() -> None:
    loaded = yaml.safe_load(render_document(_document()))

    assert loaded["variables"]["EXPOSED_PORT"] == "3000"


def test_write_document_creates_parent_directories(tmp_path: Path) -> None:
    target = tmp_path / "ci" / "pipeline.yaml"

    written = write_document(_document(), target)

    assert written == target
    assert yaml.safe_load(target.read_text(encoding="utf-8"))["stages"] == ["build"]


def test_report_lists_manifests_and_dependency_counts() -> None:
    probe = ProbeResult(
        root="/repo",
        found={"requirements.txt": "requirements.txt", "package.json": "web/package.json"},
        dependencies={"requirements.txt": ("flask", "gunicorn")},
    )
    classification = Classification(
        ecosystem="node", provenance=Provenance.OVERRIDE, detected="python", hint="node"
    )

    report = render_report(probe, classification)

    assert report.splitlines() == [
        "Dependency analysis:",
        "ecosystem: node (override)",
        "detected: python",
        "manifest files:",
        "  requirements.txt",
        "  package.json (web/package.json)",
        "requirements.txt: 2 dependencies",
    ]
