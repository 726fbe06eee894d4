"""Tests for pipegen.orchestrator."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from pipegen.acquisition import RepositoryAcquirer
from pipegen.classifier import accept
from pipegen.config import load_config
from pipegen.errors import CapabilityMissingError, DetectionError, PortExhaustionError, ValidationError
from pipegen.models import Ecosystem, Provenance
from pipegen.orchestrator import GenerationRequest, Orchestrator
from pipegen.ports import StaticSocketEnumerator
from pipegen.synthesizer import BUILD_JOB, DEPLOY_JOB
from tests._fixtures.repo_builder import RepoBuilder


def _orchestrator(tmp_path: Path, disk_free_mb, **kwargs) -> Orchestrator:
    kwargs.setdefault("enumerator", StaticSocketEnumerator())
    kwargs.setdefault("disk_usage", disk_free_mb(100_000))
    return Orchestrator(load_config(tmp_path / "no-config"), **kwargs)


def _request(repo_builder: RepoBuilder, tmp_path: Path, **overrides) -> GenerationRequest:
    values = {
        "source": str(repo_builder.path()),
        "output": tmp_path / "out" / "pipeline.yaml",
    }
    values.update(overrides)
    return GenerationRequest(**values)


def test_run_writes_pipeline_for_python_repo(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.requirements(["flask", "gunicorn"])
    repo_builder.write(
        {
            "app.py": """
                from flask import Flask

                app = Flask(__name__)

                if __name__ == "__main__":
                    app.run()
            """
        }
    )

    outcome = _orchestrator(tmp_path, disk_free_mb).run(_request(repo_builder, tmp_path))

    assert outcome.classification.ecosystem == Ecosystem.PYTHON
    assert outcome.allocation.resolved_port == 3000
    assert outcome.signals.entry_point == "app.py"
    assert outcome.warnings == []

    written = yaml.safe_load(outcome.path.read_text(encoding="utf-8"))
    assert written["variables"]["APP_LANG"] == "python"
    assert "REPO_URL" not in written["variables"]
    assert not any("git clone" in line for line in written["jobs"][BUILD_JOB]["before_script"])
    assert list(written["jobs"]) == [BUILD_JOB, DEPLOY_JOB]


def test_occupied_ports_move_allocation(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.write({"go.mod": "module example.com/app\n"})
    orchestrator = _orchestrator(
        tmp_path, disk_free_mb, enumerator=StaticSocketEnumerator({3000, 3001, 3002})
    )

    outcome = orchestrator.run(_request(repo_builder, tmp_path, port="3000"))

    assert outcome.allocation.resolved_port == 3003
    assert outcome.document.variables["EXPOSED_PORT"] == "3003"


def test_empty_repository_fails_without_writing(
    repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb, caplog: pytest.LogCaptureFixture
) -> None:
    request = _request(repo_builder, tmp_path)

    with caplog.at_level(logging.WARNING, logger="pipegen"):
        with pytest.raises(DetectionError):
            _orchestrator(tmp_path, disk_free_mb).run(request)

    assert not Path(request.output).exists()
    assert "Manual follow-up required" in caplog.text


def test_hint_is_used_when_nothing_detected(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.write({"main.rb": "puts 'hi'\n"})

    outcome = _orchestrator(tmp_path, disk_free_mb).run(
        _request(repo_builder, tmp_path, lang="ruby")
    )

    assert outcome.classification.ecosystem == Ecosystem.RUBY
    assert outcome.classification.provenance == Provenance.HINT


def test_accepted_conflicting_hint_overrides(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.requirements(["requests"])
    orchestrator = _orchestrator(tmp_path, disk_free_mb, confirmer=accept)

    outcome = orchestrator.run(_request(repo_builder, tmp_path, lang="go"))

    assert outcome.classification.ecosystem == Ecosystem.GO
    assert outcome.classification.provenance == Provenance.OVERRIDE


def test_invalid_port_fails_before_acquisition(tmp_path: Path, disk_free_mb) -> None:
    request = GenerationRequest(source=str(tmp_path / "missing"), port=70000)

    with pytest.raises(ValidationError):
        _orchestrator(tmp_path, disk_free_mb).run(request)


def test_missing_capability_fails_before_estimation(
    repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb
) -> None:
    repo_builder.requirements(["requests"])

    def no_tools():
        raise CapabilityMissingError("Neither 'ss' nor 'netstat' is available.")

    class ExplodingEstimator:
        def estimate(self, *args, **kwargs):  # pragma: no cover - must not be reached
            raise AssertionError("estimation should not start")

    orchestrator = Orchestrator(
        load_config(tmp_path / "no-config"),
        enumerator_factory=no_tools,
        estimator=ExplodingEstimator(),
        disk_usage=disk_free_mb(100_000),
    )

    with pytest.raises(CapabilityMissingError):
        orchestrator.run(_request(repo_builder, tmp_path))


def test_port_exhaustion_writes_nothing(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.requirements(["requests"])
    orchestrator = _orchestrator(
        tmp_path, disk_free_mb, enumerator=StaticSocketEnumerator(range(3000, 3101))
    )
    request = _request(repo_builder, tmp_path)

    with pytest.raises(PortExhaustionError):
        orchestrator.run(request)

    assert not Path(request.output).exists()


def test_low_disk_is_a_warning_not_a_failure(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.write({"Cargo.toml": '[package]\nname = "demo"\n'})
    orchestrator = _orchestrator(tmp_path, disk_free_mb, disk_usage=disk_free_mb(10))

    outcome = orchestrator.run(_request(repo_builder, tmp_path))

    assert outcome.path.exists()
    assert len(outcome.warnings) == 1
    assert outcome.warnings[0].available_mb == 10


def test_report_is_written_when_requested(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.write_json("package.json", {"dependencies": {"express": "^4"}})
    report = tmp_path / "dependencies.txt"

    outcome = _orchestrator(tmp_path, disk_free_mb).run(
        _request(repo_builder, tmp_path, report=report)
    )

    assert outcome.report_path == report
    assert report.read_text(encoding="utf-8").startswith("Dependency analysis:")


def test_repeated_runs_produce_identical_documents(
    repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb
) -> None:
    repo_builder.write({"pom.xml": "<project></project>\n", "mvnw": "#!/bin/sh\n"})
    orchestrator = _orchestrator(tmp_path, disk_free_mb)

    first = orchestrator.run(_request(repo_builder, tmp_path))
    first_text = first.path.read_text(encoding="utf-8")
    second = orchestrator.run(_request(repo_builder, tmp_path))

    assert second.document == first.document
    assert second.path.read_text(encoding="utf-8") == first_text


def test_local_checkout_uses_origin_remote(repo_builder: RepoBuilder, tmp_path: Path, disk_free_mb) -> None:
    repo_builder.requirements(["requests"])
    repo_builder.write({".git/HEAD": "ref: refs/heads/main\n"})
    calls = []

    def runner(args, cwd):
        calls.append(list(args))
        return "https://github.com/acme/app.git\n"

    orchestrator = _orchestrator(
        tmp_path, disk_free_mb, acquirer=RepositoryAcquirer(runner=runner)
    )
    outcome = orchestrator.run(_request(repo_builder, tmp_path))

    assert calls == [["git", "remote", "get-url", "origin"]]
    assert outcome.document.variables["REPO_URL"] == "https://github.com/acme/app.git"
    assert any("git clone" in line for line in outcome.document.job(BUILD_JOB).before_script)


def test_remote_source_is_emitted_as_clone_url(tmp_path: Path, disk_free_mb) -> None:
    def runner(args, cwd):
        destination = Path(args[-1])
        destination.mkdir(parents=True)
        (destination / "go.mod").write_text("module example.com/app\n", encoding="utf-8")
        return ""

    orchestrator = _orchestrator(
        tmp_path, disk_free_mb, acquirer=RepositoryAcquirer(runner=runner)
    )
    outcome = orchestrator.run(
        GenerationRequest(
            source="https://github.com/acme/app.git", output=tmp_path / "pipeline.yaml"
        )
    )

    assert outcome.document.variables["REPO_URL"] == "https://github.com/acme/app.git"
    assert outcome.classification.ecosystem == Ecosystem.GO
