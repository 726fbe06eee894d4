"""Tests for resource estimation."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from pipegen.errors import DiskWarning
from pipegen.models import Classification, DiskUsageLevel, Ecosystem, Provenance
from pipegen.resources import (
    MIN_DISK_MB,
    ResourceEstimator,
    check_disk_space,
    classify_disk_usage,
    dependency_count,
    disk_multiplier,
    estimate_disk_mb,
)
from pipegen.rules import rule_for
from tests._fixtures.repo_builder import RepoBuilder


def _classified(ecosystem: str) -> Classification:
    return Classification(ecosystem=ecosystem, provenance=Provenance.DETECTED, detected=ecosystem)


def _estimator(size_kb: Optional[int] = 64) -> ResourceEstimator:
    return ResourceEstimator(size_probe=lambda _root: size_kb)


@pytest.mark.parametrize(
    ("ecosystem", "deps", "expected"),
    [
        (Ecosystem.NODE, 0, 10),
        (Ecosystem.NODE, 30, 20),
        (Ecosystem.NODE, 1000, 100),
        (Ecosystem.PYTHON, 10, 25),
        (Ecosystem.PYTHON, 40, 50),
        (Ecosystem.JAVA, 200, 30),
        (Ecosystem.GO, 50, 4),
    ],
)
def test_disk_multiplier_table(ecosystem: str, deps: int, expected: int) -> None:
    assert disk_multiplier(rule_for(ecosystem).profile, deps) == expected


def test_disk_estimate_has_floor_and_is_monotone() -> None:
    assert estimate_disk_mb(None, 30) == MIN_DISK_MB
    assert estimate_disk_mb(1, 4) == MIN_DISK_MB

    previous = 0
    for size_kb in (0, 10_240, 51_200, 204_800, 1_048_576):
        value = estimate_disk_mb(size_kb, 10)
        assert value >= MIN_DISK_MB
        assert value >= previous
        previous = value

    assert estimate_disk_mb(204_800, 10) == 2000


def test_unparsed_package_json_uses_fallback_count(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"package.json": "{ broken"})
    probe = repo_builder.probe()

    assert dependency_count(probe, rule_for(Ecosystem.NODE).profile) == 20


@pytest.mark.parametrize(
    ("count", "level"),
    [(0, DiskUsageLevel.LOW), (1, DiskUsageLevel.MEDIUM), (3, DiskUsageLevel.MEDIUM), (4, DiskUsageLevel.HIGH)],
)
def test_classify_disk_usage(count: int, level: str) -> None:
    assert classify_disk_usage(count) == level


def test_plain_repository_is_low_disk_usage(repo_builder: RepoBuilder) -> None:
    repo_builder.requirements(["flask"])
    repo_builder.write({"app.py": "def add(a, b):\n    return a + b\n"})

    estimate = _estimator().estimate(
        repo_builder.path(), _classified(Ecosystem.PYTHON), repo_builder.probe()
    )

    assert estimate.disk_usage_level == DiskUsageLevel.LOW
    assert estimate.disk_required_mb == MIN_DISK_MB
    assert estimate.dependency_count == 1
    assert "no persistent-write patterns" in estimate.justification


def test_single_file_handler_is_medium(repo_builder: RepoBuilder) -> None:
    repo_builder.requirements(["requests"])
    repo_builder.write(
        {
            "service.py": """
                import logging

                handler = logging.FileHandler("service.log")
                logging.getLogger().addHandler(handler)
            """
        }
    )

    estimate = _estimator().estimate(
        repo_builder.path(), _classified(Ecosystem.PYTHON), repo_builder.probe()
    )

    assert estimate.write_categories == ("log_handler",)
    assert estimate.disk_usage_level == DiskUsageLevel.MEDIUM


def test_many_write_categories_is_high(repo_builder: RepoBuilder) -> None:
    repo_builder.write_json("package.json", {"dependencies": {"better-sqlite3": "^9"}})
    repo_builder.write(
        {
            "index.js": """
                const fs = require('fs');
                const Database = require('better-sqlite3');
                const os = require('os');
                fs.writeFileSync('out.txt', 'data');
                const cache = os.tmpdir();
            """,
            "Dockerfile": "FROM node:20\nVOLUME /data\n",
        }
    )

    estimate = _estimator().estimate(
        repo_builder.path(), _classified(Ecosystem.NODE), repo_builder.probe()
    )

    assert set(estimate.write_categories) == {
        "file_write",
        "cache_temp",
        "embedded_database",
        "container_volume",
    }
    assert estimate.disk_usage_level == DiskUsageLevel.HIGH


def test_data_loading_promotes_low_to_medium(repo_builder: RepoBuilder) -> None:
    repo_builder.requirements(["pandas"])
    repo_builder.write({"report.py": "import pandas as pd\nframe = pd.read_csv('input.csv')\n"})

    estimate = _estimator().estimate(
        repo_builder.path(), _classified(Ecosystem.PYTHON), repo_builder.probe()
    )

    assert estimate.write_categories == ()
    assert estimate.disk_usage_level == DiskUsageLevel.MEDIUM
    assert "data loading" in estimate.justification


def test_unmeasurable_size_falls_back_to_floor(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"go.mod": "module example.com/app\n"})

    estimate = _estimator(size_kb=None).estimate(
        repo_builder.path(), _classified(Ecosystem.GO), repo_builder.probe()
    )

    assert estimate.disk_required_mb == MIN_DISK_MB
    assert estimate.repo_size_kb is None
    assert "unknown size" in estimate.justification


def test_memory_estimate_grows_with_dependencies(repo_builder: RepoBuilder) -> None:
    small = _estimator().estimate(
        repo_builder.path(),
        _classified(Ecosystem.PYTHON),
        repo_builder.probe(),
    )
    repo_builder.requirements([f"pkg{i}" for i in range(30)])
    large = _estimator().estimate(
        repo_builder.path(), _classified(Ecosystem.PYTHON), repo_builder.probe()
    )

    assert large.memory_required_mb > small.memory_required_mb


def test_check_disk_space_warns_when_short(disk_free_mb) -> None:
    warning = check_disk_space(2000, usage=disk_free_mb(100))

    assert isinstance(warning, DiskWarning)
    assert warning.required_mb == 2000
    assert warning.available_mb == 100


def test_check_disk_space_silent_when_enough(disk_free_mb) -> None:
    assert check_disk_space(500, usage=disk_free_mb(10_000)) is None


def test_check_disk_space_tolerates_errors(tmp_path: Path) -> None:
    def failing(_path: str):
        raise OSError("no statvfs")

    assert check_disk_space(500, tmp_path, usage=failing) is None
