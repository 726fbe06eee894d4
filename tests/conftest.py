from __future__ import annotations

import logging
from collections import namedtuple
from pathlib import Path
from typing import Callable

import pytest

from pipegen.ports import StaticSocketEnumerator
from tests._fixtures.repo_builder import RepoBuilder

_DiskUsage = namedtuple("_DiskUsage", "total used free")


@pytest.fixture(autouse=True)
def _reset_pipegen_logger():
    """Undo CLI logging setup so caplog sees records in later tests."""
    yield
    logger = logging.getLogger("pipegen")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def no_sockets() -> StaticSocketEnumerator:
    """Enumerator reporting that nothing is listening."""
    return StaticSocketEnumerator()


@pytest.fixture
def disk_free_mb() -> Callable[[int], Callable[[str], _DiskUsage]]:
    """Build a ``shutil.disk_usage`` stand-in reporting ``free_mb`` megabytes free."""

    def _factory(free_mb: int) -> Callable[[str], _DiskUsage]:
        free = free_mb * 1024 * 1024
        return lambda _path: _DiskUsage(total=free * 2, used=free, free=free)

    return _factory
