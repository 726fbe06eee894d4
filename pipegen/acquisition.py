"""Repository acquisition: shallow git clones or in-place local directories."""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Callable, Optional, Sequence

from .errors import AcquisitionError, ValidationError
from .logging import get_logger

_REMOTE_PATTERN = re.compile(r"^(?:https?://|ssh://|git://|file://|git@[^:]+:)")


def is_remote(source: str) -> bool:
    return bool(_REMOTE_PATTERN.match(source.strip()))


def repository_name(source: str) -> str:
    """Return the trailing repository name of a URL or path, without ``.git``."""
    tail = re.split(r"[/:]", source.rstrip("/"))[-1]
    return tail[:-4] if tail.endswith(".git") else tail or "repo"


class RepositoryAcquirer:
    """Obtains a working copy of the repository to inspect."""

    def __init__(self, runner: Callable[..., str] | None = None) -> None:
        self._runner = runner or self._default_runner
        self.logger = get_logger("acquisition")

    def acquire(self, source: str, ref: str, workdir: Path) -> Path:
        """Return a directory holding ``source`` at ``ref``.

        Remote sources are cloned (depth 1) below ``workdir``; local paths are
        inspected in place and never modified.
        """
        if not source or not source.strip():
            raise ValidationError("A repository source (--repo or --dir) is required")

        if is_remote(source):
            destination = Path(workdir) / repository_name(source)
            self.logger.info("Cloning %s (branch: %s)", source, ref)
            try:
                self._runner(
                    ["git", "clone", "--depth", "1", "--branch", ref, source, str(destination)],
                    cwd=Path(workdir),
                )
            except (OSError, subprocess.CalledProcessError) as exc:
                raise AcquisitionError(
                    f"Failed to clone {source} (branch {ref}). Check the URL and branch."
                ) from exc
            return destination

        path = Path(source).expanduser().resolve()
        if not path.is_dir():
            raise AcquisitionError(f"Directory {source} does not exist")
        self.logger.info("Using local repository at %s", path)
        return path

    def origin_url(self, root: Path) -> Optional[str]:
        """Cloneable URL of the checkout's ``origin`` remote, if it has one."""
        if not (Path(root) / ".git").exists():
            return None
        try:
            url = self._runner(["git", "remote", "get-url", "origin"], cwd=Path(root)).strip()
        except (OSError, subprocess.CalledProcessError):
            self.logger.debug("No origin remote configured in %s", root)
            return None
        if not is_remote(url):
            self.logger.debug("Origin %s of %s is not cloneable from a runner", url, root)
            return None
        return url

    @staticmethod
    def _default_runner(args: Sequence[str], cwd: Path) -> str:
        result = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout
