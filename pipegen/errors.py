"""Error taxonomy for pipeline generation runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .models import ProbeResult


class PipegenError(RuntimeError):
    """Base class for fatal errors; each maps to a CLI exit code."""

    exit_code = 1


class ValidationError(PipegenError):
    """Raised for malformed input such as an out-of-range port."""

    exit_code = 2


class ConfigError(ValidationError):
    """Raised when the configuration file cannot be parsed."""


class AcquisitionError(PipegenError):
    """Raised when the repository cannot be cloned or located."""

    exit_code = 3


class DetectionError(PipegenError):
    """Raised when no ecosystem rule matches and no hint was supplied."""

    exit_code = 4

    def __init__(self, message: str, probe: "ProbeResult | None" = None) -> None:
        super().__init__(message)
        self.probe = probe


class CapabilityMissingError(PipegenError):
    """Raised when no socket enumeration tool is available."""

    exit_code = 5


class PortExhaustionError(PipegenError):
    """Raised when every port in the search window is bound."""

    exit_code = 6

    def __init__(self, requested: int, window_end: int) -> None:
        super().__init__(
            f"No free port found in range {requested}-{window_end}; "
            "retry with a different --port."
        )
        self.requested = requested
        self.window_end = window_end


class DiskWarning(UserWarning):
    """Available disk space is below the estimate. Advisory only."""

    def __init__(self, required_mb: int, available_mb: int) -> None:
        super().__init__(
            f"Insufficient disk space for the pipeline: {required_mb} MB required, "
            f"{available_mb} MB available"
        )
        self.required_mb = required_mb
        self.available_mb = available_mb


__all__ = [
    "AcquisitionError",
    "CapabilityMissingError",
    "ConfigError",
    "DetectionError",
    "DiskWarning",
    "PipegenError",
    "PortExhaustionError",
    "ValidationError",
]
