"""HTTP service mode for pipegen (install the ``service`` extra)."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
