"""FastAPI application exposing pipeline generation over HTTP."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..classifier import decline
from ..config import DEFAULT_BRANCH, DEFAULT_OUTPUT, DEFAULT_PORT, load_config
from ..errors import AcquisitionError, DetectionError, PipegenError
from ..logging import get_logger
from ..orchestrator import GenerationOutcome, GenerationRequest, Orchestrator

logger = get_logger("service")


class GenerateRequest(BaseModel):
    path: str
    branch: str = DEFAULT_BRANCH
    lang: Optional[str] = None
    port: Union[int, str] = DEFAULT_PORT
    output: str = DEFAULT_OUTPUT
    report: Optional[str] = None


class EstimateModel(BaseModel):
    disk_required_mb: int
    memory_required_mb: int
    disk_usage_level: str
    justification: str


class GenerateResponse(BaseModel):
    ecosystem: str
    provenance: str
    requested_port: int
    port: int
    estimate: EstimateModel
    output_path: str
    jobs: List[str]
    report_path: Optional[str] = None
    warnings: List[str] = []


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    # No terminal over HTTP: conflicting hints keep the detected language.
    return Orchestrator(load_config(Path.cwd()), confirmer=decline)


def _to_response(outcome: GenerationOutcome) -> GenerateResponse:
    estimate = outcome.estimate
    return GenerateResponse(
        ecosystem=outcome.classification.ecosystem,
        provenance=outcome.classification.provenance,
        requested_port=outcome.allocation.requested_port,
        port=outcome.allocation.resolved_port,
        estimate=EstimateModel(
            disk_required_mb=estimate.disk_required_mb,
            memory_required_mb=estimate.memory_required_mb,
            disk_usage_level=estimate.disk_usage_level,
            justification=estimate.justification,
        ),
        output_path=str(outcome.path),
        jobs=[job.name for job in outcome.document.jobs],
        report_path=str(outcome.report_path) if outcome.report_path else None,
        warnings=[str(warning) for warning in outcome.warnings],
    )


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing pipegen operations."""
    app = FastAPI(title="pipegen", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(
        payload: GenerateRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> GenerateResponse:
        request = GenerationRequest(
            source=payload.path,
            branch=payload.branch,
            lang=payload.lang,
            port=payload.port,
            output=Path(payload.output),
            report=Path(payload.report) if payload.report else None,
        )
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, orchestrator.run, request)
        return _to_response(outcome)

    @app.exception_handler(DetectionError)
    async def detection_error_handler(_: Any, exc: DetectionError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(AcquisitionError)
    async def acquisition_error_handler(_: Any, exc: AcquisitionError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PipegenError)
    async def pipegen_error_handler(_: Any, exc: PipegenError) -> JSONResponse:
        logger.warning("Generation failed: %s", exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)
