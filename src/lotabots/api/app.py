"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from lotabots.api.routes import devices, health, runs
from lotabots.core.config import AppSettings
from lotabots.devices.detector import DeviceDetector
from lotabots.devices.torch_device import TorchDeviceBackend
from lotabots.orchestration import PipelineOrchestrator, create_orchestrator

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str | None], PipelineOrchestrator]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Fill in any collaborators not injected through ``create_app``."""
    settings = app.state.settings or AppSettings()
    app.state.settings = settings
    if app.state.orchestrator_factory is None:
        app.state.orchestrator_factory = lambda token: create_orchestrator(settings, token=token)
    if app.state.detector is None:
        app.state.detector = DeviceDetector(
            TorchDeviceBackend(), marker_root=settings.quantize.device_marker_root,
        )
    logger.info("Lotabots API ready (environment=%s)", settings.environment)
    yield


def create_app(
    settings: AppSettings | None = None,
    orchestrator_factory: OrchestratorFactory | None = None,
    detector: DeviceDetector | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Lotabots Quantization Pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator_factory = orchestrator_factory
    app.state.detector = detector
    app.include_router(health.router)
    app.include_router(devices.router)
    app.include_router(runs.router)
    return app
