"""FastAPI application wiring for the failure lab service."""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator  # noqa: TC003
from contextlib import asynccontextmanager
from types import FrameType  # noqa: TC003

import anyio.to_thread
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import Database
from .entities import TestEntityService
from .entities.routes import router as entities_router
from .exceptions import EntityNotFoundError
from .fanout import Fanout, build_fanout
from .heartbeat import HeartbeatScheduler
from .logging import configure_logging, get_logger
from .monitor import RestartMonitor
from .scenarios import router as scenarios_router
from .simulator import LoadSimulator
from .telemetry import configure_tracing, shutdown_tracing

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Size the worker pool, start background logging, and unwind on shutdown."""
    settings: Settings = app.state.settings
    configure_logging()
    configure_tracing(settings)

    # Sync endpoints and simulator work share this one bounded pool
    limiter = anyio.to_thread.current_default_thread_limiter()
    limiter.total_tokens = settings.worker_threads
    logger.info("api.startup", worker_threads=settings.worker_threads, fanout_mode=settings.fanout_mode)

    app.state.heartbeat.start()
    app.state.monitor.mark_ready()

    yield

    logger.info("api.shutdown")
    app.state.heartbeat.stop()
    app.state.simulator.close()
    await app.state.fanout.shutdown()
    app.state.database.dispose()
    shutdown_tracing()


async def entity_not_found_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: RUF029
    logger.warning("api.not_found", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


class SimulatorAwareServer(uvicorn.Server):
    """Uvicorn server that unwinds simulator callers as soon as an exit signal arrives.

    Uvicorn drains in-flight requests before the lifespan shutdown runs, so
    blocked and hanging requests have to be released from the signal handler
    or they hold the process for their full duration.
    """

    def __init__(self, config: uvicorn.Config, simulator: LoadSimulator) -> None:
        super().__init__(config)
        self.simulator = simulator

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        logger.info("api.exit_signal", signal=sig)
        self.simulator.close()
        super().handle_exit(sig, frame)


def create_app(
    settings: Settings | None = None,
    simulator: LoadSimulator | None = None,
    fanout: Fanout | None = None,
) -> FastAPI:
    """Build the application and its collaborators.

    Args:
        settings: Application settings. Defaults to environment settings.
        simulator: Load simulator to expose. A fresh one is created by default.
        fanout: Fan-out strategy. Defaults to the one selected by settings.

    Returns:
        The configured FastAPI application.

    """
    settings = settings or get_settings()
    simulator = simulator or LoadSimulator()

    database = Database(settings.database_url)
    database.create_schema()
    entity_service = TestEntityService(database)

    app = FastAPI(
        title="Failure Lab API",
        description="Thread blocking, hangs and CPU load scenarios for orchestration testing.",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.simulator = simulator
    app.state.fanout = fanout or build_fanout(settings, simulator)
    app.state.database = database
    app.state.entity_service = entity_service
    app.state.monitor = RestartMonitor()
    app.state.heartbeat = HeartbeatScheduler(settings, entity_service, started_at=time.monotonic())

    app.add_exception_handler(EntityNotFoundError, entity_not_found_handler)
    app.include_router(scenarios_router)
    app.include_router(entities_router)

    @app.get("/actuator/restart-monitor", tags=["actuator"], summary="Restart information")
    async def restart_monitor() -> dict[str, object]:
        return app.state.monitor.restart_info()

    return app


app = create_app()
