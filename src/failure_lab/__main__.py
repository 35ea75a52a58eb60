"""CLI helper for running the failure lab API."""

from __future__ import annotations

import uvicorn

from .config import get_settings
from .logging import configure_logging, get_logger
from .service import SimulatorAwareServer, app


def run() -> None:
    """Run the FastAPI application with uvicorn."""
    settings = get_settings()
    configure_logging()
    logger = get_logger(__name__)
    logger.info("api.run", host=settings.api_host, port=settings.api_port, worker_threads=settings.worker_threads)

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
    SimulatorAwareServer(config, app.state.simulator).run()


if __name__ == "__main__":
    run()
