"""HTTP routes that trigger thread blocking, hangs and CPU load."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

import anyio.to_thread
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .config import Settings
from .fanout import Fanout
from .logging import get_logger
from .simulator import LoadSimulator
from .telemetry import get_tracer

logger = get_logger(__name__)
tracer = get_tracer(__name__)

router = APIRouter(prefix="/api/test", tags=["test-scenarios"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlockThreadResponse(_CamelModel):
    message: str
    thread: str
    duration: str
    internal: bool


class HangResponse(_CamelModel):
    message: str
    thread: str
    duration: str
    completed_at: datetime


class CpuIntensiveResponse(_CamelModel):
    message: str
    thread: str
    iterations: int
    duration: str
    result_checksum: int


class ThreadStatusResponse(_CamelModel):
    total_threads: int
    waiting_threads: int
    waiting_thread_names: list[str]
    locked_threads: int
    locked_thread_names: list[str]
    hanging_threads: int
    hanging_thread_names: list[str]
    lock_held: bool
    has_queued_threads: bool
    queue_length: int
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str


def get_simulator(request: Request) -> LoadSimulator:
    return request.app.state.simulator


def get_fanout(request: Request) -> Fanout:
    return request.app.state.fanout


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


Simulator = Annotated[LoadSimulator, Depends(get_simulator)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Seconds = Annotated[int, Query(ge=0)]


@router.get("/health", response_model=HealthResponse, summary="Health check")
def health(settings: AppSettings) -> HealthResponse:
    """Report liveness. Served by the bounded worker pool, so it stalls when the pool is exhausted."""
    logger.info("api.health")
    return HealthResponse(status="healthy", timestamp=datetime.now(UTC), service=settings.service_name)


@router.post(
    "/block-thread",
    response_model=BlockThreadResponse,
    summary="Block request threads on a shared lock",
    description=(
        "Fans out to the remaining request threads, then holds the shared lock for the given "
        "number of seconds. Waiting and holding threads are visible at /api/test/thread-status."
    ),
)
async def block_thread(
    simulator: Simulator,
    settings: AppSettings,
    fanout: Annotated[Fanout, Depends(get_fanout)],
    seconds: Seconds = 30,
    internal: Annotated[bool, Query(include_in_schema=False)] = False,  # noqa: FBT002
) -> BlockThreadResponse:
    with tracer.start_as_current_span("block-thread-endpoint"):
        logger.warning("api.block_thread", seconds=seconds, internal=internal)

        if not internal and settings.fanout_enabled:
            to_spawn = max(0, settings.worker_threads - 1)
            try:
                await fanout.dispatch(seconds, to_spawn)
            except Exception:  # noqa: BLE001 - fan-out never fails the primary call
                logger.exception("api.block_thread.fanout_failed", count=to_spawn)

        result = await anyio.to_thread.run_sync(
            lambda: simulator.block_for(seconds, internal=internal),
        )
        return BlockThreadResponse(
            message=f"Thread was blocked for {seconds} seconds",
            thread=result.caller_id,
            duration=f"{seconds}s",
            internal=result.internal,
        )


@router.post(
    "/hang",
    response_model=HangResponse,
    summary="Hang a request thread",
    description="Keeps the current request thread busy for the given number of seconds.",
)
async def hang(simulator: Simulator, seconds: Seconds = 90) -> HangResponse:
    with tracer.start_as_current_span("hang-thread-endpoint"):
        logger.warning("api.hang", seconds=seconds)
        result = await anyio.to_thread.run_sync(simulator.hang_for, seconds)
        return HangResponse(
            message=f"Thread hung for {seconds} seconds",
            thread=result.caller_id,
            duration=f"{seconds}s",
            completed_at=result.completed_at,
        )


@router.get("/thread-status", response_model=ThreadStatusResponse, summary="Lock contention status")
async def thread_status(simulator: Simulator) -> ThreadStatusResponse:
    """Runs on the event loop so contention stays observable while the pool is exhausted."""
    logger.info("api.thread_status")
    snapshot = simulator.snapshot_contention()
    return ThreadStatusResponse(
        total_threads=snapshot.total_threads,
        waiting_threads=len(snapshot.waiting),
        waiting_thread_names=list(snapshot.waiting),
        locked_threads=len(snapshot.holding),
        locked_thread_names=list(snapshot.holding),
        hanging_threads=len(snapshot.hanging),
        hanging_thread_names=list(snapshot.hanging),
        lock_held=snapshot.lock_held,
        has_queued_threads=snapshot.has_queued_threads,
        queue_length=snapshot.queue_length,
        timestamp=snapshot.timestamp,
    )


@router.post(
    "/cpu-intensive",
    response_model=CpuIntensiveResponse,
    summary="Burn CPU",
    description="Computes random square roots for the given number of seconds.",
)
async def cpu_intensive(simulator: Simulator, seconds: Seconds = 10) -> CpuIntensiveResponse:
    with tracer.start_as_current_span("cpu-intensive-endpoint"):
        logger.warning("api.cpu_intensive", seconds=seconds)
        result = await anyio.to_thread.run_sync(simulator.burn_cpu_for, seconds)
        return CpuIntensiveResponse(
            message="CPU intensive task completed",
            thread=result.caller_id,
            iterations=result.iterations,
            duration=f"{int(result.elapsed_seconds)}s",
            result_checksum=result.checksum,
        )
