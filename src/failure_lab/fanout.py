"""Fan-out of internal block-thread calls used to saturate the worker pool.

One external ``block-thread`` request schedules ``worker_threads - 1``
additional internal invocations so that, together with the caller itself,
every slot of the bounded pool ends up occupied. Dispatch is fire and
forget: failures are logged and never reach the primary request.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import anyio.to_thread
import httpx

from .exceptions import FanoutError
from .logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

    from .config import Settings
    from .simulator import LoadSimulator

logger = get_logger(__name__)

BLOCK_THREAD_PATH = "/api/test/block-thread"


class Fanout(Protocol):
    """Schedules additional internal block-thread invocations."""

    async def dispatch(self, seconds: int, count: int) -> None: ...

    async def shutdown(self) -> None: ...


class _BackgroundTasks:
    """Keeps references to in-flight background tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait for all currently tracked tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class HttpFanout(_BackgroundTasks):
    """Fan out by POSTing back to the running service over loopback HTTP."""

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def dispatch(self, seconds: int, count: int) -> None:
        if count <= 0:
            return
        self.spawn(self._send_all(seconds, count))
        logger.info(
            "fanout.http.spawned",
            count=count,
            seconds=seconds,
            base_url=self.base_url,
        )

    async def shutdown(self) -> None:
        await self.cancel()

    async def _send_all(self, seconds: int, count: int) -> None:
        timeout = httpx.Timeout(max(5, seconds + 5), connect=5.0)
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(
                *(self._send_one(client, seconds) for _ in range(count)),
                return_exceptions=True,
            )
        for result in results:
            if isinstance(result, BaseException):
                logger.error("fanout.http.failed", error=repr(result))

    async def _send_one(self, client: httpx.AsyncClient, seconds: int) -> None:
        try:
            response = await client.post(
                BLOCK_THREAD_PATH,
                params={"seconds": seconds, "internal": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            msg = f"Internal fan-out request failed: {exc!r}"
            raise FanoutError(msg) from exc


class LocalFanout(_BackgroundTasks):
    """Fan out by running internal calls directly on the shared worker pool."""

    def __init__(self, simulator: LoadSimulator) -> None:
        super().__init__()
        self.simulator = simulator

    async def dispatch(self, seconds: int, count: int) -> None:
        if count <= 0:
            return
        for _ in range(count):
            self.spawn(self._run_one(seconds))
        logger.info("fanout.local.spawned", count=count, seconds=seconds)

    async def shutdown(self) -> None:
        self.simulator.cancel_all()
        await self.wait()

    async def _run_one(self, seconds: int) -> None:
        try:
            await anyio.to_thread.run_sync(
                lambda: self.simulator.block_for(seconds, internal=True),
            )
        except Exception as exc:  # noqa: BLE001 - fan-out failures never reach the caller
            logger.error("fanout.local.failed", error=repr(exc))


def build_fanout(settings: Settings, simulator: LoadSimulator) -> Fanout:
    """Create the fan-out strategy selected by ``settings.fanout_mode``."""
    if settings.fanout_mode == "local":
        return LocalFanout(simulator)
    return HttpFanout(settings.loopback_url)
