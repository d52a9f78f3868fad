"""
RouteRequestQueue: serialises routing queries per delivery.

This is a pure asyncio concurrency primitive with no network dependencies.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .const import ROUTE_REQUEST_DELAY

_LOGGER = logging.getLogger(__name__)


class RouteRequestQueue:
    """
    Serialises route queries for each delivery.

    Queries for different deliveries run in parallel; queries for the same
    delivery run one at a time with ``delay`` between them. While a query is
    waiting, enqueueing another for the same delivery replaces it (the newest
    position wins) and both callers share one Future.
    """

    def __init__(self, delay: float = ROUTE_REQUEST_DELAY) -> None:
        self.delay = delay
        # delivery_id → asyncio.Queue of [coro_factory, Future] entries
        self._queues: dict[str, asyncio.Queue] = {}
        # delivery_id → worker Task
        self._workers: dict[str, asyncio.Task] = {}
        # delivery_id → entry queued but not started yet
        self._waiting: dict[str, list] = {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        delivery_id: str,
        coro_factory: Callable[[], Any],
    ) -> asyncio.Future:
        """
        Schedule coro_factory() on the queue for delivery_id.

        If a query for this delivery is already waiting, its factory is
        swapped for the new one and its Future is returned.
        """
        self._ensure_delivery(delivery_id)

        waiting = self._waiting.get(delivery_id)
        if waiting is not None:
            waiting[0] = coro_factory
            return waiting[1]

        fut = asyncio.get_running_loop().create_future()
        entry = [coro_factory, fut]
        self._waiting[delivery_id] = entry
        await self._queues[delivery_id].put(entry)
        return fut

    def cancel(self, delivery_id: str) -> None:
        """Drop the worker and any waiting query for one delivery."""
        worker = self._workers.pop(delivery_id, None)
        if worker is not None:
            worker.cancel()
        self._queues.pop(delivery_id, None)
        entry = self._waiting.pop(delivery_id, None)
        if entry is not None and not entry[1].done():
            entry[1].cancel()

    async def shutdown(self) -> None:
        """Cancel all worker tasks and drain queues."""
        for task in self._workers.values():
            task.cancel()
        results = await asyncio.gather(*self._workers.values(), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _LOGGER.debug("RouteRequestQueue worker error during shutdown: %s", result)
        for entry in self._waiting.values():
            if not entry[1].done():
                entry[1].cancel()
        self._workers.clear()
        self._queues.clear()
        self._waiting.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_delivery(self, delivery_id: str) -> None:
        """Create queue and worker for delivery_id if they do not exist yet."""
        if delivery_id not in self._queues:
            self._queues[delivery_id] = asyncio.Queue()
            self._workers[delivery_id] = asyncio.ensure_future(
                self._worker(delivery_id, self._queues[delivery_id])
            )

    async def _worker(self, delivery_id: str, queue: asyncio.Queue) -> None:
        """Consume queries from this delivery's queue indefinitely."""
        while True:
            entry = await queue.get()
            if self._waiting.get(delivery_id) is entry:
                del self._waiting[delivery_id]
            coro_factory, fut = entry
            try:
                result = await coro_factory()
                if not fut.done():
                    fut.set_result(result)
            except Exception as exc:  # noqa: BLE001
                if not fut.done():
                    fut.set_exception(exc)
            finally:
                queue.task_done()
                # Honour the minimum gap before taking the next query
                await asyncio.sleep(self.delay)
