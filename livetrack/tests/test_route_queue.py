"""
Tests for RouteRequestQueue: serialisation, latest-wins coalescing,
parallel execution across deliveries, error propagation, and shutdown.
"""

from __future__ import annotations

import asyncio
import time
import unittest
from unittest.mock import AsyncMock

from livetrack.route_queue import RouteRequestQueue


class TestRouteRequestQueue(unittest.IsolatedAsyncioTestCase):

    async def test_result_returned_via_future(self):
        queue = RouteRequestQueue(delay=0)
        fut = await queue.enqueue("ORD002", AsyncMock(return_value="route"))
        result = await asyncio.wait_for(fut, timeout=2)
        self.assertEqual(result, "route")
        await queue.shutdown()

    async def test_waiting_query_replaced_by_newer(self):
        """Two queries enqueued before the worker starts: only the newer runs."""
        queue = RouteRequestQueue(delay=0)
        older = AsyncMock(return_value="old")
        newer = AsyncMock(return_value="new")

        fut1 = await queue.enqueue("ORD002", older)
        fut2 = await queue.enqueue("ORD002", newer)

        self.assertIs(fut1, fut2)
        self.assertEqual(await asyncio.wait_for(fut1, timeout=2), "new")
        older.assert_not_called()
        newer.assert_awaited_once()
        await queue.shutdown()

    async def test_running_query_not_replaced(self):
        queue = RouteRequestQueue(delay=0)
        started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def slow():
            calls.append("slow")
            started.set()
            await release.wait()
            return "slow"

        async def job(name):
            calls.append(name)
            return name

        fut_running = await queue.enqueue("ORD002", slow)
        await asyncio.wait_for(started.wait(), timeout=2)

        fut_b = await queue.enqueue("ORD002", lambda: job("b"))
        fut_c = await queue.enqueue("ORD002", lambda: job("c"))
        self.assertIs(fut_b, fut_c)
        self.assertIsNot(fut_running, fut_b)

        release.set()
        self.assertEqual(await asyncio.wait_for(fut_running, timeout=2), "slow")
        self.assertEqual(await asyncio.wait_for(fut_c, timeout=2), "c")
        self.assertEqual(calls, ["slow", "c"])
        await queue.shutdown()

    async def test_different_deliveries_run_in_parallel(self):
        queue = RouteRequestQueue(delay=0)
        start_times = {}

        async def timed_job(delivery_id):
            start_times[delivery_id] = time.monotonic()
            await asyncio.sleep(0.1)
            return delivery_id

        fut1 = await queue.enqueue("ORD002", lambda: timed_job("ORD002"))
        fut2 = await queue.enqueue("ORD003", lambda: timed_job("ORD003"))
        await asyncio.wait_for(asyncio.gather(fut1, fut2), timeout=2)

        self.assertLess(abs(start_times["ORD002"] - start_times["ORD003"]), 0.05)
        await queue.shutdown()

    async def test_delay_between_queries(self):
        queue = RouteRequestQueue(delay=0.1)
        times = []

        async def job():
            times.append(time.monotonic())

        first = await queue.enqueue("ORD002", job)
        await asyncio.wait_for(first, timeout=2)
        second = await queue.enqueue("ORD002", job)
        await asyncio.wait_for(second, timeout=2)

        self.assertGreaterEqual(times[1] - times[0], 0.09)
        await queue.shutdown()

    async def test_exception_propagated_to_future(self):
        queue = RouteRequestQueue(delay=0)
        fut = await queue.enqueue("ORD002", AsyncMock(side_effect=ValueError("no route")))
        with self.assertRaises(ValueError):
            await asyncio.wait_for(fut, timeout=2)
        await queue.shutdown()

    async def test_worker_survives_failed_query(self):
        queue = RouteRequestQueue(delay=0)
        fut1 = await queue.enqueue("ORD002", AsyncMock(side_effect=RuntimeError("boom")))
        with self.assertRaises(RuntimeError):
            await asyncio.wait_for(fut1, timeout=2)

        fut2 = await queue.enqueue("ORD002", AsyncMock(return_value="ok"))
        self.assertEqual(await asyncio.wait_for(fut2, timeout=2), "ok")
        await queue.shutdown()

    async def test_cancel_drops_waiting_query(self):
        queue = RouteRequestQueue(delay=0)
        job = AsyncMock(return_value="route")
        fut = await queue.enqueue("ORD002", job)
        queue.cancel("ORD002")

        self.assertTrue(fut.cancelled())
        await asyncio.sleep(0.01)
        job.assert_not_called()
        await queue.shutdown()

    async def test_cancel_unknown_delivery(self):
        queue = RouteRequestQueue()
        queue.cancel("ORD999")
        await queue.shutdown()

    async def test_shutdown_cancels_workers(self):
        queue = RouteRequestQueue(delay=0)
        await queue.enqueue("ORD002", AsyncMock(return_value=None))
        await queue.enqueue("ORD003", AsyncMock(return_value=None))
        await queue.shutdown()
        self.assertEqual(queue._workers, {})
        self.assertEqual(queue._queues, {})
