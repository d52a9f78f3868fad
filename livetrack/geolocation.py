"""
Geolocation source.

PositionProvider is the contract for the host's positioning capability
(GPS daemon, phone bridge, browser relay). It is an external collaborator:
this module only defines the interface and ships a simulated provider used
for demos and the mock data mode.
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
import itertools
import logging
import random
import time
from typing import Callable

from .const import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    SIMULATION_ACCURACY,
    SIMULATION_INTERVAL,
    SIMULATION_JITTER,
)
from .errors import PositioningError

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class WatchOptions:
    high_accuracy: bool = True
    timeout_ms: int = 10000
    max_sample_age_ms: int = 0


@dataclasses.dataclass(frozen=True)
class RawPosition:
    """A position as reported by the provider."""

    lat: float
    lng: float
    accuracy: float | None
    timestamp: float  # provider time, epoch seconds


SampleCallback = Callable[[RawPosition], None]
ErrorCallback = Callable[[PositioningError], None]


class PositionProvider(abc.ABC):
    """Host positioning capability."""

    @abc.abstractmethod
    def is_supported(self) -> bool:
        """Return False when the host cannot produce positions at all."""

    @abc.abstractmethod
    def watch(self, options: WatchOptions, on_sample: SampleCallback, on_error: ErrorCallback) -> int:
        """
        Start delivering positions to on_sample until clear_watch() is called.

        Errors are delivered to on_error; the provider keeps the watch
        registered, it is up to the caller to clear it.
        """

    @abc.abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop a watch. Unknown ids are ignored."""

    @abc.abstractmethod
    async def get_current_position(self, options: WatchOptions) -> RawPosition:
        """Resolve a single position or raise PositioningError."""


class SimulatedPositionProvider(PositionProvider):
    """
    Random walk around a start point, one sample every ``interval`` seconds.

    Mimics a delivery partner moving in small steps; each watch gets its own
    asyncio task, all watches share the walker's current position.
    """

    def __init__(
        self,
        lat: float = DEFAULT_LATITUDE,
        lng: float = DEFAULT_LONGITUDE,
        interval: float = SIMULATION_INTERVAL,
        jitter: float = SIMULATION_JITTER,
        rng: random.Random | None = None,
    ) -> None:
        self._lat = lat
        self._lng = lng
        self._last_fix: RawPosition | None = None
        self.interval = interval
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._ids = itertools.count(1)
        self._watches: dict[int, asyncio.Task] = {}

    def is_supported(self) -> bool:
        return True

    def watch(self, options: WatchOptions, on_sample: SampleCallback, on_error: ErrorCallback) -> int:
        watch_id = next(self._ids)
        self._watches[watch_id] = asyncio.ensure_future(self._run_watch(watch_id, on_sample))
        _LOGGER.debug("Simulated watch %s started", watch_id)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        task = self._watches.pop(watch_id, None)
        if task is not None:
            task.cancel()
            _LOGGER.debug("Simulated watch %s cleared", watch_id)

    async def get_current_position(self, options: WatchOptions) -> RawPosition:
        last = self._last_fix
        if last is not None and (time.time() - last.timestamp) * 1000 <= options.max_sample_age_ms:
            return last
        return self._step()

    async def shutdown(self) -> None:
        """Cancel all running watches."""
        tasks = list(self._watches.values())
        self._watches.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _step(self) -> RawPosition:
        self._lat += (self._rng.random() - 0.5) * 2 * self.jitter
        self._lng += (self._rng.random() - 0.5) * 2 * self.jitter
        self._last_fix = RawPosition(self._lat, self._lng, SIMULATION_ACCURACY, time.time())
        return self._last_fix

    async def _run_watch(self, watch_id: int, on_sample: SampleCallback) -> None:
        while True:
            try:
                on_sample(self._step())
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Sample callback for watch %s failed: %s", watch_id, exc)
            await asyncio.sleep(self.interval)
