"""
Location tracking session.

Owns the decision to start and stop sampling the device position for one
delivery, and forwards every sample to the realtime channel while a
delivery id is set. No automatic retry: after a positioning error the
session stops and waits for the caller to start it again.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .channel import RealtimeChannelClient
from .const import (
    ONE_SHOT_MAX_SAMPLE_AGE_MS,
    ONE_SHOT_TIMEOUT_MS,
    WATCH_HIGH_ACCURACY,
    WATCH_MAX_SAMPLE_AGE_MS,
    WATCH_TIMEOUT_MS,
)
from .errors import PositioningError, UnsupportedError
from .geolocation import PositionProvider, RawPosition, WatchOptions
from .models import PositionSample, epoch_millis

_LOGGER = logging.getLogger(__name__)

SessionListener = Callable[["LocationTrackingSession"], None]

CONTINUOUS_OPTIONS = WatchOptions(
    high_accuracy=WATCH_HIGH_ACCURACY,
    timeout_ms=WATCH_TIMEOUT_MS,
    max_sample_age_ms=WATCH_MAX_SAMPLE_AGE_MS,
)
ONE_SHOT_OPTIONS = WatchOptions(
    high_accuracy=True,
    timeout_ms=ONE_SHOT_TIMEOUT_MS,
    max_sample_age_ms=ONE_SHOT_MAX_SAMPLE_AGE_MS,
)


class LocationTrackingSession:
    """Continuous self-location sharing for at most one delivery at a time."""

    def __init__(
        self,
        provider: PositionProvider,
        channel: RealtimeChannelClient | None = None,
    ) -> None:
        self.provider = provider
        self.channel = channel

        self.delivery_id: str | None = None
        self.active: bool = False
        self.last_error: str | None = None
        self.current_location: PositionSample | None = None

        self._watch_id: int | None = None
        # Identifies the current watch; callbacks from an older watch are ignored
        self._watch_token: object | None = None
        self._listeners: list[SessionListener] = []

    # ------------------------------------------------------------------
    # Continuous tracking
    # ------------------------------------------------------------------

    def start(self, delivery_id: str | None = None) -> None:
        """
        Begin continuous sampling, publishing each sample for delivery_id.

        Starting while already active stops the running watch first.
        Raises UnsupportedError when the host cannot produce positions.
        """
        if not self.provider.is_supported():
            error = UnsupportedError()
            self.last_error = str(error)
            self._notify()
            raise error

        if self.active:
            _LOGGER.debug("Restarting tracking (%s -> %s)", self.delivery_id, delivery_id)
            self.stop()

        token = object()
        self._watch_token = token
        self.delivery_id = delivery_id
        self.last_error = None
        self.active = True

        self._watch_id = self.provider.watch(
            CONTINUOUS_OPTIONS,
            lambda raw: self._on_sample(token, raw),
            lambda error: self._on_error(token, error),
        )
        _LOGGER.info("Location tracking started for %s", delivery_id or "no delivery")
        self._notify()

    def stop(self) -> None:
        """Release the provider watch. Calling it when idle does nothing."""
        if not self.active and self._watch_id is None:
            return

        if self._watch_id is not None:
            self.provider.clear_watch(self._watch_id)
        self._watch_id = None
        self._watch_token = None
        self.active = False
        _LOGGER.info("Location tracking stopped for %s", self.delivery_id or "no delivery")
        self.delivery_id = None
        self._notify()

    def _on_sample(self, token: object, raw: RawPosition) -> None:
        if token is not self._watch_token:
            return

        sample = PositionSample(
            latitude=raw.lat,
            longitude=raw.lng,
            captured_at_epoch_millis=epoch_millis(),
            accuracy_meters=raw.accuracy,
        )
        self.current_location = sample

        if self.delivery_id and self.channel is not None:
            if not self.channel.publish_location(self.delivery_id, sample.as_location()):
                _LOGGER.debug("Location for %s not sent (channel offline)", self.delivery_id)

        self._notify()

    def _on_error(self, token: object, error: PositioningError) -> None:
        if token is not self._watch_token:
            return
        _LOGGER.warning("Positioning failed (%s): %s", error.reason, error.message)
        self.last_error = f"Location error: {error.message}"
        self.stop()

    # ------------------------------------------------------------------
    # One-shot request
    # ------------------------------------------------------------------

    async def get_current_location(self) -> PositionSample:
        """
        Resolve a single position, independent of any continuous watch.

        Raises UnsupportedError or PositioningError.
        """
        if not self.provider.is_supported():
            raise UnsupportedError()

        try:
            raw = await asyncio.wait_for(
                self.provider.get_current_position(ONE_SHOT_OPTIONS),
                timeout=ONE_SHOT_OPTIONS.timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            raise PositioningError(PositioningError.TIMEOUT) from exc

        return PositionSample(
            latitude=raw.lat,
            longitude=raw.lng,
            captured_at_epoch_millis=epoch_millis(),
            accuracy_meters=raw.accuracy,
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Call listener(session) after every state change. Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Tracking session listener failed: %s", exc)
