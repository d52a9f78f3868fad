"""
Tracking view binding.

Responsibilities:
- Observe one delivery's location and status events on the realtime channel
  and/or the local tracking session. Never owns that state, only mirrors it.
- Keep an immutable TrackingViewData snapshot and push every new snapshot
  to subscribers (map markers, route line, readouts).
- Re-derive the route to the dropoff whenever the tracked position moves by
  at least MIN_ROUTE_UPDATE_DISTANCE, through the per-delivery route queue.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable

from .channel import RealtimeChannelClient
from .const import MIN_ROUTE_UPDATE_DISTANCE
from .errors import RouteUnavailableError
from .models import Location, LocationEvent, Order, OrderStatus, PositionSample, RouteInfo, StatusEvent
from .route_queue import RouteRequestQueue
from .tracking_session import LocationTrackingSession
from .tracking_view_data import TrackingViewData

_LOGGER = logging.getLogger(__name__)

RouteFetcher = Callable[[Location, Location], Awaitable[RouteInfo]]
ViewListener = Callable[[TrackingViewData], None]


class TrackingViewBinding:
    """Projects channel and session state for one delivery onto a view snapshot."""

    def __init__(
        self,
        delivery_id: str,
        pickup: Location | None,
        dropoff: Location | None,
        route_fetcher: RouteFetcher | None = None,
        status: OrderStatus | None = None,
        min_route_update_distance: float = MIN_ROUTE_UPDATE_DISTANCE,
        queue: RouteRequestQueue | None = None,
    ) -> None:
        self._route_fetcher = route_fetcher
        self._min_route_update_distance = min_route_update_distance
        self._queue = queue or RouteRequestQueue()

        # Origin of the last scheduled route; None forces the next query
        self._last_route_origin: Location | None = None
        self._route_tasks: set[asyncio.Task] = set()
        self._listeners: list[ViewListener] = []
        self._unsubscribers: list[Callable[[], None]] = []

        self.data = TrackingViewData(
            delivery_id=delivery_id,
            pickup=pickup,
            dropoff=dropoff,
            status=status,
        )

    @classmethod
    def from_order(cls, order: Order, **kwargs) -> TrackingViewBinding:
        return cls(
            order.id,
            order.pickup_location,
            order.delivery_location,
            status=order.status,
            **kwargs,
        )

    @property
    def delivery_id(self) -> str:
        return self.data.delivery_id

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def attach(self, channel: RealtimeChannelClient) -> None:
        """Mirror location and status events for this delivery from the channel."""
        self._unsubscribers.append(channel.on_location_received(self._on_location_event))
        self._unsubscribers.append(channel.on_status_received(self._on_status_event))

    def bind_session(self, session: LocationTrackingSession) -> None:
        """Mirror this device's own samples from a tracking session."""
        def _on_session(changed: LocationTrackingSession) -> None:
            sample = changed.current_location
            if sample is not None and sample is not self.data.self_location:
                self.update_self_location(sample)

        self._unsubscribers.append(session.add_listener(_on_session))

    def detach(self) -> None:
        """Stop observing every source registered through attach/bind_session."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _on_location_event(self, event: LocationEvent) -> None:
        if event.delivery_id != self.delivery_id:
            return
        self.update_counterparty_location(event.location, event.timestamp)

    def _on_status_event(self, event: StatusEvent) -> None:
        if event.delivery_id != self.delivery_id:
            return
        self.update_status(event.status)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_counterparty_location(self, location: Location, timestamp: str | None = None) -> None:
        self._set_data(
            dataclasses.replace(
                self.data, counterparty_location=location, counterparty_updated_at=timestamp
            )
        )
        self._schedule_route()

    def update_self_location(self, sample: PositionSample) -> None:
        self._set_data(dataclasses.replace(self.data, self_location=sample))
        self._schedule_route()

    def update_status(self, status: OrderStatus) -> None:
        """Change the status only; every other field of the snapshot is kept."""
        status = OrderStatus(status)
        if status is self.data.status:
            return
        _LOGGER.debug("Delivery %s status -> %s", self.delivery_id, status.value)
        self._set_data(dataclasses.replace(self.data, status=status))

    # ------------------------------------------------------------------
    # Route derivation
    # ------------------------------------------------------------------

    def _route_origin(self) -> Location | None:
        return self.data.tracked_position or self.data.pickup

    def _should_reroute(self, origin: Location) -> bool:
        last = self._last_route_origin
        if last is None:
            return True
        return (
            abs(origin.lat - last.lat) >= self._min_route_update_distance
            or abs(origin.lng - last.lng) >= self._min_route_update_distance
        )

    def _schedule_route(self, force: bool = False) -> asyncio.Task | None:
        """Launch a route task if the tracked position moved enough."""
        if self._route_fetcher is None or self.data.dropoff is None:
            return None
        origin = self._route_origin()
        if origin is None:
            return None
        if not force and not self._should_reroute(origin):
            return None

        self._last_route_origin = origin
        task = asyncio.ensure_future(self._run_route_query(origin))
        self._route_tasks.add(task)
        task.add_done_callback(self._route_tasks.discard)
        return task

    async def refresh_route(self) -> RouteInfo | None:
        """Query the route now, regardless of how far the position moved."""
        task = self._schedule_route(force=True)
        if task is None:
            return None
        return await task

    async def _run_route_query(self, origin: Location) -> RouteInfo | None:
        fut = await self._queue.enqueue(
            self.delivery_id, lambda: self._calculate_route(origin)
        )
        try:
            # Shielded: the future may be shared with a coalesced query
            return await asyncio.shield(fut)
        except asyncio.CancelledError:
            if fut.cancelled():
                return None
            raise
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Unexpected error calculating route for %s: %s", self.delivery_id, exc)
            return None

    async def _calculate_route(self, origin: Location) -> RouteInfo | None:
        """Fetch the route and push it; on failure keep the old route and set a notice."""
        try:
            route = await self._route_fetcher(origin, self.data.dropoff)
        except RouteUnavailableError as exc:
            _LOGGER.warning("Route unavailable for %s: %s", self.delivery_id, exc)
            self._set_data(dataclasses.replace(self.data, notice=f"Route unavailable: {exc}"))
            return None

        self._set_data(
            dataclasses.replace(
                self.data,
                route=route.coordinates,
                distance_km=route.distance_km,
                duration_min=route.duration_min,
                notice=None,
            )
        )
        return route

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        """Call listener(snapshot) on every change. Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set_data(self, data: TrackingViewData) -> None:
        self.data = data
        for listener in list(self._listeners):
            try:
                listener(data)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Tracking view listener failed: %s", exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Detach from all sources and cancel pending route work."""
        self.detach()
        self._queue.cancel(self.delivery_id)
        for task in list(self._route_tasks):
            task.cancel()
        if self._route_tasks:
            await asyncio.gather(*self._route_tasks, return_exceptions=True)
        self._route_tasks.clear()
