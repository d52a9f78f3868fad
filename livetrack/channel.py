"""
Realtime channel client.

Responsibilities:
- Own the single Socket.IO connection of a user session.
- Scope traffic to per-delivery rooms (join-tracking / leave-tracking).
- Publish location and status events best-effort: nothing is queued while
  disconnected and nothing is replayed after a reconnect.
- Fan received events out to every registered handler, in arrival order.
- Drop location events that are older than the newest one already seen for
  the same delivery.
"""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import socketio

from .const import (
    DEFAULT_SOCKET_URL,
    EVENT_JOIN_TRACKING,
    EVENT_LEAVE_TRACKING,
    EVENT_LOCATION_UPDATE,
    EVENT_ORDER_STATUS_UPDATE,
)
from .errors import TransportError
from .models import Location, LocationEvent, OrderStatus, StatusEvent, UserRole, utc_timestamp

_LOGGER = logging.getLogger(__name__)

LocationHandler = Callable[[LocationEvent], Awaitable[None] | None]
StatusHandler = Callable[[StatusEvent], Awaitable[None] | None]
StateHandler = Callable[["ConnectionState"], None]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RealtimeChannelClient:
    """
    Duplex messaging wrapper around one ``socketio.AsyncClient``.

    One instance is created per user session and handed by reference to
    every component that publishes or listens.
    """

    def __init__(
        self,
        url: str = DEFAULT_SOCKET_URL,
        client_factory: Callable[..., Any] = socketio.AsyncClient,
    ) -> None:
        self.url = url
        self._client_factory = client_factory
        self._sio = None
        self._connect_task: asyncio.Task | None = None

        self.user_id: str | None = None
        self.role: UserRole | None = None
        self.state = ConnectionState.DISCONNECTED
        self.joined_rooms: set[str] = set()
        self.last_error: TransportError | None = None

        self._location_handlers: list[LocationHandler] = []
        self._status_handlers: list[StatusHandler] = []
        self._state_handlers: list[StateHandler] = []

        # delivery_id → newest location timestamp accepted so far
        self._latest_location: dict[str, datetime] = {}
        # emits handed to the transport but not finished yet
        self._pending_emits: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    async def connect(self, user_id: str, role: UserRole) -> RealtimeChannelClient:
        """
        Open the transport with ``{userId, userType}`` as identity.

        Returns immediately; completion is observed through the state
        listeners. A second call while connecting or connected is a no-op.
        """
        if self._sio is not None:
            _LOGGER.debug("Channel already %s, ignoring connect", self.state.value)
            return self

        self.user_id = user_id
        self.role = UserRole(role)
        self.last_error = None
        self._sio = self._client_factory()
        self._register_transport_handlers(self._sio)
        self._set_state(ConnectionState.CONNECTING)
        self._connect_task = asyncio.ensure_future(self._open(self._sio))
        return self

    async def disconnect(self) -> None:
        """Tear down the transport and forget all rooms. Safe when not connected."""
        sio, self._sio = self._sio, None
        connect_task, self._connect_task = self._connect_task, None

        if connect_task is not None and not connect_task.done():
            connect_task.cancel()
            await asyncio.gather(connect_task, return_exceptions=True)

        # Let emits already handed over finish; new ones are refused from here on
        if self._pending_emits:
            await asyncio.gather(*list(self._pending_emits), return_exceptions=True)

        if sio is not None:
            try:
                await sio.disconnect()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("Error while closing realtime transport: %s", exc)

        self.joined_rooms.clear()
        self._latest_location.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _open(self, sio) -> None:
        auth = {"userId": self.user_id, "userType": self.role.value}
        try:
            await sio.connect(self.url, auth=auth)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Could not connect to %s: %s", self.url, exc)
            if sio is self._sio:
                self.last_error = TransportError(f"Realtime connection failed: {exc}")
                self._sio = None
                self._set_state(ConnectionState.DISCONNECTED)

    def _register_transport_handlers(self, sio) -> None:
        sio.on("connect", self._on_transport_connect)
        sio.on("disconnect", self._on_transport_disconnect)
        sio.on("connect_error", self._on_transport_connect_error)
        sio.on(EVENT_LOCATION_UPDATE, self._on_location_update)
        sio.on(EVENT_ORDER_STATUS_UPDATE, self._on_status_update)

    async def _on_transport_connect(self) -> None:
        _LOGGER.info("Connected to realtime server as %s (%s)", self.user_id, self.role.value)
        self._set_state(ConnectionState.CONNECTED)

    async def _on_transport_disconnect(self, *args) -> None:
        # Server-side room membership dies with the socket
        _LOGGER.info("Disconnected from realtime server")
        self.joined_rooms.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _on_transport_connect_error(self, data=None) -> None:
        _LOGGER.warning("Realtime connection error: %s", data)
        self.last_error = TransportError(f"Realtime connection error: {data}")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        for handler in list(self._state_handlers):
            try:
                handler(state)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Connection state handler failed: %s", exc)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def join_room(self, delivery_id: str) -> bool:
        """Subscribe to a delivery's events. Fire-and-forget; False when not connected."""
        if not self._emit(EVENT_JOIN_TRACKING, delivery_id):
            return False
        self.joined_rooms.add(delivery_id)
        return True

    def leave_room(self, delivery_id: str) -> bool:
        """Unsubscribe from a delivery's events. Fire-and-forget; False when not connected."""
        self.joined_rooms.discard(delivery_id)
        self._latest_location.pop(delivery_id, None)
        return self._emit(EVENT_LEAVE_TRACKING, delivery_id)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish_location(self, delivery_id: str, location: Location) -> bool:
        """
        Send a location-update for the delivery.

        At-most-once and best-effort: returns False and drops the event when
        the channel is not connected.
        """
        event = LocationEvent(delivery_id, location, utc_timestamp())
        return self._emit(EVENT_LOCATION_UPDATE, event.to_payload())

    def publish_status(self, delivery_id: str, status: OrderStatus) -> bool:
        """Send an order-status-update for the delivery; same guarantee as publish_location."""
        event = StatusEvent(delivery_id, OrderStatus(status), utc_timestamp())
        return self._emit(EVENT_ORDER_STATUS_UPDATE, event.to_payload())

    def _emit(self, event: str, payload) -> bool:
        sio = self._sio
        if sio is None or not self.connected:
            _LOGGER.debug("Channel not connected, dropping %s", event)
            return False

        task = asyncio.ensure_future(sio.emit(event, payload))
        self._pending_emits.add(task)
        task.add_done_callback(self._emit_done)
        return True

    def _emit_done(self, task: asyncio.Task) -> None:
        self._pending_emits.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.warning("Realtime emit failed: %s", exc)

    async def flush(self) -> None:
        """Wait until every emit handed to the transport has been sent."""
        if self._pending_emits:
            await asyncio.gather(*list(self._pending_emits), return_exceptions=True)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def on_location_received(self, handler: LocationHandler) -> Callable[[], None]:
        """Register a location handler. Returns a callable that removes it."""
        self._location_handlers.append(handler)
        return lambda: _remove(self._location_handlers, handler)

    def on_status_received(self, handler: StatusHandler) -> Callable[[], None]:
        """Register a status handler. Returns a callable that removes it."""
        self._status_handlers.append(handler)
        return lambda: _remove(self._status_handlers, handler)

    def on_state_changed(self, handler: StateHandler) -> Callable[[], None]:
        """Register a connection state handler, e.g. to rejoin rooms after a reconnect."""
        self._state_handlers.append(handler)
        return lambda: _remove(self._state_handlers, handler)

    async def _on_location_update(self, payload) -> None:
        try:
            event = LocationEvent.from_payload(payload)
            captured_at = event.captured_at
        except ValueError as exc:
            _LOGGER.warning("Ignoring malformed location event: %s", exc)
            return

        newest = self._latest_location.get(event.delivery_id)
        if newest is not None and captured_at < newest:
            _LOGGER.debug(
                "Discarding stale location for %s (%s < %s)",
                event.delivery_id, event.timestamp, newest.isoformat(),
            )
            return
        self._latest_location[event.delivery_id] = captured_at

        await _dispatch(self._location_handlers, event)

    async def _on_status_update(self, payload) -> None:
        try:
            event = StatusEvent.from_payload(payload)
        except ValueError as exc:
            _LOGGER.warning("Ignoring malformed status event: %s", exc)
            return
        await _dispatch(self._status_handlers, event)


async def _dispatch(handlers: list, event) -> None:
    """Call every handler once; one failing handler does not stop the others."""
    for handler in list(handlers):
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Handler %s failed for %s: %s", getattr(handler, "__name__", handler), event, exc)


def _remove(handlers: list, handler) -> None:
    if handler in handlers:
        handlers.remove(handler)
