"""
livetrack: realtime delivery tracking client.

A UserSession is set up at login and unloaded at logout. It owns the one
realtime channel, the order data source and the location tracking session
for that user, and hands them to consumers by reference.
"""
from __future__ import annotations

import dataclasses
import functools
import logging
from typing import Callable

from .api.auth import AuthSession
from .api.routing import fetch_route
from .channel import ConnectionState, RealtimeChannelClient
from .config import TrackerConfig, load_config
from .data_source import OrderDataSource, create_order_source, demo_user
from .errors import (
    PositioningError,
    RouteUnavailableError,
    TrackingError,
    TransportError,
    UnsupportedError,
)
from .geolocation import PositionProvider, SimulatedPositionProvider
from .models import Location, Order, OrderStatus, PositionSample, UserRole
from .route_queue import RouteRequestQueue
from .tracking_session import LocationTrackingSession
from .tracking_view import TrackingViewBinding

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "ConnectionState",
    "Location",
    "LocationTrackingSession",
    "Order",
    "OrderStatus",
    "PositionSample",
    "PositioningError",
    "RealtimeChannelClient",
    "RouteUnavailableError",
    "TrackerConfig",
    "TrackingError",
    "TrackingViewBinding",
    "TransportError",
    "UnsupportedError",
    "UserRole",
    "UserSession",
    "async_setup_session",
    "async_unload_session",
    "load_config",
]


@dataclasses.dataclass
class UserSession:
    """Everything one signed-in user needs for live tracking."""

    config: TrackerConfig
    auth: AuthSession
    channel: RealtimeChannelClient
    orders: OrderDataSource
    provider: PositionProvider
    tracking: LocationTrackingSession
    route_queue: RouteRequestQueue = dataclasses.field(default_factory=RouteRequestQueue)
    views: dict[str, TrackingViewBinding] = dataclasses.field(default_factory=dict)
    _unsubscribe_state: Callable[[], None] | None = dataclasses.field(default=None, repr=False)

    @property
    def role(self) -> UserRole:
        return self.auth.user.role

    def track_order(self, order: Order) -> TrackingViewBinding:
        """Join the order's room and return a view bound to its events."""
        view = self.views.get(order.id)
        if view is not None:
            return view

        route_fetcher = None
        if self.config.mapbox_token:
            route_fetcher = functools.partial(fetch_route, access_token=self.config.mapbox_token)

        view = TrackingViewBinding.from_order(
            order,
            route_fetcher=route_fetcher,
            min_route_update_distance=self.config.min_route_update_distance,
            queue=self.route_queue,
        )
        view.attach(self.channel)
        if self.role is UserRole.DELIVERY:
            view.bind_session(self.tracking)
        self.views[order.id] = view
        if not self.channel.join_room(order.id):
            _LOGGER.debug("Channel not connected, %s room joined on connect", order.id)
        return view

    async def untrack_order(self, delivery_id: str) -> None:
        view = self.views.pop(delivery_id, None)
        if view is not None:
            await view.shutdown()
        self.channel.leave_room(delivery_id)

    def start_sharing(self, delivery_id: str) -> None:
        """Start broadcasting this device's position on the delivery's room."""
        self.channel.join_room(delivery_id)
        self.tracking.start(delivery_id)

    def stop_sharing(self) -> None:
        self.tracking.stop()

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        """Persist a status change, then announce it on the order's room."""
        order = await self.orders.update_order_status(order_id, status)
        if not self.channel.publish_status(order_id, order.status):
            _LOGGER.warning("Status %s for %s saved but not broadcast (channel offline)", order.status.value, order_id)
        view = self.views.get(order_id)
        if view is not None:
            view.update_status(order.status)
        return order

    def rooms(self) -> set[str]:
        """Rooms this session should be in: tracked orders plus the shared delivery."""
        rooms = set(self.views)
        if self.tracking.active and self.tracking.delivery_id:
            rooms.add(self.tracking.delivery_id)
        return rooms

    def _on_channel_state(self, state: ConnectionState) -> None:
        # Membership is dropped with the socket; join again on every (re)connect
        if state is not ConnectionState.CONNECTED:
            return
        rooms = sorted(self.rooms())
        for delivery_id in rooms:
            self.channel.join_room(delivery_id)
        _LOGGER.debug("Joined rooms after connect: %s", rooms)


async def async_setup_session(
    config: TrackerConfig,
    email: str,
    password: str,
    role: UserRole,
    provider: PositionProvider | None = None,
    channel: RealtimeChannelClient | None = None,
) -> UserSession:
    """
    Log in and build the session's components.

    In mock data mode no backend is contacted for the login; a demo user is
    created from the given email and role.
    """
    role = UserRole(role)
    auth = AuthSession(
        config.api_url,
        timeout=config.request_timeout,
        max_attempts=config.request_attempts,
    )
    if config.use_mock_data:
        auth.user = demo_user(email, role)
        auth.token = "demo-token"
    else:
        await auth.login(email, password, role)

    if channel is None:
        channel = RealtimeChannelClient(config.socket_url)

    if provider is None:
        provider = SimulatedPositionProvider()

    session = UserSession(
        config=config,
        auth=auth,
        channel=channel,
        orders=create_order_source(config, auth),
        provider=provider,
        tracking=LocationTrackingSession(provider, channel),
    )
    # Registered before connecting so rooms requested early are joined on connect
    session._unsubscribe_state = channel.on_state_changed(session._on_channel_state)
    await channel.connect(auth.user.id, role)
    _LOGGER.info("Session ready for %s (%s)", auth.user.id, role.value)
    return session


async def async_unload_session(session: UserSession) -> None:
    """Tear everything down at logout."""
    if session._unsubscribe_state is not None:
        session._unsubscribe_state()
        session._unsubscribe_state = None
    session.tracking.stop()
    for delivery_id in list(session.views):
        await session.untrack_order(delivery_id)
    await session.route_queue.shutdown()
    await session.channel.disconnect()
    if isinstance(session.provider, SimulatedPositionProvider):
        await session.provider.shutdown()
    session.auth.logout()
    _LOGGER.info("Session unloaded")
