"""
Shared fakes and factory functions for livetrack tests.
Import from this module in each test file to avoid duplication.
"""

from __future__ import annotations

import itertools
import time

from livetrack.channel import RealtimeChannelClient
from livetrack.const import EVENT_JOIN_TRACKING, EVENT_LEAVE_TRACKING
from livetrack.errors import PositioningError
from livetrack.geolocation import PositionProvider, RawPosition, WatchOptions
from livetrack.models import Location, Order, OrderStatus, UserRole


class FakePositionProvider(PositionProvider):
    """Provider driven by the test: samples and errors are pushed by hand."""

    def __init__(self, supported: bool = True) -> None:
        self.supported = supported
        self.watches: dict[int, tuple] = {}
        self.watch_options: list[WatchOptions] = []
        self.one_shot_options: list[WatchOptions] = []
        self.cleared: list[int] = []
        self.current = RawPosition(37.7749, -122.4194, 5.0, time.time())
        self.current_error: Exception | None = None
        self._ids = itertools.count(1)

    def is_supported(self) -> bool:
        return self.supported

    def watch(self, options, on_sample, on_error) -> int:
        watch_id = next(self._ids)
        self.watches[watch_id] = (on_sample, on_error)
        self.watch_options.append(options)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self.cleared.append(watch_id)
        self.watches.pop(watch_id, None)

    async def get_current_position(self, options) -> RawPosition:
        self.one_shot_options.append(options)
        if self.current_error is not None:
            raise self.current_error
        return self.current

    def emit_sample(self, lat: float, lng: float, accuracy: float | None = 5.0) -> None:
        for on_sample, _ in list(self.watches.values()):
            on_sample(RawPosition(lat, lng, accuracy, time.time()))

    def emit_error(self, reason: str = PositioningError.PERMISSION_DENIED) -> None:
        for _, on_error in list(self.watches.values()):
            on_error(PositioningError(reason))


class FakeRelayServer:
    """
    Minimal in-memory Socket.IO server: relays location and status events to
    the other members of the room named by the event's deliveryId.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, set] = {}

    async def handle(self, client: FakeSocketClient, event: str, data) -> None:
        if event == EVENT_JOIN_TRACKING:
            self.rooms.setdefault(data, set()).add(client)
        elif event == EVENT_LEAVE_TRACKING:
            self.rooms.get(data, set()).discard(client)
        else:
            for peer in list(self.rooms.get(data.get("deliveryId"), set())):
                if peer is not client and peer.connected:
                    await peer.deliver(event, data)

    def drop(self, client: FakeSocketClient) -> None:
        for members in self.rooms.values():
            members.discard(client)


class FakeSocketClient:
    """Stand-in for socketio.AsyncClient that records traffic."""

    def __init__(self, relay: FakeRelayServer | None = None, fail_connect: Exception | None = None) -> None:
        self.relay = relay
        self.fail_connect = fail_connect
        self.handlers: dict[str, object] = {}
        self.emitted: list[tuple[str, object]] = []
        self.connect_calls: list[tuple[str, dict]] = []
        self.connected = False

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, auth: dict | None = None) -> None:
        self.connect_calls.append((url, auth))
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected = True
        await self.handlers["connect"]()

    async def disconnect(self) -> None:
        if not self.connected:
            return
        self.connected = False
        if self.relay is not None:
            self.relay.drop(self)
        await self.handlers["disconnect"]()

    async def drop_connection(self) -> None:
        """Simulate the server closing the socket; the client object stays in use."""
        await self.disconnect()

    async def reconnect(self) -> None:
        """Simulate the client's automatic reconnection after a drop."""
        self.connected = True
        await self.handlers["connect"]()

    async def emit(self, event: str, data=None) -> None:
        self.emitted.append((event, data))
        if self.relay is not None:
            await self.relay.handle(self, event, data)

    async def deliver(self, event: str, payload) -> None:
        """Simulate an event arriving from the server."""
        await self.handlers[event](payload)

    def emitted_events(self, event: str) -> list:
        return [data for name, data in self.emitted if name == event]


async def make_connected_channel(
    user_id: str = "DEL001",
    role: UserRole = UserRole.DELIVERY,
    sio: FakeSocketClient | None = None,
) -> tuple[RealtimeChannelClient, FakeSocketClient]:
    """Build a channel on a fake transport and wait until it is connected."""
    sio = sio or FakeSocketClient()
    channel = RealtimeChannelClient("ws://test:3001", client_factory=lambda: sio)
    await channel.connect(user_id, role)
    await channel._connect_task
    return channel, sio


def make_order(order_id: str = "ORD002", **kwargs) -> Order:
    defaults = dict(
        id=order_id,
        vendor_id="VEN001",
        customer_id="CUS002",
        customer_name="Jane Smith",
        status=OrderStatus.IN_TRANSIT,
        pickup_address="Pizza Palace, 789 Food Court",
        delivery_address="456 Oak Ave, Midtown",
        pickup_location=Location(37.7749, -122.4194),
        delivery_location=Location(37.7899, -122.4014),
        vendor_name="Pizza Palace",
        customer_phone="+1-555-0124",
        total_amount=18.50,
        delivery_partner_id="DEL001",
    )
    defaults.update(kwargs)
    return Order(**defaults)


def make_order_json(order_id: str = "ORD002", **kwargs) -> dict:
    defaults = {
        "id": order_id,
        "vendorId": "VEN001",
        "customerId": "CUS002",
        "deliveryPartnerId": "DEL001",
        "customerName": "Jane Smith",
        "customerPhone": "+1-555-0124",
        "items": [{"name": "Burger Combo", "quantity": 1, "price": 11.5}],
        "totalAmount": 18.5,
        "status": "assigned",
        "pickupAddress": "Pizza Palace, 789 Food Court",
        "deliveryAddress": "456 Oak Ave, Midtown",
        "pickupLocation": {"lat": 37.7749, "lng": -122.4194},
        "deliveryLocation": {"lat": 37.7849, "lng": -122.4094},
        "vendorName": "Pizza Palace",
        "createdAt": "2024-05-01T12:00:00.000Z",
        "updatedAt": "2024-05-01T12:05:00.000Z",
    }
    defaults.update(kwargs)
    return defaults


def location_payload(delivery_id: str, lat: float, lng: float, timestamp: str) -> dict:
    return {"deliveryId": delivery_id, "location": {"lat": lat, "lng": lng}, "timestamp": timestamp}
