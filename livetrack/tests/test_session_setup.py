"""
Tests for async_setup_session / async_unload_session and the UserSession
operations that tie the channel, the tracking session and the views together.
"""

from __future__ import annotations

import functools
import unittest
from unittest.mock import AsyncMock, patch

from livetrack import UserSession, async_setup_session, async_unload_session
from livetrack.channel import ConnectionState, RealtimeChannelClient
from livetrack.config import TrackerConfig
from livetrack.const import EVENT_JOIN_TRACKING, EVENT_LEAVE_TRACKING, EVENT_LOCATION_UPDATE, EVENT_ORDER_STATUS_UPDATE
from livetrack.data_source import BackendOrderSource, MockOrderSource
from livetrack.models import OrderStatus, UserRole

from .test_common import (
    FakePositionProvider,
    FakeRelayServer,
    FakeSocketClient,
    make_connected_channel,
    make_order,
)

LOGIN_JSON = {
    "token": "jwt-token",
    "user": {"id": "DEL002", "name": "Sarah Chen", "email": "sarah@example.com", "role": "delivery"},
}


async def setup_session(
    config=None,
    role=UserRole.DELIVERY,
    email="alex@example.com",
    sio: FakeSocketClient | None = None,
    wait_connected: bool = True,
) -> tuple[UserSession, FakeSocketClient]:
    sio = sio or FakeSocketClient()
    channel = RealtimeChannelClient("ws://test:3001", client_factory=lambda: sio)
    session = await async_setup_session(
        config or TrackerConfig(),
        email,
        "secret",
        role,
        provider=FakePositionProvider(),
        channel=channel,
    )
    if wait_connected:
        await channel._connect_task
    return session, sio


class TestSetup(unittest.IsolatedAsyncioTestCase):

    async def test_mock_mode_skips_backend_login(self):
        with patch("livetrack.api.auth.make_request", AsyncMock()) as request:
            session, sio = await setup_session()

        request.assert_not_called()
        self.assertEqual(session.auth.user.id, "DEL001")
        self.assertEqual(session.role, UserRole.DELIVERY)
        self.assertIsInstance(session.orders, MockOrderSource)
        self.assertEqual(sio.connect_calls[0][1], {"userId": "DEL001", "userType": "delivery"})
        self.assertEqual(session.channel.state, ConnectionState.CONNECTED)

    async def test_backend_mode_logs_in(self):
        config = TrackerConfig(data_source="backend")
        with patch("livetrack.api.auth.make_request", AsyncMock(return_value=LOGIN_JSON)):
            session, sio = await setup_session(config, email="sarah@example.com")

        self.assertEqual(session.auth.token, "jwt-token")
        self.assertIsInstance(session.orders, BackendOrderSource)
        self.assertEqual(sio.connect_calls[0][1]["userId"], "DEL002")

    async def test_unload_tears_everything_down(self):
        session, sio = await setup_session()
        session.track_order(make_order())
        session.start_sharing("ORD002")

        await async_unload_session(session)

        self.assertFalse(session.tracking.active)
        self.assertEqual(session.views, {})
        self.assertFalse(sio.connected)
        self.assertEqual(session.channel.state, ConnectionState.DISCONNECTED)
        self.assertFalse(session.auth.is_authenticated)
        self.assertEqual(session.provider.watches, {})


class TestSessionOperations(unittest.IsolatedAsyncioTestCase):

    async def test_track_order_joins_room_once(self):
        session, sio = await setup_session(role=UserRole.CUSTOMER, email="jane@example.com")
        order = make_order()
        view = session.track_order(order)
        self.assertIs(session.track_order(order), view)
        await session.channel.flush()

        self.assertEqual(sio.emitted_events(EVENT_JOIN_TRACKING), ["ORD002"])
        self.assertIn("ORD002", session.channel.joined_rooms)
        await async_unload_session(session)

    async def test_route_fetcher_configured_from_token(self):
        session, _ = await setup_session(TrackerConfig(mapbox_token="pk.test"))
        view = session.track_order(make_order())
        fetcher = view._route_fetcher
        self.assertIsInstance(fetcher, functools.partial)
        self.assertEqual(fetcher.keywords, {"access_token": "pk.test"})
        await async_unload_session(session)

    async def test_no_route_fetcher_without_token(self):
        session, _ = await setup_session()
        view = session.track_order(make_order())
        self.assertIsNone(view._route_fetcher)
        await async_unload_session(session)

    async def test_sharing_publishes_samples_and_feeds_view(self):
        session, sio = await setup_session()
        view = session.track_order(make_order())
        session.start_sharing("ORD002")

        session.provider.emit_sample(37.7800, -122.4100)
        await session.channel.flush()

        events = sio.emitted_events(EVENT_LOCATION_UPDATE)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["deliveryId"], "ORD002")
        self.assertEqual(view.data.self_location.latitude, 37.7800)

        session.stop_sharing()
        session.provider.emit_sample(37.7900, -122.4100)
        await session.channel.flush()
        self.assertEqual(len(sio.emitted_events(EVENT_LOCATION_UPDATE)), 1)
        await async_unload_session(session)

    async def test_update_order_status_persists_and_broadcasts(self):
        session, sio = await setup_session()
        order = await session.orders.get_order("ORD002")
        view = session.track_order(order)

        updated = await session.update_order_status("ORD002", OrderStatus.PICKED_UP)
        await session.channel.flush()

        self.assertEqual(updated.status, OrderStatus.PICKED_UP)
        self.assertEqual((await session.orders.get_order("ORD002")).status, OrderStatus.PICKED_UP)
        payload = sio.emitted_events(EVENT_ORDER_STATUS_UPDATE)[0]
        self.assertEqual(payload["status"], "picked_up")
        self.assertEqual(view.data.status, OrderStatus.PICKED_UP)
        await async_unload_session(session)

    async def test_untrack_order_leaves_room(self):
        session, sio = await setup_session()
        session.track_order(make_order())
        await session.untrack_order("ORD002")
        await session.channel.flush()

        self.assertEqual(sio.emitted_events(EVENT_LEAVE_TRACKING), ["ORD002"])
        self.assertNotIn("ORD002", session.views)
        await async_unload_session(session)


class TestRoomsJoinedOnConnect(unittest.IsolatedAsyncioTestCase):

    async def test_order_tracked_while_connecting_joins_on_connect(self):
        session, sio = await setup_session(role=UserRole.CUSTOMER, email="jane@example.com", wait_connected=False)
        self.assertEqual(session.channel.state, ConnectionState.CONNECTING)
        session.track_order(make_order())
        self.assertEqual(session.channel.joined_rooms, set())

        await session.channel._connect_task
        await session.channel.flush()

        self.assertEqual(sio.emitted_events(EVENT_JOIN_TRACKING), ["ORD002"])
        self.assertEqual(session.channel.joined_rooms, {"ORD002"})
        await async_unload_session(session)

    async def test_sharing_started_while_connecting_joins_on_connect(self):
        session, sio = await setup_session(wait_connected=False)
        session.start_sharing("ORD005")

        await session.channel._connect_task
        await session.channel.flush()

        self.assertEqual(sio.emitted_events(EVENT_JOIN_TRACKING), ["ORD005"])
        session.provider.emit_sample(37.7800, -122.4100)
        await session.channel.flush()
        self.assertEqual(sio.emitted_events(EVENT_LOCATION_UPDATE)[0]["deliveryId"], "ORD005")
        await async_unload_session(session)

    async def test_status_from_partner_reaches_early_customer_view(self):
        relay = FakeRelayServer()
        customer, _ = await setup_session(
            role=UserRole.CUSTOMER,
            email="jane@example.com",
            sio=FakeSocketClient(relay),
            wait_connected=False,
        )
        view = customer.track_order(make_order(status=OrderStatus.IN_TRANSIT))
        await customer.channel._connect_task
        await customer.channel.flush()

        partner, _ = await make_connected_channel("DEL001", UserRole.DELIVERY, FakeSocketClient(relay))
        partner.join_room("ORD002")
        partner.publish_status("ORD002", OrderStatus.DELIVERED)
        await partner.flush()

        self.assertEqual(view.data.status, OrderStatus.DELIVERED)
        await partner.disconnect()
        await async_unload_session(customer)

    async def test_rooms_joined_again_after_reconnect(self):
        session, sio = await setup_session()
        session.track_order(make_order())
        session.start_sharing("ORD005")
        await session.channel.flush()

        await sio.drop_connection()
        self.assertEqual(session.channel.joined_rooms, set())

        await sio.reconnect()
        await session.channel.flush()

        self.assertEqual(session.channel.joined_rooms, {"ORD002", "ORD005"})
        self.assertEqual(sio.emitted_events(EVENT_JOIN_TRACKING), ["ORD002", "ORD005", "ORD002", "ORD005"])
        await async_unload_session(session)


class TestRequestSettings(unittest.IsolatedAsyncioTestCase):

    async def test_login_uses_configured_timeout_and_attempts(self):
        config = TrackerConfig(data_source="backend", request_timeout=4, request_attempts=1)
        with patch("livetrack.api.auth.make_request", AsyncMock(return_value=LOGIN_JSON)) as request:
            session, _ = await setup_session(config, email="sarah@example.com")

        self.assertEqual(request.call_args.kwargs["timeout"], 4)
        self.assertEqual(request.call_args.kwargs["max_attempts"], 1)
        self.assertEqual((session.auth.timeout, session.auth.max_attempts), (4, 1))
        await async_unload_session(session)
