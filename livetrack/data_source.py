"""
Order data access.

OrderDataSource is the interface dashboards and the tracking page read orders
through. Two implementations exist and one is picked from configuration:

- BackendOrderSource: the REST backend (api/orders.py)
- MockOrderSource:    in-memory sample orders for demos
"""
from __future__ import annotations

import abc
import asyncio
import dataclasses
import logging
from datetime import datetime, timedelta, timezone

from .api.auth import AuthSession
from .api.orders import OrderApi
from .config import TrackerConfig
from .errors import TransportError
from .models import (
    DeliveryPartner,
    Location,
    Order,
    OrderItem,
    OrderStatus,
    User,
    UserRole,
    format_timestamp,
)

_LOGGER = logging.getLogger(__name__)


class OrderDataSource(abc.ABC):
    """Read and update orders, independent of where they come from."""

    @abc.abstractmethod
    async def get_vendor_orders(self, vendor_id: str) -> list[Order]:
        """Orders placed with the given vendor."""

    @abc.abstractmethod
    async def get_delivery_partner_orders(self, delivery_partner_id: str) -> list[Order]:
        """Orders assigned to the given delivery partner."""

    @abc.abstractmethod
    async def get_order(self, order_id: str) -> Order:
        """A single order. Raises TransportError when it does not exist."""

    @abc.abstractmethod
    async def assign_delivery_partner(self, order_id: str, delivery_partner_id: str) -> Order:
        """Assign a partner and return the updated order."""

    @abc.abstractmethod
    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        """Set the order status and return the updated order."""

    @abc.abstractmethod
    async def get_available_delivery_partners(self) -> list[DeliveryPartner]:
        """Partners currently free to take an order."""


class BackendOrderSource(OrderDataSource):
    """Orders served by the REST backend."""

    def __init__(self, api: OrderApi) -> None:
        self.api = api

    async def get_vendor_orders(self, vendor_id: str) -> list[Order]:
        return await self.api.get_vendor_orders(vendor_id)

    async def get_delivery_partner_orders(self, delivery_partner_id: str) -> list[Order]:
        return await self.api.get_delivery_partner_orders(delivery_partner_id)

    async def get_order(self, order_id: str) -> Order:
        return await self.api.get_order(order_id)

    async def assign_delivery_partner(self, order_id: str, delivery_partner_id: str) -> Order:
        return await self.api.assign_delivery_partner(order_id, delivery_partner_id)

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        return await self.api.update_order_status(order_id, status)

    async def get_available_delivery_partners(self) -> list[DeliveryPartner]:
        return await self.api.get_available_delivery_partners()


class MockOrderSource(OrderDataSource):
    """
    In-memory sample orders and delivery partners.

    Each instance starts from a fresh copy of the samples, so updates made in
    one demo session never leak into another. ``latency`` simulates a slow
    backend (seconds per call).
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._orders: dict[str, Order] = {order.id: order for order in sample_orders()}
        self._partners: dict[str, DeliveryPartner] = {p.id: p for p in sample_delivery_partners()}

    async def get_vendor_orders(self, vendor_id: str) -> list[Order]:
        await self._simulate_latency()
        return [o for o in self._orders.values() if o.vendor_id == vendor_id]

    async def get_delivery_partner_orders(self, delivery_partner_id: str) -> list[Order]:
        await self._simulate_latency()
        return [o for o in self._orders.values() if o.delivery_partner_id == delivery_partner_id]

    async def get_order(self, order_id: str) -> Order:
        await self._simulate_latency()
        return self._lookup(order_id)

    async def assign_delivery_partner(self, order_id: str, delivery_partner_id: str) -> Order:
        await self._simulate_latency()
        order = self._lookup(order_id)
        partner = self._partners.get(delivery_partner_id)
        if partner is None:
            raise TransportError(f"Delivery partner {delivery_partner_id} not found")

        updated = dataclasses.replace(
            order,
            delivery_partner_id=delivery_partner_id,
            status=OrderStatus.ASSIGNED,
            updated_at=_now(),
        )
        self._orders[order_id] = updated
        self._partners[delivery_partner_id] = dataclasses.replace(partner, is_available=False)
        _LOGGER.debug("Mock: assigned %s to %s", delivery_partner_id, order_id)
        return updated

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        await self._simulate_latency()
        order = self._lookup(order_id)
        status = OrderStatus(status)
        if not order.status.can_transition_to(status):
            raise TransportError(
                f"Cannot change order {order_id} from {order.status.value} to {status.value}"
            )
        updated = dataclasses.replace(order, status=status, updated_at=_now())
        self._orders[order_id] = updated
        _LOGGER.debug("Mock: %s status %s -> %s", order_id, order.status.value, updated.status.value)
        return updated

    async def get_available_delivery_partners(self) -> list[DeliveryPartner]:
        await self._simulate_latency()
        return [p for p in self._partners.values() if p.is_available]

    def _lookup(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise TransportError(f"Order {order_id} not found")
        return order

    async def _simulate_latency(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)


def create_order_source(config: TrackerConfig, auth: AuthSession) -> OrderDataSource:
    """Pick the order data source named by the configuration."""
    if config.use_mock_data:
        _LOGGER.info("Using mock order data")
        return MockOrderSource()
    api = OrderApi(auth, timeout=config.request_timeout, max_attempts=config.request_attempts)
    return BackendOrderSource(api)


# ----------------------------------------------------------------------
# Sample data
# ----------------------------------------------------------------------

SAMPLE_VENDOR_ID = "VEN001"
SAMPLE_PICKUP = Location(37.7749, -122.4194)


def demo_user(email: str, role: UserRole) -> User:
    """A user for mock mode, where login never reaches a backend."""
    role = UserRole(role)
    user_id = {
        UserRole.VENDOR: SAMPLE_VENDOR_ID,
        UserRole.DELIVERY: "DEL001",
    }.get(role, "CUS002")
    name = email.split("@", 1)[0] or "Demo User"
    return User(id=user_id, name=name, email=email, role=role)


def _now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def _minutes_ago(minutes: int) -> str:
    return format_timestamp(datetime.now(timezone.utc) - timedelta(minutes=minutes))


def sample_orders() -> list[Order]:
    return [
        Order(
            id="ORD001",
            vendor_id=SAMPLE_VENDOR_ID,
            customer_id="CUS001",
            customer_name="John Doe",
            customer_phone="+1-555-0123",
            items=[OrderItem("Pizza Margherita", 1, 14.99), OrderItem("Garlic Bread", 1, 6.00), OrderItem("Coke", 1, 5.00)],
            total_amount=25.99,
            status=OrderStatus.PENDING,
            pickup_address="Pizza Palace, 789 Food Court",
            delivery_address="123 Main St, Downtown",
            pickup_location=SAMPLE_PICKUP,
            delivery_location=Location(37.7899, -122.4014),
            vendor_name="Pizza Palace",
            created_at=_minutes_ago(30),
        ),
        Order(
            id="ORD002",
            vendor_id=SAMPLE_VENDOR_ID,
            customer_id="CUS002",
            customer_name="Jane Smith",
            customer_phone="+1-555-0124",
            items=[OrderItem("Burger Combo", 1, 11.50), OrderItem("Fries", 1, 3.50), OrderItem("Milkshake", 1, 3.50)],
            total_amount=18.50,
            status=OrderStatus.ASSIGNED,
            pickup_address="Pizza Palace, 789 Food Court",
            delivery_address="456 Oak Ave, Midtown",
            pickup_location=SAMPLE_PICKUP,
            delivery_location=Location(37.7849, -122.4094),
            vendor_name="Pizza Palace",
            delivery_partner_id="DEL001",
            estimated_delivery_time="15-20 minutes",
            created_at=_minutes_ago(45),
        ),
        Order(
            id="ORD003",
            vendor_id=SAMPLE_VENDOR_ID,
            customer_id="CUS003",
            customer_name="Mike Johnson",
            customer_phone="+1-555-0125",
            items=[OrderItem("Sushi Platter", 1, 26.00), OrderItem("Miso Soup", 1, 6.00)],
            total_amount=32.00,
            status=OrderStatus.IN_TRANSIT,
            pickup_address="Pizza Palace, 789 Food Court",
            delivery_address="789 Pine Rd, Uptown",
            pickup_location=SAMPLE_PICKUP,
            delivery_location=Location(37.7955, -122.4058),
            vendor_name="Pizza Palace",
            delivery_partner_id="DEL002",
            created_at=_minutes_ago(15),
        ),
        Order(
            id="ORD005",
            vendor_id="VEN002",
            customer_id="CUS005",
            customer_name="David Wilson",
            customer_phone="+1-555-0126",
            items=[OrderItem("Thai Green Curry", 1, 14.75), OrderItem("Jasmine Rice", 1, 4.00), OrderItem("Spring Rolls", 1, 6.00)],
            total_amount=24.75,
            status=OrderStatus.PICKED_UP,
            pickup_address="Thai Garden, 321 Asia Street",
            delivery_address="987 Elm Street, Downtown",
            pickup_location=Location(37.7694, -122.4862),
            delivery_location=Location(37.7793, -122.4192),
            vendor_name="Thai Garden",
            delivery_partner_id="DEL001",
            created_at=_minutes_ago(20),
        ),
    ]


def sample_delivery_partners() -> list[DeliveryPartner]:
    return [
        DeliveryPartner("DEL001", "Alex Rodriguez", "+1-555-1001", False),
        DeliveryPartner("DEL002", "Sarah Chen", "+1-555-1002", False),
        DeliveryPartner("DEL003", "Mike Thompson", "+1-555-1003", True),
        DeliveryPartner("DEL004", "Lisa Garcia", "+1-555-1004", True),
    ]
