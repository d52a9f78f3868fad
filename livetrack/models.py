"""
Domain models for the livetrack library.

This module contains pure data classes representing positions, wire events,
orders and users. These classes have no dependencies on HTTP or the realtime
transport; the wire helpers only convert to and from plain dicts.
"""
from __future__ import annotations

import dataclasses
import enum
import time
from datetime import datetime, timezone


def utc_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC string with millisecond precision."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime the way browsers do (``2024-05-01T12:00:00.000Z``)."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` is accepted as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def epoch_millis() -> int:
    return int(time.time() * 1000)


class UserRole(str, enum.Enum):
    """Identity role sent to the realtime transport at connect time."""

    VENDOR = "vendor"
    DELIVERY = "delivery"
    CUSTOMER = "customer"


class OrderStatus(str, enum.Enum):
    """
    Order lifecycle.

    pending → assigned → picked_up → in_transit → delivered, with a side exit
    to cancelled from any non-terminal state.
    """

    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def next_status(self) -> OrderStatus | None:
        """Return the next step on the happy path, or None for terminal states."""
        if self.is_terminal:
            return None
        return _HAPPY_PATH[_HAPPY_PATH.index(self) + 1]

    def can_transition_to(self, other: OrderStatus) -> bool:
        if self.is_terminal:
            return False
        if other is OrderStatus.CANCELLED:
            return True
        return other is self.next_status()

    @property
    def label(self) -> str:
        """Customer-facing description of the status."""
        return _STATUS_LABELS.get(self, "Processing order")


_HAPPY_PATH = [
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
]

_STATUS_LABELS = {
    OrderStatus.ASSIGNED: "Delivery partner assigned",
    OrderStatus.PICKED_UP: "Order picked up from restaurant",
    OrderStatus.IN_TRANSIT: "On the way to you",
    OrderStatus.DELIVERED: "Order delivered",
}


@dataclasses.dataclass(frozen=True)
class Location:
    """A wire-level coordinate pair."""

    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict) -> Location:
        try:
            return cls(float(data["lat"]), float(data["lng"]))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid location: {data!r}") from exc


@dataclasses.dataclass(frozen=True)
class PositionSample:
    """A single position produced by the geolocation source. Never persisted."""

    latitude: float
    longitude: float
    captured_at_epoch_millis: int
    accuracy_meters: float | None = None

    def as_location(self) -> Location:
        return Location(self.latitude, self.longitude)


@dataclasses.dataclass(frozen=True)
class LocationEvent:
    """``location-update`` payload. Exists only in transit."""

    delivery_id: str
    location: Location
    timestamp: str

    def to_payload(self) -> dict:
        return {
            "deliveryId": self.delivery_id,
            "location": self.location.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> LocationEvent:
        if not isinstance(payload, dict):
            raise ValueError(f"Invalid location event: {payload!r}")
        delivery_id = _delivery_id_of(payload)
        if "location" not in payload or "timestamp" not in payload:
            raise ValueError(f"Incomplete location event: {payload!r}")
        return cls(delivery_id, Location.from_dict(payload["location"]), _timestamp_of(payload))

    @property
    def captured_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


@dataclasses.dataclass(frozen=True)
class StatusEvent:
    """``order-status-update`` payload. Exists only in transit."""

    delivery_id: str
    status: OrderStatus
    timestamp: str

    def to_payload(self) -> dict:
        return {
            "deliveryId": self.delivery_id,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> StatusEvent:
        if not isinstance(payload, dict):
            raise ValueError(f"Invalid status event: {payload!r}")
        delivery_id = _delivery_id_of(payload)
        if "status" not in payload or "timestamp" not in payload:
            raise ValueError(f"Incomplete status event: {payload!r}")
        return cls(delivery_id, OrderStatus(payload["status"]), _timestamp_of(payload))


def _timestamp_of(payload: dict) -> str:
    timestamp = payload["timestamp"]
    if not isinstance(timestamp, str):
        raise ValueError(f"Event timestamp is not an ISO-8601 string: {timestamp!r}")
    parse_timestamp(timestamp)
    return timestamp


def _delivery_id_of(payload: dict) -> str:
    # Older clients send the room key as orderId
    delivery_id = payload.get("deliveryId", payload.get("orderId"))
    if not delivery_id:
        raise ValueError(f"Event without delivery id: {payload!r}")
    return str(delivery_id)


@dataclasses.dataclass(frozen=True)
class RouteInfo:
    """Route returned by the routing provider."""

    coordinates: list[tuple[float, float]]
    distance_km: float
    duration_min: int


@dataclasses.dataclass(frozen=True)
class OrderItem:
    name: str
    quantity: int = 1
    price: float = 0.0


@dataclasses.dataclass(frozen=True)
class Order:
    """An order as returned by the backend."""

    id: str
    vendor_id: str
    customer_id: str
    customer_name: str
    status: OrderStatus
    pickup_address: str
    delivery_address: str
    pickup_location: Location
    delivery_location: Location
    vendor_name: str
    customer_phone: str = ""
    items: list[OrderItem] = dataclasses.field(default_factory=list)
    total_amount: float = 0.0
    delivery_partner_id: str | None = None
    estimated_delivery_time: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> Order:
        """Map the backend's camelCase order JSON onto an Order."""
        return cls(
            id=data["id"],
            vendor_id=data["vendorId"],
            customer_id=data["customerId"],
            customer_name=data["customerName"],
            status=OrderStatus(data["status"]),
            pickup_address=data["pickupAddress"],
            delivery_address=data["deliveryAddress"],
            pickup_location=Location.from_dict(data["pickupLocation"]),
            delivery_location=Location.from_dict(data["deliveryLocation"]),
            vendor_name=data["vendorName"],
            customer_phone=data.get("customerPhone", ""),
            items=[
                OrderItem(item["name"], item.get("quantity", 1), item.get("price", 0.0))
                for item in data.get("items", [])
            ],
            total_amount=data.get("totalAmount", 0.0),
            delivery_partner_id=data.get("deliveryPartnerId"),
            estimated_delivery_time=data.get("estimatedDeliveryTime"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclasses.dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    role: UserRole
    phone: str | None = None
    address: str | None = None

    @classmethod
    def from_json(cls, data: dict) -> User:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            email=data["email"],
            role=UserRole(data["role"]),
            phone=data.get("phone"),
            address=data.get("address"),
        )


@dataclasses.dataclass(frozen=True)
class DeliveryPartner:
    id: str
    name: str
    phone: str
    is_available: bool

    @classmethod
    def from_json(cls, data: dict) -> DeliveryPartner:
        return cls(str(data["id"]), data["name"], data.get("phone", ""), bool(data.get("isAvailable", False)))
