"""
Low-level order data fetching from the order backend.

Responsible for:
- Fetching orders per vendor, per delivery partner and by id
- Assigning a delivery partner and updating order status
- Listing available delivery partners
- Mapping the JSON responses onto Order / DeliveryPartner instances
"""
from __future__ import annotations

import logging

from livetrack.api.auth import AuthSession
from livetrack.const import REQUEST_ATTEMPTS, REQUEST_TIMEOUT
from livetrack.errors import TransportError
from livetrack.models import DeliveryPartner, Order, OrderStatus
from livetrack.requests import make_request

_LOGGER = logging.getLogger(__name__)


def _parse_order(order: dict) -> Order | None:
    """Map a single raw order dict onto an Order, or None if it is malformed."""
    try:
        return Order.from_json(order)
    except (KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Skipping malformed order %s: %s", order.get("id") if isinstance(order, dict) else order, e)
        return None


class OrderApi:
    """REST client for the order endpoints, authorised by an AuthSession."""

    def __init__(
        self,
        auth: AuthSession,
        timeout: int = REQUEST_TIMEOUT,
        max_attempts: int = REQUEST_ATTEMPTS,
    ) -> None:
        self.auth = auth
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def get_vendor_orders(self, vendor_id: str) -> list[Order]:
        """
        Corresponding CURL command:
        curl -X 'GET' 'http://localhost:3001/api/orders/vendor/<vendor_id>' \\
          -H 'Authorization: Bearer <token>'
        """
        return await self._get_order_list(f"orders/vendor/{vendor_id}")

    async def get_delivery_partner_orders(self, delivery_partner_id: str) -> list[Order]:
        return await self._get_order_list(f"orders/delivery/{delivery_partner_id}")

    async def get_order(self, order_id: str) -> Order:
        raw_json = await self._request("GET", f"orders/{order_id}")
        return self._single_order(order_id, raw_json)

    async def assign_delivery_partner(self, order_id: str, delivery_partner_id: str) -> Order:
        raw_json = await self._request(
            "POST", f"orders/{order_id}/assign", payload={"deliveryPartnerId": delivery_partner_id}
        )
        return self._single_order(order_id, raw_json)

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        raw_json = await self._request(
            "PUT", f"orders/{order_id}/status", payload={"status": OrderStatus(status).value}
        )
        return self._single_order(order_id, raw_json)

    async def get_available_delivery_partners(self) -> list[DeliveryPartner]:
        raw_json = await self._request("GET", "delivery-partners/available")
        if not isinstance(raw_json, list):
            raise TransportError(f"Unexpected delivery partner response: {raw_json!r}")
        partners = []
        for partner in raw_json:
            try:
                partners.append(DeliveryPartner.from_json(partner))
            except (KeyError, TypeError) as e:
                _LOGGER.warning("Skipping malformed delivery partner %s: %s", partner, e)
        return partners

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_order_list(self, path: str) -> list[Order]:
        raw_json = await self._request("GET", path)
        if not isinstance(raw_json, list):
            raise TransportError(f"Unexpected order list response from {path}: {raw_json!r}")
        parsed = [_parse_order(order) for order in raw_json]
        return [o for o in parsed if o is not None]

    def _single_order(self, order_id: str, raw_json) -> Order:
        order = _parse_order(raw_json) if isinstance(raw_json, dict) else None
        if order is None:
            raise TransportError(f"Unexpected order response for {order_id}: {raw_json!r}")
        return order

    async def _request(self, method: str, path: str, payload: dict | None = None):
        url = f"{self.auth.api_url}/{path}"
        try:
            return await make_request(
                method,
                url,
                self.auth.get_standard_headers(),
                payload=payload,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
            )
        except TransportError as e:
            _LOGGER.error("Error while calling %s %s: %s", method, path, e)
            raise
