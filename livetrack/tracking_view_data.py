"""
TrackingViewData: immutable snapshot of everything a tracking map shows.

This is a pure data module with no network or transport dependencies.
"""
from __future__ import annotations

import dataclasses

from .models import Location, OrderStatus, PositionSample


@dataclasses.dataclass(frozen=True)
class TrackingViewData:
    """
    Typed, copy-on-write snapshot of one tracked delivery.

    Always replace via dataclasses.replace(); never mutate in place.
    """

    delivery_id: str | None = None

    # Fixed endpoints of the delivery
    pickup: Location | None = None
    dropoff: Location | None = None

    # This device's own latest sample (delivery partner view)
    self_location: PositionSample | None = None

    # Latest position received from the other party, with its wire timestamp
    counterparty_location: Location | None = None
    counterparty_updated_at: str | None = None

    status: OrderStatus | None = None

    # Route from the tracked position to the dropoff, as (lat, lng) points
    route: list[tuple[float, float]] = dataclasses.field(default_factory=list)
    distance_km: float | None = None
    duration_min: int | None = None

    # Transient user-facing message (routing failures)
    notice: str | None = None

    @property
    def tracked_position(self) -> Location | None:
        """Counterparty position if known, else this device's own."""
        if self.counterparty_location is not None:
            return self.counterparty_location
        if self.self_location is not None:
            return self.self_location.as_location()
        return None

    @property
    def is_live(self) -> bool:
        return self.tracked_position is not None
