"""
Error types raised by the livetrack library.

None of these are fatal: callers catch them where the failing operation was
started and surface them as a notice, then let the user retry.
"""


class TrackingError(Exception):
    """Base class for all livetrack errors."""


class UnsupportedError(TrackingError):
    """Raised when the host has no positioning capability."""

    def __init__(self, message: str = "Geolocation is not supported by this host") -> None:
        super().__init__(message)


class PositioningError(TrackingError):
    """Raised when the positioning provider fails to produce a sample."""

    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        self.message = message or _DEFAULT_MESSAGES.get(reason, "Unknown positioning error")
        super().__init__(self.message)


_DEFAULT_MESSAGES = {
    PositioningError.PERMISSION_DENIED: "User denied the request for geolocation",
    PositioningError.POSITION_UNAVAILABLE: "Location information is unavailable",
    PositioningError.TIMEOUT: "The request to get user location timed out",
}


class RouteUnavailableError(TrackingError):
    """Raised when the routing provider cannot produce a route."""


class TransportError(TrackingError):
    """Raised for network, HTTP or realtime transport failures."""
