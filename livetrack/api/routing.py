"""
Low-level routing query against the Mapbox Directions API.

Responsibilities:
- Fetch a driving route between two coordinates.
- Convert the response into a RouteInfo (km / minutes, (lat, lng) geometry).

No state is kept here; callers decide when a route needs refreshing.
"""
from __future__ import annotations

import asyncio
import logging

import aiohttp

from livetrack.const import DIRECTIONS_API_URL, ROUTE_REQUEST_TIMEOUT
from livetrack.errors import RouteUnavailableError
from livetrack.models import Location, RouteInfo

_LOGGER = logging.getLogger(__name__)


async def fetch_route(origin: Location, destination: Location, access_token: str) -> RouteInfo:
    """
    Fetch the first driving route from origin to destination.

    Raises RouteUnavailableError on any failure so the caller can keep the
    previous route and show a notice.

    Example request:
    https://api.mapbox.com/directions/v5/mapbox/driving/-122.4194,37.7749;-122.4094,37.7849?geometries=geojson&access_token=TOKEN
    """
    if not access_token:
        raise RouteUnavailableError("No routing access token configured")

    url = (
        f"{DIRECTIONS_API_URL}{origin.lng},{origin.lat};"
        f"{destination.lng},{destination.lat}"
    )
    params = {"geometries": "geojson", "access_token": access_token}
    headers = {"accept": "application/json"}
    timeout = aiohttp.ClientTimeout(total=ROUTE_REQUEST_TIMEOUT)

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=headers, params=params) as resp:
                if resp.status != 200:
                    _LOGGER.warning(
                        "Directions API returned HTTP %s for (%.5f, %.5f) -> (%.5f, %.5f)",
                        resp.status, origin.lat, origin.lng, destination.lat, destination.lng,
                    )
                    raise RouteUnavailableError(f"Directions API returned HTTP {resp.status}")
                raw = await resp.json()
    except asyncio.TimeoutError as exc:
        _LOGGER.warning(
            "Timeout fetching route for (%.5f, %.5f) -> (%.5f, %.5f)",
            origin.lat, origin.lng, destination.lat, destination.lng,
        )
        raise RouteUnavailableError("Timeout while calculating route") from exc
    except aiohttp.ClientError as exc:
        _LOGGER.error("Error fetching route: %s", exc)
        raise RouteUnavailableError(f"Error while calculating route: {exc}") from exc
    except ValueError as exc:
        _LOGGER.warning("Directions API returned a body that is not JSON: %s", exc)
        raise RouteUnavailableError("Malformed route response") from exc

    return parse_route(raw)


def parse_route(raw: dict) -> RouteInfo:
    """Turn a Directions API response into a RouteInfo."""
    routes = raw.get("routes") if isinstance(raw, dict) else None
    if not routes:
        _LOGGER.warning("Directions API returned no routes: %s", raw)
        raise RouteUnavailableError("No route found")

    route = routes[0]
    try:
        # GeoJSON coordinates are [lng, lat]
        coordinates = [(float(lat), float(lng)) for lng, lat in route["geometry"]["coordinates"]]
        distance_km = round(route["distance"] / 1000, 2)
        duration_min = round(route["duration"] / 60)
    except (KeyError, TypeError, ValueError) as exc:
        raise RouteUnavailableError(f"Malformed route response: {exc}") from exc

    return RouteInfo(coordinates=coordinates, distance_km=distance_km, duration_min=duration_min)
