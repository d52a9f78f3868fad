"""Configuration for a livetrack user session."""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import Any, Mapping

import voluptuous as vol
from dotenv import load_dotenv

from .const import (
    CONF_API_URL,
    CONF_DATA_SOURCE,
    CONF_MAPBOX_TOKEN,
    CONF_MIN_ROUTE_UPDATE_DISTANCE,
    CONF_REQUEST_ATTEMPTS,
    CONF_REQUEST_TIMEOUT,
    CONF_SOCKET_URL,
    DATA_SOURCE_BACKEND,
    DATA_SOURCE_MOCK,
    DEFAULT_API_URL,
    DEFAULT_SOCKET_URL,
    MIN_ROUTE_UPDATE_DISTANCE,
    REQUEST_ATTEMPTS,
    REQUEST_TIMEOUT,
)

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "LIVETRACK_"

url_validator = vol.All(str, vol.Length(min=1), vol.Match(r"^(https?|wss?)://\S+$"))
positive_int = vol.All(vol.Coerce(int), vol.Range(min=1))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_API_URL, default=DEFAULT_API_URL): url_validator,
        vol.Required(CONF_SOCKET_URL, default=DEFAULT_SOCKET_URL): url_validator,
        vol.Optional(CONF_MAPBOX_TOKEN, default=""): str,
        vol.Required(CONF_DATA_SOURCE, default=DATA_SOURCE_MOCK): vol.In(
            [DATA_SOURCE_MOCK, DATA_SOURCE_BACKEND]
        ),
        vol.Required(CONF_REQUEST_TIMEOUT, default=REQUEST_TIMEOUT): positive_int,
        vol.Required(CONF_REQUEST_ATTEMPTS, default=REQUEST_ATTEMPTS): positive_int,
        vol.Required(CONF_MIN_ROUTE_UPDATE_DISTANCE, default=MIN_ROUTE_UPDATE_DISTANCE): vol.All(
            vol.Coerce(float), vol.Range(min=0.0)
        ),
    }
)


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Validated settings shared by every component of a user session."""

    api_url: str = DEFAULT_API_URL
    socket_url: str = DEFAULT_SOCKET_URL
    mapbox_token: str = ""
    data_source: str = DATA_SOURCE_MOCK
    request_timeout: int = REQUEST_TIMEOUT
    request_attempts: int = REQUEST_ATTEMPTS
    min_route_update_distance: float = MIN_ROUTE_UPDATE_DISTANCE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrackerConfig:
        """Validate ``data`` against CONFIG_SCHEMA. Raises vol.Invalid on bad input."""
        validated = CONFIG_SCHEMA(dict(data))
        return cls(**validated)

    @property
    def use_mock_data(self) -> bool:
        return self.data_source == DATA_SOURCE_MOCK


def load_config(env: Mapping[str, str] | None = None) -> TrackerConfig:
    """
    Build a TrackerConfig from ``LIVETRACK_*`` environment variables.

    A ``.env`` file in the working directory is loaded first when reading
    from the process environment. Unset variables fall back to defaults.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    raw = {}
    for key in CONFIG_SCHEMA.schema:
        name = ENV_PREFIX + str(key).upper()
        if env.get(name):
            raw[str(key)] = env[name]

    config = TrackerConfig.from_dict(raw)
    _LOGGER.debug(
        "Loaded config: api_url=%s socket_url=%s data_source=%s",
        config.api_url, config.socket_url, config.data_source,
    )
    return config
