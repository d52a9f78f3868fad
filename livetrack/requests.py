"""
Low-level HTTP request library for the order/auth backend and routing provider.
Every backend call goes through make_request(), which retries on timeout and maps
failures onto TransportError.
"""
import asyncio
import logging

import aiohttp

from livetrack.const import REQUEST_ATTEMPTS, REQUEST_TIMEOUT
from livetrack.errors import TransportError

_LOGGER = logging.getLogger(__name__)


class ApiResponseError(TransportError):
    """Exception raised when the API returns an error response."""
    def __init__(self, status: int, error_json: dict | None = None):
        self.status = status
        self.error_json = error_json or {}
        super().__init__(f"API Error {status}: {self.error_json}")


async def make_request(
    method: str,
    url: str,
    headers: dict,
    payload: dict = None,
    params: dict = None,
    timeout: int = REQUEST_TIMEOUT,
    max_attempts: int = REQUEST_ATTEMPTS,
):
    """
    Send one backend request, retrying only when it times out.

    Args:
        method: HTTP method (GET, POST, PUT)
        url: Target URL for the request
        headers: HTTP headers dictionary
        payload: JSON payload for POST/PUT requests (optional)
        params: URL query parameters (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of attempts

    Returns:
        Parsed JSON response

    Raises:
        ApiResponseError: If the server answered with an error status
        TransportError: If all attempts time out, the connection fails,
            or the response is not JSON
    """
    method = method.upper()
    if method not in ("GET", "POST", "PUT"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    for attempt in range(max_attempts):
        # Timeout grows with each attempt
        timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
        try:
            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.request(
                    method, url, headers=headers, json=payload, params=params
                ) as response:
                    return await _process_response(response, url)

        except (asyncio.TimeoutError, TimeoutError) as e:
            if attempt < max_attempts - 1:
                _LOGGER.debug("Timeout on %s %s (attempt %s), retrying", method, url, attempt + 1)
                continue
            _LOGGER.warning(
                "%s %s timed out %s times, giving up",
                method, url, max_attempts
            )
            raise TransportError(f"Timeout on {method} {url}") from e

        except aiohttp.ClientError as e:
            # Connection refused, DNS failure and the like are not retried
            _LOGGER.warning("%s request to %s failed: %s", method, url, e)
            raise TransportError(f"{method} {url} failed: {e}") from e

    raise TransportError(f"No attempts made for {method} {url}")


async def _process_response(response, url: str):
    """
    Return the JSON body of a 2xx response, raise for anything else.

    Args:
        response: aiohttp response object
        url: Request URL (for logging)

    Returns:
        Parsed JSON response

    Raises:
        ApiResponseError: For error statuses
        TransportError: If a response has an unexpected content type
    """
    content_type = response.headers.get('Content-Type', '')

    # 2xx: JSON body expected
    if 200 <= response.status < 300:
        if 'application/json' in content_type:
            return await response.json()
        _LOGGER.warning(
            "Expected JSON from %s but got %s (status %s)",
            url, content_type, response.status
        )
        text = await response.text()
        raise TransportError(f"Expected JSON but got {content_type}: {text[:200]}")

    # Error status with a JSON body
    if 'application/json' in content_type:
        try:
            error_json = await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            _LOGGER.error(
                "Failed to parse error response as JSON from %s: %s (status %s)",
                url, e, response.status
            )
            raise ApiResponseError(response.status) from e
        raise ApiResponseError(response.status, error_json if isinstance(error_json, dict) else {"error": error_json})

    # Error status with a non-JSON body, e.g. a proxy error page
    text = await response.text()
    _LOGGER.warning(
        "HTTP %s from %s (%s): %s",
        response.status, url, content_type, text[:200]
    )
    raise ApiResponseError(response.status, {"error": text[:200]})
