"""
Low-level authentication logic for the order/auth backend.

Responsible for:
- Logging in and signing up via the backend auth endpoints
- Holding the bearer token and user for the current session
- Building the standard authorization headers used by all API calls
"""
from __future__ import annotations

import logging

from livetrack.const import DEFAULT_API_URL, REQUEST_ATTEMPTS, REQUEST_TIMEOUT
from livetrack.errors import TransportError
from livetrack.models import User, UserRole
from livetrack.requests import make_request

_LOGGER = logging.getLogger(__name__)


class LoginResponse:
    """Parsed response from the login and signup endpoints."""

    token: str
    user: User

    def __init__(self, json: dict) -> None:
        try:
            self.token = json["token"]
            self.user = User.from_json(json["user"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Unexpected auth response: {json!r}") from e

    def __str__(self) -> str:
        return f"user: {self.user.id} ({self.user.role.value})"


class AuthSession:
    """
    Token and user for the signed-in account.

    Replaces browser local storage: one instance lives for one user session
    and is cleared on logout.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: int = REQUEST_TIMEOUT,
        max_attempts: int = REQUEST_ATTEMPTS,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.token: str | None = None
        self.user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    async def login(self, email: str, password: str, role: UserRole) -> LoginResponse:
        """
        Log in and store the returned token and user.

        Corresponding CURL command:
        curl -X 'POST' 'http://localhost:3001/api/auth/login' \\
          -H 'Content-Type: application/json' \\
          -d '{"email": "...", "password": "...", "role": "vendor"}'
        """
        payload = {"email": email, "password": password, "role": UserRole(role).value}
        return await self._authenticate("auth/login", payload)

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        phone: str | None = None,
        address: str | None = None,
    ) -> LoginResponse:
        """Create an account and store the returned token and user."""
        payload = {
            "name": name,
            "email": email,
            "password": password,
            "role": UserRole(role).value,
        }
        if phone:
            payload["phone"] = phone
        if address:
            payload["address"] = address
        return await self._authenticate("auth/signup", payload)

    def logout(self) -> None:
        self.token = None
        self.user = None

    def get_standard_headers(self) -> dict:
        """Headers for authenticated requests; no Authorization header when logged out."""
        return get_standard_headers(self.token)

    async def _authenticate(self, path: str, payload: dict) -> LoginResponse:
        url = f"{self.api_url}/{path}"
        try:
            json_response = await make_request(
                "POST",
                url,
                {"Content-Type": "application/json"},
                payload=payload,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
            )
        except TransportError as e:
            _LOGGER.error("Error while calling %s: %s", path, e)
            raise
        response = LoginResponse(json_response)
        self.token = response.token
        self.user = response.user
        _LOGGER.debug("Authenticated %s", response)
        return response


def get_standard_headers(token: str | None) -> dict:
    """
    Build the standard HTTP headers used by all authenticated backend requests.

    :param token: Bearer token obtained from :meth:`AuthSession.login`.
    :return: Dictionary of HTTP headers.
    """
    headers = {
        "accept": "application/json",
        "Content-Type": "application/json",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers
