"""
HTTP calls to the accounts API.

Every method returns the decoded JSON body of a 2xx response. Server-reported
failures raise ApiError with the server's message; anything that keeps a
response from arriving (refused connection, timeout, broken body) raises
NetworkError, so callers can tell transport trouble from credential trouble.
"""

import logging
from typing import Any, Optional

import httpx

from zenyukti.client.config import client_settings

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Base class for failures seen by the client."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ApiError(ClientError):
    """The server answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ClientError):
    """No usable response: connection failure, timeout or undecodable body."""


class AuthAPI:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        if client is None:
            client = httpx.AsyncClient(
                base_url=base_url or client_settings.API_BASE_URL,
                timeout=timeout if timeout is not None else client_settings.REQUEST_TIMEOUT_SECONDS,
            )
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, token: Optional[str] = None, **kwargs) -> dict[str, Any]:
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException:
            logger.warning(f"{method} {url} timed out")
            raise NetworkError("The server took too long to respond. Please try again.")
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError("Could not reach the server. Check your connection and try again.")

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise ApiError(message or "API request failed", response.status_code)

        if not isinstance(data, dict):
            raise NetworkError("The server sent an unreadable response.")
        return data

    async def login(self, email: str, password: str) -> dict[str, Any]:
        return await self._request("POST", "auth/login", json={"email": email, "password": password})

    async def signup(self, name: str, email: str, password: str) -> dict[str, Any]:
        return await self._request(
            "POST", "auth/register", json={"name": name, "email": email, "password": password}
        )

    async def get_me(self, token: str) -> dict[str, Any]:
        return await self._request("GET", "auth/me", token=token)

    async def update_profile(self, token: str, name: str, email: str) -> dict[str, Any]:
        return await self._request("PUT", "auth/profile", token=token, json={"name": name, "email": email})

    async def upload_avatar(self, token: str, filename: str, content: bytes, content_type: str) -> dict[str, Any]:
        return await self._request(
            "POST", "auth/avatar", token=token, files={"avatar": (filename, content, content_type)}
        )

    async def forgot_password(self, email: str) -> dict[str, Any]:
        return await self._request("POST", "auth/forgot-password", json={"email": email})

    async def reset_password(self, ticket: str, password: str) -> dict[str, Any]:
        return await self._request("POST", f"auth/reset-password/{ticket}", json={"password": password})
