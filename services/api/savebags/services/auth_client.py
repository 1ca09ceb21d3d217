"""Client for the hosted auth service (GoTrue-compatible REST API).

Endpoints used:
- POST /signup                      email + password, profile in `data`
- POST /token?grant_type=password   sign in, returns a session
- POST /logout                      revoke the session's refresh tokens
"""

import logging
from typing import Any

import httpx

from savebags.services.errors import AuthError, RemoteUnavailable
from savebags.settings import get_settings

logger = logging.getLogger("uvicorn.error")


class AuthClient:
    """Thin async wrapper over the auth REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.auth_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.auth_anon_key
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=15.0,
                headers={"apikey": self.anon_key} if self.anon_key else {},
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailable("Auth service unreachable") from e

        if response.status_code >= 500:
            raise RemoteUnavailable(f"Auth service error ({response.status_code})")
        if response.status_code >= 400:
            raise AuthError(_error_message(response))
        if not response.content:
            return {}
        return response.json()

    async def sign_up(self, email: str, password: str, *, name: str, user_type: str) -> dict[str, Any]:
        """Create an account. `user_type` is "consumer" or "merchant"."""
        data = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "data": {"name": name, "user_type": user_type}},
        )
        logger.info(f"[auth] signed up {user_type} account")
        return data

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/logout", access_token=access_token)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Auth request failed ({response.status_code})"
    if isinstance(body, dict):
        for field in ("msg", "error_description", "message", "error"):
            if body.get(field):
                return str(body[field])
    return f"Auth request failed ({response.status_code})"


_auth_client: AuthClient | None = None


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client is None:
        _auth_client = AuthClient()
    return _auth_client


async def close_auth_client() -> None:
    global _auth_client
    if _auth_client is not None:
        await _auth_client.close()
        _auth_client = None
