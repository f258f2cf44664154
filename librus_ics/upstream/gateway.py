"""Access to the Librus Synergia register.

Login goes through the Librus OAuth portal, which leaves a session cookie
that the Synergia gateway JSON API accepts. The cookie jar of the shared
``httpx.AsyncClient`` therefore *is* the upstream token; callers only ever
see ``authenticate()`` succeed or fail.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping
from typing import Any, Optional, Protocol

import httpx

from librus_ics.core.exceptions import UpstreamAuthError, UpstreamError
from librus_ics.core.http_client import get_shared_client

logger = logging.getLogger(__name__)

OAUTH_BASE_URL = "https://api.librus.pl/OAuth"
GATEWAY_BASE_URL = "https://synergia.librus.pl/gateway/api/2.0"
OAUTH_CLIENT_ID = "46"

# Gateway statuses meaning "log in again"
_AUTH_STATUS_CODES = frozenset({401, 403})


class UpstreamGateway(Protocol):
    """Capability consumed by the refresh pipeline and the events feed."""

    async def authenticate(self) -> bool:
        """Open a new upstream session; False if the credentials were rejected."""
        ...

    async def fetch_timetable_week(self, week_key: datetime.date) -> Mapping[str, Any]:
        """Timetable slots of the week starting ``week_key``, keyed by date."""
        ...

    async def fetch_homework_categories(self) -> list[Mapping[str, Any]]:
        """Homework category dictionary entries (``Id``, ``Name``)."""
        ...

    async def fetch_subjects(self) -> list[Mapping[str, Any]]:
        """Subject dictionary entries (``Id``, ``Name``)."""
        ...

    async def fetch_homeworks(self) -> list[Mapping[str, Any]]:
        """Homework and announced-test entries."""
        ...


class LibrusGateway:
    """httpx implementation of :class:`UpstreamGateway` for Librus Synergia."""

    def __init__(
        self,
        login: Optional[str],
        password: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        oauth_base_url: str = OAUTH_BASE_URL,
        gateway_base_url: str = GATEWAY_BASE_URL,
    ) -> None:
        """Initialize gateway.

        Args:
            login: Librus account login
            password: Librus account password
            client: HTTP client to use (defaults to the shared "librus" client)
            oauth_base_url: OAuth portal base URL
            gateway_base_url: Synergia gateway API base URL
        """
        self._login = login
        self._password = password
        self._client = client
        self.oauth_base_url = oauth_base_url.rstrip("/")
        self.gateway_base_url = gateway_base_url.rstrip("/")

    async def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = await get_shared_client("librus")
        return self._client

    async def authenticate(self) -> bool:
        """Log in through the OAuth portal and activate the gateway session.

        Returns:
            True on success, False if the credentials were rejected

        Raises:
            UpstreamError: Network failure or unexpected portal response
        """
        if not self._login or not self._password:
            logger.error("Librus credentials are not configured")
            return False

        client = await self._http()
        client.cookies.clear()
        auth_url = f"{self.oauth_base_url}/Authorization"
        params = {"client_id": OAUTH_CLIENT_ID}

        try:
            await client.get(
                auth_url,
                params={**params, "response_type": "code", "scope": "mydata"},
            )

            login_response = await client.post(
                auth_url,
                params=params,
                data={"action": "login", "login": self._login, "pass": self._password},
            )
            if login_response.status_code in _AUTH_STATUS_CODES:
                logger.warning("Librus portal rejected login (HTTP %d)", login_response.status_code)
                return False
            login_response.raise_for_status()
            if not _login_accepted(login_response):
                logger.warning("Librus portal rejected login")
                return False

            grant_response = await client.get(f"{auth_url}/Grant", params=params)
            grant_response.raise_for_status()

            token_info = await self._get_json("/Auth/TokenInfo")
            user_id = token_info.get("UserIdentifier") if isinstance(token_info, dict) else None
            if not user_id:
                logger.warning("Librus gateway returned no user identifier after login")
                return False

            # Activates the token for the data endpoints
            await self._get_json(f"/Auth/UserInfo/{user_id}")

        except UpstreamAuthError as e:
            logger.warning("Librus gateway refused new session: %s", e)
            return False
        except httpx.HTTPError as e:
            raise UpstreamError(f"Librus login failed: {e}") from e

        logger.info("Librus session established")
        return True

    async def _get_json(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        client = await self._http()
        url = f"{self.gateway_base_url}{path}"

        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"GET {path} failed: {e}") from e

        if response.status_code in _AUTH_STATUS_CODES:
            raise UpstreamAuthError(f"GET {path} rejected with HTTP {response.status_code}")
        if response.status_code >= 400:
            raise UpstreamError(f"GET {path} failed with HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"GET {path} returned invalid JSON") from e

    async def _get_listing(self, path: str, key: str) -> list[Mapping[str, Any]]:
        data = await self._get_json(path)
        if not isinstance(data, dict):
            raise UpstreamError(f"GET {path} returned unexpected payload")
        items = data.get(key) or []
        if not isinstance(items, list):
            raise UpstreamError(f"GET {path} returned non-list {key!r}")
        return items

    async def fetch_timetable_week(self, week_key: datetime.date) -> Mapping[str, Any]:
        """Timetable of the week starting ``week_key``; empty mapping if none."""
        data = await self._get_json("/Timetables", params={"weekStart": week_key.isoformat()})
        if not isinstance(data, dict):
            raise UpstreamError("Timetables returned unexpected payload")
        timetable = data.get("Timetable") or {}
        if not isinstance(timetable, dict):
            raise UpstreamError("Timetables returned non-mapping 'Timetable'")
        return timetable

    async def fetch_homework_categories(self) -> list[Mapping[str, Any]]:
        return await self._get_listing("/HomeWorks/Categories", "Categories")

    async def fetch_subjects(self) -> list[Mapping[str, Any]]:
        return await self._get_listing("/Subjects", "Subjects")

    async def fetch_homeworks(self) -> list[Mapping[str, Any]]:
        return await self._get_listing("/HomeWorks", "HomeWorks")


def _login_accepted(response: httpx.Response) -> bool:
    """The portal answers the login POST with ``{"status": "ok", ...}`` on success."""
    try:
        payload = response.json()
    except ValueError:
        # HTML answer after a redirect means the form was accepted
        return True
    if isinstance(payload, dict) and "status" in payload:
        return payload.get("status") == "ok"
    return True
