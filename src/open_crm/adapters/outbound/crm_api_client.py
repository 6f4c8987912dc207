"""
CRM API Client
==============

Thin httpx client for the CRM HTTP API served by ``open_crm.api``.

Responses are returned as decoded JSON. ``None`` stands for a 404 on
lookups; a ``{"error": ...}`` body on a 4xx response comes back as an
``ErrorResult``. Every other non-2xx status raises ``httpx.HTTPStatusError``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import httpx

from open_crm.domain.entities import ErrorResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
# 401/403 are not business errors: bad credentials raise
BUSINESS_ERROR_STATUSES = frozenset({400, 404, 409, 422})


class RemoteApiError(Exception):
    """Exception raised when the CRM API returns inconsistent data."""

    pass


def _segment(value: str) -> str:
    return quote(value, safe="")


def split_credentials(url: str) -> tuple[str, httpx.BasicAuth | None]:
    """
    Strip ``user:password@`` from ``url``.

    Returns:
        The URL without userinfo, and basic-auth credentials if it had any.
    """
    parts = urlsplit(url)
    if not parts.username and not parts.password:
        return url, None
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    clean = urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))
    auth = httpx.BasicAuth(unquote(parts.username or ""), unquote(parts.password or ""))
    return clean, auth


class CrmApiClient:
    """
    Client for the CRM HTTP API.

    Owns one ``httpx.AsyncClient``; call ``aclose()`` (or use ``async with``)
    to release it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Server URL, optionally carrying ``user:password@``.
            api_key: Sent as a bearer token when the URL has no credentials.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport (tests, in-process apps).
        """
        url, auth = split_credentials(base_url)
        headers: dict[str, str] = {}
        if auth is None and api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._base_url = url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            auth=auth,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CrmApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _lookup(self, path: str) -> Any | None:
        """GET returning ``None`` on 404."""
        response = await self._client.get(path)
        if response.status_code == 404:
            logger.debug("GET %s: not found", path)
            return None
        response.raise_for_status()
        return response.json()

    async def _call(self, method: str, path: str, body: Any = None) -> Any | ErrorResult:
        """Mutating call; business-error bodies become ``ErrorResult``."""
        response = await self._client.request(method, path, json=body)
        if response.status_code in BUSINESS_ERROR_STATUSES:
            error = _error_of(response)
            if error is not None:
                return ErrorResult(error=error)
        response.raise_for_status()
        data = response.json() if response.content else None
        if isinstance(data, dict) and set(data) == {"error"}:
            return ErrorResult(error=str(data["error"]))
        return data

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def reset(self, database: dict[str, Any]) -> Any | ErrorResult:
        return await self._call("POST", "/reset", database)

    async def dump(self) -> dict[str, Any]:
        response = await self._client.get("/dump")
        response.raise_for_status()
        return response.json()

    async def list_companies(self) -> list[dict[str, Any]]:
        response = await self._client.get("/companies")
        response.raise_for_status()
        return response.json()

    async def search_companies(self, filter: str) -> list[dict[str, Any]]:
        response = await self._client.get(f"/companies/search/{_segment(filter)}")
        response.raise_for_status()
        return response.json()["rows"]

    async def get_company(self, name: str) -> dict[str, Any] | None:
        return await self._lookup(f"/companies/{_segment(name)}")

    async def add_company(self, company: dict[str, Any]) -> Any | ErrorResult:
        return await self._call("POST", "/companies", company)

    async def update_company(self, name: str, attributes: dict[str, Any]) -> Any | ErrorResult:
        return await self._call("PUT", f"/companies/{_segment(name)}", attributes)

    async def get_contact_by_email(self, email: str) -> dict[str, Any] | None:
        return await self._lookup(f"/contacts/by-email/{_segment(email)}")

    async def get_app_by_name(self, app_name: str) -> dict[str, Any] | None:
        return await self._lookup(f"/apps/by-name/{_segment(app_name)}")

    async def get_app_by_email(self, email: str) -> dict[str, Any] | None:
        return await self._lookup(f"/apps/by-email/{_segment(email)}")

    async def followups(self, start_date: str, end_date: str) -> list[dict[str, Any]]:
        response = await self._client.get(
            "/followups", params={"start_date": start_date, "end_date": end_date}
        )
        response.raise_for_status()
        return response.json()["followups"]

    async def get_config(self) -> dict[str, Any]:
        response = await self._client.get("/config")
        response.raise_for_status()
        return response.json()

    async def update_config(self, attributes: dict[str, Any]) -> Any | ErrorResult:
        return await self._call("PUT", "/config", attributes)


def _error_of(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return None
