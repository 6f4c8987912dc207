"""
Remote API Database Adapter
===========================

Session forwarding every operation to a CRM HTTP API server.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from open_crm.adapters.outbound.crm_api_client import (
    DEFAULT_TIMEOUT,
    CrmApiClient,
    RemoteApiError,
)
from open_crm.adapters.outbound.session_cache import SessionCache
from open_crm.domain.defaults import normalize_database
from open_crm.domain.entities import (
    App,
    AppMatch,
    Company,
    Config,
    Contact,
    ContactMatch,
    Database,
    ErrorResult,
    Followup,
)
from open_crm.ports.database import (
    CompanyAttributes,
    DatabaseAdapter,
    DatabaseSession,
    coerce_company,
)

logger = logging.getLogger(__name__)


class RemoteApiSession(DatabaseSession):
    """One HTTP call per operation; the session owns its client."""

    def __init__(self, client: CrmApiClient) -> None:
        self._client = client

    async def _owner(self, payload: dict[str, Any]) -> Company:
        """Company named by the ``company`` field of a child record (removed from it)."""
        name = payload.pop("company", None)
        company = await self.find_company_by_name(name) if isinstance(name, str) else None
        if company is None:
            raise RemoteApiError(f"owning company {name!r} not found")
        return company

    async def dump(self) -> Database:
        return normalize_database(await self._client.dump())

    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        record = coerce_company(company)
        if isinstance(record, ErrorResult):
            return record
        result = await self._client.add_company(record.to_json())
        if isinstance(result, ErrorResult):
            return result
        return Company.model_validate(result)

    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        body = _jsonable(Company.aliased(attributes))
        result = await self._client.update_company(name, body)
        if isinstance(result, ErrorResult):
            return result
        return Company.model_validate(result["company"])

    async def find_company_by_name(self, name: str) -> Company | None:
        if not name:
            return None
        data = await self._client.get_company(name)
        return None if data is None else Company.model_validate(data)

    async def find_app_by_name(self, app_name: str) -> AppMatch | None:
        if not app_name:
            return None
        data = await self._client.get_app_by_name(app_name)
        if data is None:
            return None
        return AppMatch(company=await self._owner(data), app=App.model_validate(data))

    async def find_app_by_email(self, email: str) -> AppMatch | None:
        if not email:
            return None
        data = await self._client.get_app_by_email(email)
        if data is None:
            return None
        return AppMatch(company=await self._owner(data), app=App.model_validate(data))

    async def find_contact_by_email(self, email: str) -> ContactMatch | None:
        if not email:
            return None
        data = await self._client.get_contact_by_email(email)
        if data is None:
            return None
        return ContactMatch(
            company=await self._owner(data), contact=Contact.model_validate(data)
        )

    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        data = await self._client.followups(start_date, end_date)
        return [Followup.model_validate(item) for item in data]

    async def search_companies(self, filter: str) -> list[Company]:
        if filter:
            data = await self._client.search_companies(filter)
        else:
            data = await self._client.list_companies()
        return [Company.model_validate(item) for item in data]

    async def load_config(self) -> Config:
        return Config.model_validate(await self._client.get_config())

    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult:
        result = await self._client.update_config(_jsonable(Config.aliased(attributes)))
        if isinstance(result, ErrorResult):
            return result
        return Config.model_validate(result)

    async def close(self) -> None:
        await self._client.aclose()


def _jsonable(value: Any) -> Any:
    """Turn nested models into wire-format JSON values."""
    if hasattr(value, "to_json"):
        return value.to_json()
    if isinstance(value, Mapping):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(item) for item in value]
    return value


class RemoteApiAdapter(DatabaseAdapter):
    """Adapter for a database served by another CRM API server."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    def _client(self) -> CrmApiClient:
        return CrmApiClient(
            self._url,
            api_key=self._api_key,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create(self, initial_data: Database) -> None:
        async with self._client() as client:
            result = await client.reset(normalize_database(initial_data).to_json())
        if isinstance(result, ErrorResult):
            raise RemoteApiError(f"reset failed: {result.error}")
        logger.info("Remote database at %s reset", self._url)

    async def open(self) -> SessionCache:
        return SessionCache(RemoteApiSession(self._client()))
