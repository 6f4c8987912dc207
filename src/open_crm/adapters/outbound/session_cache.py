"""
Session Cache
=============

Decorator over a ``DatabaseSession`` that remembers what the wrapped session
returned for the lifetime of the session.

Lookups are answered from cached content when possible; a miss is delegated
and only the owning company is added to the cache. Writes always go to the
wrapped session and drop the cached parts listed in ``INVALIDATION_RULES``.
Concurrent ``dump()`` calls share a single backend fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from open_crm.adapters.outbound.db_memory import InMemorySession
from open_crm.domain.entities import (
    AppMatch,
    Company,
    Config,
    ContactMatch,
    Database,
    ErrorResult,
    Followup,
)
from open_crm.ports.database import CompanyAttributes, DatabaseSession

logger = logging.getLogger(__name__)

DUMP = "dump"
COMPANIES = "companies"
CONFIG = "config"

# Cached parts each write operation makes stale
INVALIDATION_RULES: dict[str, frozenset[str]] = {
    "add_company": frozenset({DUMP, COMPANIES}),
    "update_company": frozenset({DUMP, COMPANIES}),
    "update_config": frozenset({CONFIG}),
}


class SessionCache(DatabaseSession):
    """Caching wrapper around another session."""

    def __init__(self, wrapped: DatabaseSession) -> None:
        self._wrapped = wrapped
        self._cache = Database()
        self._matcher = InMemorySession(self._cache)
        self._has_config = False
        self._dump_task: asyncio.Task[Database] | None = None
        self.is_dump = False

    @property
    def wrapped(self) -> DatabaseSession:
        return self._wrapped

    # ------------------------------------------------------------------
    # Cache bookkeeping
    # ------------------------------------------------------------------

    def invalidate(self, operation: str) -> None:
        parts = INVALIDATION_RULES.get(operation, frozenset())
        if DUMP in parts:
            self.is_dump = False
        if COMPANIES in parts:
            self._cache.companies = []
        if CONFIG in parts:
            self._has_config = False
        logger.debug("Cache invalidated by %s: %s", operation, sorted(parts))

    def _remember(self, company: Company) -> None:
        wanted = company.name.lower()
        for index, cached in enumerate(self._cache.companies):
            if cached.name.lower() == wanted:
                self._cache.companies[index] = company
                return
        self._cache.companies.append(company)

    def _snapshot(self) -> Database:
        return Database(companies=list(self._cache.companies), config=self._cache.config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch_dump(self) -> Database:
        try:
            database = await self._wrapped.dump()
            self._cache.companies = list(database.companies)
            self._cache.config = database.config
            self._has_config = True
            self.is_dump = True
            return self._snapshot()
        finally:
            self._dump_task = None

    async def dump(self) -> Database:
        if self.is_dump and self._has_config:
            logger.debug("Dump served from cache")
            return self._snapshot()
        if self._dump_task is None:
            self._dump_task = asyncio.ensure_future(self._fetch_dump())
        return await asyncio.shield(self._dump_task)

    async def find_company_by_name(self, name: str) -> Company | None:
        company = await self._matcher.find_company_by_name(name)
        if company is not None:
            logger.debug("Cache hit for company %s", name)
            return company
        company = await self._wrapped.find_company_by_name(name)
        if company is not None:
            self._remember(company)
        return company

    async def find_app_by_name(self, app_name: str) -> AppMatch | None:
        match = await self._matcher.find_app_by_name(app_name)
        if match is not None:
            return match
        match = await self._wrapped.find_app_by_name(app_name)
        if match is not None:
            self._remember(match.company)
        return match

    async def find_app_by_email(self, email: str) -> AppMatch | None:
        match = await self._matcher.find_app_by_email(email)
        if match is not None:
            return match
        match = await self._wrapped.find_app_by_email(email)
        if match is not None:
            self._remember(match.company)
        return match

    async def find_contact_by_email(self, email: str) -> ContactMatch | None:
        match = await self._matcher.find_contact_by_email(email)
        if match is not None:
            return match
        match = await self._wrapped.find_contact_by_email(email)
        if match is not None:
            self._remember(match.company)
        return match

    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        if self.is_dump:
            return await self._matcher.find_followups(start_date, end_date)
        return await self._wrapped.find_followups(start_date, end_date)

    async def search_companies(self, filter: str) -> list[Company]:
        if self.is_dump:
            return await self._matcher.search_companies(filter)
        return await self._wrapped.search_companies(filter)

    async def load_config(self) -> Config:
        if not self._has_config:
            self._cache.config = await self._wrapped.load_config()
            self._has_config = True
        return self._cache.config

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        self.invalidate("add_company")
        return await self._wrapped.add_company(company)

    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        company = await self.find_company_by_name(name)
        if company is None:
            return ErrorResult(error="company not found")
        new_name = attributes.get("name")
        if new_name is not None and new_name != name:
            return ErrorResult(error="incorrect body name")

        try:
            merged = company.model_copy(deep=True).merge(attributes).to_json()
        except ValidationError as exc:
            return ErrorResult(error=f"invalid company: {exc.errors()[0]['msg']}")
        merged["name"] = company.name
        self.invalidate("update_company")
        return await self._wrapped.update_company(company.name, merged)

    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult:
        self.invalidate("update_config")
        result = await self._wrapped.update_config(attributes)
        if isinstance(result, Config):
            self._cache.config = result
            self._has_config = True
        return result

    async def close(self) -> None:
        self._cache = Database()
        self._matcher = InMemorySession(self._cache)
        self._has_config = False
        self.is_dump = False
        await self._wrapped.close()
