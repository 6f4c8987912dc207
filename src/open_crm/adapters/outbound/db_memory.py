"""
In-Memory Database Adapter
==========================

Session over a ``Database`` value held in process memory.

Also serves as the matcher used by the file backend (which extends it) and
by the session cache (which queries it over cached content).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from open_crm.domain.defaults import empty_database, normalize_database
from open_crm.domain.entities import (
    AppMatch,
    Company,
    Config,
    ContactMatch,
    Database,
    ErrorResult,
    Followup,
    now_iso,
)
from open_crm.domain.services import followups, resolver
from open_crm.ports.database import (
    CompanyAttributes,
    DatabaseAdapter,
    DatabaseSession,
    coerce_company,
)

logger = logging.getLogger(__name__)


def _same(a: str | None, b: str | None) -> bool:
    return a is not None and b is not None and a.lower() == b.lower()


class InMemorySession(DatabaseSession):
    """
    Session operating directly on a ``Database`` value.

    The database is held by reference: mutations are visible to every other
    holder of the same value. ``is_modified`` tracks unsaved changes.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self.is_modified = False

    @property
    def database(self) -> Database:
        return self._database

    async def dump(self) -> Database:
        return self._database

    def _company(self, name: str | None) -> Company | None:
        if not name:
            return None
        for company in self._database.companies:
            if _same(company.name, name):
                return company
        return None

    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        record = coerce_company(company)
        if isinstance(record, ErrorResult):
            return record
        if self._company(record.name) is not None:
            return ErrorResult(error="company already exists")

        now = now_iso()
        record.created_at = record.created_at or now
        record.updated_at = now
        self._database.companies.append(record)
        self.is_modified = True
        return record

    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        company = self._company(name)
        if company is None:
            return ErrorResult(error="company not found")
        new_name = attributes.get("name")
        if new_name is not None and new_name != name:
            return ErrorResult(error="incorrect body name")

        try:
            company.merge(attributes)
        except ValidationError as exc:
            return ErrorResult(error=f"invalid company: {exc.errors()[0]['msg']}")
        company.updated_at = now_iso()
        self.is_modified = True
        return company

    async def find_company_by_name(self, name: str) -> Company | None:
        return self._company(name)

    async def find_app_by_name(self, app_name: str) -> AppMatch | None:
        if not app_name:
            return None
        for company in self._database.companies:
            for app in company.apps:
                if _same(app.app_name, app_name):
                    return AppMatch(company=company, app=app)
        return None

    async def find_app_by_email(self, email: str) -> AppMatch | None:
        if not email:
            return None
        for company in self._database.companies:
            for app in company.apps:
                if _same(app.email, email):
                    return AppMatch(company=company, app=app)
        return None

    async def find_contact_by_email(self, email: str) -> ContactMatch | None:
        if not email:
            return None
        for company in self._database.companies:
            for contact in company.contacts:
                if _same(contact.email, email):
                    return ContactMatch(company=company, contact=contact)
        return None

    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        return followups.find_followups(self._database, start_date, end_date)

    async def search_companies(self, filter: str) -> list[Company]:
        return resolver.search_companies(self._database, filter)

    async def load_config(self) -> Config:
        return self._database.config

    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult:
        try:
            self._database.config.merge(attributes)
        except ValidationError as exc:
            return ErrorResult(error=f"invalid config: {exc.errors()[0]['msg']}")
        self.is_modified = True
        return self._database.config

    async def close(self) -> None:
        self.is_modified = False


class InMemoryAdapter(DatabaseAdapter):
    """Adapter keeping one ``Database`` for the lifetime of the process."""

    def __init__(self, initial_data: Any = None) -> None:
        self._database = (
            empty_database() if initial_data is None else normalize_database(initial_data)
        )

    async def create(self, initial_data: Database) -> None:
        self._database = normalize_database(initial_data)
        logger.debug("In-memory database reset (%d companies)", len(self._database.companies))

    async def open(self) -> InMemorySession:
        return InMemorySession(self._database)
