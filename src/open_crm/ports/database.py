"""
DatabaseSession / DatabaseAdapter Ports
=======================================

Abstract interfaces every storage backend implements.

A session is one open connection to a backend, scoped to a single unit of
work (a CLI command or an HTTP request). Business-rule violations are
returned as ``ErrorResult`` values; infrastructure faults raise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any, Self

from pydantic import ValidationError

from open_crm.domain.entities import (
    AppMatch,
    Company,
    Config,
    ContactMatch,
    Database,
    ErrorResult,
    Followup,
)

CompanyAttributes = Company | Mapping[str, Any]


class DatabaseSession(ABC):
    """
    Port for reading and writing the CRM database.

    Sessions are async context managers: leaving the ``async with`` block
    closes (and, for persistent backends, flushes) the session.
    """

    @abstractmethod
    async def dump(self) -> Database:
        """Load the full content of the database."""
        ...

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    @abstractmethod
    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        """
        Add a new company.

        Fails when a company with the same name (case-insensitive) exists.
        Stamps ``created_at``/``updated_at`` and initializes empty child
        collections.
        """
        ...

    @abstractmethod
    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        """
        Merge ``attributes`` into the company called ``name``.

        Renaming is rejected: ``attributes["name"]``, when present, must equal
        ``name``. Child collections are replaced as a whole.
        """
        ...

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_company_by_name(self, name: str) -> Company | None: ...

    @abstractmethod
    async def find_app_by_name(self, app_name: str) -> AppMatch | None: ...

    @abstractmethod
    async def find_app_by_email(self, email: str) -> AppMatch | None: ...

    @abstractmethod
    async def find_contact_by_email(self, email: str) -> ContactMatch | None: ...

    @abstractmethod
    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        """Interactions with a follow-up date in ``[start_date, end_date]``."""
        ...

    @abstractmethod
    async def search_companies(self, filter: str) -> list[Company]:
        """Companies fuzzy-matching ``filter`` on name, url or address."""
        ...

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @abstractmethod
    async def load_config(self) -> Config: ...

    @abstractmethod
    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult: ...

    @abstractmethod
    async def close(self) -> None:
        """End the session, persisting pending changes."""
        ...

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class DatabaseAdapter(ABC):
    """
    Factory and owner of sessions for one backend.

    Missing storage is never an error for ``open()``: a backend that has
    nothing to read yet starts from an empty database.
    """

    @abstractmethod
    async def create(self, initial_data: Database) -> None:
        """(Re)initialize the backend with ``initial_data``."""
        ...

    @abstractmethod
    async def open(self) -> DatabaseSession:
        """
        Open a session. Data may be cached for the duration of the session.
        """
        ...

    @asynccontextmanager
    async def session(self) -> AsyncIterator[DatabaseSession]:
        """Open a session and close it when the block exits."""
        session = await self.open()
        try:
            yield session
        finally:
            await session.close()


def coerce_company(company: CompanyAttributes) -> Company | ErrorResult:
    """Build a ``Company`` from attributes, reporting a missing name or a bad value as an error."""
    if isinstance(company, Company):
        return company
    attributes = Company.aliased(company)
    if not attributes.get("name"):
        return ErrorResult(error="missing required field: name")
    try:
        return Company.model_validate(attributes)
    except ValidationError as exc:
        return ErrorResult(error=f"invalid company: {exc.errors()[0]['msg']}")
