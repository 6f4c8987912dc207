"""
CRM Session
===========

Use-case layer shared by the HTTP API and the CLI.

Wraps one lazily-opened ``DatabaseSession`` and adds the operations on
contacts, apps, interactions, staff and templates. Child records are never
written on their own: every mutation rewrites the owning array of the
company through ``update_company``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any, Self

from pydantic import ValidationError

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
    Interaction,
    InteractionMatch,
    TemplateEmail,
    now_iso,
)
from open_crm.domain.services import resolver, templates
from open_crm.domain.services.resolver import Resolution
from open_crm.ports.database import CompanyAttributes, DatabaseAdapter, DatabaseSession

logger = logging.getLogger(__name__)


def _missing(*fields: str) -> ErrorResult:
    return ErrorResult(error="missing required field: " + ", ".join(fields))


def _invalid(kind: str, exc: ValidationError) -> ErrorResult:
    return ErrorResult(error=f"invalid {kind}: {exc.errors()[0]['msg']}")


def _without_company(attributes: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in attributes.items() if key != "company"}


class CrmSession:
    """
    One unit of work against a CRM database.

    Usage:
        async with CrmSession(adapter) as crm:
            await crm.add_contact({"company": "Acme", "email": "jo@acme.com"})
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self._adapter = adapter
        self._session: DatabaseSession | None = None

    async def database(self) -> DatabaseSession:
        """The underlying session, opened on first use."""
        if self._session is None:
            self._session = await self._adapter.open()
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Pass-through session operations
    # ------------------------------------------------------------------

    async def dump(self) -> Database:
        return await (await self.database()).dump()

    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        return await (await self.database()).add_company(company)

    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        return await (await self.database()).update_company(name, attributes)

    async def find_company_by_name(self, name: str) -> Company | None:
        return await (await self.database()).find_company_by_name(name)

    async def find_app_by_name(self, app_name: str) -> AppMatch | None:
        return await (await self.database()).find_app_by_name(app_name)

    async def find_app_by_email(self, email: str) -> AppMatch | None:
        return await (await self.database()).find_app_by_email(email)

    async def find_contact_by_email(self, email: str) -> ContactMatch | None:
        return await (await self.database()).find_contact_by_email(email)

    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        return await (await self.database()).find_followups(start_date, end_date)

    async def search_companies(self, filter: str) -> list[Company]:
        return await (await self.database()).search_companies(filter)

    async def load_config(self) -> Config:
        return await (await self.database()).load_config()

    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult:
        return await (await self.database()).update_config(attributes)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def find_company(self, search: str | None) -> Company | None:
        """Company by exact name, else by fuzzy match over the whole database."""
        if not search:
            return None
        company = await self.find_company_by_name(search)
        if company is not None:
            return company
        return resolver.find_company(await self.dump(), search)

    async def find_interaction(self, ordinal: int | str) -> InteractionMatch | None:
        """Interaction by its 1-based ordinal over the whole database."""
        return resolver.find_interaction(await self.dump(), ordinal)

    async def resolve(self, filter: str | None) -> Resolution:
        """Company, contact and app a free-text filter refers to."""
        return resolver.resolve(await self.dump(), filter)

    async def _rewrite(self, company: Company, key: str, items: list[Any]) -> Company | ErrorResult:
        return await self.update_company(company.name, {key: [item.to_json() for item in items]})

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def add_contact(self, attributes: Mapping[str, Any]) -> Contact | ErrorResult:
        """
        Add a contact to the company named by ``attributes["company"]``.

        The email must not be used by any other contact.
        """
        if not attributes.get("company") or not attributes.get("email"):
            return _missing("company", "email")
        company = await self.find_company(attributes["company"])
        if company is None:
            return ErrorResult(error="company not found")
        if await self.find_contact_by_email(attributes["email"]) is not None:
            return ErrorResult(error="contact already exists")

        now = now_iso()
        try:
            contact = Contact.model_validate(
                {"createdAt": now, **Contact.aliased(_without_company(attributes)), "updatedAt": now}
            )
        except ValidationError as exc:
            return _invalid("contact", exc)

        result = await self._rewrite(company, "contacts", [*company.contacts, contact])
        if isinstance(result, ErrorResult):
            return result
        logger.info("Added contact %s to %s", contact.email, company.name)
        return result.contacts[-1]

    async def update_contact(self, email: str, attributes: Mapping[str, Any]) -> Contact | ErrorResult:
        match = await self.find_contact_by_email(email)
        if match is None:
            return ErrorResult(error="contact not found")
        company = match.company
        contacts = [c.model_copy(deep=True) for c in company.contacts]
        index = next(i for i, c in enumerate(company.contacts) if c.email.lower() == email.lower())
        try:
            contacts[index].merge(_without_company(attributes))
        except ValidationError as exc:
            return _invalid("contact", exc)
        new_email = contacts[index].email
        if new_email.lower() != email.lower():
            if await self.find_contact_by_email(new_email) is not None:
                return ErrorResult(error="contact already exists")
        contacts[index].updated_at = now_iso()

        result = await self._rewrite(company, "contacts", contacts)
        if isinstance(result, ErrorResult):
            return result
        return result.contacts[index]

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    async def add_app(self, attributes: Mapping[str, Any]) -> App | ErrorResult:
        """
        Add an app to the company named by ``attributes["company"]``.

        App names are unique across the database. ``plan`` defaults to the
        first configured subscription plan.
        """
        values = App.aliased(attributes)
        if not values.get("company") or not values.get("appName"):
            return _missing("company", "appName")
        company = await self.find_company(values["company"])
        if company is None:
            return ErrorResult(error="company not found")
        if await self.find_app_by_name(values["appName"]) is not None:
            return ErrorResult(error="app already exists")

        if not values.get("plan"):
            plans = (await self.load_config()).subscription_plans
            values["plan"] = plans[0] if plans else ""
        now = now_iso()
        try:
            app = App.model_validate(
                {"createdAt": now, **_without_company(values), "updatedAt": now}
            )
        except ValidationError as exc:
            return _invalid("app", exc)

        result = await self._rewrite(company, "apps", [*company.apps, app])
        if isinstance(result, ErrorResult):
            return result
        logger.info("Added app %s to %s", app.app_name, company.name)
        return result.apps[-1]

    async def update_app(self, app_name: str, attributes: Mapping[str, Any]) -> App | ErrorResult:
        match = await self.find_app_by_name(app_name)
        if match is None:
            return ErrorResult(error="app not found")
        values = App.aliased(_without_company(attributes))
        company = match.company
        apps = [a.model_copy(deep=True) for a in company.apps]
        index = next(i for i, a in enumerate(company.apps) if a.app_name.lower() == app_name.lower())
        if values.get("plan") and values["plan"] != apps[index].plan:
            values.setdefault("upgradedAt", now_iso())
        try:
            apps[index].merge(values)
        except ValidationError as exc:
            return _invalid("app", exc)
        new_name = apps[index].app_name
        if new_name.lower() != app_name.lower():
            if await self.find_app_by_name(new_name) is not None:
                return ErrorResult(error="app already exists")
        apps[index].updated_at = now_iso()

        result = await self._rewrite(company, "apps", apps)
        if isinstance(result, ErrorResult):
            return result
        return result.apps[index]

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    async def add_interaction(self, attributes: Mapping[str, Any]) -> Interaction | ErrorResult:
        """Log an interaction with a company; ``date`` defaults to now."""
        if not attributes.get("company"):
            return _missing("company")
        company = await self.find_company(attributes["company"])
        if company is None:
            return ErrorResult(error="company not found")

        values = Interaction.aliased(_without_company(attributes))
        if not values.get("date"):
            values["date"] = now_iso()
        try:
            interaction = Interaction.model_validate(values)
        except ValidationError as exc:
            return _invalid("interaction", exc)

        result = await self._rewrite(company, "interactions", [*company.interactions, interaction])
        if isinstance(result, ErrorResult):
            return result
        return result.interactions[-1]

    async def _interaction_at(self, company_name: str, index: int) -> tuple[Company, int] | ErrorResult:
        company = await self.find_company_by_name(company_name)
        if company is None:
            return ErrorResult(error="company not found")
        if not 0 <= index < len(company.interactions):
            return ErrorResult(error="interaction not found")
        return company, index

    async def update_interaction(
        self, company_name: str, index: int, attributes: Mapping[str, Any]
    ) -> Interaction | ErrorResult:
        """Merge ``attributes`` into the ``index``-th interaction of a company."""
        found = await self._interaction_at(company_name, index)
        if isinstance(found, ErrorResult):
            return found
        company, index = found
        interactions = [i.model_copy(deep=True) for i in company.interactions]
        try:
            interactions[index].merge(_without_company(attributes))
        except ValidationError as exc:
            return _invalid("interaction", exc)
        interactions[index].updated_at = now_iso()

        result = await self._rewrite(company, "interactions", interactions)
        if isinstance(result, ErrorResult):
            return result
        return result.interactions[index]

    async def done_interaction(self, company_name: str, index: int) -> Interaction | ErrorResult:
        """Clear the follow-up date of an interaction."""
        found = await self._interaction_at(company_name, index)
        if isinstance(found, ErrorResult):
            return found
        company, index = found
        interactions = [i.model_copy(deep=True) for i in company.interactions]
        interactions[index].follow_up_date = None
        interactions[index].updated_at = now_iso()

        result = await self._rewrite(company, "interactions", interactions)
        if isinstance(result, ErrorResult):
            return result
        return result.interactions[index]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def add_staff(self, email: str | None, name: str | None) -> dict[str, str] | ErrorResult:
        if not email or not name:
            return _missing("email", "name")
        staff = dict((await self.load_config()).staff)
        staff[email] = name
        result = await self.update_config({"staff": staff})
        if isinstance(result, ErrorResult):
            return result
        return result.staff

    async def add_template(self, template: TemplateEmail | Mapping[str, Any]) -> TemplateEmail | ErrorResult:
        try:
            record = (
                template if isinstance(template, TemplateEmail) else TemplateEmail.model_validate(template)
            )
        except ValidationError as exc:
            return _invalid("template", exc)
        if not record.subject and not record.content:
            return _missing("subject", "content")

        existing = (await self.load_config()).templates or []
        result = await self.update_config(
            {"templates": [t.to_json() for t in existing] + [record.to_json()]}
        )
        if isinstance(result, ErrorResult):
            return result
        return record

    async def render_template(
        self, template: TemplateEmail | Mapping[str, Any], filter: str | None
    ) -> TemplateEmail | ErrorResult:
        """Fill the placeholders of ``template`` for whoever ``filter`` designates."""
        try:
            record = (
                template if isinstance(template, TemplateEmail) else TemplateEmail.model_validate(template)
            )
        except ValidationError as exc:
            return _invalid("template", exc)
        return templates.render_template(record, await self.resolve(filter))
