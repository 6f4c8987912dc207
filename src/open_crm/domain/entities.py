"""
Domain Entities
===============

Core CRM records: companies and the contacts, apps and interactions they own,
plus the database-wide configuration.

Attributes are snake_case in Python and camelCase on the wire / on disk.
Unknown fields are kept so documents written by other tools survive a
round trip.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CrmModel(BaseModel):
    """Base model: camelCase aliases, extra fields preserved, mutable."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    @classmethod
    def aliased(cls, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Rewrite python field names in ``attributes`` to their wire aliases."""
        out: dict[str, Any] = {}
        for key, value in attributes.items():
            field = cls.model_fields.get(key)
            out[(field.alias or key) if field else key] = value
        return out

    def to_json(self) -> dict[str, Any]:
        """JSON-compatible dict in wire format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def merge(self, attributes: Mapping[str, Any]) -> Self:
        """
        Shallow-merge ``attributes`` into this record, in place.

        Keys may be python names or wire aliases. The merged record is
        validated as a whole before any field is touched.
        """
        merged = type(self).model_validate({**self.to_json(), **self.aliased(attributes)})
        for name in type(self).model_fields:
            setattr(self, name, getattr(merged, name))
        if merged.__pydantic_extra__ is not None:
            self.__pydantic_extra__ = dict(merged.__pydantic_extra__)
        return self


class Contact(CrmModel):
    """A person working at a company. Unique by email across the database."""

    email: str = ""
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    linkedin: str | None = None
    github: str | None = None
    url: str | None = None
    twitter: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class App(CrmModel):
    """A product subscription owned by a company. Unique by app name."""

    app_name: str
    plan: str = ""
    email: str = ""
    created_at: str | None = None
    updated_at: str | None = None
    upgraded_at: str | None = None
    churned_at: str | None = None


class Interaction(CrmModel):
    """A logged touchpoint, optionally carrying a follow-up date."""

    kind: str = ""
    from_: str = Field(default="", alias="from")
    to: str | None = None
    summary: str = ""
    date: str = ""
    updated_at: str | None = None
    tag: str | None = None
    follow_up_date: str | None = None


class Company(CrmModel):
    """Top-level CRM record. Unique by case-insensitive name."""

    name: str
    address: str | None = None
    url: str | None = None
    no_follow_up: bool | None = None
    created_at: str | None = None
    updated_at: str | None = None
    contacts: list[Contact] = Field(default_factory=list)
    apps: list[App] = Field(default_factory=list)
    interactions: list[Interaction] = Field(default_factory=list)

    @property
    def email(self) -> str:
        """Best email to reach the company: last named contact, else any app email."""
        found = ""
        for contact in self.contacts:
            if contact.full_name:
                found = f'"{contact.full_name}" <{contact.email}>'
            elif contact.email:
                found = contact.email
        if found:
            return found
        for app in self.apps:
            found = app.email or found
        return found

    def has_interaction(self, text: str) -> bool:
        """True if an interaction summary or tag mentions ``text``."""
        needle = text.lower()
        return any(
            needle in i.summary.lower() or (i.tag is not None and needle in i.tag)
            for i in self.interactions
        )


class TemplateEmail(CrmModel):
    """An email template with ``{{PLACEHOLDER}}`` fields."""

    subject: str = ""
    content: str = ""


class InteractionsConfig(CrmModel):
    kinds: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class Config(CrmModel):
    """Database-wide settings, one per database."""

    subscription_plans: list[str] = Field(default_factory=list)
    staff: dict[str, str] = Field(default_factory=dict)
    interactions: InteractionsConfig = Field(default_factory=InteractionsConfig)
    templates: list[TemplateEmail] | None = None


class Database(CrmModel):
    """Full content of the CRM: always read and written as one unit."""

    companies: list[Company] = Field(default_factory=list)
    config: Config = Field(default_factory=Config)


# -----------------------------------------------------------------------------
# Operation results
# -----------------------------------------------------------------------------


class ErrorResult(BaseModel):
    """Business-rule violation returned (never raised) by session operations."""

    error: str


class ContactMatch(BaseModel):
    """A contact together with its owning company."""

    company: Company
    contact: Contact


class AppMatch(BaseModel):
    """An app together with its owning company."""

    company: Company
    app: App


class InteractionMatch(BaseModel):
    """An interaction together with its owning company and position in it."""

    company: Company
    interaction: Interaction
    index: int


class Followup(Interaction):
    """An interaction due for follow-up, annotated with its company name."""

    company: str
