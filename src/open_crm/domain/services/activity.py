"""Activity listings: the interaction log and the contact sheet of companies."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from open_crm.domain.entities import Company, Database
from open_crm.domain.services import resolver
from open_crm.domain.services.followups import parse_date

LOG_KEYS = ("company", "kind", "date", "from_", "summary", "followup")
ABOUT_KEYS = ("company", "email")

SYSTEM_KIND = "system"

_SENTENCE_END = re.compile(r"([.?!]) ")


@dataclass
class LogEntry:
    """An interaction, or a system event derived from an app's timestamps."""

    company: str
    kind: str
    date: str
    from_: str
    summary: str
    followup: str = ""
    id: int | None = None

    @property
    def when(self) -> datetime | None:
        return parse_date(self.date)


@dataclass
class AboutEntry:
    company: str
    email: str
    role: str | None = None


def _app_events(company: Company) -> list[LogEntry]:
    events: list[LogEntry] = []
    for app in company.apps:
        events.append(
            LogEntry(company.name, SYSTEM_KIND, app.created_at or "", app.email, f"Registered {app.app_name}")
        )
        if app.upgraded_at:
            events.append(
                LogEntry(
                    company.name,
                    SYSTEM_KIND,
                    app.upgraded_at,
                    app.email,
                    f"Upgraded {app.app_name} to {app.plan}",
                )
            )
        if app.churned_at:
            events.append(
                LogEntry(company.name, SYSTEM_KIND, app.churned_at, app.email, f"Churned {app.app_name}")
            )
    return events


def interaction_log(database: Database, filter: str | None = None) -> list[LogEntry]:
    """
    Interactions and app events, oldest first.

    Interactions carry the 1-based ordinal used to address them from the
    command line; system events have no id. Entries without a readable
    date sort first.
    """
    entries: list[LogEntry] = []
    ordinal = 0
    for company in database.companies:
        entries.extend(_app_events(company))
        for interaction in company.interactions:
            ordinal += 1
            entries.append(
                LogEntry(
                    company=company.name,
                    kind=interaction.kind,
                    date=interaction.date,
                    from_=interaction.from_,
                    summary=_SENTENCE_END.sub("\\1\n", interaction.summary),
                    followup=interaction.follow_up_date or "",
                    id=ordinal,
                )
            )
    if filter:
        entries = resolver.fuzzy_search(entries, LOG_KEYS, filter)
    # stable: undated entries first, then chronological
    entries.sort(key=lambda e: (e.when is not None, e.when.timestamp() if e.when else 0.0))
    return entries


def about(database: Database, filter: str | None = None) -> list[AboutEntry]:
    """Contacts as ``"Full Name" <email>`` lines, optionally narrowed by company or email."""
    entries: list[AboutEntry] = []
    for company in database.companies:
        for contact in company.contacts:
            name = contact.full_name
            email = f'"{name}" <{contact.email}>' if name else contact.email
            entries.append(AboutEntry(company=company.name, email=email, role=contact.role))
    if filter:
        entries = resolver.fuzzy_search(entries, ABOUT_KEYS, filter)
    return entries
