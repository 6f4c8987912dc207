"""Follow-up queries over a ``Database`` value."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from open_crm.domain.entities import Database, Followup
from open_crm.domain.services import resolver

# Synthetic follow-up scheduled after an app registers
REGISTRATION_TAG = "R+3d"
REGISTRATION_DELAY = timedelta(days=3)
# Follow-ups listed ahead of their date
DUE_WITHIN = timedelta(days=3)
BOT_MARKER = "[BOT]"

FOLLOWUP_KEYS = ("company", "date", "tag", "summary", "email")


def day(value: str) -> str:
    """Day part (``YYYY-MM-DD``) of an ISO-8601 date or timestamp."""
    return value[:10]


def in_range(value: str | None, start_date: str, end_date: str) -> bool:
    """True if ``value`` falls in ``[start_date, end_date]`` at day granularity."""
    if not value:
        return False
    return day(start_date) <= day(value) <= day(end_date)


def parse_date(value: str | None) -> datetime | None:
    """Aware datetime of an ISO-8601 date or timestamp; date-only values are UTC midnight."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def find_followups(database: Database, start_date: str, end_date: str) -> list[Followup]:
    """
    Interactions whose follow-up date is due in ``[start_date, end_date]``.

    Companies flagged ``no_follow_up`` are skipped. Results are in database
    order, each annotated with its company name.
    """
    out: list[Followup] = []
    for company in database.companies:
        if company.no_follow_up:
            continue
        for interaction in company.interactions:
            if in_range(interaction.follow_up_date, start_date, end_date):
                out.append(
                    Followup.model_validate({**interaction.to_json(), "company": company.name})
                )
    return out


# -----------------------------------------------------------------------------
# Operator agenda
# -----------------------------------------------------------------------------


@dataclass
class AgendaItem:
    """
    One line of the follow-up agenda.

    ``id`` is the interaction ordinal accepted by ``done``; synthetic
    registration follow-ups have none.
    """

    company: str
    email: str
    summary: str
    date: str
    when: datetime
    tag: str | None = None
    id: int | None = None


def agenda_items(database: Database) -> list[AgendaItem]:
    """Every pending follow-up, synthetic registration ones included, in database order."""
    out: list[AgendaItem] = []
    ordinal = 0
    for company in database.companies:
        first_ordinal = ordinal + 1
        ordinal += len(company.interactions)
        if company.no_follow_up:
            continue

        if not company.has_interaction("registration") and not company.has_interaction("subscription"):
            for app in company.apps:
                created = parse_date(app.created_at)
                if created is None:
                    continue
                when = created + REGISTRATION_DELAY
                out.append(
                    AgendaItem(
                        company=company.name,
                        email=company.email,
                        summary="3d after registration",
                        date=when.isoformat(),
                        when=when,
                        tag=REGISTRATION_TAG,
                    )
                )

        for offset, interaction in enumerate(company.interactions):
            when = parse_date(interaction.follow_up_date)
            if when is None:
                continue
            out.append(
                AgendaItem(
                    company=company.name,
                    email=company.email,
                    summary=interaction.summary,
                    date=interaction.follow_up_date or "",
                    when=when,
                    tag=interaction.tag,
                    id=first_ordinal + offset,
                )
            )
    return out


def agenda(
    database: Database,
    filter: str | None = None,
    now: datetime | None = None,
    within: timedelta = DUE_WITHIN,
) -> list[AgendaItem]:
    """
    Follow-ups the operator should act on, newest first.

    Keeps items due before ``now + within`` and drops bot companies. A
    non-empty ``filter`` narrows the list by fuzzy match on company, date,
    tag, summary and email.
    """
    now = now or datetime.now(UTC)
    items = agenda_items(database)
    if filter:
        items = resolver.fuzzy_search(items, FOLLOWUP_KEYS, filter)
    items = [i for i in items if BOT_MARKER not in i.company and i.when - within < now]
    items.sort(key=lambda i: i.when, reverse=True)
    return items
