"""
Entity Resolver
===============

Maps free-text operator input ("acme", an email, an app name) onto canonical
records of a ``Database``.

Matching is token-aware and case-insensitive with a low distance threshold.
When a candidate matches the primary key exactly, it wins over any better
fuzzy score elsewhere. An empty search never matches anything.

Interactions are not matched fuzzily: their id is the 1-based ordinal over
companies in order, then each company's interactions in order.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import TypeVar

from open_crm.domain.entities import (
    App,
    AppMatch,
    Company,
    Contact,
    ContactMatch,
    Database,
    InteractionMatch,
)

T = TypeVar("T")

# Maximum accepted distance (0 = perfect match, 1 = nothing in common)
MATCH_THRESHOLD = 0.1
# Characters of offset that cost a full distance point for substring hits
MATCH_DISTANCE = 100

COMPANY_KEYS = ("name", "url", "address")
CONTACT_KEYS = ("email", "first_name", "last_name")
APP_KEYS = ("app_name", "email")

_TOKEN_RE = re.compile(r"\s+")


@dataclass
class ContactEntry:
    """A contact flattened out of its company, with a back-reference."""

    contact: Contact
    company: Company
    email: str
    first_name: str | None
    last_name: str | None


@dataclass
class AppEntry:
    """An app flattened out of its company, with a back-reference."""

    app: App
    company: Company
    app_name: str
    email: str


@dataclass
class Resolution:
    """Records selected by a free-text filter (any of them may be missing)."""

    company: Company | None = None
    contact: Contact | None = None
    app: App | None = None


def all_contacts(database: Database) -> list[ContactEntry]:
    return [
        ContactEntry(
            contact=contact,
            company=company,
            email=contact.email,
            first_name=contact.first_name,
            last_name=contact.last_name,
        )
        for company in database.companies
        for contact in company.contacts
    ]


def all_apps(database: Database) -> list[AppEntry]:
    return [
        AppEntry(app=app, company=company, app_name=app.app_name, email=app.email)
        for company in database.companies
        for app in company.apps
    ]


# -----------------------------------------------------------------------------
# Scoring
# -----------------------------------------------------------------------------


def _tokens(text: str) -> list[str]:
    return [t for t in _TOKEN_RE.split(text.lower().strip()) if t]


def _token_distance(needle: str, value: str, value_tokens: list[str]) -> float:
    """Distance between one search token and a field value."""
    position = value.find(needle)
    best = min(position / MATCH_DISTANCE, 1.0) if position >= 0 else 1.0
    for token in value_tokens:
        if token.startswith(needle):
            return 0.0
        best = min(best, 1.0 - SequenceMatcher(None, needle, token).ratio())
    return best


def _field_distance(search: str, search_tokens: list[str], value: str) -> float | None:
    """Distance between the search and one field, None when it does not match."""
    value = value.lower()
    position = value.find(search)
    if position >= 0 and position / MATCH_DISTANCE <= MATCH_THRESHOLD:
        return position / MATCH_DISTANCE

    value_tokens = _tokens(value)
    distances = [_token_distance(t, value, value_tokens) for t in search_tokens]
    # every token has to match on its own
    if not distances or max(distances) > MATCH_THRESHOLD:
        return None
    return sum(distances) / len(distances)


def _distance(candidate: object, keys: Sequence[str], search: str, tokens: list[str]) -> float | None:
    best: float | None = None
    for key in keys:
        value = getattr(candidate, key, None)
        if not isinstance(value, str) or not value:
            continue
        distance = _field_distance(search, tokens, value)
        if distance is not None and (best is None or distance < best):
            best = distance
    return best


def fuzzy_search(candidates: Sequence[T], keys: Sequence[str], search: str | None) -> list[T]:
    """All candidates matching ``search``, best first (stable for ties)."""
    if not search or not search.strip():
        return []
    needle = search.lower().strip()
    tokens = _tokens(needle)
    scored: list[tuple[float, int, T]] = []
    for position, candidate in enumerate(candidates):
        distance = _distance(candidate, keys, needle, tokens)
        if distance is not None:
            scored.append((distance, position, candidate))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [candidate for _, _, candidate in scored]


def fuzzy_find(candidates: Sequence[T], keys: Sequence[str], search: str | None) -> T | None:
    """
    Resolve ``search`` to at most one candidate.

    Args:
        candidates: Records to search (read through attribute access).
        keys: Attribute names to match; the first one is the primary key.
        search: Free-text operator input.

    Returns:
        The candidate whose primary key equals the search (case-insensitive)
        if there is one, else the best fuzzy match, else None.
    """
    results = fuzzy_search(candidates, keys, search)
    if not results:
        return None
    wanted = search.strip().lower() if search else ""
    for result in results:
        value = getattr(result, keys[0], None)
        if isinstance(value, str) and value.lower() == wanted:
            return result
    return results[0]


# -----------------------------------------------------------------------------
# Lookups over a Database
# -----------------------------------------------------------------------------


def find_company(database: Database, search: str | None) -> Company | None:
    return fuzzy_find(database.companies, ("name",), search)


def find_contact(database: Database, search: str | None) -> ContactMatch | None:
    entry = fuzzy_find(all_contacts(database), CONTACT_KEYS, search)
    if entry is None:
        return None
    return ContactMatch(company=entry.company, contact=entry.contact)


def find_app(database: Database, search: str | None) -> AppMatch | None:
    entry = fuzzy_find(all_apps(database), APP_KEYS, search)
    if entry is None:
        return None
    return AppMatch(company=entry.company, app=entry.app)


def search_companies(database: Database, search: str | None) -> list[Company]:
    """Companies matching ``search`` on name, url or address; all of them if empty."""
    if not search:
        return list(database.companies)
    return fuzzy_search(database.companies, COMPANY_KEYS, search)


def find_interaction(database: Database, ordinal: int | str) -> InteractionMatch | None:
    """Interaction by its 1-based ordinal over the whole database."""
    try:
        wanted = int(ordinal)
    except (TypeError, ValueError):
        return None
    if wanted < 1:
        return None
    current = 1
    for company in database.companies:
        for index, interaction in enumerate(company.interactions):
            if current == wanted:
                return InteractionMatch(company=company, interaction=interaction, index=index)
            current += 1
    return None


def interaction_ordinal(database: Database, company: Company, index: int) -> int | None:
    """Inverse of ``find_interaction``."""
    current = 1
    for candidate in database.companies:
        if candidate is company:
            return current + index if 0 <= index < len(candidate.interactions) else None
        current += len(candidate.interactions)
    return None


def resolve(database: Database, search: str | None) -> Resolution:
    """
    Pick the company, contact and app a free-text filter refers to.

    Apps are tried first, then contacts, then companies. Missing pieces are
    filled from the selected company.
    """
    app_match = find_app(database, search)
    if app_match is not None:
        company = app_match.company
        contact = _contact_by_email(company, app_match.app.email)
        return Resolution(company=company, contact=contact, app=app_match.app)

    contact_match = find_contact(database, search)
    if contact_match is not None:
        company = contact_match.company
        email = contact_match.contact.email.lower()
        app = next((a for a in company.apps if a.email.lower() == email), None)
        if app is None and company.apps:
            app = company.apps[0]
        return Resolution(company=company, contact=contact_match.contact, app=app)

    company = find_company(database, search)
    if company is not None:
        return Resolution(
            company=company,
            contact=company.contacts[0] if company.contacts else None,
            app=company.apps[0] if company.apps else None,
        )
    return Resolution()


def _contact_by_email(company: Company, email: str) -> Contact | None:
    wanted = email.lower()
    for contact in company.contacts:
        if contact.email.lower() == wanted:
            return contact
    return company.contacts[0] if company.contacts else None
