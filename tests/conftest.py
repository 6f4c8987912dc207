"""
Pytest Fixtures
===============

Shared fixtures for all test modules.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from open_crm.adapters.outbound.db_memory import InMemoryAdapter
from open_crm.domain.defaults import normalize_database
from open_crm.domain.entities import Database
from open_crm.infrastructure.config import get_settings
from open_crm.infrastructure.database import clear_database_adapters

# -----------------------------------------------------------------------------
# Domain Fixtures
# -----------------------------------------------------------------------------

SAMPLE_DATA: dict[str, Any] = {
    "companies": [
        {
            "name": "Acme Corp",
            "url": "https://acme.example",
            "address": "1 Road Runner Way",
            "createdAt": "2024-01-02T10:00:00.000Z",
            "contacts": [
                {"email": "wile@acme.example", "firstName": "Wile", "lastName": "Coyote", "role": "CTO"},
                {"email": "road@acme.example", "firstName": "Road", "lastName": "Runner"},
            ],
            "apps": [
                {"appName": "acme-dynamite", "plan": "gold", "email": "road@acme.example"},
            ],
            "interactions": [
                {
                    "kind": "email",
                    "from": "wile@acme.example",
                    "summary": "Asked for a demo",
                    "date": "2024-01-03T09:00:00.000Z",
                    "tag": "question",
                    "followUpDate": "2024-02-01T08:00:00.000Z",
                },
                {
                    "kind": "phone",
                    "from": "road@acme.example",
                    "summary": "Upgrade to gold",
                    "date": "2024-01-10T09:00:00.000Z",
                    "tag": "subscription",
                },
            ],
        },
        {
            "name": "Globex",
            "url": "https://globex.example",
            "noFollowUp": True,
            "contacts": [{"email": "hank@globex.example", "firstName": "Hank", "lastName": "Scorpio"}],
            "apps": [{"appName": "globex-doom", "plan": "free", "email": "hank@globex.example"}],
            "interactions": [
                {
                    "kind": "email",
                    "from": "hank@globex.example",
                    "summary": "Wants a volcano",
                    "date": "2024-01-04T09:00:00.000Z",
                    "followUpDate": "2024-02-01",
                },
            ],
        },
        {
            "name": "Initech",
            "contacts": [],
            "apps": [],
            "interactions": [
                {
                    "kind": "real-life",
                    "from": "staff@crm.example",
                    "summary": "TPS reports",
                    "date": "2024-01-05T09:00:00.000Z",
                    "followUpDate": "2024-02-03",
                },
            ],
        },
    ],
    "config": {
        "subscriptionPlans": ["free", "silver", "gold"],
        "staff": {"staff@crm.example": "Sam Staff"},
        "interactions": {"kinds": ["email", "phone", "real-life"], "tags": ["question", "subscription"]},
        "templates": [{"subject": "Hello {{FIRST_NAME}}", "content": "Dear {{FULL_NAME}} of {{COMPANY_NAME}}"}],
    },
}


@pytest.fixture
def sample_data() -> dict[str, Any]:
    """Raw wire-format database content."""
    return copy.deepcopy(SAMPLE_DATA)


@pytest.fixture
def sample_database(sample_data: dict[str, Any]) -> Database:
    return normalize_database(sample_data)


@pytest.fixture
def memory_adapter(sample_data: dict[str, Any]) -> InMemoryAdapter:
    """In-memory adapter preloaded with the sample data."""
    return InMemoryAdapter(sample_data)


# -----------------------------------------------------------------------------
# Settings isolation
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Fresh settings and adapter pool per test, never reading the developer's env."""
    for name in ("DATABASE_URL", "DATABASE_JSON_FILE", "DATABASE_AUTO_CLOSE_SECONDS", "API_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    clear_database_adapters()
    yield
    get_settings.cache_clear()
    clear_database_adapters()
