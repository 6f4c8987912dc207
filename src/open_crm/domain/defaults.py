"""
Database Defaults
=================

The empty database and the single normalization step every adapter applies
to freshly loaded content.
"""

from __future__ import annotations

import copy
from typing import Any

from open_crm.domain.entities import Database

EMPTY_DATABASE: dict[str, Any] = {
    "companies": [],
    "config": {
        "staff": {},
        "subscriptionPlans": ["free", "silver", "gold"],
        "interactions": {
            "kinds": ["email", "github", "contact-form", "phone", "real-life", "linkedin", "none"],
            "tags": ["registration", "subscription", "bug", "question"],
        },
    },
}


def empty_database() -> Database:
    """Generate a fresh empty database."""
    return Database.model_validate(copy.deepcopy(EMPTY_DATABASE))


def normalize_database(raw: Any) -> Database:
    """
    Turn loaded content into a complete ``Database``.

    - A bare list is the legacy format: it holds the companies only.
    - Each missing part of the config (the config itself, ``subscriptionPlans``,
      ``staff``, ``interactions``) is defaulted on its own, so whatever is
      present is kept.

    Accepts raw JSON data or an already-built ``Database``.
    """
    if isinstance(raw, Database):
        raw = raw.to_json()
    defaults = copy.deepcopy(EMPTY_DATABASE["config"])
    if isinstance(raw, list):
        return Database.model_validate({"companies": raw, "config": defaults})
    if not isinstance(raw, dict):
        raise ValueError(f"unexpected database content: {type(raw).__name__}")

    data = dict(raw)
    data.setdefault("companies", [])
    config = data.get("config")
    if config is None:
        data["config"] = defaults
    else:
        config = dict(config)
        for key in ("subscriptionPlans", "staff", "interactions"):
            if config.get(key) is None:
                config[key] = defaults[key]
        data["config"] = config
    return Database.model_validate(data)
