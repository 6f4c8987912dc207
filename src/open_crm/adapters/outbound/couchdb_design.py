"""
CouchDB Design Document
=======================

Views backing the CouchDB session lookups. Every key is lower-cased so
lookups are case-insensitive.
"""

from __future__ import annotations

import hashlib
from typing import Any

DESIGN_DOC_ID = "_design/companies"
CONFIG_DOC_ID = "config"
COMPANY_TYPE = "company"

BY_NAME = """function (doc) {
  if (doc.type === 'company' && doc.name) {
    emit(doc.name.toLowerCase(), null);
  }
}"""

BY_APP_NAME = """function (doc) {
  if (doc.type === 'company' && doc.apps) {
    doc.apps.forEach(function (app) {
      if (app.appName) emit(app.appName.toLowerCase(), null);
    });
  }
}"""

BY_EMAIL = """function (doc) {
  if (doc.type === 'company') {
    (doc.contacts || []).forEach(function (contact) {
      if (contact.email) emit(contact.email.toLowerCase(), 'contact');
    });
    (doc.apps || []).forEach(function (app) {
      if (app.email) emit(app.email.toLowerCase(), 'app');
    });
  }
}"""

BY_FOLLOWUP_DATE = """function (doc) {
  if (doc.type === 'company' && !doc.noFollowUp && doc.interactions) {
    doc.interactions.forEach(function (interaction, index) {
      if (interaction.followUpDate) {
        emit(interaction.followUpDate.substring(0, 10), index);
      }
    });
  }
}"""


def design_document() -> dict[str, Any]:
    return {
        "_id": DESIGN_DOC_ID,
        "language": "javascript",
        "views": {
            "by_name": {"map": BY_NAME},
            "by_app_name": {"map": BY_APP_NAME},
            "by_email": {"map": BY_EMAIL},
            "by_followup_date": {"map": BY_FOLLOWUP_DATE},
        },
    }


def company_doc_id(name: str) -> str:
    """Document id of a company: stable for any casing of its name."""
    digest = hashlib.md5(name.lower().encode("utf-8")).hexdigest()
    return f"{COMPANY_TYPE}:{digest}"


def company_document(company: dict[str, Any]) -> dict[str, Any]:
    """Wire-format company to CouchDB document."""
    return {**company, "_id": company_doc_id(company["name"]), "type": COMPANY_TYPE}


def strip_document(doc: dict[str, Any]) -> dict[str, Any]:
    """CouchDB document to wire-format record."""
    return {key: value for key, value in doc.items() if key not in ("_id", "_rev", "type")}
