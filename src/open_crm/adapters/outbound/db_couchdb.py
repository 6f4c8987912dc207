"""
CouchDB Database Adapter
========================

One document per company plus a ``config`` document, queried through the
views of ``_design/companies``. Lookups are single view queries with
``include_docs=true``.

Connection descriptors use the ``couchdb://`` / ``couchdbs://`` schemes,
mapped to ``http://`` / ``https://``; credentials come from the URL.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from open_crm.adapters.outbound.couchdb_design import (
    CONFIG_DOC_ID,
    COMPANY_TYPE,
    company_doc_id,
    company_document,
    design_document,
    strip_document,
)
from open_crm.adapters.outbound.crm_api_client import DEFAULT_TIMEOUT, split_credentials
from open_crm.adapters.outbound.session_cache import SessionCache
from open_crm.domain.defaults import normalize_database
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
from open_crm.domain.services import resolver
from open_crm.ports.database import (
    CompanyAttributes,
    DatabaseAdapter,
    DatabaseSession,
    coerce_company,
)

logger = logging.getLogger(__name__)

VIEW_PREFIX = "_design/companies/_view"


class CouchDBError(Exception):
    """Exception raised when CouchDB answers with an unexpected status."""

    pass


def couchdb_http_url(url: str) -> str:
    """Map ``couchdb(s)://`` to ``http(s)://``; other URLs are returned unchanged."""
    if url.startswith("couchdbs://"):
        return "https://" + url[len("couchdbs://") :]
    if url.startswith("couchdb://"):
        return "http://" + url[len("couchdb://") :]
    return url


def _doc_path(doc_id: str) -> str:
    return quote(doc_id, safe="")


def _check(response: httpx.Response, *expected: int) -> httpx.Response:
    if response.status_code not in expected:
        raise CouchDBError(
            f"{response.request.method} {response.request.url.path}: "
            f"HTTP {response.status_code} {response.text[:200]}"
        )
    return response


def _client(url: str, timeout: float, transport: httpx.AsyncBaseTransport | None) -> httpx.AsyncClient:
    clean, auth = split_credentials(couchdb_http_url(url))
    return httpx.AsyncClient(
        base_url=clean.rstrip("/"),
        auth=auth,
        timeout=timeout,
        transport=transport,
        headers={"Accept": "application/json"},
    )


class CouchDBSession(DatabaseSession):
    """Session over one CouchDB database; owns its HTTP client."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _view(self, view: str, **params: Any) -> list[dict[str, Any]]:
        query = {key: json.dumps(value) for key, value in params.items()}
        query["include_docs"] = "true"
        response = _check(await self._client.get(f"{VIEW_PREFIX}/{view}", params=query), 200)
        return response.json()["rows"]

    async def _get(self, doc_id: str) -> dict[str, Any] | None:
        response = await self._client.get(_doc_path(doc_id))
        if response.status_code == 404:
            return None
        return _check(response, 200).json()

    async def dump(self) -> Database:
        response = _check(
            await self._client.get("_all_docs", params={"include_docs": "true"}), 200
        )
        companies: list[dict[str, Any]] = []
        config: dict[str, Any] | None = None
        for row in response.json()["rows"]:
            doc = row.get("doc") or {}
            if doc.get("type") == COMPANY_TYPE:
                companies.append(strip_document(doc))
            elif doc.get("_id") == CONFIG_DOC_ID:
                config = strip_document(doc)
        return normalize_database({"companies": companies, "config": config})

    async def add_company(self, company: CompanyAttributes) -> Company | ErrorResult:
        record = coerce_company(company)
        if isinstance(record, ErrorResult):
            return record
        now = now_iso()
        record.created_at = record.created_at or now
        record.updated_at = now

        doc = company_document(record.to_json())
        response = await self._client.put(_doc_path(doc["_id"]), json=doc)
        if response.status_code == 409:
            return ErrorResult(error="company already exists")
        _check(response, 201, 202)
        logger.debug("Created document %s for %s", doc["_id"], record.name)
        return record

    async def update_company(
        self, name: str, attributes: Mapping[str, Any]
    ) -> Company | ErrorResult:
        doc = await self._get(company_doc_id(name))
        if doc is None:
            return ErrorResult(error="company not found")
        new_name = attributes.get("name")
        if new_name is not None and new_name != name:
            return ErrorResult(error="incorrect body name")

        company = Company.model_validate(strip_document(doc))
        try:
            company.merge(attributes)
        except ValidationError as exc:
            return ErrorResult(error=f"invalid company: {exc.errors()[0]['msg']}")
        company.updated_at = now_iso()
        body = {**company_document(company.to_json()), "_rev": doc["_rev"]}
        response = await self._client.put(_doc_path(doc["_id"]), json=body)
        if response.status_code == 409:
            return ErrorResult(error="conflict")
        _check(response, 201, 202)
        return company

    async def find_company_by_name(self, name: str) -> Company | None:
        if not name:
            return None
        rows = await self._view("by_name", key=name.lower(), limit=1)
        if not rows:
            return None
        return Company.model_validate(strip_document(rows[0]["doc"]))

    async def find_app_by_name(self, app_name: str) -> AppMatch | None:
        if not app_name:
            return None
        wanted = app_name.lower()
        for row in await self._view("by_app_name", key=wanted):
            company = Company.model_validate(strip_document(row["doc"]))
            for app in company.apps:
                if app.app_name.lower() == wanted:
                    return AppMatch(company=company, app=app)
        return None

    async def _by_email(self, email: str, kind: str) -> list[Company]:
        rows = await self._view("by_email", key=email.lower())
        return [
            Company.model_validate(strip_document(row["doc"]))
            for row in rows
            if row.get("value") == kind
        ]

    async def find_app_by_email(self, email: str) -> AppMatch | None:
        if not email:
            return None
        wanted = email.lower()
        for company in await self._by_email(email, "app"):
            for app in company.apps:
                if app.email.lower() == wanted:
                    return AppMatch(company=company, app=app)
        return None

    async def find_contact_by_email(self, email: str) -> ContactMatch | None:
        if not email:
            return None
        wanted = email.lower()
        for company in await self._by_email(email, "contact"):
            for contact in company.contacts:
                if contact.email.lower() == wanted:
                    return ContactMatch(company=company, contact=contact)
        return None

    async def find_followups(self, start_date: str, end_date: str) -> list[Followup]:
        rows = await self._view(
            "by_followup_date", startkey=start_date[:10], endkey=end_date[:10]
        )
        out: list[Followup] = []
        for row in rows:
            company = Company.model_validate(strip_document(row["doc"]))
            index = row["value"]
            if not isinstance(index, int) or not 0 <= index < len(company.interactions):
                continue
            interaction = company.interactions[index]
            out.append(Followup.model_validate({**interaction.to_json(), "company": company.name}))
        return out

    async def search_companies(self, filter: str) -> list[Company]:
        return resolver.search_companies(await self.dump(), filter)

    async def load_config(self) -> Config:
        doc = await self._get(CONFIG_DOC_ID)
        if doc is None:
            return normalize_database({"companies": []}).config
        return normalize_database({"companies": [], "config": strip_document(doc)}).config

    async def update_config(self, attributes: Mapping[str, Any]) -> Config | ErrorResult:
        doc = await self._get(CONFIG_DOC_ID)
        config = normalize_database(
            {"companies": [], "config": strip_document(doc) if doc else None}
        ).config
        try:
            config.merge(attributes)
        except ValidationError as exc:
            return ErrorResult(error=f"invalid config: {exc.errors()[0]['msg']}")
        body: dict[str, Any] = {**config.to_json(), "_id": CONFIG_DOC_ID}
        if doc is not None:
            body["_rev"] = doc["_rev"]
        response = await self._client.put(CONFIG_DOC_ID, json=body)
        if response.status_code == 409:
            return ErrorResult(error="conflict")
        _check(response, 201, 202)
        return config

    async def close(self) -> None:
        await self._client.aclose()


class CouchDBAdapter(DatabaseAdapter):
    """Adapter for a database stored in CouchDB."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def create(self, initial_data: Database) -> None:
        """
        Create the database if missing and load the design document and content.

        An existing database is never dropped: documents already present
        (design document, config, companies with the same name) are kept
        as they are and the conflict is logged.
        """
        database = normalize_database(initial_data)
        async with _client(self._url, self._timeout, self._transport) as client:
            # absolute URL: the database itself, not a document in it
            db_url = str(client.base_url).rstrip("/")
            response = _check(await client.put(db_url), 201, 202, 412)
            if response.status_code == 412:
                logger.info("CouchDB database already exists: %s", client.base_url.path)

            response = _check(await client.put("_design/companies", json=design_document()), 201, 202, 409)
            if response.status_code == 409:
                logger.info("Design document already exists, keeping it")

            config = {**database.config.to_json(), "_id": CONFIG_DOC_ID}
            response = _check(await client.put(CONFIG_DOC_ID, json=config), 201, 202, 409)
            if response.status_code == 409:
                logger.info("Config document already exists, keeping it")

            docs = [company_document(c.to_json()) for c in database.companies]
            created = len(docs)
            if docs:
                response = _check(await client.post("_bulk_docs", json={"docs": docs}), 201, 202)
                for row in response.json():
                    if row.get("error"):
                        created -= 1
                        logger.warning("Company document %s not created: %s", row.get("id"), row["error"])
        logger.info("Loaded %d companies into CouchDB", created)

    async def open(self) -> SessionCache:
        client = _client(self._url, self._timeout, self._transport)
        return SessionCache(CouchDBSession(client))

