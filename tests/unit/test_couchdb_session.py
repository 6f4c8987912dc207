"""Unit tests for the CouchDB adapter (mocked HTTP transport)."""

from __future__ import annotations

import json

import httpx
import pytest

from open_crm.adapters.outbound.couchdb_design import (
    CONFIG_DOC_ID,
    company_doc_id,
    company_document,
    design_document,
    strip_document,
)
from open_crm.adapters.outbound.db_couchdb import (
    CouchDBAdapter,
    CouchDBError,
    CouchDBSession,
    couchdb_http_url,
)
from open_crm.adapters.outbound.session_cache import SessionCache
from open_crm.domain.entities import Company, ErrorResult


class FakeCouchDB:
    """Tiny in-process CouchDB: one database, documents and the company views."""

    def __init__(self, db: str = "crm") -> None:
        self.prefix = f"/{db}"
        self.docs: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.revision = 1
        self.force_conflict = False
        self.broken = False
        self.exists = True

    def load(self, sample_data) -> None:
        for company in sample_data["companies"]:
            doc = company_document(company)
            self.docs[doc["_id"]] = {**doc, "_rev": "1-a"}
        self.docs[CONFIG_DOC_ID] = {**sample_data["config"], "_id": CONFIG_DOC_ID, "_rev": "1-a"}

    def _companies(self):
        return [d for d in self.docs.values() if d.get("type") == "company"]

    def _view(self, name: str, params) -> list[dict]:
        rows = []
        for doc in self._companies():
            if name == "by_name":
                rows.append({"id": doc["_id"], "key": doc["name"].lower(), "value": None, "doc": doc})
            elif name == "by_app_name":
                for app in doc.get("apps", []):
                    rows.append({"id": doc["_id"], "key": app["appName"].lower(), "value": None, "doc": doc})
            elif name == "by_email":
                for contact in doc.get("contacts", []):
                    rows.append({"id": doc["_id"], "key": contact["email"].lower(), "value": "contact", "doc": doc})
                for app in doc.get("apps", []):
                    rows.append({"id": doc["_id"], "key": app["email"].lower(), "value": "app", "doc": doc})
            elif name == "by_followup_date" and not doc.get("noFollowUp"):
                for index, interaction in enumerate(doc.get("interactions", [])):
                    if interaction.get("followUpDate"):
                        rows.append(
                            {"id": doc["_id"], "key": interaction["followUpDate"][:10], "value": index, "doc": doc}
                        )
        if "key" in params:
            key = json.loads(params["key"])
            rows = [r for r in rows if r["key"] == key]
        if "startkey" in params:
            start, end = json.loads(params["startkey"]), json.loads(params["endkey"])
            rows = [r for r in rows if start <= r["key"] <= end]
        rows.sort(key=lambda r: r["key"])
        return rows

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.broken:
            return httpx.Response(500, text="kaput")
        path = request.url.path
        if path in (self.prefix, self.prefix + "/"):
            if request.method == "PUT":
                if self.exists:
                    return httpx.Response(412, json={"error": "file_exists"})
                self.exists = True
                return httpx.Response(201, json={"ok": True})
            return httpx.Response(200, json={"ok": True})
        doc_id = path.removeprefix(self.prefix + "/")

        if doc_id.startswith("_design/companies/_view/"):
            view = doc_id.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"rows": self._view(view, request.url.params)})
        if doc_id == "_all_docs":
            rows = [{"id": k, "doc": d} for k, d in sorted(self.docs.items())]
            return httpx.Response(200, json={"rows": rows})
        if doc_id == "_bulk_docs":
            rows = []
            for doc in json.loads(request.content)["docs"]:
                if doc["_id"] in self.docs:
                    rows.append({"id": doc["_id"], "error": "conflict", "reason": "Document update conflict."})
                    continue
                self.docs[doc["_id"]] = {**doc, "_rev": "1-b"}
                rows.append({"ok": True, "id": doc["_id"], "rev": "1-b"})
            return httpx.Response(201, json=rows)

        if request.method == "GET":
            if doc_id not in self.docs:
                return httpx.Response(404, json={"error": "not_found"})
            return httpx.Response(200, json=self.docs[doc_id])
        if request.method == "PUT":
            body = json.loads(request.content)
            current = self.docs.get(doc_id)
            if self.force_conflict or (current is not None and body.get("_rev") != current["_rev"]):
                return httpx.Response(409, json={"error": "conflict"})
            self.revision += 1
            self.docs[doc_id] = {**body, "_rev": f"{self.revision}-x"}
            return httpx.Response(201, json={"ok": True})
        return httpx.Response(405, json={"error": "method_not_allowed"})


@pytest.fixture
def couch(sample_data) -> FakeCouchDB:
    server = FakeCouchDB()
    server.load(sample_data)
    return server


@pytest.fixture
def session(couch: FakeCouchDB) -> CouchDBSession:
    client = httpx.AsyncClient(base_url="http://couch.test/crm", transport=httpx.MockTransport(couch))
    return CouchDBSession(client)


class TestDesign:
    """Test document helpers."""

    def test_doc_id_ignores_case(self) -> None:
        assert company_doc_id("Acme Corp") == company_doc_id("ACME CORP")
        assert company_doc_id("Acme Corp").startswith("company:")

    def test_strip_document(self) -> None:
        doc = company_document({"name": "Acme"})
        assert doc["type"] == "company"
        assert strip_document({**doc, "_rev": "1-a"}) == {"name": "Acme"}

    def test_design_document_views(self) -> None:
        views = design_document()["views"]
        assert set(views) == {"by_name", "by_app_name", "by_email", "by_followup_date"}

    def test_scheme_mapping(self) -> None:
        assert couchdb_http_url("couchdb://couch:5984/crm") == "http://couch:5984/crm"
        assert couchdb_http_url("couchdbs://couch/crm") == "https://couch/crm"
        assert couchdb_http_url("http://couch/crm") == "http://couch/crm"


class TestCouchDBSession:
    """Test session operations against the fake server."""

    @pytest.mark.asyncio
    async def test_find_company_single_view_query(
        self, session: CouchDBSession, couch: FakeCouchDB
    ) -> None:
        company = await session.find_company_by_name("ACME CORP")

        assert company is not None
        assert company.name == "Acme Corp"
        assert len(couch.requests) == 1
        request = couch.requests[0]
        assert request.url.path == "/crm/_design/companies/_view/by_name"
        assert request.url.params["key"] == '"acme corp"'
        assert request.url.params["include_docs"] == "true"

    @pytest.mark.asyncio
    async def test_find_missing_company(self, session: CouchDBSession) -> None:
        assert await session.find_company_by_name("Hooli") is None

    @pytest.mark.asyncio
    async def test_find_contact_and_app_by_email(self, session: CouchDBSession) -> None:
        contact = await session.find_contact_by_email("Road@acme.example")
        app = await session.find_app_by_email("road@acme.example")

        assert contact is not None and contact.contact.first_name == "Road"
        assert app is not None and app.app.app_name == "acme-dynamite"
        assert await session.find_app_by_email("wile@acme.example") is None

    @pytest.mark.asyncio
    async def test_find_app_by_name(self, session: CouchDBSession) -> None:
        match = await session.find_app_by_name("Globex-Doom")

        assert match is not None
        assert match.company.name == "Globex"

    @pytest.mark.asyncio
    async def test_followups(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        result = await session.find_followups("2024-02-01T00:00:00.000Z", "2024-02-03")

        assert sorted(f.company for f in result) == ["Acme Corp", "Initech"]
        params = couch.requests[0].url.params
        assert params["startkey"] == '"2024-02-01"'
        assert params["endkey"] == '"2024-02-03"'

    @pytest.mark.asyncio
    async def test_dump(self, session: CouchDBSession) -> None:
        database = await session.dump()

        assert sorted(c.name for c in database.companies) == ["Acme Corp", "Globex", "Initech"]
        assert database.config.staff == {"staff@crm.example": "Sam Staff"}
        assert "_rev" not in database.companies[0].to_json()

    @pytest.mark.asyncio
    async def test_search(self, session: CouchDBSession) -> None:
        assert [c.name for c in await session.search_companies("initech")] == ["Initech"]

    @pytest.mark.asyncio
    async def test_add_company(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        result = await session.add_company({"name": "Hooli"})

        assert isinstance(result, Company)
        stored = couch.docs[company_doc_id("hooli")]
        assert stored["type"] == "company"
        assert stored["createdAt"] == result.created_at

    @pytest.mark.asyncio
    async def test_add_duplicate_company(self, session: CouchDBSession) -> None:
        result = await session.add_company({"name": "acme corp"})
        assert result == ErrorResult(error="company already exists")

    @pytest.mark.asyncio
    async def test_update_company(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        result = await session.update_company("Globex", {"url": "https://globex.test"})

        assert isinstance(result, Company)
        stored = couch.docs[company_doc_id("globex")]
        assert stored["url"] == "https://globex.test"
        assert couch.requests[-1].method == "PUT"
        assert json.loads(couch.requests[-1].content)["_rev"] == "1-a"

    @pytest.mark.asyncio
    async def test_update_conflict(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        couch.force_conflict = True

        result = await session.update_company("Globex", {"url": "https://globex.test"})

        assert result == ErrorResult(error="conflict")

    @pytest.mark.asyncio
    async def test_update_missing_and_rename(self, session: CouchDBSession) -> None:
        assert await session.update_company("Hooli", {}) == ErrorResult(error="company not found")
        assert await session.update_company("Globex", {"name": "Globex2"}) == ErrorResult(
            error="incorrect body name"
        )

    @pytest.mark.asyncio
    async def test_config(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        result = await session.update_config({"subscriptionPlans": ["free", "pro"]})
        config = await session.load_config()

        assert not isinstance(result, ErrorResult)
        assert config.subscription_plans == ["free", "pro"]
        assert config.staff == {"staff@crm.example": "Sam Staff"}
        assert couch.docs[CONFIG_DOC_ID]["subscriptionPlans"] == ["free", "pro"]

    @pytest.mark.asyncio
    async def test_unexpected_status_raises(self, session: CouchDBSession, couch: FakeCouchDB) -> None:
        couch.broken = True

        with pytest.raises(CouchDBError):
            await session.find_company_by_name("Acme Corp")


class TestCouchDBAdapter:
    """Test database (re)creation."""

    @pytest.mark.asyncio
    async def test_create(self, sample_data) -> None:
        couch = FakeCouchDB()
        couch.exists = False
        adapter = CouchDBAdapter("couchdb://admin:pw@couch.test/crm", transport=httpx.MockTransport(couch))

        await adapter.create(sample_data)

        methods = [(r.method, r.url.path) for r in couch.requests]
        assert methods[0] == ("PUT", "/crm")
        assert ("DELETE", "/crm") not in methods
        assert ("PUT", "/crm/_design/companies") in methods
        assert ("POST", "/crm/_bulk_docs") in methods
        assert couch.requests[0].headers["authorization"].startswith("Basic ")
        assert len([d for d in couch.docs.values() if d.get("type") == "company"]) == 3

    @pytest.mark.asyncio
    async def test_create_keeps_existing_content(self, sample_data) -> None:
        couch = FakeCouchDB()
        couch.load(sample_data)
        acme_id = company_doc_id("Acme Corp")
        couch.docs[acme_id]["url"] = "https://kept.example"
        adapter = CouchDBAdapter("couchdb://couch.test/crm", transport=httpx.MockTransport(couch))

        await adapter.create({"companies": [*sample_data["companies"], {"name": "Hooli"}]})

        methods = [(r.method, r.url.path) for r in couch.requests]
        assert ("DELETE", "/crm") not in methods
        assert couch.docs[acme_id]["url"] == "https://kept.example"
        assert couch.docs[CONFIG_DOC_ID]["staff"] == {"staff@crm.example": "Sam Staff"}
        assert company_doc_id("Hooli") in couch.docs

    @pytest.mark.asyncio
    async def test_open_is_cached(self) -> None:
        adapter = CouchDBAdapter("couchdb://couch.test/crm", transport=httpx.MockTransport(FakeCouchDB()))

        session = await adapter.open()

        assert isinstance(session, SessionCache)
        assert isinstance(session.wrapped, CouchDBSession)
        await session.close()
