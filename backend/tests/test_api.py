"""HTTP-level tests against the FastAPI app with a throwaway database."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from draftwise.api.enrichment import get_enrichment_service
from draftwise.database import get_db
from draftwise.main import app
from draftwise.models.database import User
from draftwise.services.credit_service import CreditService
from draftwise.services.enrichment_service import EnrichmentService
from draftwise.services.exceptions import ConcurrentAdjustmentError, ServiceUnavailableError
from draftwise.services.outline_service import OutlineResult, SourceStrategy
from draftwise.services.serp_service import SERPService, SerpResult, get_serp_service


@pytest.fixture
def outline_service():
    return MagicMock()


@pytest.fixture
def client(session_factory, outline_service):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_enrichment(db: Session = Depends(get_db)):
        return EnrichmentService(db, outline_service=outline_service, llm=MagicMock())

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_enrichment_service] = override_enrichment
    yield TestClient(app)
    app.dependency_overrides.clear()


def signup(client, email="writer@example.com", password="correct-horse"):
    response = client.post("/api/auth/register", json={"email": email, "password": password})
    assert response.status_code == 200
    token = client.post("/api/auth/login", json={"username": email, "password": password}).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_signup_grants_free_credits(client):
    headers = signup(client)

    me = client.get("/api/auth/me", headers=headers).json()
    assert me["credits"] == 2

    transactions = client.get("/api/credits/transactions", headers=headers).json()
    assert [t["operation"] for t in transactions] == ["initial_grant"]
    assert transactions[0]["amount"] == -2


def test_wrong_password(client):
    signup(client)

    response = client.post("/api/auth/login", json={"username": "writer@example.com", "password": "nope"})

    assert response.status_code == 401


def test_outline_debits_until_exhausted(client, outline_service):
    headers = signup(client)
    outline_service.resolve.return_value = OutlineResult("1. Beans\n2. Grind", SourceStrategy.DIRECT_AI, "https://a.example")
    payload = {"urls": ["https://a.example", "https://b.example"]}

    first = client.post("/api/enrichment/outline", json=payload, headers=headers)
    second = client.post("/api/enrichment/outline", json=payload, headers=headers)
    third = client.post("/api/enrichment/outline", json=payload, headers=headers)

    assert first.status_code == 200
    assert first.json()["credits_remaining"] == 1
    assert first.json()["found"] is True
    assert second.json()["credits_remaining"] == 0
    assert third.status_code == 402
    detail = third.json()["detail"]
    assert detail["type"] == "credits_exhausted"
    assert detail["available"] == 0
    assert detail["required"] == 1
    assert detail["operation"] == "toc_extraction"


def test_outline_stored_on_blog(client, outline_service):
    headers = signup(client)
    outline_service.resolve.return_value = OutlineResult("1. Intro", SourceStrategy.SCRAPE_RAW_FORMATTED, "https://a.example")
    blog = client.post("/api/blogs", json={"topic_keyword": "cold brew", "urls": ["https://a.example"]}, headers=headers).json()

    client.post("/api/enrichment/outline", json={"urls": ["https://a.example"], "blog_id": blog["id"]}, headers=headers)

    stored = client.get(f"/api/blogs/{blog['id']}", headers=headers).json()
    assert stored["table_of_content"] == "1. Intro"
    assert stored["toc_source_strategy"] == "scrape_raw_formatted"


def test_outline_without_blog_creates_draft(client, outline_service):
    headers = signup(client)
    outline_service.resolve.return_value = OutlineResult("1. Beans", SourceStrategy.DIRECT_AI, "https://a.example")

    response = client.post(
        "/api/enrichment/outline",
        json={"urls": ["https://a.example"], "topic_keyword": "cold brew"},
        headers=headers,
    )

    blog_id = response.json()["blog_id"]
    stored = client.get(f"/api/blogs/{blog_id}", headers=headers).json()
    assert stored["topic_keyword"] == "cold brew"
    assert stored["table_of_content"] == "1. Beans"
    transactions = client.get("/api/credits/transactions", headers=headers).json()
    assert transactions[0]["blog_id"] == blog_id


def test_keywords_without_credentials_asks_for_update(client):
    headers = signup(client)

    response = client.get("/api/enrichment/keywords", params={"input": "cold brew"}, headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"]["needs_credential_update"] is True
    assert client.get("/api/credits", headers=headers).json()["credits"] == 2


def test_credential_status_defaults(client):
    headers = signup(client)

    status = client.get("/api/enrichment/credentials", headers=headers).json()

    assert status == {"configured": False, "is_valid": False, "last_validated": None}


def test_admin_adjust(client, session_factory):
    admin_headers = signup(client, "admin@example.com")
    writer_headers = signup(client, "writer@example.com")
    session = session_factory()
    try:
        session.query(User).filter(User.email == "admin@example.com").update({"role": "admin"})
        session.commit()
        writer_id = session.query(User).filter(User.email == "writer@example.com").one().id
    finally:
        session.close()

    forbidden = client.put(f"/api/credits/admin/users/{writer_id}", json={"credits": 5, "action": "add"}, headers=writer_headers)
    adjusted = client.put(
        f"/api/credits/admin/users/{writer_id}",
        json={"credits": 10, "action": "subtract", "reason": "refund reversal"},
        headers=admin_headers,
    )

    assert forbidden.status_code == 403
    assert adjusted.status_code == 200
    assert adjusted.json() == {"user_id": writer_id, "old_credits": 2, "new_credits": 0, "difference": -2}


def test_admin_adjust_conflict_is_409(client, session_factory):
    admin_headers = signup(client, "admin@example.com")
    session = session_factory()
    try:
        admin = session.query(User).filter(User.email == "admin@example.com").one()
        admin.role = "admin"
        session.commit()
        admin_id = admin.id
    finally:
        session.close()

    with patch.object(CreditService, "adjust", side_effect=ConcurrentAdjustmentError(admin_id)):
        response = client.put(f"/api/credits/admin/users/{admin_id}", json={"credits": 5, "action": "add"}, headers=admin_headers)

    assert response.status_code == 409
    assert "changed during adjustment" in response.json()["detail"]


class TestScrape:
    @pytest.fixture
    def serp_service(self):
        service = MagicMock(spec=SERPService)
        app.dependency_overrides[get_serp_service] = lambda: service
        return service

    def test_results_ranked_and_not_billed(self, client, serp_service):
        headers = signup(client)
        serp_service.find_candidates.return_value = [
            SerpResult(title="Tips", url="https://woodpecker.co/tips", origin_site="woodpecker.co", position=3, source="WOODPECKER"),
            SerpResult(title="Guide", url="https://example.com/guide", origin_site="example.com", position=1),
        ]

        response = client.post("/api/scraper/scrape", json={"query": "  cold email "}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "cold email"
        assert body["total_results"] == 2
        assert [r["source"] for r in body["results"]] == ["WOODPECKER", "GENERAL"]
        serp_service.find_candidates.assert_called_once_with("cold email")
        assert client.get("/api/credits", headers=headers).json()["credits"] == 2

    def test_blank_query(self, client, serp_service):
        headers = signup(client)

        response = client.post("/api/scraper/scrape", json={"query": "   "}, headers=headers)

        assert response.status_code == 400
        serp_service.find_candidates.assert_not_called()

    def test_no_results(self, client, serp_service):
        headers = signup(client)
        serp_service.find_candidates.return_value = []

        response = client.post("/api/scraper/scrape", json={"query": "cold email"}, headers=headers)

        assert response.status_code == 404

    def test_search_outage_is_503(self, client, serp_service):
        headers = signup(client)
        serp_service.find_candidates.side_effect = ServiceUnavailableError("down", 503, "serp")

        response = client.post("/api/scraper/scrape", json={"query": "cold email"}, headers=headers)

        assert response.status_code == 503

    def test_requires_login(self, client, serp_service):
        response = client.post("/api/scraper/scrape", json={"query": "cold email"})

        assert response.status_code in (401, 403)
