"""Unit tests for the serving layer."""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from doc_rag.config import Settings
from doc_rag.exceptions import StoreError
from doc_rag.serving.app import create_app
from doc_rag.service import RagService

APPLES = "<p>Apples grow in orchards. Apples are harvested in autumn.</p>"


@pytest.fixture()
def client(service: RagService) -> TestClient:
    return TestClient(create_app(service, Settings(_env_file=None, reranker="none")))


@pytest.fixture()
def secured_client(service: RagService) -> TestClient:
    settings = Settings(
        _env_file=None,
        reranker="none",
        basic_auth_username="ops",
        basic_auth_password="s3cret",
    )
    return TestClient(create_app(service, settings))


def _create(client: TestClient, content: str = APPLES) -> int:
    response = client.post("/api/internal/document", json={"content": content})
    assert response.status_code == 201
    return response.json()["id"]


def test_health_endpoint(client: TestClient) -> None:
    """GET /api/public/health should return 200 with status ok."""
    response = client.get("/api/public/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_reports_unreachable_store(
    client: TestClient, store, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(store, "health_check", lambda: False)
    response = client.get("/api/public/health")
    assert response.status_code == 503
    assert response.json() == {"status": "unavailable"}


# ── documents ────────────────────────────────────────────────────────


class TestDocumentRoutes:
    def test_create_then_get(self, client: TestClient) -> None:
        response = client.post("/api/internal/document", json={"content": APPLES})
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "success"

        fetched = client.get(f"/api/internal/document/{body['id']}")
        assert fetched.status_code == 200
        document = fetched.json()
        assert document["id"] == body["id"]
        assert document["content"] == APPLES
        assert "createdAt" in document
        assert "updatedAt" in document

    def test_create_empty_content(self, client: TestClient) -> None:
        response = client.post("/api/internal/document", json={"content": ""})
        assert response.status_code == 400
        assert "message" in response.json()

    def test_get_missing(self, client: TestClient) -> None:
        response = client.get("/api/internal/document/4242")
        assert response.status_code == 404

    def test_update(self, client: TestClient) -> None:
        doc_id = _create(client)
        response = client.put(f"/api/internal/document/{doc_id}", json={"content": "<p>Bananas</p>"})
        assert response.status_code == 200
        assert response.json() == {"message": "document updated successfully"}
        assert client.get(f"/api/internal/document/{doc_id}").json()["content"] == "<p>Bananas</p>"

    def test_update_missing(self, client: TestClient) -> None:
        response = client.put("/api/internal/document/4242", json={"content": "<p>Bananas</p>"})
        assert response.status_code == 404

    def test_delete_then_delete_again(self, client: TestClient) -> None:
        doc_id = _create(client)
        assert client.delete(f"/api/internal/document/{doc_id}").status_code == 204
        assert client.delete(f"/api/internal/document/{doc_id}").status_code == 404
        assert client.get(f"/api/internal/document/{doc_id}").status_code == 404

    def test_list_empty(self, client: TestClient) -> None:
        response = client.get("/api/internal/document", params={"page": 1, "pageSize": 20})
        assert response.status_code == 200
        assert response.json() == {
            "items": [],
            "page": 1,
            "pageSize": 20,
            "totalItems": 0,
            "totalPages": 1,
        }

    def test_list_newest_first(self, client: TestClient) -> None:
        first = _create(client)
        second = _create(client, "<p>Bananas grow in the tropics.</p>")
        body = client.get("/api/internal/document").json()
        assert [item["id"] for item in body["items"]] == [second, first]
        assert body["totalItems"] == 2

    def test_list_non_numeric_paging_falls_back(self, client: TestClient) -> None:
        body = client.get("/api/internal/document", params={"page": "two", "pageSize": "abc"}).json()
        assert (body["page"], body["pageSize"]) == (1, 20)

    def test_list_oversized_page_clamped(self, client: TestClient) -> None:
        body = client.get("/api/internal/document", params={"pageSize": 1000}).json()
        assert body["pageSize"] == 100

    def test_non_integer_id_is_bad_request(self, client: TestClient) -> None:
        for response in (
            client.get("/api/internal/document/abc"),
            client.delete("/api/internal/document/abc"),
            client.put("/api/internal/document/abc", json={"content": "<p>x</p>"}),
        ):
            assert response.status_code == 400
            assert response.json() == {"message": "invalid document id"}

    def test_body_without_content_is_bad_request(self, client: TestClient) -> None:
        response = client.post("/api/internal/document", json={"text": "x"})
        assert response.status_code == 400
        body = response.json()
        assert set(body) == {"message"}
        assert "content" in body["message"]

    def test_unparseable_json_is_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/api/internal/document",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"message": "invalid json"}

    def test_update_empty_content_on_missing_id_is_bad_request(self, client: TestClient) -> None:
        response = client.put("/api/internal/document/4242", json={"content": ""})
        assert response.status_code == 400

    def test_embedding_failure_is_bad_gateway(self, client: TestClient, embedder) -> None:
        embedder.fail = True
        response = client.post("/api/internal/document", json={"content": APPLES})
        assert response.status_code == 502

    def test_store_failure_is_unavailable(
        self, client: TestClient, store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _broken(page: int, page_size: int):
            raise StoreError("database is locked")

        monkeypatch.setattr(store, "list_documents", _broken)
        response = client.get("/api/internal/document")
        assert response.status_code == 503
        assert response.json() == {"message": "database is locked"}


# ── search ───────────────────────────────────────────────────────────


class TestSearchRoute:
    def test_missing_query(self, client: TestClient) -> None:
        assert client.get("/api/internal/search/document").status_code == 400

    def test_empty_query(self, client: TestClient) -> None:
        assert client.get("/api/internal/search/document", params={"q": ""}).status_code == 400

    def test_returns_relevant_chunks(self, client: TestClient) -> None:
        _create(client, "<p>Bananas grow in the tropics.</p>")
        apples = _create(client)
        response = client.get("/api/internal/search/document", params={"q": "apples"})
        assert response.status_code == 200
        results = response.json()
        assert results[0]["documentId"] == apples
        assert "Apples" in results[0]["chunk"]

    def test_empty_corpus(self, client: TestClient) -> None:
        response = client.get("/api/internal/search/document", params={"q": "apples"})
        assert response.status_code == 200
        assert response.json() == []


# ── basic auth ───────────────────────────────────────────────────────


class TestBasicAuth:
    def test_missing_credentials(self, secured_client: TestClient) -> None:
        response = secured_client.get("/api/internal/document")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Basic"

    def test_wrong_password(self, secured_client: TestClient) -> None:
        response = secured_client.get("/api/internal/document", auth=("ops", "guess"))
        assert response.status_code == 401

    def test_valid_credentials(self, secured_client: TestClient) -> None:
        response = secured_client.get("/api/internal/document", auth=("ops", "s3cret"))
        assert response.status_code == 200

    def test_health_stays_public(self, secured_client: TestClient) -> None:
        assert secured_client.get("/api/public/health").status_code == 200


# ── middleware ───────────────────────────────────────────────────────


def test_cors_preflight_allowed(service: RagService) -> None:
    settings = Settings(_env_file=None, reranker="none", cors_origins=["https://app.example.org"])
    client = TestClient(create_app(service, settings))
    response = client.options(
        "/api/internal/document",
        headers={
            "Origin": "https://app.example.org",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://app.example.org"


def test_requests_are_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="doc_rag.serving.app"):
        client.get("/api/public/health")
    assert any("GET /api/public/health -> 200" in r.getMessage() for r in caplog.records)
