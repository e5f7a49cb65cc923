"""Tests for provider resolution, the knowledge API and the RAG routes."""

import httpx
import pytest

from app.modules.rag.florida_provider import FloridaRAGProvider
from app.modules.rag.utah_provider import UtahRAGProvider


def test_providers_registered_per_state(rag_service):
    registry = rag_service.registry
    assert registry.get_available_states() == ["FL", "UT"]
    assert isinstance(registry.get_provider("fl"), FloridaRAGProvider)
    assert isinstance(registry.get_provider("UT"), UtahRAGProvider)
    assert registry.get_default_provider().state_code == "FL"


@pytest.mark.parametrize("state", ["TX", None, ""])
def test_unknown_state_falls_back_to_default(rag_service, state):
    assert rag_service.registry.get_provider(state).state_code == "FL"
    assert not rag_service.has_state_provider(state)


def test_state_capabilities(rag_service):
    assert rag_service.get_state_capabilities("UT").has_tax_forms
    assert rag_service.get_state_capabilities("FL").supports_streaming
    assert rag_service.get_state_capabilities("NV").supports_source_drilldown


@pytest.mark.asyncio
async def test_check_all_health(rag_service, backends):
    backends["FL"].handler = lambda request: httpx.Response(200, json={"status": "healthy"})
    backends["UT"].handler = lambda request: httpx.Response(503)

    results = await rag_service.registry.check_all_health()

    assert results == [
        {"stateCode": "FL", "status": "healthy"},
        {"stateCode": "UT", "status": "unhealthy", "message": "HTTP 503"},
    ]


@pytest.mark.asyncio
async def test_query_by_state_dispatches(rag_service, backends):
    backends["UT"].handler = lambda request: httpx.Response(200, json={"response": "Utah answer"})

    response = await rag_service.query_by_state("q", "ut")

    assert response.response == "Utah answer"
    assert response.state_code == "UT"
    assert backends["FL"].requests == []


@pytest.mark.asyncio
async def test_knowledge_health_never_raises(rag_service, backends):
    backends["KB"].handler = lambda request: httpx.Response(500, text="down")

    health = await rag_service.check_health()

    assert health.status == "unhealthy"
    assert health.services[0].name == "rag-api"
    assert health.services[0].healthy is False


def test_source_route(client, auth_headers, backends):
    backends["KB"].handler = lambda request: httpx.Response(200, json={
        "chunk_id": "chunk-1",
        "doc_id": "statute:212.05",
        "doc_type": "statute",
        "text": "Every person...",
        "child_chunk_ids": ["chunk-2"],
    })

    response = client.get("/api/sources/chunk-1", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["chunkId"] == "chunk-1"
    assert body["childChunkIds"] == ["chunk-2"]
    assert backends["KB"].requests[0].url.path == "/api/v1/sources/chunk-1"


def test_source_route_maps_404(client, auth_headers, backends):
    backends["KB"].handler = lambda request: httpx.Response(404, json={"message": "no such chunk"})

    response = client.get("/api/sources/missing", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "NOT_FOUND", "message": "Source not found"}


def test_source_route_requires_auth(client):
    assert client.get("/api/sources/chunk-1").status_code == 401


def test_statute_and_graph_routes(client, auth_headers, backends):
    def handler(request):
        if request.url.path == "/api/v1/statute/212.05":
            return httpx.Response(200, json={
                "statute": {"doc_id": "statute:212.05", "title": "Sales tax"},
                "implementing_rules": [{"doc_id": "rule:12A-1.001", "doc_type": "rule"}],
            })
        if request.url.path == "/api/v1/graph/212.05/related":
            return httpx.Response(200, json={"doc_id": "212.05", "citing_documents": [{"doc_id": "taa:1"}]})
        return httpx.Response(404)

    backends["KB"].handler = handler

    statute = client.get("/api/statutes/212.05", headers=auth_headers).json()
    assert statute["statute"]["docId"] == "statute:212.05"
    assert statute["implementingRules"][0]["docType"] == "rule"

    related = client.get("/api/graph/212.05/related", headers=auth_headers).json()
    assert related["citingDocuments"] == [{"docId": "taa:1"}]


def test_knowledge_upstream_failure_is_500(client, auth_headers, backends):
    backends["KB"].handler = lambda request: httpx.Response(502, text="bad gateway")

    response = client.get("/api/statutes/212.05", headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["error"] == "INTERNAL_ERROR"


def test_forms_routes(client, backends):
    def handler(request):
        if request.url.path == "/forms":
            return httpx.Response(200, json={"forms": [{"form_number": "TC-40", "title": "Return"}]})
        return httpx.Response(404)

    backends["UT"].handler = handler

    listing = client.get("/api/forms").json()
    assert listing == {"forms": [{"formNumber": "TC-40", "title": "Return", "stateCode": "UT"}], "stateCode": "UT"}

    missing = client.get("/api/forms/TC-99")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Form not found: TC-99"


def test_forms_not_supported_for_florida(client):
    response = client.get("/api/forms", params={"state": "FL"})
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_SUPPORTED"


def test_providers_route(client, auth_headers, backends):
    backends["FL"].handler = lambda request: httpx.Response(200, json={"status": "healthy"})
    backends["UT"].handler = lambda request: httpx.Response(
        200, json={"qdrant": {"connected": True}, "neo4j": {"connected": True}}
    )

    body = client.get("/api/rag/providers", headers=auth_headers).json()

    assert body["defaultState"] == "FL"
    utah = next(p for p in body["providers"] if p["stateCode"] == "UT")
    assert utah["stateName"] == "Utah"
    assert utah["capabilities"]["hasTaxForms"] is True
    assert utah["health"]["status"] == "healthy"
