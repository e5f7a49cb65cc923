"""Tests for the query relay: synchronous answers and the SSE stream."""

import json

import httpx
import pytest

from app.modules.query.schemas import QueryRequest
from app.modules.query.service import DISCONNECT_SUFFIX, ERROR_SUFFIX, QueryService
from app.modules.rag.schemas import AnswerEvent
from conftest import ORG_ID, USER_ID, sse_body

UTAH_ANSWER = {
    "response": "Utah taxes individual income at a flat rate.",
    "citations": [{"text": "A tax is imposed...", "citation": "Utah Code 59-10-104", "source": "utah_code"}],
    "confidence": 0.9,
    "confidence_label": "High",
    "forms_mentioned": ["TC-40"],
}


def parse_frames(text):
    frames = []
    for block in text.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


@pytest.fixture
def utah_thread(fake_db, utah_client):
    return fake_db.seed("threads", client_id=utah_client["id"], user_id=USER_ID, title="Income tax")


def query_body(client_row, thread_row, message="What is the income tax rate?", **extra):
    return {"message": message, "clientId": client_row["id"], "threadId": thread_row["id"], **extra}


def test_sync_query_persists_both_messages(client, auth_headers, fake_db, backends, utah_client, utah_thread):
    backends["UT"].handler = lambda request: httpx.Response(200, json=UTAH_ANSWER)

    response = client.post("/api/query", headers=auth_headers, json=query_body(utah_client, utah_thread))

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == UTAH_ANSWER["response"]
    assert body["stateCode"] == "UT"
    assert body["citations"] == [
        {"docId": "", "citation": "Utah Code 59-10-104", "docType": "statute", "excerpt": "A tax is imposed..."}
    ]
    assert body["sources"][0]["citation"] == "Utah Code 59-10-104"
    assert "warnings" not in body

    messages = fake_db.rows("messages", thread_id=utah_thread["id"])
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "What is the income tax rate?"
    assert messages[1]["id"] == body["id"]
    assert messages[1]["metadata"]["confidenceLabel"] == "High"
    assert messages[1]["metadata"]["formsMentioned"] == ["TC-40"]
    assert backends["FL"].requests == []


def test_sync_query_enriches_florida_question(client, auth_headers, backends, tax_client, thread):
    backends["FL"].handler = lambda request: httpx.Response(200, json={"request_id": "r1", "answer": "Six percent."})

    response = client.post("/api/query", headers=auth_headers, json=query_body(tax_client, thread, "Sales tax rate?"))

    assert response.json()["requestId"] == "r1"
    sent = json.loads(backends["FL"].requests[0].content)
    assert sent["query"] == "[Client State: FL, Filing Status: Single] Sales tax rate?"


def test_query_validation(client, auth_headers, tax_client, thread):
    assert client.post("/api/query", headers=auth_headers, json=query_body(tax_client, thread, "hi")).status_code == 400
    assert client.post("/api/query", headers=auth_headers, json=query_body(tax_client, thread, "x" * 2001)).status_code == 400
    bad_ids = {"message": "Valid question?", "clientId": "abc", "threadId": thread["id"]}
    assert client.post("/api/query", headers=auth_headers, json=bad_ids).status_code == 400


def test_unknown_thread_is_404(client, auth_headers, tax_client, thread):
    body = query_body(tax_client, thread, threadId="55555555-5555-4555-8555-555555555555")

    response = client.post("/api/query", headers=auth_headers, json=body)

    assert response.status_code == 404
    assert response.json()["message"] == "Thread not found"


def test_thread_of_another_client_is_403(client, auth_headers, fake_db, utah_client, thread):
    response = client.post("/api/query", headers=auth_headers, json=query_body(utah_client, thread))

    assert response.status_code == 403
    assert response.json() == {"error": "FORBIDDEN", "message": "Thread does not belong to client"}
    assert fake_db.rows("messages") == []


def test_stream_relays_events_and_saves_answer(client, auth_headers, fake_db, backends, tax_client, thread):
    backends["FL"].handler = lambda request: httpx.Response(200, text=sse_body(
        ("chunk", '{"chunk_id": "c1", "doc_id": "statute:212.05", "doc_type": "statute", "citation": "212.05", "text": "Tax"}'),
        ("answer", '{"answer": "Six "}'),
        ("answer", '{"answer": "percent."}'),
        ("complete", '{"request_id": "req-1", "confidence": 0.8}'),
    ))

    response = client.post("/api/query/stream", headers=auth_headers, json=query_body(tax_client, thread))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    frames = parse_frames(response.text)
    assert frames[0] == {"type": "status", "message": "Starting query..."}
    assert [f["type"] for f in frames[1:-1]] == ["chunk", "answer", "answer", "complete"]
    assert frames[-1] == "[DONE]"

    assistant = fake_db.rows("messages", thread_id=thread["id"], role="assistant")
    assert len(assistant) == 1
    assert assistant[0]["content"] == "Six percent."
    assert assistant[0]["citations"] == [
        {"docId": "statute:212.05", "citation": "212.05", "docType": "statute", "excerpt": "Tax"}
    ]
    assert assistant[0]["metadata"]["requestId"] == "req-1"


def test_stream_error_after_partial_answer_saves_marked_answer(client, auth_headers, fake_db, backends, tax_client, thread):
    backends["FL"].handler = lambda request: httpx.Response(200, text=sse_body(
        ("answer", '{"answer": "Partial"}'),
        ("error", '{"error": "TIMEOUT", "message": "Upstream timed out"}'),
    ))

    frames = parse_frames(client.post("/api/query/stream", headers=auth_headers, json=query_body(tax_client, thread)).text)

    assert frames[-2] == {"type": "error", "error": "TIMEOUT", "message": "Upstream timed out"}
    assert frames[-1] == "[DONE]"
    assistant = fake_db.rows("messages", thread_id=thread["id"], role="assistant")
    assert [m["content"] for m in assistant] == ["Partial" + ERROR_SUFFIX]


def test_stream_ending_without_complete_saves_answer_unmarked(client, auth_headers, fake_db, backends, tax_client, thread):
    backends["FL"].handler = lambda request: httpx.Response(200, text=sse_body(
        ("answer", '{"answer": "Full answer."}'),
    ))

    frames = parse_frames(client.post("/api/query/stream", headers=auth_headers, json=query_body(tax_client, thread)).text)

    assert [f["type"] for f in frames[1:-1]] == ["answer"]
    assert frames[-1] == "[DONE]"
    assistant = fake_db.rows("messages", thread_id=thread["id"], role="assistant")
    assert [m["content"] for m in assistant] == ["Full answer."]


def test_stream_error_without_answer_saves_nothing(client, auth_headers, fake_db, backends, tax_client, thread):
    backends["FL"].handler = lambda request: httpx.Response(500, text="boom")

    frames = parse_frames(client.post("/api/query/stream", headers=auth_headers, json=query_body(tax_client, thread)).text)

    assert frames[1]["error"] == "REQUEST_FAILED"
    assert fake_db.rows("messages", role="assistant") == []


def test_stream_rejects_foreign_thread_before_streaming(client, other_auth_headers, tax_client, thread):
    response = client.post("/api/query/stream", headers=other_auth_headers, json=query_body(tax_client, thread))
    assert response.status_code == 404


@pytest.fixture
def query_service(fake_db, rag_service):
    return QueryService(fake_db, rag_service)


@pytest.mark.asyncio
async def test_relay_exception_emits_stream_error(query_service, fake_db, tax_client, thread, monkeypatch):
    async def failing_stream(*args, **kwargs):
        yield AnswerEvent(content="Half an answer")
        raise RuntimeError("provider exploded")

    monkeypatch.setattr(query_service.rag, "stream_query", failing_stream)
    ctx = query_service.prepare(
        QueryRequest(message="Question?", client_id=tax_client["id"], thread_id=thread["id"]), USER_ID, ORG_ID
    )

    frames = parse_frames("".join([frame async for frame in query_service.relay_stream(ctx)]))

    assert frames[-1] == {"type": "error", "error": "STREAM_ERROR", "message": "provider exploded"}
    assistant = fake_db.rows("messages", role="assistant")
    assert [m["content"] for m in assistant] == ["Half an answer" + ERROR_SUFFIX]


@pytest.mark.asyncio
async def test_disconnect_saves_partial_answer(query_service, fake_db, backends, utah_client, utah_thread):
    backends["UT"].handler = lambda request: httpx.Response(200, json=UTAH_ANSWER)
    ctx = query_service.prepare(
        QueryRequest(message="Income tax rate?", client_id=utah_client["id"], thread_id=utah_thread["id"]),
        USER_ID, ORG_ID,
    )

    gen = query_service.relay_stream(ctx)
    received = []
    async for frame in gen:
        received.append(json.loads(frame[len("data: "):]))
        if received[-1]["type"] == "answer":
            break
    await gen.aclose()

    first_piece = received[-1]["content"]
    assistant = fake_db.rows("messages", role="assistant")
    assert [m["content"] for m in assistant] == [first_piece + DISCONNECT_SUFFIX]


@pytest.mark.asyncio
async def test_persist_failure_does_not_break_stream(query_service, fake_db, backends, utah_client, utah_thread):
    backends["UT"].handler = lambda request: httpx.Response(200, json=UTAH_ANSWER)
    ctx = query_service.prepare(
        QueryRequest(message="Income tax rate?", client_id=utah_client["id"], thread_id=utah_thread["id"]),
        USER_ID, ORG_ID,
    )
    fake_db.failures[("messages", "insert")] = Exception("connection lost")

    frames = [frame async for frame in query_service.relay_stream(ctx)]

    assert frames[-1] == "data: [DONE]\n\n"
    assert any('"type": "complete"' in frame for frame in frames)
