"""
Query relay between the browser and the jurisdiction's RAG backend.

Both the synchronous and the streaming path persist the user message before
calling the backend and the assistant answer afterwards. The streaming path
forwards every provider event unmodified while accumulating the answer text,
so whatever has been received is still saved when the backend fails or the
browser goes away mid-stream.
"""

from dataclasses import dataclass
from supabase import Client
from app.core.errors import DatabaseError, ForbiddenError, NotFoundError
from app.modules.clients.service import ensure_client_in_organization
from app.modules.query.schemas import QueryRequest
from app.modules.rag.schemas import (
    AnswerEvent, ChunkEvent, ClientContext, CompleteEvent, ErrorEvent, QueryOptions,
    StatusEvent, UnifiedCitation, UnifiedRAGResponse,
)
from app.modules.rag.service import RAGService
from app.modules.rag.sse import DONE_FRAME, format_sse
from app.modules.threads.service import ThreadService, touch_thread
from typing import Any, AsyncIterator, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

ERROR_SUFFIX = "\n\n[Response interrupted due to error]"
DISCONNECT_SUFFIX = "\n\n[Response interrupted]"


@dataclass
class QueryContext:
    thread_id: str
    client_id: str
    message: str
    options: Optional[QueryOptions]
    state_code: Optional[str]
    client_context: ClientContext


def stored_citation(citation: UnifiedCitation) -> Dict[str, Any]:
    return {
        "docId": citation.doc_id or citation.chunk_id or "",
        "citation": citation.citation,
        "docType": citation.doc_type or "statute",
        "excerpt": citation.text,
    }


def source_entry(citation: UnifiedCitation) -> Dict[str, Any]:
    return {
        "chunkId": citation.chunk_id,
        "docId": citation.doc_id,
        "docType": citation.doc_type,
        "citation": citation.citation,
        "text": citation.text,
        "relevanceScore": citation.relevance_score,
    }


def response_metadata(response: UnifiedRAGResponse) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "requestId": response.request_id,
        "confidence": response.confidence,
        "processingTimeMs": response.processing_time_ms,
        "stateCode": response.state_code,
    }
    if response.warnings:
        metadata["warnings"] = response.warnings
    if response.confidence_label:
        metadata["confidenceLabel"] = response.confidence_label
    if response.forms_mentioned:
        metadata["formsMentioned"] = response.forms_mentioned
    return {k: v for k, v in metadata.items() if v is not None}


class QueryService:
    def __init__(self, supabase: Client, rag: RAGService):
        self.supabase = supabase
        self.rag = rag
        self.threads = ThreadService(supabase)

    def prepare(self, request: QueryRequest, user_id: str, organization_id: str) -> QueryContext:
        """Validate thread and client, then record the user's message"""
        thread_id, client_id = str(request.thread_id), str(request.client_id)
        try:
            result = self.supabase.table("threads")\
                .select("id, client_id")\
                .eq("id", thread_id)\
                .eq("user_id", user_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching thread {thread_id}: {e}")
            raise DatabaseError(str(e))
        if result is None or not result.data:
            raise NotFoundError("Thread not found")
        if result.data["client_id"] != client_id:
            raise ForbiddenError("Thread does not belong to client")

        client = ensure_client_in_organization(self.supabase, client_id, organization_id)
        self.threads.save_message(thread_id, "user", request.message)

        return QueryContext(
            thread_id=thread_id,
            client_id=client_id,
            message=request.message,
            options=request.options,
            state_code=client.get("state"),
            client_context=ClientContext(state=client.get("state"), filing_status=client.get("filing_status")),
        )

    async def run_query(self, ctx: QueryContext) -> Dict[str, Any]:
        response = await self.rag.query_by_state(ctx.message, ctx.state_code, ctx.options, ctx.client_context)
        citations = [stored_citation(c) for c in response.citations]

        assistant = self.threads.save_message(
            ctx.thread_id, "assistant", response.response,
            citations=citations, metadata=response_metadata(response)
        )
        touch_thread(self.supabase, ctx.thread_id)

        return {
            "id": assistant["id"],
            "request_id": response.request_id,
            "answer": response.response,
            "citations": citations,
            "sources": [source_entry(c) for c in response.citations],
            "confidence": response.confidence,
            "processing_time_ms": response.processing_time_ms,
            "warnings": response.warnings or None,
            "state_code": response.state_code,
        }

    async def relay_stream(self, ctx: QueryContext) -> AsyncIterator[str]:
        """SSE frames for the browser, ending with ``data: [DONE]``"""
        answer = ""
        citations: List[Dict[str, Any]] = []
        persisted = False
        try:
            yield format_sse(StatusEvent(message="Starting query..."))
            async for event in self.rag.stream_query(ctx.message, ctx.state_code, ctx.options, ctx.client_context):
                if isinstance(event, AnswerEvent):
                    answer += event.content
                elif isinstance(event, ChunkEvent):
                    citations.extend(stored_citation(c) for c in event.chunks)

                yield format_sse(event)

                if isinstance(event, CompleteEvent) and not persisted:
                    persisted = True
                    content = answer or event.response.response
                    self._persist(ctx.thread_id, content, citations, response_metadata(event.response))
                    touch_thread(self.supabase, ctx.thread_id)
                elif isinstance(event, ErrorEvent) and answer and not persisted:
                    persisted = True
                    self._persist(ctx.thread_id, answer + ERROR_SUFFIX, citations)

            if answer and not persisted:
                persisted = True
                logger.warning(f"Stream for thread {ctx.thread_id} ended without a complete event, saving answer as received")
                self._persist(ctx.thread_id, answer, citations)
                touch_thread(self.supabase, ctx.thread_id)

            yield DONE_FRAME
        except Exception as e:
            logger.error(f"Stream relay failed for thread {ctx.thread_id}: {e}")
            if answer and not persisted:
                persisted = True
                self._persist(ctx.thread_id, answer + ERROR_SUFFIX, citations)
            yield format_sse({"type": "error", "error": "STREAM_ERROR", "message": str(e) or "Unknown error"})
        finally:
            # Browser disconnected before completion
            if answer and not persisted:
                logger.info(f"Client disconnected from thread {ctx.thread_id}, saving partial answer")
                self._persist(ctx.thread_id, answer + DISCONNECT_SUFFIX, citations)

    def _persist(
        self,
        thread_id: str,
        content: str,
        citations: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            self.threads.save_message(
                thread_id, "assistant", content,
                citations=citations or None, metadata=metadata
            )
        except DatabaseError as e:
            logger.error(f"Failed to save assistant message in thread {thread_id}: {e.message}")
            return False
        return True
