"""Florida tax RAG API: native SSE streaming and source drill-down."""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from app.core.circuit_breaker import CircuitOpenError
from app.modules.rag.base_provider import BaseRAGProvider, error_message
from app.modules.rag.schemas import (
    AnswerEvent,
    ChunkEvent,
    ClientContext,
    CompleteEvent,
    ErrorEvent,
    ProviderHealth,
    QueryOptions,
    ReasoningEvent,
    ReasoningStep,
    SourceDetail,
    StatusEvent,
    StreamEvent,
    UnifiedCitation,
    UnifiedRAGResponse,
)
from app.modules.rag.sse import iter_sse_events

logger = logging.getLogger(__name__)


class FloridaRAGProvider(BaseRAGProvider):

    def _payload(self, query: str, options: Optional[QueryOptions], client_context: Optional[ClientContext]) -> Dict[str, Any]:
        options = options or QueryOptions()
        return {
            "query": self._enrich_query(query, client_context),
            "options": {
                "doc_types": options.doc_types,
                "tax_year": options.tax_year,
                "expand_graph": True if options.expand_graph is None else options.expand_graph,
                "include_reasoning": bool(options.include_reasoning),
                "timeout_seconds": options.timeout_seconds or 60,
            },
        }

    async def query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> UnifiedRAGResponse:
        started = time.monotonic()
        try:
            data = await self._fetch_json(
                "POST",
                self.config.endpoints.query,
                json=self._payload(query, options, client_context),
                timeout=self._timeout(options),
            )
        except Exception as e:
            logger.error(f"Florida query failed: {e}")
            return self._error_response(e)
        return self._transform_response(data, int((time.monotonic() - started) * 1000))

    async def stream_query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        endpoint = self.config.endpoints.query_stream
        if not endpoint:
            response = await self.query(query, options, client_context)
            async for event in self._simulate_streaming(response):
                yield event
            return

        try:
            self.breaker.before_call()
        except CircuitOpenError as e:
            async for event in self._error_stream(e):
                yield event
            return

        try:
            async with self.client.stream(
                "POST",
                endpoint,
                json=self._payload(query, options, client_context),
                headers=self._stream_headers(),
                timeout=httpx.Timeout(self._timeout(options), read=None),
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    if response.status_code >= 500:
                        self.breaker.record_failure()
                    yield ErrorEvent(error="REQUEST_FAILED", message=f"Florida RAG API Error: {body}")
                    return
                self.breaker.record_success()

                full_answer = ""
                citations: List[UnifiedCitation] = []
                async for event_type, data in iter_sse_events(response.aiter_lines()):
                    event = self._transform_stream_event(event_type, data, full_answer, citations)
                    if event is None:
                        continue
                    if isinstance(event, AnswerEvent):
                        full_answer += event.content
                    elif isinstance(event, ChunkEvent):
                        citations.extend(event.chunks)
                    yield event
        except httpx.HTTPError as e:
            self.breaker.record_failure()
            logger.error(f"Florida stream failed: {error_message(e)}")
            async for event in self._error_stream(e):
                yield event

    async def check_health(self) -> ProviderHealth:
        try:
            response = await self.client.get(
                self.config.endpoints.health, headers=self._headers(), timeout=self.health_timeout_seconds
            )
            if not response.is_success:
                return ProviderHealth(status="unhealthy", message=f"HTTP {response.status_code}")
            data = response.json()
            status = data.get("status") if isinstance(data, dict) else None
            if status not in ("healthy", "degraded", "unhealthy"):
                status = "healthy"
            return ProviderHealth(status=status)
        except Exception as e:
            return ProviderHealth(status="unhealthy", message=error_message(e))

    async def get_source(self, chunk_id: str) -> Optional[SourceDetail]:
        """Source chunk detail, or None when unavailable."""
        if not self.config.endpoints.sources:
            return None
        try:
            response = await self.client.get(
                f"{self.config.endpoints.sources}/{chunk_id}", headers=self._headers(), timeout=30
            )
            if not response.is_success:
                return None
            return SourceDetail.model_validate(response.json())
        except Exception as e:
            logger.warning(f"Florida source lookup failed for {chunk_id}: {e}")
            return None

    def _transform_response(self, raw: Dict[str, Any], elapsed_ms: int) -> UnifiedRAGResponse:
        citations = [
            UnifiedCitation(
                text=source.get("text") or "",
                citation=source.get("citation") or "",
                source=source.get("doc_type") or "",
                relevance_score=source.get("relevance_score"),
                doc_type=source.get("doc_type"),
                doc_id=source.get("doc_id"),
                chunk_id=source.get("chunk_id"),
            )
            for source in raw.get("sources") or []
        ]
        steps = raw.get("reasoning_steps")
        return UnifiedRAGResponse(
            request_id=raw.get("request_id") or "",
            response=raw.get("answer") or "",
            citations=citations,
            confidence=raw.get("confidence") or 0,
            warnings=raw.get("warnings") or [],
            processing_time_ms=raw.get("processing_time_ms") or elapsed_ms,
            reasoning_steps=[ReasoningStep.model_validate(step) for step in steps] if steps else None,
            stage_timings=raw.get("stage_timings"),
            state_code=self.state_code,
            capabilities=self.capabilities.to_dict(),
        )

    def _chunk_citation(self, data: Dict[str, Any]) -> UnifiedCitation:
        return UnifiedCitation(
            text=data.get("text") or "",
            citation=data.get("citation") or "",
            source=data.get("doc_type") or "unknown",
            relevance_score=data.get("relevance_score") or 0.5,
            chunk_id=data.get("chunk_id"),
            doc_id=data.get("doc_id"),
            doc_type=data.get("doc_type"),
        )

    def _transform_stream_event(
        self,
        event_type: Optional[str],
        data: Dict[str, Any],
        full_answer: str,
        citations: List[UnifiedCitation],
    ) -> Optional[StreamEvent]:
        """Map one upstream SSE event onto the unified stream event types."""
        if event_type == "status":
            message = data.get("description") or data.get("node")
            return StatusEvent(message=message or _compact_json(data))
        if event_type == "reasoning":
            return ReasoningEvent(
                step=data.get("step_number") or 0,
                node=data.get("node") or "processing",
                description=data.get("description") or "",
            )
        if event_type == "chunk":
            chunks = data.get("chunks")
            if isinstance(chunks, list):
                return ChunkEvent(chunks=[self._chunk_citation(c) for c in chunks if isinstance(c, dict)])
            return ChunkEvent(chunks=[self._chunk_citation(data)])
        if event_type == "answer":
            return AnswerEvent(content=data.get("answer") or data.get("content") or data.get("text") or "")
        if event_type == "complete":
            return CompleteEvent(response=UnifiedRAGResponse(
                request_id=data.get("request_id") or "",
                response=full_answer or data.get("answer") or "",
                citations=list(citations),
                confidence=data.get("confidence") or 0,
                warnings=data.get("warnings") or [],
                processing_time_ms=data.get("processing_time_ms") or 0,
                state_code=self.state_code,
                capabilities=self.capabilities.to_dict(),
            ))
        if event_type == "error":
            return ErrorEvent(
                error=data.get("error") or "UNKNOWN_ERROR",
                message=data.get("message") or "Unknown error",
            )

        # Untyped events: infer from the payload shape
        if isinstance(data.get("answer"), str):
            return AnswerEvent(content=data["answer"])
        if "error" in data:
            return ErrorEvent(error=str(data["error"]), message=data.get("message") or "Unknown error")
        if "request_id" in data and "confidence" in data:
            return self._transform_stream_event("complete", data, full_answer, citations)
        return None


def _compact_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))
