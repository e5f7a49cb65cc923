"""Utah tax RAG API: synchronous answers, tax forms and tax-type classification."""

import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from app.modules.rag.base_provider import BaseRAGProvider, error_message, split_answer
from app.modules.rag.schemas import (
    AnswerEvent,
    ChunkEvent,
    ClientContext,
    CompleteEvent,
    ProviderHealth,
    QueryOptions,
    StatusEvent,
    StreamEvent,
    TaxFormInfo,
    UnifiedCitation,
    UnifiedRAGResponse,
)

logger = logging.getLogger(__name__)


class UtahRAGProvider(BaseRAGProvider):

    async def query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> UnifiedRAGResponse:
        # The Utah API scopes answers itself; client context is not prepended
        started = time.monotonic()
        try:
            data = await self._fetch_json(
                "POST",
                self.config.endpoints.query,
                json={"query": query, "include_trace": bool(options and options.include_trace)},
                timeout=self._timeout(options),
            )
        except Exception as e:
            logger.error(f"Utah query failed: {e}")
            return self._error_response(e)
        return self._transform_response(data, int((time.monotonic() - started) * 1000))

    async def stream_query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        yield StatusEvent(message="Querying Utah tax law database...")
        try:
            response = await self.query(query, options, client_context)
        except Exception as e:
            async for event in self._error_stream(e):
                yield event
            return
        async for event in self._simulate_streaming(response):
            yield event

    async def _simulate_streaming(self, response: UnifiedRAGResponse) -> AsyncIterator[StreamEvent]:
        yield StatusEvent(message="Searching Utah Code and Administrative Rules...")
        await self._delay(200)
        yield StatusEvent(message="Analyzing relevant tax provisions...")
        await self._delay(200)
        if response.tax_type_label:
            yield StatusEvent(message=f"Identified tax type: {response.tax_type_label}")
            await self._delay(150)
        if response.citations:
            yield ChunkEvent(chunks=response.citations)
            await self._delay(100)
        for piece in split_answer(response.response):
            yield AnswerEvent(content=piece)
            await self._delay(25)
        yield CompleteEvent(response=response)

    async def check_health(self) -> ProviderHealth:
        """Healthy only when both the vector store and the graph store are connected."""
        try:
            response = await self.client.get(
                self.config.endpoints.health, headers=self._headers(), timeout=self.health_timeout_seconds
            )
            if not response.is_success:
                return ProviderHealth(status="unhealthy", message=f"HTTP {response.status_code}")
            data = response.json() or {}
        except Exception as e:
            return ProviderHealth(status="unhealthy", message=error_message(e))

        qdrant_ok = bool((data.get("qdrant") or {}).get("connected"))
        neo4j_ok = bool((data.get("neo4j") or {}).get("connected"))
        if qdrant_ok and neo4j_ok:
            return ProviderHealth(status="healthy")
        if qdrant_ok or neo4j_ok:
            down = "Neo4j" if qdrant_ok else "Qdrant"
            return ProviderHealth(status="degraded", message=f"{down} is not connected")
        return ProviderHealth(status="unhealthy", message="Both Qdrant and Neo4j are not connected")

    async def list_forms(self) -> List[TaxFormInfo]:
        if not self.config.endpoints.forms:
            return []
        try:
            response = await self.client.get(self.config.endpoints.forms, headers=self._headers(), timeout=30)
            if not response.is_success:
                return []
            data = response.json() or {}
        except Exception as e:
            logger.warning(f"Utah form listing failed: {e}")
            return []
        return [self._transform_form(form) for form in data.get("forms") or []]

    async def get_form_info(self, form_number: str) -> Optional[TaxFormInfo]:
        if not self.config.endpoints.form_detail:
            return None
        try:
            response = await self.client.get(
                f"{self.config.endpoints.form_detail}/{form_number}", headers=self._headers(), timeout=30
            )
            if not response.is_success:
                return None
            return self._transform_form(response.json())
        except Exception as e:
            logger.warning(f"Utah form lookup failed for {form_number}: {e}")
            return None

    def _transform_form(self, raw: Dict[str, Any]) -> TaxFormInfo:
        return TaxFormInfo(
            form_number=raw.get("form_number") or "",
            title=raw.get("title") or "",
            url=raw.get("url"),
            description=raw.get("description"),
            state_code=self.state_code,
        )

    def _transform_response(self, raw: Dict[str, Any], elapsed_ms: int) -> UnifiedRAGResponse:
        citations = [
            UnifiedCitation(
                text=c.get("text") or "",
                citation=c.get("citation") or "",
                source=c.get("source") or "",
                source_label=c.get("source_label"),
                relevance_score=c.get("relevance_score"),
                authority_level=c.get("authority_level"),
                link=c.get("link"),
            )
            for c in raw.get("citations") or []
        ]
        return UnifiedRAGResponse(
            request_id=f"utah-{int(time.time() * 1000)}",
            response=raw.get("response") or "",
            citations=citations,
            confidence=raw.get("confidence") or 0,
            confidence_label=raw.get("confidence_label"),
            warnings=raw.get("warnings") or [],
            processing_time_ms=elapsed_ms,
            forms_mentioned=raw.get("forms_mentioned") or [],
            tax_type=raw.get("tax_type") or None,
            tax_type_label=raw.get("tax_type_label") or None,
            state_code=self.state_code,
            capabilities=self.capabilities.to_dict(),
        )
