"""
RAG service: knowledge API lookups plus jurisdiction-aware query dispatch.

Source drill-down, statute lookups and the citation graph live on the
knowledge API at ``rag_api_base_url``. Questions are routed through the
provider registry so each client's state reaches its own backend.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from app.config.settings import Settings, settings as default_settings
from app.config.state_config import StateCapabilities
from app.core.retry import RetryConfig, with_retry
from app.modules.rag.base_provider import RAGAPIError, error_message
from app.modules.rag.registry import ProviderRegistry
from app.modules.rag.schemas import (
    ClientContext,
    HealthResponse,
    QueryOptions,
    RelatedDocuments,
    ServiceHealth,
    SourceDetail,
    StatuteWithRules,
    StreamEvent,
    UnifiedRAGResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_RAG_API_BASE_URL = "http://localhost:8000"


class RAGService:
    def __init__(
        self,
        registry: ProviderRegistry,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        s = settings or default_settings
        self.registry = registry
        self.base_url = (s.rag_api_base_url or DEFAULT_RAG_API_BASE_URL).rstrip("/")
        self.api_key = s.rag_api_key
        self.health_timeout = s.rag_health_timeout_seconds
        self.retry_config = RetryConfig(
            max_retries=s.rag_max_retries,
            base_delay_ms=s.rag_retry_base_delay_ms,
            max_delay_ms=s.rag_retry_max_delay_ms,
        )
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(s.rag_timeout_seconds),
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_json(self, path: str, timeout: Optional[float] = None) -> Any:
        async def send() -> Any:
            response = await self.client.get(path, headers=self._headers(), timeout=timeout or httpx.USE_CLIENT_DEFAULT)
            if response.is_success:
                return response.json()
            body = response.text
            try:
                parsed = json.loads(body)
                message = (parsed.get("message") or parsed.get("error")) if isinstance(parsed, dict) else None
                message = message or f"HTTP {response.status_code}"
            except ValueError:
                message = body or f"HTTP {response.status_code}"
            raise RAGAPIError(f"RAG API Error: {message}", status_code=response.status_code,
                              headers=dict(response.headers))

        return await with_retry(send, self.retry_config)

    # Knowledge API

    async def get_source(self, chunk_id: str) -> SourceDetail:
        """Detailed information about one retrieved chunk."""
        data = await self._get_json(f"/api/v1/sources/{chunk_id}")
        return SourceDetail.model_validate(data)

    async def get_statute(self, section: str) -> StatuteWithRules:
        """A statute with its implementing rules and interpreting documents."""
        data = await self._get_json(f"/api/v1/statute/{section}")
        return StatuteWithRules.model_validate(data)

    async def get_related_docs(self, doc_id: str) -> RelatedDocuments:
        """Documents citing or cited by ``doc_id``."""
        data = await self._get_json(f"/api/v1/graph/{doc_id}/related")
        return RelatedDocuments.model_validate(data)

    async def check_health(self) -> HealthResponse:
        """Knowledge API health; never raises."""
        try:
            response = await self.client.get("/api/v1/health", headers=self._headers(), timeout=self.health_timeout)
            if not response.is_success:
                raise RAGAPIError(f"RAG API Error: HTTP {response.status_code}", status_code=response.status_code)
            return HealthResponse.model_validate(response.json())
        except Exception as e:
            logger.warning(f"RAG API health check failed: {e}")
            return HealthResponse(
                status="unhealthy",
                services=[ServiceHealth(name="rag-api", healthy=False, error=error_message(e))],
                timestamp=datetime.now(timezone.utc).isoformat(),
            )

    # Jurisdiction dispatch

    async def query_by_state(
        self,
        query: str,
        state_code: Optional[str],
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> UnifiedRAGResponse:
        provider = self.registry.get_provider(state_code)
        return await provider.query(query, options, client_context)

    def stream_query(
        self,
        query: str,
        state_code: Optional[str],
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream events from the state's provider; non-streaming APIs are replayed as chunks."""
        provider = self.registry.get_provider(state_code)
        return provider.stream_query(query, options, client_context)

    def has_state_provider(self, state_code: Optional[str]) -> bool:
        return self.registry.has_provider(state_code)

    def get_state_capabilities(self, state_code: Optional[str]) -> StateCapabilities:
        return self.registry.get_provider(state_code).capabilities

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.registry.aclose()


_rag_service: Optional[RAGService] = None


def get_rag_service() -> RAGService:
    """Process-wide RAG service; overridden in tests."""
    global _rag_service
    if _rag_service is None:
        _rag_service = RAGService(ProviderRegistry(default_settings))
    return _rag_service


async def close_rag_service() -> None:
    global _rag_service
    if _rag_service is not None:
        await _rag_service.aclose()
        _rag_service = None
