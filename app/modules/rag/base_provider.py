"""
Base class for per-state RAG providers.

A provider wraps one state's RAG HTTP API behind a common surface:
``query`` (single response), ``stream_query`` (async iterator of stream
events) and ``check_health``. Shared plumbing lives here: headers, timeouts,
error mapping, simulated streaming for APIs without SSE, query enrichment
with client context, and the retry + circuit breaker path for outbound calls.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from app.config.state_config import StateCapabilities, StateRAGConfig
from app.core.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    circuit_breakers,
)
from app.core.retry import RetryConfig, with_retry
from app.modules.rag.schemas import (
    AnswerEvent,
    ChunkEvent,
    ClientContext,
    CompleteEvent,
    ErrorEvent,
    ProviderHealth,
    QueryOptions,
    StatusEvent,
    StreamEvent,
    TaxFormInfo,
    UnifiedRAGResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60
HEALTH_TIMEOUT_SECONDS = 10
ANSWER_CHUNK_WORDS = 5


class RAGAPIError(Exception):
    """Non-2xx response from a RAG API."""

    def __init__(self, message: str, status_code: Optional[int] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}


def error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def split_answer(answer: str, words_per_chunk: int = ANSWER_CHUNK_WORDS) -> List[str]:
    """Split an answer into word groups; every piece but the last keeps a trailing space."""
    words = answer.split(" ")
    pieces = []
    for i in range(0, len(words), words_per_chunk):
        suffix = " " if i + words_per_chunk < len(words) else ""
        pieces.append(" ".join(words[i:i + words_per_chunk]) + suffix)
    return pieces


class BaseRAGProvider(ABC):
    def __init__(
        self,
        config: StateRAGConfig,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        health_timeout_seconds: int = HEALTH_TIMEOUT_SECONDS,
        retry_config: Optional[RetryConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        stream_delay_scale: float = 1.0,
    ):
        self.config = config
        self.timeout_seconds = timeout_seconds
        self.health_timeout_seconds = health_timeout_seconds
        self.retry_config = retry_config or RetryConfig()
        self.stream_delay_scale = stream_delay_scale
        self.breaker = (breakers or circuit_breakers).get(self.circuit_breaker_name, breaker_config)
        self.client = httpx.AsyncClient(
            base_url=config.api_base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    # Interface

    @abstractmethod
    async def query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> UnifiedRAGResponse:
        ...

    @abstractmethod
    def stream_query(
        self,
        query: str,
        options: Optional[QueryOptions] = None,
        client_context: Optional[ClientContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        ...

    @abstractmethod
    async def check_health(self) -> ProviderHealth:
        ...

    async def list_forms(self) -> List[TaxFormInfo]:
        raise NotImplementedError(f"{self.state_name} does not provide tax forms")

    async def get_form_info(self, form_number: str) -> Optional[TaxFormInfo]:
        raise NotImplementedError(f"{self.state_name} does not provide tax forms")

    async def aclose(self) -> None:
        await self.client.aclose()

    # Accessors

    @property
    def state_code(self) -> str:
        return self.config.state_code

    @property
    def state_name(self) -> str:
        return self.config.state_name

    @property
    def capabilities(self) -> StateCapabilities:
        return self.config.capabilities

    @property
    def circuit_breaker_name(self) -> str:
        return f"rag-{self.config.state_code.lower()}"

    # Request helpers

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _stream_headers(self) -> Dict[str, str]:
        return {**self._headers(), "Accept": "text/event-stream"}

    def _build_url(self, endpoint: str) -> str:
        return f"{self.config.api_base_url.rstrip('/')}{endpoint}"

    def _timeout(self, options: Optional[QueryOptions] = None) -> float:
        if options and options.timeout_seconds:
            return float(options.timeout_seconds)
        return float(self.timeout_seconds)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Return the JSON body or raise RAGAPIError with the API's own message."""
        if response.is_success:
            return response.json()
        body = response.text
        try:
            parsed = json.loads(body)
            message = None
            if isinstance(parsed, dict):
                message = parsed.get("message") or parsed.get("error") or parsed.get("detail")
            message = message or f"HTTP {response.status_code}"
        except ValueError:
            message = body or f"HTTP {response.status_code}"
        raise RAGAPIError(
            f"RAG API Error ({self.state_name}): {message}",
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def _fetch_json(self, method: str, endpoint: str, timeout: Optional[float] = None, **kwargs: Any) -> Any:
        """Send a request through retry inside this state's circuit breaker."""
        async def send() -> Any:
            response = await self.client.request(
                method, endpoint, headers=self._headers(), timeout=timeout or self.timeout_seconds, **kwargs
            )
            return self._handle_response(response)

        def on_retry(error: BaseException, attempt: int, delay_ms: float) -> None:
            logger.warning(
                "[%s] Retry attempt %d after %.0fms: %s", self.state_code, attempt, delay_ms, error_message(error)
            )

        try:
            return await self.breaker.execute(lambda: with_retry(send, self.retry_config, on_retry=on_retry))
        except CircuitOpenError:
            logger.warning("[%s] Circuit breaker is open, failing fast", self.state_code)
            raise

    # Response builders

    def _error_response(self, error: BaseException) -> UnifiedRAGResponse:
        message = error_message(error)
        return UnifiedRAGResponse(
            request_id=f"error-{int(time.time() * 1000)}",
            response=f"Error querying {self.state_name} RAG API: {message}",
            citations=[],
            confidence=0,
            warnings=[message],
            processing_time_ms=0,
            state_code=self.state_code,
            capabilities=self.capabilities.to_dict(),
        )

    async def _error_stream(self, error: BaseException) -> AsyncIterator[StreamEvent]:
        yield ErrorEvent(error="PROVIDER_ERROR", message=f"{self.state_name} RAG API Error: {error_message(error)}")

    async def _delay(self, ms: int) -> None:
        if self.stream_delay_scale > 0:
            await asyncio.sleep(ms * self.stream_delay_scale / 1000)

    async def _simulate_streaming(self, response: UnifiedRAGResponse) -> AsyncIterator[StreamEvent]:
        """Replay a complete response as stream events for APIs without SSE."""
        yield StatusEvent(message="Processing query...")
        await self._delay(100)
        if response.citations:
            yield ChunkEvent(chunks=response.citations)
        await self._delay(100)
        for piece in split_answer(response.response):
            yield AnswerEvent(content=piece)
            await self._delay(30)
        yield CompleteEvent(response=response)

    @staticmethod
    def _enrich_query(query: str, client_context: Optional[ClientContext] = None) -> str:
        """Prefix the question with the client's jurisdiction and filing status."""
        if not client_context or not client_context.state:
            return query
        parts = [f"Client State: {client_context.state}"]
        if client_context.filing_status:
            parts.append(f"Filing Status: {client_context.filing_status}")
        return f"[{', '.join(parts)}] {query}"
