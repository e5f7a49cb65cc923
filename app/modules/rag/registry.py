"""Provider registry: one RAG provider per supported state."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config.settings import Settings
from app.config.state_config import DEFAULT_STATE, StateRAGConfig, build_state_configs
from app.core.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from app.core.retry import RetryConfig
from app.modules.rag.base_provider import BaseRAGProvider
from app.modules.rag.florida_provider import FloridaRAGProvider
from app.modules.rag.utah_provider import UtahRAGProvider
from app.modules.rag.schemas import ProviderHealth

logger = logging.getLogger(__name__)

PROVIDER_CLASSES = {
    "FL": FloridaRAGProvider,
    "UT": UtahRAGProvider,
}


class ProviderRegistry:
    """Instantiate and resolve per-state RAG providers."""

    def __init__(
        self,
        settings: Settings,
        transport_overrides: Optional[Dict[str, httpx.AsyncBaseTransport]] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        stream_delay_scale: float = 1.0,
    ):
        self.settings = settings
        self.providers: Dict[str, BaseRAGProvider] = {}
        self.default_provider: Optional[BaseRAGProvider] = None
        self._transport_overrides = transport_overrides or {}
        self._breakers = breakers
        self._stream_delay_scale = stream_delay_scale
        self._initialize()

    def _create_provider(self, config: StateRAGConfig) -> Optional[BaseRAGProvider]:
        provider_class = PROVIDER_CLASSES.get(config.state_code)
        if provider_class is None:
            logger.warning("No provider implementation for state %s", config.state_code)
            return None
        s = self.settings
        return provider_class(
            config,
            timeout_seconds=s.rag_timeout_seconds,
            health_timeout_seconds=s.rag_health_timeout_seconds,
            retry_config=RetryConfig(
                max_retries=s.rag_max_retries,
                base_delay_ms=s.rag_retry_base_delay_ms,
                max_delay_ms=s.rag_retry_max_delay_ms,
            ),
            breaker_config=CircuitBreakerConfig(
                failure_threshold=s.circuit_failure_threshold,
                reset_timeout=s.circuit_reset_timeout_seconds,
                success_threshold=s.circuit_success_threshold,
                failure_window=s.circuit_failure_window_seconds,
            ),
            breakers=self._breakers,
            transport=self._transport_overrides.get(config.state_code),
            stream_delay_scale=self._stream_delay_scale,
        )

    def _initialize(self) -> None:
        for state_code, config in build_state_configs(self.settings).items():
            provider = self._create_provider(config)
            if provider is None:
                continue
            self.providers[state_code] = provider
            if state_code == DEFAULT_STATE:
                self.default_provider = provider
        if self.default_provider is None and self.providers:
            self.default_provider = next(iter(self.providers.values()))
        logger.info(
            "RAG provider registry initialized: states=%s default=%s",
            list(self.providers.keys()),
            self.default_provider.state_code if self.default_provider else None,
        )

    def get_provider(self, state_code: Optional[str]) -> BaseRAGProvider:
        """Provider for a state; unsupported states fall back to the default."""
        provider = self.providers.get((state_code or "").upper())
        if provider:
            return provider
        if self.default_provider:
            logger.info('No RAG provider for state "%s", using default (%s)', state_code, self.default_provider.state_name)
            return self.default_provider
        raise LookupError(f'No RAG provider available for state "{state_code}" and no default configured')

    def has_provider(self, state_code: Optional[str]) -> bool:
        return (state_code or "").upper() in self.providers

    def get_available_states(self) -> List[str]:
        return list(self.providers.keys())

    def get_default_provider(self) -> BaseRAGProvider:
        if self.default_provider is None:
            raise LookupError("No default RAG provider configured")
        return self.default_provider

    async def check_all_health(self) -> List[Dict[str, Any]]:
        results = []
        for state_code, provider in self.providers.items():
            health = await provider.check_health()
            results.append({"stateCode": state_code, **health.to_json_dict()})
        return results

    async def check_health(self, state_code: str) -> ProviderHealth:
        return await self.get_provider(state_code).check_health()

    async def aclose(self) -> None:
        for provider in self.providers.values():
            await provider.aclose()
