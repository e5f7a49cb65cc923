"""
Per-state RAG backend configuration.

Each supported jurisdiction has its own RAG API with its own capabilities.
Florida exposes native SSE streaming and source drill-down; Utah exposes
tax forms, tax-type classification and authority levels but answers
synchronously only.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.config.settings import Settings, settings as default_settings

DEFAULT_STATE = "FL"


@dataclass(frozen=True)
class StateCapabilities:
    supports_streaming: bool = False
    supports_source_drilldown: bool = False
    has_tax_forms: bool = False
    has_tax_type_classification: bool = False
    has_authority_levels: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "supportsStreaming": self.supports_streaming,
            "supportsSourceDrilldown": self.supports_source_drilldown,
            "hasTaxForms": self.has_tax_forms,
            "hasTaxTypeClassification": self.has_tax_type_classification,
            "hasAuthorityLevels": self.has_authority_levels,
        }


@dataclass(frozen=True)
class StateEndpoints:
    query: str
    health: str
    query_stream: Optional[str] = None
    sources: Optional[str] = None
    forms: Optional[str] = None
    form_detail: Optional[str] = None


@dataclass(frozen=True)
class StateRAGConfig:
    state_code: str
    state_name: str
    api_base_url: str
    endpoints: StateEndpoints
    capabilities: StateCapabilities = field(default_factory=StateCapabilities)
    api_key: Optional[str] = None


def build_state_configs(settings: Optional[Settings] = None) -> Dict[str, StateRAGConfig]:
    """Build the state table from settings. Keys are upper-case state codes."""
    s = settings or default_settings
    florida = StateRAGConfig(
        state_code="FL",
        state_name="Florida",
        api_base_url=s.florida_rag_api_url or s.rag_api_base_url or "http://localhost:8001",
        api_key=s.florida_rag_api_key or s.rag_api_key,
        capabilities=StateCapabilities(
            supports_streaming=True,
            supports_source_drilldown=True,
        ),
        endpoints=StateEndpoints(
            query="/api/v1/query",
            query_stream="/api/v1/query/stream",
            sources="/api/v1/sources",
            health="/api/v1/health",
        ),
    )
    utah = StateRAGConfig(
        state_code="UT",
        state_name="Utah",
        api_base_url=s.utah_rag_api_url or "http://localhost:8000",
        api_key=s.utah_rag_api_key,
        capabilities=StateCapabilities(
            has_tax_forms=True,
            has_tax_type_classification=True,
            has_authority_levels=True,
        ),
        endpoints=StateEndpoints(
            query="/query",
            health="/health",
            forms="/forms",
            form_detail="/forms",
        ),
    )
    return {florida.state_code: florida, utah.state_code: utah}


def get_state_config(state_code: Optional[str], settings: Optional[Settings] = None) -> StateRAGConfig:
    """Config for a state code (case-insensitive). Unknown states use Florida."""
    configs = build_state_configs(settings)
    return configs.get((state_code or "").upper(), configs[DEFAULT_STATE])


def has_state_specific_api(state_code: Optional[str]) -> bool:
    return (state_code or "").upper() in build_state_configs()


def get_supported_states(settings: Optional[Settings] = None) -> List[str]:
    return list(build_state_configs(settings).keys())


def state_supports(state_code: Optional[str], capability: str) -> bool:
    """True if the state's config enables the named capability (snake_case attribute)."""
    config = get_state_config(state_code)
    return bool(getattr(config.capabilities, capability, False))
