"""Tests for the per-state RAG configuration table."""

from app.config.settings import Settings
from app.config.state_config import (
    get_state_config,
    get_supported_states,
    has_state_specific_api,
    state_supports,
)


def test_florida_falls_back_to_shared_rag_url():
    config = get_state_config("FL", Settings(rag_api_base_url="http://rag.internal", rag_api_key="shared"))

    assert config.api_base_url == "http://rag.internal"
    assert config.api_key == "shared"
    assert config.endpoints.query_stream == "/api/v1/query/stream"


def test_state_specific_settings_win():
    s = Settings(florida_rag_api_url="http://fl.internal", florida_rag_api_key="fl-key", rag_api_base_url="http://rag.internal")
    assert get_state_config("fl", s).api_base_url == "http://fl.internal"
    assert get_state_config("fl", s).api_key == "fl-key"


def test_defaults_without_configuration():
    s = Settings(florida_rag_api_url=None, rag_api_base_url=None, utah_rag_api_url=None)
    assert get_state_config("FL", s).api_base_url == "http://localhost:8001"
    assert get_state_config("UT", s).api_base_url == "http://localhost:8000"


def test_unknown_state_uses_florida():
    assert get_state_config("TX").state_code == "FL"
    assert get_state_config(None).state_code == "FL"


def test_supported_states_and_capabilities():
    assert get_supported_states() == ["FL", "UT"]
    assert has_state_specific_api("ut")
    assert not has_state_specific_api("CA")
    assert state_supports("UT", "has_tax_forms")
    assert not state_supports("UT", "supports_streaming")
    assert state_supports("FL", "supports_source_drilldown")
    assert not state_supports("FL", "no_such_capability")
