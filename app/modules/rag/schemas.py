from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional, Union


class CamelModel(BaseModel):
    """Serialized with camelCase keys for the browser, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class QueryOptions(CamelModel):
    doc_types: Optional[List[Literal["statute", "rule", "case", "taa"]]] = None
    tax_year: Optional[int] = Field(default=None, ge=1990, le=2030)
    expand_graph: Optional[bool] = None
    include_reasoning: Optional[bool] = None
    timeout_seconds: Optional[int] = Field(default=None, ge=5, le=300)
    include_trace: Optional[bool] = None


class ClientContext(CamelModel):
    state: Optional[str] = None
    filing_status: Optional[str] = None


class UnifiedCitation(CamelModel):
    text: str = ""
    citation: str = ""
    source: str = ""
    relevance_score: Optional[float] = None
    doc_type: Optional[str] = None
    doc_id: Optional[str] = None
    chunk_id: Optional[str] = None
    # Utah-specific
    authority_level: Optional[str] = None
    link: Optional[str] = None
    source_label: Optional[str] = None


class ReasoningStep(CamelModel):
    step_number: int = 0
    node: str = ""
    description: str = ""


class UnifiedRAGResponse(CamelModel):
    request_id: str
    response: str
    citations: List[UnifiedCitation] = Field(default_factory=list)
    confidence: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    processing_time_ms: Optional[int] = None
    # Florida-specific
    reasoning_steps: Optional[List[ReasoningStep]] = None
    stage_timings: Optional[Dict[str, float]] = None
    # Utah-specific
    confidence_label: Optional[str] = None
    forms_mentioned: Optional[List[str]] = None
    tax_type: Optional[str] = None
    tax_type_label: Optional[str] = None
    state_code: Optional[str] = None
    capabilities: Optional[Dict[str, bool]] = None


class TaxFormInfo(CamelModel):
    form_number: str
    title: str = ""
    url: Optional[str] = None
    description: Optional[str] = None
    state_code: str


class ProviderHealth(CamelModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


# Stream events forwarded to the browser as `data: <json>` lines

class StatusEvent(CamelModel):
    type: Literal["status"] = "status"
    message: str


class ReasoningEvent(CamelModel):
    type: Literal["reasoning"] = "reasoning"
    step: int = 0
    node: str = "processing"
    description: str = ""


class ChunkEvent(CamelModel):
    type: Literal["chunk"] = "chunk"
    chunks: List[UnifiedCitation] = Field(default_factory=list)


class AnswerEvent(CamelModel):
    type: Literal["answer"] = "answer"
    content: str


class CompleteEvent(CamelModel):
    type: Literal["complete"] = "complete"
    response: UnifiedRAGResponse


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error: str = "UNKNOWN_ERROR"
    message: str = "Unknown error"


StreamEvent = Union[StatusEvent, ReasoningEvent, ChunkEvent, AnswerEvent, CompleteEvent, ErrorEvent]


# Knowledge API (source drill-down and citation graph). Upstream payloads are
# snake_case and validate directly by field name.

class SourceDetail(CamelModel):
    chunk_id: str
    doc_id: str = ""
    doc_type: str = ""
    level: str = ""
    text: str = ""
    text_with_ancestry: str = ""
    ancestry: str = ""
    citation: str = ""
    effective_date: Optional[str] = None
    token_count: int = 0
    parent_chunk_id: Optional[str] = None
    child_chunk_ids: List[str] = Field(default_factory=list)
    related_doc_ids: List[str] = Field(default_factory=list)


class DocumentRef(CamelModel):
    doc_id: str
    doc_type: Optional[str] = None
    title: Optional[str] = None
    citation: Optional[str] = None


class StatuteText(CamelModel):
    doc_id: str
    title: str = ""
    text: str = ""
    effective_date: Optional[str] = None


class StatuteWithRules(CamelModel):
    statute: StatuteText
    implementing_rules: List[DocumentRef] = Field(default_factory=list)
    interpreting_cases: List[DocumentRef] = Field(default_factory=list)
    interpreting_taas: List[DocumentRef] = Field(default_factory=list)


class InterpretationChain(CamelModel):
    implementing_rules: List[DocumentRef] = Field(default_factory=list)
    interpreting_cases: List[DocumentRef] = Field(default_factory=list)
    interpreting_taas: List[DocumentRef] = Field(default_factory=list)


class RelatedDocuments(CamelModel):
    doc_id: str
    citing_documents: List[DocumentRef] = Field(default_factory=list)
    cited_documents: List[DocumentRef] = Field(default_factory=list)
    interpretation_chain: Optional[InterpretationChain] = None


class ServiceHealth(CamelModel):
    name: str
    healthy: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None


class HealthResponse(CamelModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    services: List[ServiceHealth] = Field(default_factory=list)
    timestamp: str
