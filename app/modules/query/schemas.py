from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from app.modules.rag.schemas import QueryOptions
from typing import List, Optional
from uuid import UUID


class QueryRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=3, max_length=2000)
    client_id: UUID
    thread_id: UUID
    options: Optional[QueryOptions] = None


class Citation(BaseModel):
    """Citation as stored on assistant messages"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    doc_id: str = ""
    citation: str = ""
    doc_type: str = "statute"
    excerpt: str = ""


class Source(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    chunk_id: Optional[str] = None
    doc_id: Optional[str] = None
    doc_type: Optional[str] = None
    citation: str = ""
    text: str = ""
    relevance_score: Optional[float] = None


class QueryResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    request_id: str
    answer: str
    citations: List[Citation]
    sources: List[Source]
    confidence: float
    processing_time_ms: Optional[int] = None
    warnings: Optional[List[str]] = None
    state_code: Optional[str] = None
