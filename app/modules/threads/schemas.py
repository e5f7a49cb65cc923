from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from uuid import UUID

MessageRole = Literal["user", "assistant", "system"]


class ThreadCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    client_id: UUID
    title: str = Field(min_length=1, max_length=255)


class ThreadClient(BaseModel):
    name: Optional[str] = None
    state: Optional[str] = None
    tax_year: Optional[int] = None
    filing_status: Optional[str] = None


class ThreadResponse(BaseModel):
    id: str
    client_id: str
    user_id: Optional[str] = None
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    clients: Optional[ThreadClient] = None

    class Config:
        from_attributes = True


class ThreadListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: List[ThreadResponse]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    has_more: bool = Field(alias="hasMore")


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)
    role: MessageRole = "user"


class MessageResponse(BaseModel):
    id: str
    thread_id: str
    role: MessageRole
    content: str
    citations: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: List[MessageResponse]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    has_more: bool = Field(alias="hasMore")
