from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from datetime import datetime
from uuid import UUID

TaskStatus = Literal["in_progress", "ready", "complete", "failed"]
TERMINAL_STATUSES = ("complete", "failed")


class TaskStep(BaseModel):
    label: str
    status: Literal["pending", "running", "done"]


class TaskCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    client_id: Optional[UUID] = None
    thread_id: Optional[UUID] = None
    steps: Optional[List[TaskStep]] = None
    attached_file: Optional[str] = None


class TaskUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: Optional[TaskStatus] = None
    current_step: Optional[int] = Field(default=None, ge=0)
    steps: Optional[List[TaskStep]] = None
    error_message: Optional[str] = None


class TaskClient(BaseModel):
    name: Optional[str] = None


class TaskResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    thread_id: Optional[str] = None
    title: str
    status: TaskStatus
    current_step: int = 0
    steps: List[TaskStep] = []
    attached_file: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    clients: Optional[TaskClient] = None

    class Config:
        from_attributes = True


class TaskListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: List[TaskResponse]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    has_more: bool = Field(alias="hasMore")
