from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

FilingStatus = Literal["Single", "MFJ", "MFS", "HoH", "QW"]


class ClientCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    state: str = Field(min_length=2, max_length=2)
    tax_year: int = Field(ge=1990, le=2030)
    filing_status: FilingStatus
    ssn_last_four: Optional[str] = Field(default=None, min_length=4, max_length=4)
    gross_income: Optional[float] = None
    sched_c_revenue: Optional[float] = None
    dependents: Optional[int] = Field(default=None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class ClientUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    state: Optional[str] = Field(default=None, min_length=2, max_length=2)
    tax_year: Optional[int] = Field(default=None, ge=1990, le=2030)
    filing_status: Optional[FilingStatus] = None
    ssn_last_four: Optional[str] = Field(default=None, min_length=4, max_length=4)
    gross_income: Optional[float] = None
    sched_c_revenue: Optional[float] = None
    dependents: Optional[int] = Field(default=None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class ClientResponse(BaseModel):
    id: str
    organization_id: str
    name: str
    state: str
    tax_year: int
    filing_status: str
    ssn_last_four: Optional[str] = None
    gross_income: Optional[float] = None
    sched_c_revenue: Optional[float] = None
    dependents: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: List[ClientResponse]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    has_more: bool = Field(alias="hasMore")
