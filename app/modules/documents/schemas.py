from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

DocumentType = Literal["W2", "1099", "Receipt", "Prior Return", "Other"]
ExtractionStatus = Literal["pending", "processing", "completed", "failed"]

DOCUMENT_TYPES = ("W2", "1099", "Receipt", "Prior Return", "Other")

ALLOWED_MIME_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class DocumentResponse(BaseModel):
    id: str
    client_id: str
    name: str
    type: str
    storage_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_by: Optional[str] = None
    extraction_status: Optional[ExtractionStatus] = None
    extracted_data: Optional[Dict[str, Any]] = None
    extracted_at: Optional[datetime] = None
    extraction_error: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DocumentDetailResponse(DocumentResponse):
    download_url: Optional[str] = Field(default=None, serialization_alias="downloadUrl")


class DocumentListResponse(BaseModel):
    data: List[DocumentResponse]


class ExtractionStatusResponse(BaseModel):
    document_id: str = Field(serialization_alias="documentId")
    status: Optional[ExtractionStatus] = None
    extracted_data: Optional[Dict[str, Any]] = Field(default=None, serialization_alias="extractedData")
    extracted_at: Optional[datetime] = Field(default=None, serialization_alias="extractedAt")
    error: Optional[str] = None
