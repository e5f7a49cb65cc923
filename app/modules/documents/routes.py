from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from app.core.dependencies import get_current_user, get_organization_id
from app.core.rate_limit import rate_limit, strict_limiter, upload_limiter
from app.database.supabase_client import get_supabase
from app.modules.documents.schemas import (
    DocumentDetailResponse, DocumentListResponse, DocumentResponse, ExtractionStatusResponse
)
from app.modules.documents.service import DocumentService
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/documents", tags=["documents"])


def get_document_service(supabase: Client = Depends(get_supabase)) -> DocumentService:
    return DocumentService(supabase)


@router.post(
    "/upload",
    response_model=DocumentResponse,
    status_code=201,
    dependencies=[Depends(rate_limit(upload_limiter))]
)
async def upload_document(
    file: UploadFile = File(...),
    client_id: str = Form(..., alias="clientId"),
    name: str = Form(..., min_length=1),
    type: str = Form(...),
    user: Dict = Depends(get_current_user),
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """Upload a tax document (PDF, image or Word file, 10MB max) for a client"""
    return await service.upload_document(file, client_id, name, type, organization_id, user_id=user["id"])


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    client_id: str = Query(..., alias="clientId"),
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """List a client's documents"""
    return {"data": service.list_documents(client_id, organization_id)}


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """Get a document with a one-hour download URL"""
    return service.get_document_with_url(document_id, organization_id)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """Delete a document and its stored file"""
    service.delete_document(document_id, organization_id)
    return Response(status_code=204)


@router.post("/{document_id}/extract", dependencies=[Depends(rate_limit(strict_limiter))])
async def extract_document(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """Extract financial data from a PDF with AI"""
    return await service.extract_document(document_id, organization_id)


@router.get("/{document_id}/extract", response_model=ExtractionStatusResponse)
async def get_extraction(
    document_id: str,
    organization_id: str = Depends(get_organization_id),
    service: DocumentService = Depends(get_document_service)
):
    """Extraction status and result"""
    return service.get_extraction(document_id, organization_id)
