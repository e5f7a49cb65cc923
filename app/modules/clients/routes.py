from fastapi import APIRouter, Depends, Query, Response
from app.core.dependencies import get_organization_id
from app.core.pagination import Pagination, pagination
from app.core.rate_limit import rate_limit, standard_limiter
from app.database.supabase_client import get_supabase
from app.modules.clients.schemas import ClientCreate, ClientUpdate, ClientResponse, ClientListResponse
from app.modules.clients.service import ClientService
from supabase import Client
from typing import Optional

router = APIRouter(prefix="/clients", tags=["clients"])


def get_client_service(supabase: Client = Depends(get_supabase)) -> ClientService:
    return ClientService(supabase)


@router.get("", response_model=ClientListResponse, dependencies=[Depends(rate_limit(standard_limiter))])
async def list_clients(
    search: Optional[str] = None,
    state: Optional[str] = None,
    tax_year: Optional[int] = Query(None, alias="taxYear"),
    page: Pagination = Depends(pagination()),
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """List clients in the caller's organization"""
    return service.list_clients(organization_id, page, search=search, state=state, tax_year=tax_year)


@router.post("", response_model=ClientResponse, status_code=201, dependencies=[Depends(rate_limit(standard_limiter))])
async def create_client(
    client_data: ClientCreate,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Create a new client"""
    return service.create_client(client_data, organization_id)


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Get client by ID"""
    return service.get_client(client_id, organization_id)


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: str,
    client_data: ClientUpdate,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Update client fields"""
    return service.update_client(client_id, client_data, organization_id)


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: str,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Delete client"""
    service.delete_client(client_id, organization_id)
    return Response(status_code=204)


@router.post("/{client_id}/aggregate-extractions")
async def aggregate_extractions(
    client_id: str,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Apply extracted document values to the client's income fields"""
    return service.aggregate_extractions(client_id, organization_id)


@router.get("/{client_id}/aggregate-extractions")
async def get_extraction_status(
    client_id: str,
    organization_id: str = Depends(get_organization_id),
    service: ClientService = Depends(get_client_service)
):
    """Extraction progress for the client's documents"""
    return service.extraction_stats(client_id, organization_id)
