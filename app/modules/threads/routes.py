from fastapi import APIRouter, Depends, Query, Response
from app.core.dependencies import get_current_user, get_organization_id
from app.core.pagination import Pagination, pagination
from app.core.rate_limit import rate_limit, standard_limiter
from app.database.supabase_client import get_supabase
from app.modules.threads.schemas import (
    MessageCreate, MessageListResponse, MessageResponse, ThreadCreate, ThreadListResponse, ThreadResponse
)
from app.modules.threads.service import ThreadService
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/threads", tags=["threads"])


def get_thread_service(supabase: Client = Depends(get_supabase)) -> ThreadService:
    return ThreadService(supabase)


@router.get("", response_model=ThreadListResponse, dependencies=[Depends(rate_limit(standard_limiter))])
async def list_threads(
    client_id: Optional[str] = Query(None, alias="clientId"),
    page: Pagination = Depends(pagination()),
    user: Dict = Depends(get_current_user),
    service: ThreadService = Depends(get_thread_service)
):
    """List the caller's threads, most recently active first"""
    return service.list_threads(user["id"], page, client_id=client_id)


@router.post("", response_model=ThreadResponse, status_code=201, dependencies=[Depends(rate_limit(standard_limiter))])
async def create_thread(
    thread_data: ThreadCreate,
    user: Dict = Depends(get_current_user),
    organization_id: str = Depends(get_organization_id),
    service: ThreadService = Depends(get_thread_service)
):
    """Start a research thread for a client"""
    return service.create_thread(thread_data, user["id"], organization_id)


@router.get("/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: str,
    user: Dict = Depends(get_current_user),
    service: ThreadService = Depends(get_thread_service)
):
    """Get thread with its client context"""
    return service.get_thread(thread_id, user["id"])


@router.delete("/{thread_id}", status_code=204)
async def delete_thread(
    thread_id: str,
    user: Dict = Depends(get_current_user),
    service: ThreadService = Depends(get_thread_service)
):
    """Delete thread and its messages"""
    service.delete_thread(thread_id, user["id"])
    return Response(status_code=204)


@router.get("/{thread_id}/messages", response_model=MessageListResponse)
async def list_messages(
    thread_id: str,
    page: Pagination = Depends(pagination(default_page_size=50)),
    user: Dict = Depends(get_current_user),
    service: ThreadService = Depends(get_thread_service)
):
    """Messages in a thread, oldest first"""
    return service.list_messages(thread_id, user["id"], page)


@router.post("/{thread_id}/messages", response_model=MessageResponse, status_code=201)
async def create_message(
    thread_id: str,
    message_data: MessageCreate,
    user: Dict = Depends(get_current_user),
    service: ThreadService = Depends(get_thread_service)
):
    """Append a message to a thread"""
    return service.create_message(thread_id, message_data, user["id"])
