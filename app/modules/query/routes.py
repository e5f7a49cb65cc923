from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from app.core.dependencies import get_current_user, get_organization_id
from app.core.rate_limit import query_limiter, rate_limit
from app.database.supabase_client import get_supabase
from app.modules.query.schemas import QueryRequest, QueryResponse
from app.modules.query.service import QueryService
from app.modules.rag.service import RAGService, get_rag_service
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/query", tags=["query"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_query_service(
    supabase: Client = Depends(get_supabase),
    rag: RAGService = Depends(get_rag_service)
) -> QueryService:
    return QueryService(supabase, rag)


@router.post(
    "",
    response_model=QueryResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(rate_limit(query_limiter))]
)
async def query(
    request: QueryRequest,
    user: Dict = Depends(get_current_user),
    organization_id: str = Depends(get_organization_id),
    service: QueryService = Depends(get_query_service)
):
    """Answer a tax question for a client's thread"""
    ctx = service.prepare(request, user["id"], organization_id)
    return await service.run_query(ctx)


@router.post("/stream", dependencies=[Depends(rate_limit(query_limiter))])
async def query_stream(
    request: QueryRequest,
    user: Dict = Depends(get_current_user),
    organization_id: str = Depends(get_organization_id),
    service: QueryService = Depends(get_query_service)
):
    """Answer a tax question as a Server-Sent Events stream"""
    ctx = service.prepare(request, user["id"], organization_id)
    return StreamingResponse(service.relay_stream(ctx), media_type="text/event-stream", headers=SSE_HEADERS)
