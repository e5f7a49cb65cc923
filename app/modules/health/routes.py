from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from app.database.supabase_client import get_service_supabase
from app.modules.health.service import HealthService
from app.modules.rag.service import RAGService, get_rag_service
from supabase import Client

router = APIRouter(tags=["health"])


def get_health_service(
    supabase: Client = Depends(get_service_supabase),
    rag: RAGService = Depends(get_rag_service)
) -> HealthService:
    return HealthService(supabase, rag)


@router.get("/health")
async def service_health(service: HealthService = Depends(get_health_service)):
    """Database and RAG backend health; 503 unless everything is healthy"""
    health = await service.check()
    return JSONResponse(
        status_code=200 if health.status == "healthy" else 503,
        content=health.to_json_dict(),
    )
