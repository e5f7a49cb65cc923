from supabase import Client
from app.modules.rag.schemas import HealthResponse, ServiceHealth
from app.modules.rag.service import RAGService
from datetime import datetime, timezone
from typing import List
import logging
import time

logger = logging.getLogger(__name__)


class HealthService:
    def __init__(self, supabase: Client, rag: RAGService):
        self.supabase = supabase
        self.rag = rag

    def check_database(self) -> ServiceHealth:
        start = time.monotonic()
        try:
            self.supabase.table("organizations").select("id").limit(1).execute()
        except Exception as e:
            logger.warning(f"Supabase health check failed: {e}")
            return ServiceHealth(name="supabase", healthy=False, error=str(e) or "Unknown error")
        return ServiceHealth(name="supabase", healthy=True, latency_ms=int((time.monotonic() - start) * 1000))

    async def check(self) -> HealthResponse:
        """Aggregate health: degraded when some but not all dependencies are down"""
        services: List[ServiceHealth] = [self.check_database()]
        overall_healthy = services[0].healthy

        rag_health = await self.rag.check_health()
        services.extend(rag_health.services)
        if rag_health.status == "unhealthy":
            overall_healthy = False

        if overall_healthy:
            status = "healthy"
        elif any(s.healthy for s in services):
            status = "degraded"
        else:
            status = "unhealthy"
        return HealthResponse(status=status, services=services, timestamp=datetime.now(timezone.utc).isoformat())
