import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from app.config import settings
from app.core.errors import APIError, api_error_handler, validation_error_handler
from app.core.rate_limit import get_rate_limit_mode
from app.modules.auth import routes as auth_routes
from app.modules.clients import routes as clients_routes
from app.modules.contact import routes as contact_routes
from app.modules.documents import routes as documents_routes
from app.modules.health import routes as health_routes
from app.modules.query import routes as query_routes
from app.modules.rag import routes as rag_routes
from app.modules.rag.service import close_rag_service
from app.modules.tasks import routes as tasks_routes
from app.modules.threads import routes as threads_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

# Coarse per-IP ceiling; per-route limits live in app.core.rate_limit
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
)
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    message = "An unexpected error occurred" if settings.is_production else (str(exc) or "Unknown error")
    return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR", "message": message})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api")
app.include_router(clients_routes.router, prefix="/api")
app.include_router(threads_routes.router, prefix="/api")
app.include_router(tasks_routes.router, prefix="/api")
app.include_router(documents_routes.router, prefix="/api")
app.include_router(query_routes.router, prefix="/api")
app.include_router(rag_routes.router, prefix="/api")
app.include_router(contact_routes.router, prefix="/api")
app.include_router(health_routes.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup (rate limiting: %s)", get_rate_limit_mode())


@app.on_event("shutdown")
async def shutdown_event():
    await close_rag_service()
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to margen-backend", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe; dependency checks live at /api/health."""
    return {"status": "ready"}
