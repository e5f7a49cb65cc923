"""
Core dependencies for route protection and organization scoping
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.errors import APIError, UnauthorizedError
from app.database.supabase_client import get_service_supabase, get_supabase
from app.modules.auth.service import AuthService
from supabase import Client
from typing import Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_auth_service(
    supabase: Client = Depends(get_supabase),
    admin_client: Client = Depends(get_service_supabase)
) -> AuthService:
    return AuthService(supabase, admin_client)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Resolve the authenticated Supabase user for the bearer token"""
    return auth_service.get_current_user(token)


def get_organization_id(
    request: Request,
    user: dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase)
) -> str:
    """Organization the current user belongs to (cached per request)"""
    cached = getattr(request.state, "organization_id", None)
    if cached:
        return cached
    try:
        result = supabase.table("users")\
            .select("organization_id")\
            .eq("id", user["id"])\
            .maybe_single()\
            .execute()
    except Exception as e:
        logger.error(f"Error loading organization for user {user['id']}: {e}")
        raise APIError(500, "DATABASE_ERROR", "Failed to load user profile")
    organization_id = (result.data or {}).get("organization_id") if result else None
    if not organization_id:
        raise APIError(400, "NO_ORGANIZATION", "User is not associated with an organization")
    request.state.organization_id = organization_id
    return organization_id
