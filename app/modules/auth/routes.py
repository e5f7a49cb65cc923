from fastapi import APIRouter, Depends
from app.core.dependencies import get_auth_service, get_current_token, get_current_user
from app.core.rate_limit import auth_limiter, ip_rate_limit
from app.modules.auth.schemas import (
    EmailRequest, LoginRequest, MessageResponse, OAuthRequest, OAuthResponse, SignupRequest, SignupResponse,
    TokenResponse, UpdatePasswordRequest
)
from app.modules.auth.service import AuthService
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])

credential_limit = [Depends(ip_rate_limit(auth_limiter))]


@router.post("/signup", response_model=SignupResponse, status_code=201, dependencies=credential_limit)
async def signup(
    signup_data: SignupRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.signup(signup_data)


@router.post("/login", response_model=TokenResponse, dependencies=credential_limit)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/magic-link", response_model=MessageResponse, dependencies=credential_limit)
async def magic_link(
    request: EmailRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Email a passwordless sign-in link"""
    service.send_magic_link(request.email)
    return {"success": True, "message": "Check your email for the sign-in link"}


@router.post("/forgot-password", response_model=MessageResponse, dependencies=credential_limit)
async def forgot_password(
    request: EmailRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Email a password reset link"""
    service.send_password_reset(request.email)
    return {"success": True, "message": "Check your email for the reset link"}


@router.post("/update-password", response_model=MessageResponse, dependencies=credential_limit)
async def update_password(
    request: UpdatePasswordRequest,
    current_user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    """Set a new password; finishes the reset flow started by /forgot-password"""
    service.update_password(current_user["id"], request.password)
    return {"success": True, "message": "Password updated"}


@router.post("/oauth", response_model=OAuthResponse, dependencies=credential_limit)
async def oauth(
    request: OAuthRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Provider URL to redirect the browser to"""
    return {"provider": request.provider, "url": service.oauth_url(request.provider)}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
async def me(
    current_user: Dict = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    """Current user with organization and role"""
    profile = service.get_profile(current_user["id"])
    return {
        **current_user,
        "organization_id": profile.get("organization_id"),
        "full_name": profile.get("full_name") or current_user["user_metadata"].get("full_name"),
        "role": profile.get("role"),
    }
