import hashlib
import logging
import time
from supabase import Client
from app.config.settings import settings
from app.core.errors import APIError, UnauthorizedError
from app.modules.auth.schemas import LoginRequest, SignupRequest, SignupResponse, TokenResponse
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def _cache_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def clear_auth_cache() -> None:
    _AUTH_USER_CACHE.clear()


def callback_url(next_path: Optional[str] = None) -> str:
    url = f"{settings.app_url.rstrip('/')}/api/auth/callback"
    return f"{url}?next={next_path}" if next_path else url


class AuthService:
    def __init__(self, supabase: Client, admin_client: Optional[Client] = None):
        self.supabase = supabase
        self.admin_client = admin_client

    def signup(self, signup_data: SignupRequest) -> SignupResponse:
        """Register with Supabase Auth; the user confirms by email"""
        try:
            auth_response = self.supabase.auth.sign_up({
                "email": signup_data.email,
                "password": signup_data.password,
                "options": {
                    "data": {"full_name": signup_data.full_name} if signup_data.full_name else {},
                    "email_redirect_to": callback_url(),
                },
            })
        except Exception as e:
            error_message = str(e)
            if "already registered" in error_message.lower() or "already exists" in error_message.lower():
                raise APIError(400, "USER_EXISTS", "User already exists")
            logger.error(f"Signup failed: {error_message}")
            raise APIError(400, "AUTH_ERROR", error_message or "Registration failed")

        user = auth_response.user
        return SignupResponse(
            user_id=user.id if user else None,
            email=(user.email if user else None) or signup_data.email,
            message="Check your email to confirm your account",
        )

    def login(self, login_data: LoginRequest) -> TokenResponse:
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password,
            })
        except Exception as e:
            logger.info(f"Login failed for {login_data.email}: {e}")
            raise UnauthorizedError("Invalid email or password")

        if not auth_response.user or not auth_response.session:
            raise UnauthorizedError("Invalid email or password")

        session = auth_response.session
        return TokenResponse(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.expires_in,
            user_id=auth_response.user.id,
            email=auth_response.user.email or login_data.email,
        )

    def send_magic_link(self, email: str) -> None:
        try:
            self.supabase.auth.sign_in_with_otp({
                "email": email,
                "options": {"email_redirect_to": callback_url()},
            })
        except Exception as e:
            logger.error(f"Magic link request failed: {e}")
            raise APIError(400, "AUTH_ERROR", str(e) or "Failed to send magic link")

    def send_password_reset(self, email: str) -> None:
        try:
            self.supabase.auth.reset_password_for_email(
                email, {"redirect_to": callback_url("/settings/password")}
            )
        except Exception as e:
            logger.error(f"Password reset request failed: {e}")
            raise APIError(400, "AUTH_ERROR", str(e) or "Failed to send reset email")

    def update_password(self, user_id: str, password: str) -> None:
        """Set a new password for the signed-in user (needs the service role client)"""
        if self.admin_client is None:
            raise APIError(500, "SERVER_ERROR", "Service role client not configured")
        try:
            response = self.admin_client.auth.admin.update_user_by_id(user_id, {"password": password})
        except Exception as e:
            logger.error(f"Password update failed for user {user_id}: {e}")
            raise APIError(400, "AUTH_ERROR", str(e) or "Failed to update password")
        if not response or not response.user:
            raise APIError(404, "NOT_FOUND", "User not found")

    def oauth_url(self, provider: str) -> str:
        """Provider sign-in URL; the browser is sent there and returns to the auth callback"""
        try:
            response = self.supabase.auth.sign_in_with_oauth({
                "provider": provider,
                "options": {"redirect_to": callback_url()},
            })
        except Exception as e:
            logger.error(f"OAuth sign-in with {provider} failed: {e}")
            raise APIError(400, "AUTH_ERROR", str(e) or "OAuth sign-in failed")
        if not response or not response.url:
            raise APIError(400, "AUTH_ERROR", "Failed to get OAuth URL")
        return response.url

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        cache_key = _cache_key(token)
        now = time.monotonic()
        if cache_key in _AUTH_USER_CACHE:
            user_data, expiry = _AUTH_USER_CACHE[cache_key]
            if now < expiry:
                return user_data
            del _AUTH_USER_CACHE[cache_key]

        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.info(f"Token validation failed: {e}")
            raise UnauthorizedError("Invalid or expired token")
        if not user_response or not user_response.user:
            raise UnauthorizedError("Invalid or expired token")

        user = user_response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
            "created_at": user.created_at,
        }
        if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
            _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
        return user_data

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        """public.users row (organization and role); empty when not provisioned yet"""
        try:
            result = self.supabase.table("users")\
                .select("organization_id, full_name, role")\
                .eq("id", user_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error loading profile for user {user_id}: {e}")
            raise APIError(500, "DATABASE_ERROR", "Failed to load user profile")
        return (result.data if result else None) or {}

    def logout(self, token: str) -> None:
        _AUTH_USER_CACHE.pop(_cache_key(token), None)
        try:
            self.supabase.auth.sign_out()
        except Exception as e:
            # JWTs are stateless; the token still expires on its own
            logger.warning(f"Supabase sign_out failed: {e}")
