"""Authentication API routes."""

from fastapi import APIRouter, Depends, Response

from syndata.auth.models import GoogleAuthRequest, TokenResponse, UserCreate, UserLogin, UserResponse
from syndata.auth.service import AuthService
from syndata.core.config import get_settings
from syndata.core.dependencies import get_current_user

router = APIRouter(prefix="/auth", tags=["Authentication"])
settings = get_settings()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/register", response_model=TokenResponse)
async def register(user_data: UserCreate, response: Response):
    """
    Register a new user account with email/password.

    Returns access token and user info on success, and sets the session cookie.
    """
    result = await AuthService.register(user_data)
    _set_session_cookie(response, result.access_token)
    return result


@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, response: Response):
    """Login with email and password."""
    result = await AuthService.login(credentials.email, credentials.password)
    _set_session_cookie(response, result.access_token)
    return result


@router.post("/google", response_model=TokenResponse)
async def google_auth(request: GoogleAuthRequest, response: Response):
    """
    Authenticate with Google OAuth.

    Send the ID token received from Google Sign-In.
    - If user exists: logs them in
    - If new user: creates account with auth_provider="google"
    """
    result, _ = await AuthService.google_auth(request.id_token)
    _set_session_cookie(response, result.access_token)
    return result


@router.post("/logout")
async def logout(response: Response):
    """Clear the session cookie. Bearer tokens simply expire."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def get_profile(current_user: dict = Depends(get_current_user)):
    """Get current user's profile."""
    return await AuthService.get_user_by_id(current_user["id"])
