"""
Common dependencies for FastAPI routes.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from syndata.core.config import get_settings

# Bearer is optional at the scheme level; the session cookie is the fallback.
security_optional = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> Optional[dict]:
    """Decode JWT token. Import here to avoid circular imports."""
    from syndata.auth.service import AuthService
    return AuthService.decode_token(token)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().SESSION_COOKIE_NAME) or None


def _user_from_payload(payload: dict) -> dict:
    return {
        "id": payload["sub"],
        "email": payload["email"],
        "role": payload.get("role", "user"),
        "customer_id": payload.get("customer_id"),
    }


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
) -> dict:
    """
    Dependency to get the current authenticated user from a bearer token or
    the session cookie.
    Returns user dict with 'id', 'email', 'role' and 'customer_id'.
    """
    token = _extract_token(request, credentials)
    payload = _decode_token(token) if token else None

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _user_from_payload(payload)


async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
) -> Optional[dict]:
    """
    Optional authentication - returns user if token is valid, None otherwise.
    """
    token = _extract_token(request, credentials)
    if not token:
        return None

    payload = _decode_token(token)
    if not payload:
        return None

    return _user_from_payload(payload)
