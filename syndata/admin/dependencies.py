import logging
from typing import Optional

from fastapi import Depends, Header

from syndata.auth.service import AuthService
from syndata.core.config import get_settings
from syndata.core.dependencies import get_current_user_optional
from syndata.core.exceptions import ForbiddenException

logger = logging.getLogger(__name__)


def require_admin_api_key(x_admin_api_key: str = Header(default="", alias="X-ADMIN-API-KEY")) -> str:
    """
    Admin auth via API key header.

    If ADMIN_API_KEY is not configured, deny all key-based access (fail closed).
    """
    settings = get_settings()
    expected = (settings.ADMIN_API_KEY or "").strip()
    provided = (x_admin_api_key or "").strip()

    if not expected or provided != expected:
        raise ForbiddenException("Admin access denied")
    return "admin_api_key"


async def require_admin(
    x_admin_api_key: str = Header(default="", alias="X-ADMIN-API-KEY"),
    current_user: Optional[dict] = Depends(get_current_user_optional),
) -> str:
    """
    Admin console access: a valid admin API key, or a signed-in user whose
    stored role is `admin`. Returns the actor id recorded in audit logs.
    """
    if x_admin_api_key:
        return require_admin_api_key(x_admin_api_key=x_admin_api_key)

    if current_user and await AuthService.get_role(current_user["id"]) == "admin":
        return current_user["id"]

    logger.warning(f"Admin access denied for {current_user['id'] if current_user else 'anonymous'}")
    raise ForbiddenException("Admin access denied")
