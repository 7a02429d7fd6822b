"""Core module - config, database, dependencies, exceptions."""

from syndata.core.config import get_settings, Settings
from syndata.core.database import Database, get_db
from syndata.core.dependencies import get_current_user, get_current_user_optional
from syndata.core.exceptions import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    ForbiddenException,
    BadRequestException,
    ConflictException,
    TooManyRequestsException,
    BadGatewayException,
)

__all__ = [
    "get_settings",
    "Settings",
    "Database",
    "get_db",
    "get_current_user",
    "get_current_user_optional",
    "AppException",
    "NotFoundException",
    "UnauthorizedException",
    "ForbiddenException",
    "BadRequestException",
    "ConflictException",
    "TooManyRequestsException",
    "BadGatewayException",
]
