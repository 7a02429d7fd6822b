"""User and authentication models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# Auth provider types
AuthProvider = Literal["email", "google"]

# Platform-wide role; project roles live on the project itself
UserRole = Literal["user", "admin"]


class UserCreate(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=2, max_length=100)


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class GoogleAuthRequest(BaseModel):
    """Schema for Google OAuth login/signup."""
    id_token: str = Field(..., description="Google ID token from frontend")


class UserResponse(BaseModel):
    """Schema for user response (excludes password)."""
    id: str
    email: str
    name: str
    role: str = "user"
    customer_id: Optional[str] = None
    auth_provider: str = "email"
    profile_picture: Optional[str] = None
    created_at: datetime


class TokenResponse(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    is_new_user: bool = False  # True if user just signed up
