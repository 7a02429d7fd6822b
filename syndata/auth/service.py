"""Authentication service - JWT handling, password hashing, user operations."""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

import jwt
from google.auth.transport import requests
from google.oauth2 import id_token
from passlib.context import CryptContext

from syndata.auth.models import TokenResponse, UserCreate, UserResponse
from syndata.core.config import get_settings
from syndata.core.database import Database
from syndata.core.documents import parse_object_id, utcnow
from syndata.core.exceptions import BadRequestException, NotFoundException, UnauthorizedException

settings = get_settings()
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """Handles authentication and user operations."""

    # ==================== Password & Token ====================

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        return pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def create_access_token(
        user_id: str,
        email: str,
        role: str = "user",
        customer_id: Optional[str] = None,
    ) -> str:
        """Create a JWT access token."""
        now = datetime.utcnow()
        payload = {
            "sub": user_id,
            "email": email,
            "role": role,
            "customer_id": customer_id,
            "exp": now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now,
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        """Decode and validate a JWT token."""
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    # ==================== Helpers ====================

    @classmethod
    def _get_collection(cls):
        return Database.get_collection("users")

    @staticmethod
    def _to_response(user: dict) -> UserResponse:
        return UserResponse(
            id=str(user["_id"]),
            email=user["email"],
            name=user["name"],
            role=user.get("role", "user"),
            customer_id=user.get("customer_id"),
            auth_provider=user.get("auth_provider", "email"),
            profile_picture=user.get("profile_picture"),
            created_at=user["created_at"],
        )

    @classmethod
    def _issue(cls, user: dict, is_new_user: bool = False) -> TokenResponse:
        token = cls.create_access_token(
            str(user["_id"]),
            user["email"],
            role=user.get("role", "user"),
            customer_id=user.get("customer_id"),
        )
        return TokenResponse(access_token=token, user=cls._to_response(user), is_new_user=is_new_user)

    @staticmethod
    async def _customer_id_for_email(email: str) -> Optional[str]:
        """Users signing up with a customer's contact email are linked to it."""
        customer = await Database.get_collection("customers").find_one({"email": email}, {"_id": 1})
        return str(customer["_id"]) if customer else None

    # ==================== Google OAuth ====================

    @classmethod
    async def verify_google_token(cls, token: str) -> dict:
        """
        Verify Google ID token and extract user info.
        Returns: { email, name, picture, google_id }
        """
        if not settings.GOOGLE_CLIENT_ID:
            raise BadRequestException("Google sign-in is not configured")
        try:
            idinfo = id_token.verify_oauth2_token(
                token,
                requests.Request(),
                settings.GOOGLE_CLIENT_ID,
            )

            if idinfo["iss"] not in ["accounts.google.com", "https://accounts.google.com"]:
                raise UnauthorizedException("Invalid token issuer")

            return {
                "email": idinfo.get("email"),
                "name": idinfo.get("name", idinfo.get("email", "").split("@")[0]),
                "picture": idinfo.get("picture"),
                "google_id": idinfo.get("sub"),
            }
        except ValueError as e:
            raise UnauthorizedException(f"Invalid Google token: {str(e)}")

    @classmethod
    async def google_auth(cls, id_token_str: str) -> Tuple[TokenResponse, bool]:
        """
        Authenticate via Google OAuth.
        Returns (TokenResponse, is_new_user)
        """
        google_user = await cls.verify_google_token(id_token_str)
        email = (google_user.get("email") or "").lower()
        users = cls._get_collection()

        existing_user = await users.find_one({"email": email})
        if existing_user:
            if google_user.get("picture") and existing_user.get("profile_picture") != google_user["picture"]:
                await users.update_one(
                    {"_id": existing_user["_id"]},
                    {"$set": {"profile_picture": google_user["picture"]}},
                )
                existing_user["profile_picture"] = google_user["picture"]
            return cls._issue(existing_user), False

        user_doc = {
            "email": email,
            "password_hash": None,  # No password for OAuth users
            "name": google_user["name"],
            "role": "user",
            "customer_id": await cls._customer_id_for_email(email),
            "auth_provider": "google",
            "google_id": google_user["google_id"],
            "profile_picture": google_user.get("picture"),
            "created_at": utcnow(),
        }
        result = await users.insert_one(user_doc)
        user_doc["_id"] = result.inserted_id
        logger.info(f"New user {result.inserted_id} signed up via Google")
        return cls._issue(user_doc, is_new_user=True), True

    # ==================== User Operations ====================

    @classmethod
    async def register(cls, user_data: UserCreate) -> TokenResponse:
        """Register a new user."""
        users = cls._get_collection()
        email = user_data.email.lower()

        existing = await users.find_one({"email": email})
        if existing:
            raise BadRequestException("Email already registered")

        user_doc = {
            "email": email,
            "password_hash": cls.hash_password(user_data.password),
            "name": user_data.name,
            "role": "user",
            "customer_id": await cls._customer_id_for_email(email),
            "auth_provider": "email",
            "created_at": utcnow(),
        }

        result = await users.insert_one(user_doc)
        user_doc["_id"] = result.inserted_id
        logger.info(f"Registered user {result.inserted_id}")
        return cls._issue(user_doc, is_new_user=True)

    @classmethod
    async def login(cls, email: str, password: str) -> TokenResponse:
        """Authenticate user and return token."""
        user = await cls._get_collection().find_one({"email": email.lower()})
        if not user:
            raise UnauthorizedException("Invalid email or password")

        # Check if user signed up via OAuth (no password)
        if not user.get("password_hash"):
            auth_provider = user.get("auth_provider", "unknown")
            raise UnauthorizedException(
                f"This account uses {auth_provider.title()} sign-in. Please use that method."
            )

        if not cls.verify_password(password, user["password_hash"]):
            raise UnauthorizedException("Invalid email or password")

        return cls._issue(user)

    @classmethod
    async def get_user_by_id(cls, user_id: str) -> UserResponse:
        """Get user by ID."""
        user = await cls._get_collection().find_one({"_id": parse_object_id(user_id, "User not found")})
        if not user:
            raise NotFoundException("User not found")
        return cls._to_response(user)

    @classmethod
    async def get_role(cls, user_id: str) -> Optional[str]:
        """Stored platform role, read fresh so revoked admins lose access immediately."""
        try:
            oid = parse_object_id(user_id)
        except NotFoundException:
            return None
        user = await cls._get_collection().find_one({"_id": oid}, {"role": 1})
        return user.get("role", "user") if user else None
