# auth.py — Authentication for ProjectHub
# Features:
# - bcrypt password hashing (min 8 chars, bcrypt's 72-byte ceiling enforced)
# - Signed HS256 access + refresh JWTs carrying a JTI
# - Logout revokes the JTI in the revoked_tokens table
# - The user row is reloaded on every request, so role/plan changes apply at once

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, field_validator

from errors import Unauthorized
from models import User, UserRole, SubscriptionPlan
from schemas import ApiModel, UserOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if len(SECRET_KEY) < 32:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or shorter than 32 characters. Generated ephemeral key; "
        "tokens will not survive a restart. Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores anything beyond this

security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(ApiModel):
    username: str
    password: str
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username is required")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class UserLogin(BaseModel):
    username: str
    password: str


class TokenResponse(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class RefreshRequest(ApiModel):
    refresh_token: str


class CurrentUser(BaseModel):
    id: int
    username: str
    role: UserRole
    plan: SubscriptionPlan
    jti: Optional[str] = None
    token_expires_at: Optional[datetime] = None


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Password hashing and token minting/verification"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def create_refresh_token(data: Dict[str, Any]) -> str:
        return AuthService._create_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise Unauthorized("Token expired")
        except JWTError:
            raise Unauthorized("Invalid token")

    @staticmethod
    def token_claims(user: User) -> Dict[str, Any]:
        # JWT "sub" must be a string
        return {"sub": str(user.id), "role": UserRole(user.role).value}

    @staticmethod
    def build_token_response(user: User) -> TokenResponse:
        claims = AuthService.token_claims(user)
        return TokenResponse(
            access_token=AuthService.create_access_token(claims),
            refresh_token=AuthService.create_refresh_token(claims),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserOut.model_validate(user),
        )

    @staticmethod
    async def authenticate_user(username: str, password: str, storage: DatabaseStorage) -> Optional[User]:
        user = await storage.get_user_by_username(username)
        if not user or not AuthService.verify_password(password, user.password_hash):
            logger.info(f"Failed login for username={username!r}")
            return None
        return user

    @staticmethod
    async def load_token_user(payload: Dict[str, Any], expected_type: str, storage: DatabaseStorage) -> User:
        """Resolve a decoded token to its live, unrevoked user."""
        if payload.get("type") != expected_type:
            raise Unauthorized("Invalid token type")

        jti = payload.get("jti")
        if jti and await storage.is_token_revoked(jti):
            raise Unauthorized("Token has been revoked")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise Unauthorized("Invalid token")

        user = await storage.get_user(user_id)
        if not user:
            raise Unauthorized("User not found")
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    storage: DatabaseStorage = Depends(get_storage),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized()

    payload = AuthService.verify_token(credentials.credentials)
    user = await AuthService.load_token_user(payload, "access", storage)

    exp = payload.get("exp")
    return CurrentUser(
        id=user.id,
        username=user.username,
        role=user.role,
        plan=user.plan,
        jti=payload.get("jti"),
        token_expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )
