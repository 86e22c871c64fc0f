# routers/auth.py — Registration, login, token refresh and logout
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from auth import (
    AuthService, UserRegister, UserLogin, TokenResponse, RefreshRequest,
    get_current_user, CurrentUser,
)
from errors import Unauthorized, NotFound, storage_errors
from schemas import UserOut
from storage import DatabaseStorage, get_storage

logger = logging.getLogger("projecthub.auth")

router = APIRouter(prefix="/api", tags=["Authentication"])


class LogoutRequest(RefreshRequest):
    refresh_token: Optional[str] = None


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    storage: DatabaseStorage = Depends(get_storage),
):
    """Register a new account on the free plan"""
    with storage_errors("Failed to register user"):
        user = await storage.create_user(
            user_data.username,
            AuthService.hash_password(user_data.password),
            email=user_data.email,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
        )
    logger.info(f"User registered: {user.username} (id={user.id})")
    return AuthService.build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    storage: DatabaseStorage = Depends(get_storage),
):
    """Authenticate and receive tokens"""
    with storage_errors("Failed to log in"):
        user = await AuthService.authenticate_user(credentials.username, credentials.password, storage)
    if not user:
        raise Unauthorized("Invalid username or password")
    return AuthService.build_token_response(user)


@router.post("/token/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_req: RefreshRequest,
    storage: DatabaseStorage = Depends(get_storage),
):
    """Exchange a refresh token for a fresh token pair"""
    payload = AuthService.verify_token(refresh_req.refresh_token)
    with storage_errors("Failed to refresh token"):
        user = await AuthService.load_token_user(payload, "refresh", storage)
    return AuthService.build_token_response(user)


@router.post("/logout")
async def logout(
    body: Optional[LogoutRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """Revoke the presented access token, and the refresh token if one is sent.

    An unusable refresh token is skipped; it cannot mint new tokens anyway.
    """
    refresh_payload = None
    if body and body.refresh_token:
        try:
            refresh_payload = AuthService.verify_token(body.refresh_token)
        except Unauthorized as e:
            logger.info(f"Logout for user {user.id} ignored refresh token: {e.message}")

    with storage_errors("Failed to log out"):
        if user.jti:
            await storage.revoke_token(user.jti, user.id, user.token_expires_at)

        if (
            refresh_payload
            and refresh_payload.get("type") == "refresh"
            and refresh_payload.get("sub") == str(user.id)
            and refresh_payload.get("jti")
        ):
            expires_at = datetime.fromtimestamp(refresh_payload["exp"], tz=timezone.utc)
            await storage.revoke_token(refresh_payload["jti"], user.id, expires_at)

    return {"message": "Logged out"}


@router.get("/user", response_model=UserOut)
async def current_user_profile(
    user: CurrentUser = Depends(get_current_user),
    storage: DatabaseStorage = Depends(get_storage),
):
    """The authenticated user's own record"""
    with storage_errors("Failed to retrieve user"):
        record = await storage.get_user(user.id)
    if record is None:
        raise NotFound("User not found")
    return record
