# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from p3academy_server.api.schemas import (
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetFailureResponse,
    ResetPasswordRequest,
    UserResponse,
)
from p3academy_server.auth import (
    Identity,
    dummy_verify,
    get_current_identity,
    hash_password,
    issue_session_token,
    normalize_email,
    verify_password,
)
from p3academy_server.config import settings
from p3academy_server.database import get_db
from p3academy_server.errors import Unauthenticated
from p3academy_server.models import User
from p3academy_server.rate_limit import rate_limit_auth_dep
from p3academy_server.roles import redirect_for, route_table
from p3academy_server.services.password_reset import PasswordResetService, get_password_reset_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(rate_limit_auth_dep)])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, we have sent a password reset link."


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.auth_cookie_name,
        token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Create a student or supervisor account."""
    email = normalize_email(data.email)
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists. Please try logging in instead.",
        )
    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role.value,
        institution=data.institution,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User registered: %s (%s)", user.id, user.role)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Authenticate, set the session cookie and tell the client where to land."""
    result = await db.execute(select(User).where(User.email == normalize_email(data.email)))
    user = result.scalar_one_or_none()
    if user is None:
        dummy_verify()
        valid = False
    else:
        valid = verify_password(data.password, user.password_hash)
    if not valid or not user.is_active:
        logger.info("Login failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    token = issue_session_token(user.id, user.email, user.role)
    _set_auth_cookie(response, token)
    logger.info("User logged in: %s", user.id)
    return LoginResponse(
        user=UserResponse.model_validate(user),
        redirect=redirect_for(user.role),
        access_token=token,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Clear the session cookie."""
    response.delete_cookie(settings.auth_cookie_name, path="/", httponly=True, samesite="lax")
    return MessageResponse(message="Logged out successfully")


@router.get("/user", response_model=CurrentUserResponse)
async def get_user(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> CurrentUserResponse:
    """Current account. role and redirect are those the session was issued with."""
    user = await db.get(User, identity.id)
    if user is None or not user.is_active:
        raise Unauthenticated("unknown-user")
    data = UserResponse.model_validate(user).model_dump()
    data["role"] = identity.role
    return CurrentUserResponse(**data, redirect=redirect_for(identity.role))


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Update name and institution for the signed-in account."""
    user = await db.get(User, identity.id)
    if user is None or not user.is_active:
        raise Unauthenticated("unknown-user")
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    logger.info("Profile updated for user %s", user.id)
    return ProfileResponse(message="Profile updated successfully", user=UserResponse.model_validate(user))


@router.get("/routes")
async def get_routes() -> dict[str, str]:
    """Landing route per role, shared with the web client."""
    return route_table()


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    background: BackgroundTasks,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> MessageResponse:
    """Request a reset link. The response is the same whether or not the account exists."""
    await service.request_reset(data.email, background)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ResetFailureResponse}},
)
async def reset_password(
    data: ResetPasswordRequest,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> MessageResponse:
    """Set a new password with the token from the reset link."""
    await service.redeem(data.token, data.password)
    return MessageResponse(message="Password reset successfully. You can now log in with your new password.")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    service: PasswordResetService = Depends(get_password_reset_service),
) -> MessageResponse:
    """Change password for the signed-in account. Pending reset links stop working."""
    user = await db.get(User, identity.id)
    if user is None or not user.is_active:
        raise Unauthenticated("unknown-user")
    if not verify_password(data.current_password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The current password you entered is incorrect.",
        )
    user.password_hash = hash_password(data.new_password)
    revoked = await service.revoke_for_user(db, user.id)
    await db.commit()
    logger.info("Password changed for user %s (%d reset tokens revoked)", user.id, revoked)
    return MessageResponse(message="Password changed successfully")
