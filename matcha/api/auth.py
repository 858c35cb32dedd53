"""
Matcha: Authentication API

Registration, email verification, login/logout and password recovery.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.api.dependencies import get_auth_service, get_current_user_id
from matcha.database import get_db
from matcha.schemas.auth import (
    LoginRequest,
    LoginResponse,
    PasswordChange,
    PasswordResetConfirm,
    PasswordResetRequest,
    RegisterRequest,
    RegisterResponse,
    VerifyEmailRequest,
)
from matcha.schemas.relationship import StatusResponse
from matcha.services.auth_service import AuthService

logger = structlog.get_logger("matcha.api.auth")

router = APIRouter()


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    user = await auth.register(db, **payload.model_dump())
    return RegisterResponse(user_id=user.id)


@router.post("/verify-email", response_model=StatusResponse, summary="Verify an email address")
async def verify_email(
    payload: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    await auth.verify_email(db, payload.token)
    return StatusResponse(status="verified")


@router.post("/login", response_model=LoginResponse, summary="Log in by username or email")
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    user = await auth.login(db, payload.identifier, payload.password)
    return LoginResponse(user_id=user.id, username=user.username)


@router.post("/logout", response_model=StatusResponse, summary="Log out")
async def logout(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    await auth.logout(db, user_id)
    return StatusResponse(status="logged_out")


@router.post(
    "/password-reset/request",
    response_model=StatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a password reset link",
)
async def request_password_reset(
    payload: PasswordResetRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    """Always answers the same way, whether or not the address is known."""
    await auth.request_password_reset(db, payload.email)
    return StatusResponse(status="requested")


@router.post(
    "/password-reset/confirm",
    response_model=StatusResponse,
    summary="Set a new password with a reset token",
)
async def confirm_password_reset(
    payload: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    await auth.reset_password(db, payload.token, payload.new_password)
    return StatusResponse(status="password_reset")


@router.post("/password/change", response_model=StatusResponse, summary="Change password")
async def change_password(
    payload: PasswordChange,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> StatusResponse:
    await auth.change_password(db, user_id, payload.current_password, payload.new_password)
    return StatusResponse(status="password_changed")
