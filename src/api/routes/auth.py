"""
Auth endpoints
==============

POST /api/v1/auth/sign-up   -- register and open a session
POST /api/v1/auth/sign-in   -- exchange email + password for a session token
POST /api/v1/auth/sign-out  -- revoke the current token
GET  /api/v1/auth/session   -- describe the current session
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_session, get_db
from src.api.middleware import limiter
from src.api.schemas import AuthResponse, SignInRequest, SignUpRequest, UserResponse
from src.config import settings
from src.infrastructure.models import AuthSessionModel, UserModel
from src.infrastructure.repositories import AuthSessionRepository, UserRepository
from src.infrastructure.security import (
    hash_password,
    new_session_token,
    session_expiry,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def _open_session(db: AsyncSession, user: UserModel) -> AuthResponse:
    auth = await AuthSessionRepository(db).create(
        token=new_session_token(),
        user_id=user.id,
        expires_at=session_expiry(settings.session_ttl_hours),
    )
    await db.commit()
    return AuthResponse(
        access_token=auth.token,
        expires_at=auth.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/sign-up",
    status_code=201,
    response_model=AuthResponse,
    summary="Create an account",
)
@limiter.limit("20/minute")
async def sign_up(
    request: Request,
    body: SignUpRequest,
    db: AsyncSession = Depends(get_db),
):
    users = UserRepository(db)
    if await users.get_by_email(body.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = await users.create(
        email=body.email,
        password_hash=hash_password(body.password),
        full_name=body.full_name,
        phone=body.phone,
    )
    logger.info("User signed up: %s", user.id)
    return await _open_session(db, user)


@router.post("/sign-in", response_model=AuthResponse, summary="Sign in")
@limiter.limit("20/minute")
async def sign_in(
    request: Request,
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await UserRepository(db).get_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed sign-in for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return await _open_session(db, user)


@router.post("/sign-out", status_code=204, summary="Sign out")
async def sign_out(
    current: tuple[AuthSessionModel, UserModel] = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    auth, user = current
    await AuthSessionRepository(db).revoke(auth.token)
    await db.commit()
    logger.info("User signed out: %s", user.id)
    return Response(status_code=204)


@router.get("/session", response_model=AuthResponse, summary="Current session")
async def current_session(
    current: tuple[AuthSessionModel, UserModel] = Depends(get_current_session),
):
    auth, user = current
    return AuthResponse(
        access_token=auth.token,
        expires_at=auth.expires_at,
        user=UserResponse.model_validate(user),
    )
