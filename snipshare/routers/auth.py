"""
Authentication router for user registration and login.
"""
import time

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.database import get_db
from snipshare.dependencies.auth import get_current_active_user
from snipshare.middlewares.rate_limit_middleware import get_rate_limit_decorator
from snipshare.models.user import User
from snipshare.schemas.user import UserCreate, UserResponse, UserLogin, Token
from snipshare.services.auth import AuthService
from snipshare.utils.logger import log_info, log_warning
from snipshare.utils.prometheus_metrics import (
    login_duration_seconds,
    user_login_total,
    user_registration_total,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Register a new user account.

    - **email**: Valid email address (must be unique). Share links restricted
      by email or domain match against this address.
    - **username**: Username (3-100 characters, must be unique)
    - **password**: Password (8-100 characters)
    """
    try:
        user = await AuthService(db).register(user_data)
    except ValueError as e:
        user_registration_total.labels(result="failure").inc()
        log_warning(
            "User registration failed - validation error",
            event="user_registration",
            error_message=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Registration failed",
        )

    user_registration_total.labels(result="success").inc()
    log_info("User registration completed", event="user_registration", user_id=user.id)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=Token,
    summary="Login to get access token",
)
@get_rate_limit_decorator("10/minute")
async def login(
    request: Request,
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """
    Login with email and password to get JWT access token.

    Include it as `Authorization: Bearer <token>` for management endpoints
    and for share links that require a signed-in viewer.
    """
    start = time.perf_counter()
    token = await AuthService(db).login(login_data.email, login_data.password)
    result = "success" if token else "failure"
    login_duration_seconds.labels(result=result).observe(time.perf_counter() - start)
    user_login_total.labels(result=result).inc()

    if not token:
        # 무차별 대입 공격 탐지 가능
        log_warning("Login failed - invalid credentials", event="user_login")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    log_info("User login successful", event="user_login")
    return token


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_active_user),
) -> UserResponse:
    """Get the current authenticated user's profile."""
    return UserResponse.model_validate(current_user)
