"""
Authentication service for user management.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from snipshare.models.user import User
from snipshare.schemas.user import UserCreate, Token
from snipshare.utils.security import hash_password, verify_password, create_access_token
from snipshare.utils.logger import log_info, log_warning


class AuthService:
    """
    Service for handling user authentication.
    Provides registration, login and lookup of the identities that share
    links can be restricted to.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, user_data: UserCreate) -> User:
        """
        Register a new user.

        Args:
            user_data: User registration data

        Returns:
            Created User model

        Raises:
            ValueError: If email or username already exists
        """
        email = user_data.email.lower()
        if await self.get_user_by_email(email):
            log_warning("Registration failed", event="auth", reason="email_exists")
            raise ValueError("Email already registered")
        if await self._get_user_by_username(user_data.username):
            log_warning("Registration failed", event="auth", reason="username_exists")
            raise ValueError("Username already taken")

        user = User(
            email=email,
            username=user_data.username,
            hashed_password=hash_password(user_data.password),
        )

        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        log_info("Registration", event="auth", user_id=user.id)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user with email and password.

        Returns:
            User if authentication successful, None otherwise
        """
        user = await self.get_user_by_email(email.lower())

        if not user:
            log_warning("Login failed", event="auth", reason="user_not_found")
            return None
        if not user.is_active:
            log_warning("Login failed", event="auth", user_id=user.id, reason="inactive")
            return None
        if not verify_password(password, user.hashed_password):
            log_warning("Login failed", event="auth", user_id=user.id, reason="invalid_password")
            return None
        log_info("Login", event="auth", user_id=user.id)
        return user

    async def login(self, email: str, password: str) -> Optional[Token]:
        """
        Login user and return JWT token.

        Returns:
            Token if login successful, None otherwise
        """
        user = await self.authenticate(email, password)

        if not user:
            return None

        return Token(access_token=create_access_token(user.id))

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by (lower-cased) email."""
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def _get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.username == username)
        )
        return result.scalar_one_or_none()
