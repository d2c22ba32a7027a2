"""
Security utility functions for account password hashing, JWT token
management and share token generation.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from snipshare.config import get_settings
from snipshare.schemas.user import TokenPayload
from snipshare.utils.clock import utcnow

settings = get_settings()

# Account password hashing context (share passwords use PasswordGate)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 32 random bytes -> 43 URL-safe characters (256 bits)
SHARE_TOKEN_BYTES = 32

SHARE_PROOF_SCOPE = "share_password"


def hash_password(password: str) -> str:
    """
    Hash an account password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify an account password against a hash.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches
    """
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User ID to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),  # JWT subject must be a string
        "exp": utcnow() + expires_delta,
    }

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token string

    Returns:
        TokenPayload if valid, None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    # Share proofs are signed with the same key; never accept them as sessions
    if payload.get("scope"):
        return None

    user_id = payload.get("sub")
    exp = payload.get("exp")
    if user_id is None or exp is None:
        return None

    try:
        return TokenPayload(
            sub=int(user_id),
            exp=datetime.fromtimestamp(exp),
        )
    except (TypeError, ValueError):
        return None


def _password_fingerprint(password_hash: Optional[str]) -> str:
    """Short digest of the stored hash so a password change voids old proofs."""
    return hashlib.sha256((password_hash or "").encode("utf-8")).hexdigest()[:16]


def create_share_access_proof(share_id: str, share_token: str, password_hash: Optional[str]) -> str:
    """
    Create a short-lived JWT proving a viewer already supplied the share password.

    The proof is bound to the link id, its current token and its current
    password hash: regenerating the token or changing the password voids it.
    """
    expire = utcnow() + timedelta(seconds=settings.share_access_proof_expire_seconds)
    to_encode = {
        "sub": share_id,
        "exp": expire,
        "scope": SHARE_PROOF_SCOPE,
        "tkn": hashlib.sha256(share_token.encode("utf-8")).hexdigest()[:16],
        "pwd": _password_fingerprint(password_hash),
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def verify_share_access_proof(
    proof: Optional[str],
    share_id: str,
    share_token: str,
    password_hash: Optional[str],
) -> bool:
    """Check a proof issued by create_share_access_proof against the link's current state."""
    if not proof:
        return False
    try:
        payload = jwt.decode(
            proof,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return False
    if payload.get("scope") != SHARE_PROOF_SCOPE or payload.get("sub") != share_id:
        return False
    expected_tkn = hashlib.sha256(share_token.encode("utf-8")).hexdigest()[:16]
    return (
        secrets.compare_digest(str(payload.get("tkn", "")), expected_tkn)
        and secrets.compare_digest(str(payload.get("pwd", "")), _password_fingerprint(password_hash))
    )


def generate_share_token(nbytes: int = SHARE_TOKEN_BYTES) -> str:
    """
    Generate a secure random token for share links.

    Args:
        nbytes: Number of random bytes (default 32, i.e. 43 characters)

    Returns:
        Random URL-safe token string
    """
    return secrets.token_urlsafe(nbytes)
