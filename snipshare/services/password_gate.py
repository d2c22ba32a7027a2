"""
Share link password hashing.

Uses argon2id through argon2-cffi, tuned independently from the bcrypt
context that hashes account passwords (SHARE_PASSWORD_* settings).
Hashing and verification are CPU-bound; async callers run them in the
default executor.
"""
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from snipshare.config import get_settings
from snipshare.models.share import ShareLink
from snipshare.services.errors import PasswordHashingError
from snipshare.utils.logger import log_error

settings = get_settings()


def build_password_hasher() -> PasswordHasher:
    """Create the argon2id hasher from settings."""
    return PasswordHasher(
        time_cost=settings.share_password_time_cost,
        memory_cost=settings.share_password_memory_cost,
        parallelism=settings.share_password_parallelism,
        hash_len=32,
        salt_len=16,
    )


class PasswordGate:
    """Hashes and verifies the optional access passphrase of a share link."""

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self.hasher = hasher or build_password_hasher()

    def hash(self, plaintext: str) -> str:
        """
        Hash a share password.

        Raises:
            PasswordHashingError: If the argon2 primitive fails
        """
        try:
            return self.hasher.hash(plaintext)
        except HashingError as e:
            log_error("Share password hashing failed", event="share", error_type=type(e).__name__)
            raise PasswordHashingError("Password hashing failed") from e

    def set_password(self, link: ShareLink, plaintext: Optional[str]) -> None:
        """
        Set or clear the link password.

        A non-empty plaintext stores its hash and enables the requirement;
        None or "" clears both. No other field is touched.
        """
        if plaintext:
            link.password_hash = self.hash(plaintext)
            link.require_password = True
        else:
            link.password_hash = None
            link.require_password = False

    def verify(self, candidate: Optional[str], stored_hash: Optional[str]) -> bool:
        """
        Check a candidate password against a stored hash.

        argon2 compares digests in constant time. A mismatch, a missing
        candidate or a malformed stored hash all return False.

        Raises:
            PasswordHashingError: If verification fails for any other reason
        """
        if candidate is None or not stored_hash:
            return False
        try:
            return self.hasher.verify(stored_hash, candidate)
        except (VerifyMismatchError, InvalidHashError):
            return False
        except VerificationError as e:
            log_error("Share password verification failed", event="share", error_type=type(e).__name__)
            raise PasswordHashingError("Password verification failed") from e

