"""
Password hashing.

One-way salted hashing with bcrypt. Every call to `hash()` draws a fresh
random salt, so the same plaintext never produces the same hash twice.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import bcrypt

from ..common.config import get_settings
from ..common.errors import CryptoBackendError

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72


class PasswordHasher(ABC):
    """Abstract one-way password hasher."""

    @abstractmethod
    def hash(self, plaintext: str) -> str:
        """Hash a plaintext password with a fresh salt."""
        pass

    @abstractmethod
    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a plaintext password against a stored hash."""
        pass


class BcryptPasswordHasher(PasswordHasher):
    """
    bcrypt-backed hasher.

    Args:
        rounds: Cost factor (default: BCRYPT_ROUNDS setting)
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, plaintext: str) -> str:
        """
        Hash a password.

        Raises:
            CryptoBackendError: If salt generation or hashing fails
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(self._encode(plaintext), salt).decode("ascii")
        except (ValueError, OSError) as e:
            logger.error(f"Password hashing failed: {type(e).__name__}")
            raise CryptoBackendError() from e

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return False for a mismatch or a malformed stored hash."""
        try:
            return bcrypt.checkpw(self._encode(plaintext), hashed.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            logger.warning("Stored password hash is malformed")
            return False
