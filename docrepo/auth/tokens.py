"""
Session token issuance and verification.

Tokens are HS256 JWTs whose only identity claim is `sub`, the user id.
The signing key and lifetime come from an explicit TokenSettings object
handed to the issuer at construction.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import jwt
from pydantic import SecretStr, ValidationError as PydanticValidationError

from ..common.config import Settings, get_settings
from ..common.error_handling import log_on_exception
from ..common.errors import CryptoBackendError, InvalidToken
from .models import TokenPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenSettings:
    """
    Signing configuration.

    Attributes:
        secret: Signing key material
        expiry: Token lifetime in seconds
        algorithm: JWT algorithm
    """
    secret: SecretStr
    expiry: int = 60 * 60 * 24 * 7
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenSettings":
        """
        Build from process settings.

        Raises:
            ValueError: If JWT_SECRET is not configured
        """
        settings = settings or get_settings()
        if settings.jwt_secret is None:
            raise ValueError("JWT_SECRET environment variable is required for token signing")
        return cls(
            secret=settings.jwt_secret,
            expiry=settings.jwt_expiry_seconds,
            algorithm=settings.jwt_algorithm,
        )


class TokenIssuer(ABC):
    """Signs and verifies opaque session tokens bound to a subject id."""

    @abstractmethod
    def sign(self, subject_id: str) -> str:
        pass

    @abstractmethod
    def verify(self, token: str) -> TokenPayload:
        """
        Raises:
            InvalidToken: If the token is malformed, tampered with or expired
        """
        pass


class JWTTokenIssuer(TokenIssuer):
    """PyJWT-backed issuer."""

    def __init__(self, settings: TokenSettings):
        self.settings = settings

    def sign(self, subject_id: str) -> str:
        now = int(time.time())
        claims = {"sub": str(subject_id), "iat": now, "exp": now + self.settings.expiry}
        try:
            with log_on_exception(logger, "token signing", level=logging.ERROR):
                return jwt.encode(
                    claims,
                    self.settings.secret.get_secret_value(),
                    algorithm=self.settings.algorithm,
                )
        except jwt.PyJWTError as e:
            raise CryptoBackendError("Token signing failed") from e

    def verify(self, token: str) -> TokenPayload:
        try:
            claims = jwt.decode(
                token,
                self.settings.secret.get_secret_value(),
                algorithms=[self.settings.algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Rejected expired token")
            raise InvalidToken("Token has expired") from e
        except jwt.PyJWTError as e:
            logger.info(f"Rejected invalid token: {type(e).__name__}")
            raise InvalidToken() from e

        try:
            return TokenPayload.model_validate(claims)
        except PydanticValidationError as e:
            raise InvalidToken() from e
