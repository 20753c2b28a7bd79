"""
Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Data-access and authentication settings with validation.

    All settings can be overridden via environment variables
    (or a local .env file). Validation happens at startup to fail
    fast on misconfiguration.
    """

    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    # === MongoDB ===
    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    mongo_db_name: str = Field(
        default="docrepo",
        description="MongoDB database name"
    )
    store_backend: str = Field(
        default="mongo",
        description="Document store backend: 'mongo' or 'memory'"
    )

    # === Tokens ===
    jwt_secret: Optional[SecretStr] = Field(
        default=None,
        description="Signing key for session tokens (min 16 chars)"
    )
    jwt_expiry_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        ge=60,
        le=60 * 60 * 24 * 30,
        description="Session token lifetime in seconds (1 minute - 30 days)"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )

    # === Password hashing ===
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=16,
        description="bcrypt cost factor (4-16)"
    )

    # === Pagination ===
    pagination_default_page: int = Field(default=1, ge=1)
    pagination_default_limit: int = Field(default=10, ge=1)
    legacy_page_stats: bool = Field(
        default=False,
        description="Compatibility page stats: nextPage always page+1, itemsOnCurrentPage=min(limit, totalIndex)"
    )

    # === Logging ===
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="simple")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"mongo", "memory"}:
            raise ValueError("store_backend must be 'mongo' or 'memory'")
        return v_lower

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"simple", "json"}:
            raise ValueError("log_format must be 'simple' or 'json'")
        return v_lower

    @field_validator("jwt_secret")
    @classmethod
    def validate_secret_strength(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        """Validate the signing secret has minimum length and entropy."""
        if v is None:
            return None
        raw = v.get_secret_value()
        if len(raw) < 16:
            raise ValueError("JWT secret must be at least 16 characters")
        weak_secrets = {"secretsecretsecret", "passwordpassword", "changemechangeme"}
        if raw.lower() in weak_secrets or len(set(raw)) < 4:
            raise ValueError("JWT secret is too weak - use a secure random string")
        return v

    @field_validator("mongodb_uri")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Basic URL format validation."""
        if not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(f"Invalid MongoDB URI format: {v}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration is suitable for production.

        Returns list of warning/error messages.
        """
        issues = []

        if self.is_production:
            if self.jwt_secret is None:
                issues.append("CRITICAL: JWT_SECRET required in production")
            if self.store_backend == "memory":
                issues.append("CRITICAL: STORE_BACKEND=memory is not durable")
            if "localhost" in self.mongodb_uri:
                issues.append("WARNING: Using localhost MongoDB in production")

        return issues


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and cached. Call ``get_settings.cache_clear()``
    after changing the environment (tests do this).
    """
    return Settings()


def validate_config_on_startup() -> Settings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    import logging
    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}") from e

    for issue in settings.validate_production_config():
        if issue.startswith("CRITICAL"):
            raise ValueError(issue)
        logger.warning(issue)

    # Never log the secret itself
    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  store_backend={settings.store_backend}")
    logger.info(f"  mongodb_uri={'*****' if 'localhost' not in settings.mongodb_uri else settings.mongodb_uri}")
    logger.info(f"  mongo_db_name={settings.mongo_db_name}")
    logger.info(f"  jwt_secret={'set' if settings.jwt_secret else 'missing'}")
    logger.info(f"  jwt_expiry={settings.jwt_expiry_seconds}s")
    return settings
