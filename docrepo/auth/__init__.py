"""
Credential-based authentication.

Usage:
    from docrepo.auth import get_auth_service

    auth = get_auth_service()
    result = auth.register({"email": "a@b.com", "password": "secret"})
    auth.login({"email": "a@b.com", "password": "secret"}).access_token
"""

from .models import AuthResult, Credentials, NewUser, PublicUser, TokenPayload, User
from .passwords import BcryptPasswordHasher, PasswordHasher
from .service import AuthService, get_auth_service, reset_auth_service
from .tokens import JWTTokenIssuer, TokenIssuer, TokenSettings
from .user_repository import UserRepository, get_user_repository

__all__ = [
    "AuthService",
    "get_auth_service",
    "reset_auth_service",
    "UserRepository",
    "get_user_repository",
    "PasswordHasher",
    "BcryptPasswordHasher",
    "TokenIssuer",
    "JWTTokenIssuer",
    "TokenSettings",
    "User",
    "PublicUser",
    "Credentials",
    "NewUser",
    "TokenPayload",
    "AuthResult",
]
