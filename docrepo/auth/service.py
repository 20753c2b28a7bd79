"""
Authentication Service

Two stateless flows over the user repository:

- login: verify email + password, issue a token bound to the user id
- register: hash the password, create the user, issue a token

Unknown email and wrong password fail with the same public message.
Responses carry a PublicUser, never the stored hash.
"""

from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..common.errors import (
    InvalidCredentials,
    InvalidIdentifier,
    InvalidRegistration,
    InvalidToken,
    UserNotFound,
)
from ..common.logger import get_logger
from .models import AuthResult, Credentials, NewUser, PublicUser, User
from .passwords import BcryptPasswordHasher, PasswordHasher
from .tokens import JWTTokenIssuer, TokenIssuer, TokenSettings
from .user_repository import UserRepository, get_user_repository

logger = get_logger(__name__, collection="users")


class AuthService:
    """
    Login and registration.

    Args:
        users: Credential store
        hasher: One-way password hasher
        tokens: Session token issuer
    """

    def __init__(self, users: UserRepository, hasher: PasswordHasher, tokens: TokenIssuer):
        self.users = users
        self.hasher = hasher
        self.tokens = tokens
        self._dummy_hash: Optional[str] = None

    def _burn_verify(self, plaintext: str) -> None:
        # unknown accounts cost one hash check too, so timing does not reveal them
        if self._dummy_hash is None:
            self._dummy_hash = self.hasher.hash("unused-account-placeholder")
        self.hasher.verify(plaintext, self._dummy_hash)

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(
            access_token=self.tokens.sign(user.id),
            user=PublicUser.from_user(user),
        )

    def login(self, credentials: Union[Credentials, dict]) -> AuthResult:
        """
        Authenticate with email and password.

        Raises:
            UserNotFound: No live user has this email
            InvalidCredentials: Password does not match, or the request is malformed
        """
        log = logger.bind("login")
        try:
            credentials = Credentials.model_validate(credentials)
        except PydanticValidationError as e:
            log.info("Login rejected: malformed request")
            raise InvalidCredentials() from e

        user = self.users.find_by_email(credentials.email)
        if user is None:
            self._burn_verify(credentials.password)
            log.info("Login rejected: unknown account")
            raise UserNotFound()
        if not self.hasher.verify(credentials.password, user.password):
            log.info(f"Login rejected: password mismatch for {user.id}")
            raise InvalidCredentials()

        log.info(f"Login succeeded for {user.id}")
        return self._issue(user)

    def register(self, new_user: Union[NewUser, dict]) -> AuthResult:
        """
        Create an account and sign the user in.

        The password is hashed before anything is written, so a hashing
        failure leaves no record behind.

        Raises:
            InvalidRegistration: Email or password missing or malformed
            DuplicateRecord: Email already registered (unique index)
            CryptoBackendError: Hashing or signing backend failed
        """
        try:
            new_user = NewUser.model_validate(new_user)
        except PydanticValidationError as e:
            raise InvalidRegistration() from e
        hashed = self.hasher.hash(new_user.password)
        user = self.users.create_one(
            User(email=new_user.email, password=hashed, name=new_user.name)
        )
        logger.bind("register").info(f"Registered user {user.id}")
        return self._issue(user)

    def identify(self, token: str) -> PublicUser:
        """
        Resolve a session token to its live subject.

        Raises:
            InvalidToken: Bad or expired token, or the subject no longer exists
        """
        payload = self.tokens.verify(token)
        try:
            user = self.users.find_one_by_id(payload.sub)
        except InvalidIdentifier as e:
            raise InvalidToken() from e
        if user is None:
            logger.bind("identify").info("Token subject no longer exists")
            raise InvalidToken()
        return PublicUser.from_user(user)


_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    """
    Get the process-wide AuthService.

    Wires the configured user repository, a bcrypt hasher and a JWT issuer
    built from JWT_SECRET / JWT_EXPIRY_SECONDS.
    """
    global _auth_service

    if _auth_service is None:
        users = get_user_repository()
        users.ensure_indexes()
        _auth_service = AuthService(
            users=users,
            hasher=BcryptPasswordHasher(),
            tokens=JWTTokenIssuer(TokenSettings.from_settings()),
        )
    return _auth_service


def reset_auth_service() -> None:
    """Forget the cached service. Used for testing."""
    global _auth_service
    _auth_service = None
