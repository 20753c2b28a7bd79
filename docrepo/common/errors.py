"""
Exception taxonomy for the data-access and authentication layer.

Every exception carries the HTTP-equivalent status code of the outcome
it represents so a transport layer can map it without inspecting types:

- NotFoundError (404): target record absent or soft-deleted
- ValidationError (400): caller parameter violates an invariant
- ConflictError (409): unique key already taken
- AuthenticationError (401): unknown user, bad password, bad token
- InfrastructureError (500): store or crypto backend failure
"""

from typing import Any, Dict, Optional


class DocRepoError(Exception):
    """Base class for all errors raised by docrepo."""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def client_error(self) -> bool:
        """True when the caller, not the system, is at fault."""
        return 400 <= self.status_code < 500

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
        }


# ===== NotFound =====

class NotFoundError(DocRepoError):
    status_code = 404
    default_message = "Record not found"


class UpdateTargetNotFound(NotFoundError):
    default_message = "Failed to update"


# ===== Validation =====

class ValidationError(DocRepoError):
    status_code = 400
    default_message = "Invalid request"


class InvalidSortOrder(ValidationError):
    default_message = "sortOrder must be 1 or -1"


class InvalidIdentifier(ValidationError):
    default_message = "Invalid document identifier"


class InvalidPagination(ValidationError):
    default_message = "page and limit must be numeric"


class InvalidRegistration(ValidationError):
    default_message = "Registration requires an email and a password"


# ===== Conflict =====

class ConflictError(DocRepoError):
    status_code = 409
    default_message = "Record conflicts with an existing record"


class DuplicateRecord(ConflictError):
    default_message = "A record with the same unique key already exists"


# ===== Authentication =====

# One message for unknown-user and wrong-password so callers cannot
# probe which accounts exist.
AUTHENTICATION_FAILED_MESSAGE = "Invalid email or password"


class AuthenticationError(DocRepoError):
    status_code = 401
    default_message = AUTHENTICATION_FAILED_MESSAGE


class UserNotFound(AuthenticationError):
    pass


class InvalidCredentials(AuthenticationError):
    pass


class InvalidToken(AuthenticationError):
    default_message = "Invalid or expired token"


# ===== Infrastructure =====

class InfrastructureError(DocRepoError):
    status_code = 500
    default_message = "Storage backend failure"


class StoreUnavailable(InfrastructureError):
    pass


class BatchInsertFailed(InfrastructureError):
    default_message = "Batch insert failed"

    def __init__(self, message: Optional[str] = None, failed_count: int = 0):
        super().__init__(message)
        self.failed_count = failed_count

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["failed_count"] = self.failed_count
        return data


class CryptoBackendError(InfrastructureError):
    default_message = "Cryptographic backend failure"
