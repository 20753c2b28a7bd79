"""
User Repository

The credential store: a Repository[User] over the `users` collection.
"""

from typing import Optional

from ..common.logger import get_logger
from ..common.repositories import DocumentStoreInterface, Repository, RepositoryConfig, get_document_store
from .models import User

USERS_COLLECTION = "users"


class UserRepository(Repository[User]):
    """Soft-delete-aware access to user records."""

    def __init__(self, store: DocumentStoreInterface, **kwargs):
        super().__init__(store, User, **kwargs)

    def find_by_email(self, email: str) -> Optional[User]:
        """Find a live user by exact email."""
        return self.find_one_by_query({"email": email})

    def ensure_indexes(self) -> None:
        """Create the unique email index the store enforces."""
        name = self.store.create_index([("email", 1)], unique=True)
        get_logger(__name__, collection=self.store.name).info(f"Ensured index {name}")


def get_user_repository(config: Optional[RepositoryConfig] = None) -> UserRepository:
    """Build the UserRepository from process configuration."""
    config = config or RepositoryConfig.from_settings()
    return UserRepository(
        get_document_store(USERS_COLLECTION, config),
        default_page=config.default_page,
        default_limit=config.default_limit,
        legacy_page_stats=config.legacy_page_stats,
    )
