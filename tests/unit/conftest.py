"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that prevent real external service calls:
- MongoDB connection attempts (would cause 5-30s timeout per test)
- Environment variable isolation (prevents credential leakage)
- Cached singletons (settings, stores, auth service) reset between tests

These fixtures apply automatically to ALL tests in tests/unit/.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from unittest.mock import patch, MagicMock

# Set test environment BEFORE any imports so cached Settings never see real values
os.environ["ENVIRONMENT"] = "development"
os.environ["STORE_BACKEND"] = "memory"

from docrepo.auth.service import reset_auth_service
from docrepo.common.config import get_settings
from docrepo.common.models import Document
from docrepo.common.repositories import Repository, reset_document_stores
from docrepo.common.repositories.memory_store import InMemoryDocumentStore

TEST_JWT_SECRET = "unit-test-signing-key-4f1c9a-0b6e-d21f"


@pytest.fixture(autouse=True)
def mock_mongodb():
    """
    Prevent MongoDB connection attempts in all unit tests.

    DatabaseClient -> MongoClient would otherwise try localhost:27017.
    """
    with patch("docrepo.common.database.MongoClient") as mock_client:
        mock_instance = MagicMock()
        mock_db = MagicMock()
        mock_collection = MagicMock()

        # Setup chain: client["db"]["collection"]
        mock_instance.__getitem__ = MagicMock(return_value=mock_db)
        mock_db.__getitem__ = MagicMock(return_value=mock_collection)
        mock_collection.find_one = MagicMock(return_value=None)
        mock_collection.find = MagicMock(return_value=[])

        mock_client.return_value = mock_instance
        yield mock_client


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real credentials and configurations.

    Every test starts with the in-memory backend, a throwaway signing key
    and the cheapest bcrypt cost.
    """
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    for name in ("JWT_EXPIRY_SECONDS", "LEGACY_PAGE_STATS", "MONGO_DB_NAME",
                 "PAGINATION_DEFAULT_PAGE", "PAGINATION_DEFAULT_LIMIT"):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    reset_document_stores()
    reset_auth_service()
    yield
    get_settings.cache_clear()
    reset_document_stores()
    reset_auth_service()


class Item(Document):
    """Minimal record shape used across repository tests."""

    title: str
    tags: List[str] = []


@pytest.fixture
def item_store():
    return InMemoryDocumentStore("items")


@pytest.fixture
def item_repo(item_store):
    return Repository(item_store, Item)


@pytest.fixture
def seed_items(item_repo):
    """Insert `count` items with strictly increasing createdAt."""

    def _seed(count: int, **fields):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return item_repo.create_many([
            {"title": f"item-{i}", "createdAt": base + timedelta(minutes=i), **fields}
            for i in range(1, count + 1)
        ])

    return _seed


@pytest.fixture
def item_model():
    return Item
