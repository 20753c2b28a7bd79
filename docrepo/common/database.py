"""
MongoDB connection management.

One MongoClient per process; PyMongo pools connections internally, so
every MongoDocumentStore shares this client.
"""

import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from .config import get_settings

logger = logging.getLogger(__name__)


class DatabaseClient:
    """
    MongoDB client singleton.

    Manages the connection and hands out collections by name.
    """

    _instance: Optional["DatabaseClient"] = None
    _client: Optional[MongoClient] = None
    _db: Optional[Database] = None

    def __new__(cls):
        """Singleton pattern - only one database client instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize the database client if not already initialized."""
        if self._client is None:
            self.connect()

    def connect(self) -> None:
        """Connect to MongoDB using MONGODB_URI / MONGO_DB_NAME."""
        settings = get_settings()
        self._client = MongoClient(settings.mongodb_uri, tz_aware=True)
        self._db = self._client[settings.mongo_db_name]
        logger.info(f"Connected to MongoDB: {settings.mongo_db_name}")

    def disconnect(self) -> None:
        """Close the MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("Disconnected from MongoDB")

    @property
    def db(self) -> Database:
        """Get the database instance."""
        if self._db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._db

    def collection(self, name: str) -> Collection:
        """Get a collection by name."""
        return self.db[name]

    def ping(self) -> bool:
        """Check the server is reachable."""
        try:
            self.db.command("ping")
            return True
        except Exception as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False


def reset_database_client() -> None:
    """
    Drop the singleton and close its connection pool.

    Used for testing or when configuration changes.
    """
    if DatabaseClient._instance is not None:
        DatabaseClient._instance.disconnect()
    DatabaseClient._instance = None
    DatabaseClient._client = None
    DatabaseClient._db = None
