"""
MongoDB Service - Async wrapper for MongoDB operations.

Provides the document operations used by the slide library: single reads,
sorted scans, upserts, deletes and index creation.
"""

import os
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from dotenv import load_dotenv

from ..constants import MONGODB_DATABASE_SLIDE_LIBRARY

load_dotenv(override=True)

logger = logging.getLogger(__name__)

# Global singleton
_mongo_service_instance = None


def get_mongo_service() -> 'MongoDBService':
    """Get singleton instance of MongoDBService."""
    global _mongo_service_instance
    if _mongo_service_instance is None:
        _mongo_service_instance = MongoDBService()
    return _mongo_service_instance


class MongoDBService:
    """
    MongoDB service for slide library operations.

    The database is chosen per call so that settings and slides can live in
    different databases if needed.
    """

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self._initialized = False

    async def initialize(self, connection_string: Optional[str] = None):
        """Initialize MongoDB connection (MONGODB_URI by default)."""
        if self._initialized:
            logger.debug("MongoDB already initialized")
            return

        connection_string = connection_string or os.getenv("MONGODB_URI", "mongodb://localhost:27017")

        try:
            self.client = AsyncIOMotorClient(connection_string)
            self._initialized = True
            logger.info("MongoDB initialized")
        except Exception as e:
            logger.error(f"MongoDB initialization failed: {e}")
            raise

    def get_collection(
        self,
        collection_name: str,
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> AsyncIOMotorCollection:
        """
        Get a collection reference from the specified database.

        Raises:
            RuntimeError: If initialize() has not been awaited
        """
        if not self._initialized or self.client is None:
            raise RuntimeError("MongoDB not initialized. Call await mongo_service.initialize() first.")

        return self.client[database_name][collection_name]

    async def read(
        self,
        collection_name: str,
        query: Dict[str, Any],
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> Optional[Dict[str, Any]]:
        """Return the first document matching `query`, or None."""
        collection = self.get_collection(collection_name, database_name)
        return await collection.find_one(query, projection={"_id": False})

    async def find_many(
        self,
        collection_name: str,
        query: Dict[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> List[Dict[str, Any]]:
        """
        Return every document matching `query`.

        Args:
            collection_name: Name of the collection
            query: Query filter
            sort: Optional list of (field, direction) pairs
            limit: Optional maximum number of documents
            database_name: Name of the database

        Returns:
            Documents without their Mongo `_id`
        """
        collection = self.get_collection(collection_name, database_name)
        cursor = collection.find(query, projection={"_id": False})
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)

    async def upsert(
        self,
        collection_name: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> bool:
        """
        Apply an update document, inserting when nothing matches.

        Returns:
            True if a new document was inserted
        """
        collection = self.get_collection(collection_name, database_name)
        result = await collection.update_one(query, update, upsert=True)
        return result.upserted_id is not None

    async def delete(
        self,
        collection_name: str,
        query: Dict[str, Any],
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> bool:
        """
        Delete one document from the specified collection.

        Returns:
            True if deleted, False if not found
        """
        collection = self.get_collection(collection_name, database_name)
        result = await collection.delete_one(query)
        success = result.deleted_count > 0

        if success:
            logger.info(f"Deleted document from {collection_name}")
        return success

    async def ensure_index(
        self,
        collection_name: str,
        keys: Sequence[Tuple[str, int]],
        unique: bool = False,
        database_name: str = MONGODB_DATABASE_SLIDE_LIBRARY,
    ) -> str:
        collection = self.get_collection(collection_name, database_name)
        return await collection.create_index(list(keys), unique=unique)

    async def close(self):
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self._initialized = False
            logger.info("MongoDB connection closed")
