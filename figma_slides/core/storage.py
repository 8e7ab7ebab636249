"""
Slide Library Storage Adapter

Wraps the MongoDB and S3 services for slide draft operations. Drafts are
keyed by (source_document_id, source_node_id): writing the same source node
twice updates one record.
"""

import logging
from typing import List, Literal, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from ..constants import MONGODB_COLLECTION_SLIDES, MONGODB_DATABASE_SLIDE_LIBRARY
from ..storage import get_mongo_service, get_s3_service
from ..utils.schemas import SlideDraft

logger = logging.getLogger(__name__)

Scope = Literal["drafts", "all"]

# Set only when the record is first created; moderation owns them afterwards
INSERT_ONLY_FIELDS = ("id", "created_at", "is_active")


class SlideStorageAdapter:
    """
    Storage adapter for the slide library.

    All slides live in the `slide_library` database, `slides` collection.
    """

    def __init__(self, mongo=None, s3=None):
        """
        Args:
            mongo: MongoDBService (defaults to the shared singleton)
            s3: S3Service, only needed when previews are archived
        """
        self.mongo = mongo or get_mongo_service()
        self.s3 = s3 or get_s3_service()

        self.database_name = MONGODB_DATABASE_SLIDE_LIBRARY
        self.collection_name = MONGODB_COLLECTION_SLIDES

    async def initialize(self, with_s3: bool = False):
        """
        Initialize storage backends and indexes.

        Must be called before using the adapter.
        """
        await self.mongo.initialize()
        await self.ensure_indexes()
        if with_s3:
            await self.s3.initialize()
        logger.info(f"SlideStorageAdapter initialized (database: {self.database_name})")

    async def ensure_indexes(self):
        await self.mongo.ensure_index(
            self.collection_name,
            [("source_document_id", 1), ("source_node_id", 1)],
            unique=True,
            database_name=self.database_name,
        )
        await self.mongo.ensure_index(
            self.collection_name,
            [("id", 1)],
            unique=True,
            database_name=self.database_name,
        )
        await self.mongo.ensure_index(
            self.collection_name,
            [("is_active", 1), ("created_at", -1)],
            database_name=self.database_name,
        )

    async def find_by_source(self, document_id: str, node_id: str) -> Optional[SlideDraft]:
        doc = await self.mongo.read(
            self.collection_name,
            {"source_document_id": document_id, "source_node_id": node_id},
            database_name=self.database_name,
        )
        return SlideDraft.model_validate(doc) if doc else None

    async def get_slide(self, slide_id: str) -> Optional[SlideDraft]:
        doc = await self.mongo.read(
            self.collection_name,
            {"id": slide_id},
            database_name=self.database_name,
        )
        return SlideDraft.model_validate(doc) if doc else None

    async def upsert_draft(self, draft: SlideDraft) -> Tuple[SlideDraft, bool]:
        """
        Insert or update a draft by its source node.

        `id`, `created_at` and `is_active` are written on insert only, so a
        re-import never resurrects a published slide as a draft.

        Args:
            draft: Draft to store

        Returns:
            Tuple of (stored draft, created flag)
        """
        doc = draft.model_dump()
        insert_only = {field: doc.pop(field) for field in INSERT_ONLY_FIELDS}
        query = {
            "source_document_id": draft.source_document_id,
            "source_node_id": draft.source_node_id,
        }
        update = {"$set": doc, "$setOnInsert": insert_only}

        try:
            created = await self.mongo.upsert(
                self.collection_name, query, update, database_name=self.database_name
            )
        except DuplicateKeyError:
            # Two concurrent upserts raced on the unique index; the loser updates
            logger.info(f"Concurrent insert for {draft.source_node_id}, retrying as update")
            created = await self.mongo.upsert(
                self.collection_name, query, update, database_name=self.database_name
            )

        stored = await self.find_by_source(draft.source_document_id, draft.source_node_id)
        return stored or draft, created

    async def list_slides(self, scope: Scope = "all", with_text: bool = False) -> List[SlideDraft]:
        """
        List slides newest first.

        Args:
            scope: "drafts" for the moderation queue only, "all" for every slide
            with_text: Only slides that have extracted text
        """
        if scope not in ("drafts", "all"):
            raise ValueError(f"Invalid scope: {scope}. Must be 'drafts' or 'all'")

        query = {}
        if scope == "drafts":
            query["is_active"] = False
        if with_text:
            query["extracted_text"] = {"$nin": [None, ""]}

        docs = await self.mongo.find_many(
            self.collection_name,
            query,
            sort=[("created_at", -1)],
            database_name=self.database_name,
        )
        return [SlideDraft.model_validate(doc) for doc in docs]

    async def delete_slide(self, slide_id: str) -> bool:
        return await self.mongo.delete(
            self.collection_name, {"id": slide_id}, database_name=self.database_name
        )

    async def close(self):
        await self.mongo.close()
