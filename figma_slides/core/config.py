"""
Ingestion configuration and Figma access-token provider.

Settings are read from the environment (a .env file is loaded on import).
The token provider is created by the caller and injected into FigmaClient.
"""

import os
import time
import logging
from typing import Callable, Optional, Tuple

from pydantic import BaseModel, Field
from dotenv import load_dotenv

from ..constants import (
    DEFAULT_IMAGE_SCALES,
    FIGMA_API_BASE,
    MONGODB_COLLECTION_SYSTEM_SETTINGS,
    MONGODB_DATABASE_SLIDE_LIBRARY,
    SETTINGS_KEY_FIGMA_TOKEN,
)

load_dotenv(override=True)

logger = logging.getLogger(__name__)

TOKEN_CACHE_SECONDS = 5 * 60


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def mask_token(token: Optional[str]) -> str:
    """First and last four characters only."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}...{token[-4:]}"


class IngestionSettings(BaseModel):
    """Tunables of the ingestion pipeline."""
    api_base: str = FIGMA_API_BASE
    request_timeout: float = 30.0
    image_scales: Tuple[float, ...] = DEFAULT_IMAGE_SCALES
    image_format: str = "jpg"
    request_delay: float = Field(default=0.5, description="Seconds between image export calls")
    max_retries: int = 3
    backoff_base: float = Field(default=0.1, description="Seconds; delay is backoff_base * 2**attempt")
    min_score: int = 4
    duplicate_threshold: float = 0.7
    archive_previews: bool = False

    @classmethod
    def from_env(cls) -> "IngestionSettings":
        """
        Build settings from environment variables.

        Variables: FIGMA_API_BASE, FIGMA_REQUEST_TIMEOUT, FIGMA_IMAGE_SCALES (csv),
        FIGMA_IMAGE_FORMAT, FIGMA_REQUEST_DELAY_MS, FIGMA_MAX_RETRIES,
        FIGMA_BACKOFF_MS, INGEST_MIN_SCORE, DUPLICATE_THRESHOLD, ARCHIVE_PREVIEWS
        """
        scales = os.getenv("FIGMA_IMAGE_SCALES")
        return cls(
            api_base=os.getenv("FIGMA_API_BASE") or FIGMA_API_BASE,
            request_timeout=_env_float("FIGMA_REQUEST_TIMEOUT", 30.0),
            image_scales=(
                tuple(float(s) for s in scales.split(",") if s.strip())
                if scales else DEFAULT_IMAGE_SCALES
            ),
            image_format=os.getenv("FIGMA_IMAGE_FORMAT") or "jpg",
            request_delay=_env_float("FIGMA_REQUEST_DELAY_MS", 500) / 1000,
            max_retries=_env_int("FIGMA_MAX_RETRIES", 3),
            backoff_base=_env_float("FIGMA_BACKOFF_MS", 100) / 1000,
            min_score=_env_int("INGEST_MIN_SCORE", 4),
            duplicate_threshold=_env_float("DUPLICATE_THRESHOLD", 0.7),
            archive_previews=_env_bool("ARCHIVE_PREVIEWS"),
        )


class FigmaTokenProvider:
    """
    Cached Figma access token.

    Lookup order: the `system_settings` collection, then the
    FIGMA_ACCESS_TOKEN environment variable (which is then saved to the
    collection for future use). Cached for five minutes.
    """

    def __init__(
        self,
        mongo=None,
        ttl: float = TOKEN_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            mongo: Optional MongoDBService used as the settings store
            ttl: Cache duration in seconds
            clock: Monotonic clock, injectable for tests
        """
        self.mongo = mongo
        self.ttl = ttl
        self._clock = clock
        self._cached: Optional[str] = None
        self.last_fetch: Optional[float] = None

    async def get(self) -> Optional[str]:
        now = self._clock()
        if self._cached and self.last_fetch is not None and now - self.last_fetch < self.ttl:
            return self._cached

        token = await self._read_setting()
        if not token:
            token = os.getenv(SETTINGS_KEY_FIGMA_TOKEN) or None
            if token:
                await self._write_setting(token, only_if_missing=True)

        if token:
            self._cached = token
            self.last_fetch = now
            logger.debug(f"Figma token loaded: {mask_token(token)}")
        return token

    def invalidate(self) -> None:
        self._cached = None
        self.last_fetch = None

    async def update(self, token: str) -> None:
        """Persist a new token and refresh the cache."""
        await self._write_setting(token)
        self._cached = token
        self.last_fetch = self._clock()
        logger.info(f"Figma token updated: {mask_token(token)}")

    async def _read_setting(self) -> Optional[str]:
        if self.mongo is None:
            return None
        try:
            doc = await self.mongo.read(
                collection_name=MONGODB_COLLECTION_SYSTEM_SETTINGS,
                query={"key": SETTINGS_KEY_FIGMA_TOKEN},
                database_name=MONGODB_DATABASE_SLIDE_LIBRARY,
            )
        except Exception as e:
            logger.error(f"Error fetching Figma token from database: {e}")
            return None
        return (doc or {}).get("value") or None

    async def _write_setting(self, token: str, only_if_missing: bool = False) -> None:
        if self.mongo is None:
            return
        update = {"$setOnInsert": {"value": token}} if only_if_missing else {"$set": {"value": token}}
        try:
            await self.mongo.upsert(
                collection_name=MONGODB_COLLECTION_SYSTEM_SETTINGS,
                query={"key": SETTINGS_KEY_FIGMA_TOKEN},
                update=update,
                database_name=MONGODB_DATABASE_SLIDE_LIBRARY,
            )
        except Exception as e:
            logger.error(f"Error saving Figma token: {e}")
            if not only_if_missing:
                raise
