"""
Slide Library Unified Orchestrator

Unified interface for all slide library operations with mode-based execution.
Supports: ingest, classify, duplicates and check_duplicates modes.
"""

import logging
import asyncio
from typing import Any, Dict, List, Literal, Optional

from .core.classifier import quality_bucket, summarize
from .core.config import FigmaTokenProvider, IngestionSettings
from .core.duplicates import DuplicateDetector
from .core.images import ImageRetriever, IntervalRateLimiter, PreviewArchiver
from .core.ingestion import SlideIngestionService
from .core.storage import SlideStorageAdapter
from .exceptions import SlideNotFoundError
from .models.figma import FigmaClient
from .utils.schemas import DuplicateMatch, DuplicateReport, IngestionResult

logger = logging.getLogger(__name__)

# Mode type
Mode = Literal["ingest", "classify", "duplicates", "check_duplicates"]


class SlideLibraryOrchestrator:
    """
    Unified orchestrator for all slide library operations.

    Modes:
    - 'ingest': Import the slide frames of a Figma document as drafts
    - 'classify': Dry run that ranks candidate frames without importing
    - 'duplicates': Cluster the corpus into near-duplicate groups
    - 'check_duplicates': Find slides similar to one slide or a text

    Independent requests may run concurrently; each ingestion run talks to
    Figma sequentially.
    """

    def __init__(
        self,
        storage: Optional[SlideStorageAdapter] = None,
        settings: Optional[IngestionSettings] = None,
        token_provider: Optional[FigmaTokenProvider] = None,
        client: Optional[FigmaClient] = None,
        auto_initialize: bool = True
    ):
        """
        Initialize unified orchestrator.

        Args:
            storage: Storage adapter (if None, creates new instance)
            settings: Pipeline settings (if None, read from the environment)
            token_provider: Figma token provider (if None, backed by MongoDB)
            client: Figma client (if None, built from settings)
            auto_initialize: Whether to auto-initialize storage on first use
        """
        self.storage = storage
        self.settings = settings
        self.token_provider = token_provider
        self.client = client
        self.auto_initialize = auto_initialize
        self._initialized = False
        self._init_lock = asyncio.Lock()

        # Lazy-initialized services
        self._ingestion: Optional[SlideIngestionService] = None
        self._detector: Optional[DuplicateDetector] = None

        logger.info("SlideLibraryOrchestrator initialized")

    async def _ensure_initialized(self):
        """Ensure storage and services are initialized."""
        async with self._init_lock:
            if self._initialized:
                return

            if self.settings is None:
                self.settings = IngestionSettings.from_env()
            if self.storage is None:
                self.storage = SlideStorageAdapter()
            if self.auto_initialize:
                await self.storage.initialize(with_s3=self.settings.archive_previews)

            if self.token_provider is None:
                self.token_provider = FigmaTokenProvider(mongo=self.storage.mongo)
            if self.client is None:
                self.client = FigmaClient.from_settings(self.settings, self.token_provider)

            retriever = ImageRetriever(
                self.client,
                rate_limiter=IntervalRateLimiter(self.settings.request_delay),
                scales=self.settings.image_scales,
                format=self.settings.image_format,
            )
            archiver = PreviewArchiver(self.client, self.storage.s3) if self.settings.archive_previews else None

            self._ingestion = SlideIngestionService(
                self.storage,
                self.client,
                image_retriever=retriever,
                archiver=archiver,
                min_score=self.settings.min_score,
            )
            self._detector = DuplicateDetector(self.settings.duplicate_threshold)

            self._initialized = True
            logger.info("Orchestrator services initialized")

    async def execute(
        self,
        mode: Mode,
        **kwargs
    ) -> Any:
        """
        Execute operation based on mode.

        Args:
            mode: Operation mode ('ingest', 'classify', 'duplicates', 'check_duplicates')
            **kwargs: Mode-specific parameters

        Returns:
            Mode-specific results

        Raises:
            ValueError: If mode is invalid or required parameters missing
        """
        await self._ensure_initialized()

        if mode == "ingest":
            return await self._execute_ingest(**kwargs)
        elif mode == "classify":
            return await self._execute_classify(**kwargs)
        elif mode == "duplicates":
            return await self._execute_duplicates(**kwargs)
        elif mode == "check_duplicates":
            return await self._execute_check_duplicates(**kwargs)
        else:
            raise ValueError(
                f"Invalid mode: {mode}. Must be one of: ingest, classify, duplicates, check_duplicates"
            )

    async def _execute_ingest(
        self,
        document_ref: str,
        selected_node_ids: Optional[List[str]] = None,
        min_score: Optional[int] = None,
        high_fidelity: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        **kwargs
    ) -> IngestionResult:
        """
        Execute ingestion mode.

        Args:
            document_ref: Figma file key or URL
            selected_node_ids: Frames or pages to import instead of the whole file

        Returns:
            IngestionResult
        """
        logger.info(f"[INGEST] Ingesting document: {document_ref}")

        result = await self._ingestion.ingest(
            document_ref,
            selected_node_ids=selected_node_ids,
            min_score=min_score,
            high_fidelity=high_fidelity,
            cancel_event=cancel_event,
        )

        logger.info(
            f"[INGEST] ✅ {result.created_count} created, {result.updated_count} updated, "
            f"{len(result.per_node_errors)} node errors"
        )
        return result

    async def _execute_classify(
        self,
        document_ref: str,
        selected_node_ids: Optional[List[str]] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Execute classify mode (no rendering, nothing persisted).

        Returns:
            Dict with document info, bucket summary and ranked candidates
        """
        logger.info(f"[CLASSIFY] Scoring frames of: {document_ref}")

        document_id, document_name, candidates, errors = await self._ingestion.classify(
            document_ref, selected_node_ids
        )
        return {
            "document_id": document_id,
            "document_name": document_name,
            "summary": summarize(candidates),
            "candidates": [
                {**candidate.model_dump(), "quality": quality_bucket(candidate.score)}
                for candidate in candidates
            ],
            "per_node_errors": [error.model_dump() for error in errors],
        }

    async def _execute_duplicates(
        self,
        threshold: Optional[float] = None,
        scope: str = "all",
        **kwargs
    ) -> DuplicateReport:
        """
        Execute duplicate detection over the corpus.

        Args:
            threshold: Similarity threshold (defaults to settings)
            scope: 'drafts' or 'all'

        Returns:
            DuplicateReport
        """
        logger.info(f"[DUPLICATES] Scope: {scope}, threshold: {threshold or self._detector.threshold}")

        slides = await self.storage.list_slides(scope=scope, with_text=True)
        # O(n^2) and CPU bound: keep it off the event loop
        report = await asyncio.to_thread(self._detector.detect, slides, threshold)

        logger.info(f"[DUPLICATES] ✅ {report.stats.group_count} groups")
        return report

    async def _execute_check_duplicates(
        self,
        slide_id: Optional[str] = None,
        text: Optional[str] = None,
        threshold: Optional[float] = None,
        scope: str = "all",
        **kwargs
    ) -> List[DuplicateMatch]:
        """
        Compare one slide (or a raw text) against the corpus.

        Raises:
            ValueError: If neither slide_id nor text is given
            SlideNotFoundError: If slide_id does not exist
        """
        if slide_id is None and not text:
            raise ValueError("Either slide_id or text is required")

        target = None
        if slide_id is not None:
            target = await self.storage.get_slide(slide_id)
            if target is None:
                raise SlideNotFoundError(slide_id)

        corpus = await self.storage.list_slides(scope=scope, with_text=True)
        matches = await asyncio.to_thread(
            self._detector.matches_for, corpus, target, text, threshold
        )

        logger.info(f"[CHECK_DUPLICATES] ✅ {len(matches)} matches")
        return matches

    async def close(self):
        """Close the Figma client and storage connections."""
        if self.client is not None:
            await self.client.close()
        if self.storage and self._initialized:
            await self.storage.close()
            logger.info("Orchestrator closed")
