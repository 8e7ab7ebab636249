"""
Slide Library Ingestion Service

Imports candidate slide frames from a Figma document as draft slides.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..exceptions import (
    DocumentTooLargeError,
    FigmaRequestTooLargeError,
    TextExtractionError,
)
from ..models.figma import resolve_document_ref
from ..utils.schemas import (
    CandidateSlide,
    FigmaNode,
    IngestionResult,
    NodeError,
    SlideDraft,
    SlideMetadataFields,
)
from .autofill import MetadataAutoFiller
from .classifier import FrameClassifier
from .images import ImageRetriever, PreviewArchiver
from .storage import SlideStorageAdapter
from .text_extraction import TextExtractor

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 4


class IngestionStage(str, Enum):
    FETCH_TREE = "fetch_tree"
    CLASSIFY = "classify"
    FETCH_IMAGE = "fetch_image"
    EXTRACT_TEXT = "extract_text"
    AUTOFILL = "autofill"
    PERSIST = "persist"
    DONE = "done"


class SlideIngestionService:
    """
    Service for ingesting Figma documents into the slide library.

    Workflow:
    1. FETCH_TREE: load the whole document, or only the selected nodes
    2. CLASSIFY: score frames and keep those reaching `min_score`
    3. Per candidate, sequentially:
       FETCH_IMAGE -> EXTRACT_TEXT -> AUTOFILL -> PERSIST
    4. DONE: return counts and per-node errors

    Auth and connectivity failures abort the run. A document that is too
    large to fetch whole raises DocumentTooLargeError. Image, text and
    autofill failures are recorded per node and the draft is still saved.
    Drafts written before a failure or a cancellation are kept, and a rerun
    updates them in place.
    """

    def __init__(
        self,
        storage: SlideStorageAdapter,
        client,
        image_retriever: Optional[ImageRetriever] = None,
        classifier: Optional[FrameClassifier] = None,
        extractor: Optional[TextExtractor] = None,
        autofiller: Optional[MetadataAutoFiller] = None,
        archiver: Optional[PreviewArchiver] = None,
        min_score: int = DEFAULT_MIN_SCORE,
    ):
        """
        Initialize ingestion service.

        Args:
            storage: Draft store (SlideStorageAdapter or compatible)
            client: FigmaClient
            image_retriever: Defaults to a retriever over `client`
            classifier: Frame scoring policy
            extractor: Text extractor
            autofiller: Metadata autofiller
            archiver: When set, previews are copied to S3
            min_score: Minimum classifier score for a frame to be imported
        """
        self.storage = storage
        self.client = client
        self.image_retriever = image_retriever or ImageRetriever(client)
        self.classifier = classifier or FrameClassifier()
        self.extractor = extractor or TextExtractor()
        self.autofiller = autofiller or MetadataAutoFiller()
        self.archiver = archiver
        self.min_score = min_score

    async def ingest(
        self,
        document_ref: str,
        selected_node_ids: Optional[Iterable[str]] = None,
        min_score: Optional[int] = None,
        high_fidelity: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> IngestionResult:
        """
        Import the slide frames of one Figma document as drafts.

        Args:
            document_ref: Figma file key or URL (a URL node-id counts as selected)
            selected_node_ids: Only import these frames (or the frames of these pages)
            min_score: Overrides the service threshold for this run
            high_fidelity: Export previews as SVG
            cancel_event: Checked before each candidate

        Returns:
            IngestionResult with created/updated counts and per-node errors

        Raises:
            FigmaAuthError: Token missing or rejected
            FigmaTransientError: Figma unreachable after retries
            DocumentTooLargeError: Whole-document fetch rejected, select nodes instead
        """
        min_score = self.min_score if min_score is None else min_score
        document_id, document_name, roots, errors = await self._fetch_tree(
            document_ref, selected_node_ids
        )
        result = IngestionResult(
            document_id=document_id,
            document_name=document_name,
            per_node_errors=errors,
        )

        candidates = self.classifier.classify_many(roots)
        accepted = [c for c in candidates if c.score >= min_score]
        result.candidate_count = len(accepted)
        result.skipped_count = len(candidates) - len(accepted)
        logger.info(
            f"[{IngestionStage.CLASSIFY.value}] {document_id}: {len(accepted)} of "
            f"{len(candidates)} frames reach score {min_score}"
        )

        for index, candidate in enumerate(accepted, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Ingestion of {document_id} cancelled after {index - 1} candidates")
                result.cancelled = True
                break

            logger.info(f"Processing candidate {index}/{len(accepted)}: {candidate.name} ({candidate.node_id})")
            draft, created, node_errors = await self._process_candidate(
                document_id, document_name, candidate, high_fidelity
            )
            result.per_node_errors.extend(node_errors)
            result.slide_ids.append(draft.id)
            if created:
                result.created_count += 1
            else:
                result.updated_count += 1

        logger.info(
            f"[{IngestionStage.DONE.value}] {document_id}: {result.created_count} created, "
            f"{result.updated_count} updated, {len(result.per_node_errors)} node errors"
        )
        return result

    async def classify(
        self,
        document_ref: str,
        selected_node_ids: Optional[Iterable[str]] = None,
    ) -> Tuple[str, Optional[str], List[CandidateSlide], List[NodeError]]:
        """Dry run: fetch and score frames without rendering or persisting."""
        document_id, document_name, roots, errors = await self._fetch_tree(
            document_ref, selected_node_ids
        )
        return document_id, document_name, self.classifier.classify_many(roots), errors

    async def _fetch_tree(
        self,
        document_ref: str,
        selected_node_ids: Optional[Iterable[str]],
    ) -> Tuple[str, Optional[str], List[FigmaNode], List[NodeError]]:
        document_id, url_node_id = resolve_document_ref(document_ref)
        selected = list(dict.fromkeys(selected_node_ids or []))
        if url_node_id and url_node_id not in selected:
            selected.append(url_node_id)

        logger.info(f"[{IngestionStage.FETCH_TREE.value}] {document_id} ({len(selected) or 'all'} nodes)")

        if not selected:
            try:
                data = await self.client.get_file(document_id)
            except FigmaRequestTooLargeError as e:
                raise DocumentTooLargeError(document_id) from e
            document = data.get("document")
            if not isinstance(document, dict):
                return document_id, data.get("name"), [], []
            return document_id, data.get("name"), [FigmaNode.from_api(document)], []

        data = await self.client.get_nodes(document_id, selected)
        nodes = data.get("nodes") or {}
        roots: List[FigmaNode] = []
        errors: List[NodeError] = []
        for node_id in selected:
            entry = nodes.get(node_id)
            document = entry.get("document") if isinstance(entry, dict) else None
            if not isinstance(document, dict):
                errors.append(NodeError(
                    node_id=node_id,
                    stage=IngestionStage.FETCH_TREE.value,
                    reason="node not found",
                ))
                continue
            roots.append(FigmaNode.from_api(document))
        return document_id, data.get("name"), roots, errors

    async def _process_candidate(
        self,
        document_id: str,
        document_name: Optional[str],
        candidate: CandidateSlide,
        high_fidelity: bool,
    ) -> Tuple[SlideDraft, bool, List[NodeError]]:
        errors: List[NodeError] = []

        def record(stage: IngestionStage, reason: str):
            logger.warning(f"[{stage.value}] {candidate.node_id}: {reason}")
            errors.append(NodeError(node_id=candidate.node_id, stage=stage.value, reason=reason))

        existing = await self.storage.find_by_source(document_id, candidate.node_id)
        frame = candidate.node

        # FETCH_IMAGE
        image = await self.image_retriever.retrieve_one(document_id, candidate.node_id, high_fidelity)
        image_ref = image.image_ref
        if not image.ok:
            record(IngestionStage.FETCH_IMAGE, image.error or "image export failed")
        elif self.archiver is not None:
            try:
                image_ref = await self.archiver.archive(image)
            except Exception as e:
                record(IngestionStage.FETCH_IMAGE, f"preview archiving failed: {e}")

        # EXTRACT_TEXT
        text = None
        title = None
        if frame is not None:
            try:
                extracted = self.extractor.extract(frame)
                text = extracted.text
                title = extracted.suggested_title
            except TextExtractionError as e:
                record(IngestionStage.EXTRACT_TEXT, e.reason)
            if title is None:
                title = self.extractor.suggest_title(frame, [])
        else:
            record(IngestionStage.EXTRACT_TEXT, "frame subtree unavailable")
        title = title or candidate.name or "Untitled Slide"

        # AUTOFILL
        current = existing.metadata if existing is not None else SlideMetadataFields()
        patch = self.autofiller.autofill(text, candidate.name, frame=frame, current=current)
        if patch.is_empty():
            record(IngestionStage.AUTOFILL, "no confident metadata fields")
        metadata = current.merged(patch)
        tags = self.autofiller.generate_tags(text, metadata)

        # PERSIST
        now = datetime.now(timezone.utc)
        draft = SlideDraft(
            title=title,
            extracted_text=text,
            source_document_id=document_id,
            source_node_id=candidate.node_id,
            source_document_name=document_name,
            image_ref=image_ref or (existing.image_ref if existing is not None else None),
            width=candidate.width,
            height=candidate.height,
            metadata=metadata,
            tags=tags,
            updated_at=now,
        )
        if existing is not None:
            draft.id = existing.id
            draft.created_at = existing.created_at
            draft.is_active = existing.is_active

        stored, created = await self.storage.upsert_draft(draft)
        return stored, created, errors
