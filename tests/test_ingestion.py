"""
Tests for the ingestion pipeline.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from figma_slides.core.images import ImageRetriever, IntervalRateLimiter, PreviewArchiver
from figma_slides.core.ingestion import IngestionStage, SlideIngestionService
from figma_slides.exceptions import (
    DocumentTooLargeError,
    FigmaAuthError,
    FigmaRequestTooLargeError,
    InvalidDocumentRefError,
)
from figma_slides.models.figma import FigmaClient

from conftest import (
    FakeClock,
    FakeFigmaClient,
    RecordingSleep,
    StaticTokenProvider,
    document_node,
    frame_node,
    page_node,
    slide_frame,
    text_node,
)

SCALES = (0.5, 0.25, 0.1)


def make_service(store, client, **kwargs):
    retriever = ImageRetriever(
        client,
        IntervalRateLimiter(0.5, clock=FakeClock(), sleep=RecordingSleep()),
        scales=SCALES,
    )
    return SlideIngestionService(store, client, image_retriever=retriever, **kwargs)


class TestIngest:
    @pytest.mark.asyncio
    async def test_partial_image_failure(self, store, five_slide_document):
        """5 candidates with one image failure: 5 drafts and 1 node error."""
        client = FakeFigmaClient(five_slide_document, failing_images={"1:3"})

        result = await make_service(store, client).ingest("DOCKEY")

        assert result.candidate_count == 5
        assert result.skipped_count == 1
        assert result.created_count == 5
        assert result.updated_count == 0
        assert len(store.records) == 5
        assert [(e.node_id, e.stage) for e in result.per_node_errors] == [
            ("1:3", IngestionStage.FETCH_IMAGE.value)
        ]
        failed = store.records[("DOCKEY", "1:3")]
        assert failed.image_ref is None
        assert failed.extracted_text

    @pytest.mark.asyncio
    async def test_malformed_image_response_is_per_candidate(self, store, five_slide_document):
        """A gateway HTML page for one export fails that node only."""
        def handler(request: httpx.Request):
            if request.url.path.endswith("/files/DOCKEY"):
                return httpx.Response(200, json={"name": "Deck", "document": five_slide_document})
            node_id = request.url.params["ids"]
            if node_id == "1:3":
                return httpx.Response(200, text="<html>gateway</html>")
            return httpx.Response(200, json={"err": None, "images": {node_id: f"https://img/{node_id}"}})

        client = FigmaClient(
            StaticTokenProvider(),
            api_base="https://api.figma.test/v1",
            sleep=RecordingSleep(),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        result = await make_service(store, client).ingest("DOCKEY")

        assert result.created_count == 5
        assert [(e.node_id, e.stage) for e in result.per_node_errors] == [
            ("1:3", IngestionStage.FETCH_IMAGE.value)
        ]
        assert "invalid JSON body" in result.per_node_errors[0].reason
        assert store.records[("DOCKEY", "1:3")].image_ref is None
        assert store.records[("DOCKEY", "1:1")].image_ref == "https://img/1:1"

    @pytest.mark.asyncio
    async def test_drafts_content(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)

        await make_service(store, client).ingest("DOCKEY")

        draft = store.records[("DOCKEY", "1:1")]
        assert draft.title == "Slide 1"
        assert draft.is_active is False
        assert draft.source_document_name == "Deck"
        assert draft.image_ref == "https://figma-render.test/1:1.jpg"
        assert draft.width == 1920 and draft.height == 1080
        assert draft.metadata.domain == "fintech"
        assert draft.metadata.year_start == 2022
        assert draft.metadata.year_finish == 2023
        assert draft.metadata.status == "draft"
        assert "domain-fintech" in draft.tags

    @pytest.mark.asyncio
    async def test_reingest_updates_in_place(self, store, five_slide_document):
        """Ingesting the same document twice never duplicates drafts."""
        client = FakeFigmaClient(five_slide_document)
        service = make_service(store, client)

        first = await service.ingest("DOCKEY")
        store.records[("DOCKEY", "1:1")].is_active = True
        second = await service.ingest("DOCKEY")

        assert first.created_count == 5
        assert second.created_count == 0
        assert second.updated_count == 5
        assert len(store.records) == 5
        assert sorted(first.slide_ids) == sorted(second.slide_ids)
        assert store.records[("DOCKEY", "1:1")].is_active is True

    @pytest.mark.asyncio
    async def test_reingest_keeps_previous_image_on_failure(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        service = make_service(store, client)
        await service.ingest("DOCKEY")

        client.failing_images = {"1:1"}
        await service.ingest("DOCKEY")

        assert store.records[("DOCKEY", "1:1")].image_ref == "https://figma-render.test/1:1.jpg"

    @pytest.mark.asyncio
    async def test_selected_nodes_use_nodes_endpoint(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document, missing_nodes={"9:9"})

        result = await make_service(store, client).ingest(
            "DOCKEY", selected_node_ids=["1:2", "9:9"]
        )

        assert client.node_calls == [["1:2", "9:9"]]
        assert result.created_count == 1
        assert set(store.records) == {("DOCKEY", "1:2")}
        assert [(e.node_id, e.reason) for e in result.per_node_errors] == [("9:9", "node not found")]

    @pytest.mark.asyncio
    async def test_url_node_id_counts_as_selected(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)

        await make_service(store, client).ingest(
            "https://www.figma.com/design/DOCKEY/Deck?node-id=1-4"
        )

        assert client.node_calls == [["1:4"]]
        assert set(store.records) == {("DOCKEY", "1:4")}

    @pytest.mark.asyncio
    async def test_min_score_filters(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)

        result = await make_service(store, client).ingest("DOCKEY", min_score=0)

        assert result.candidate_count == 6
        assert result.skipped_count == 0

    @pytest.mark.asyncio
    async def test_malformed_subtree_is_per_candidate(self, store):
        broken = frame_node("1:1", "Broken", children=[{"id": "t", "type": "TEXT", "characters": 7}])
        document = document_node([page_node("0:1", "Deck", [broken, slide_frame("1:2", "Fine", "text here")])])
        client = FakeFigmaClient(document)

        result = await make_service(store, client).ingest("DOCKEY")

        assert result.created_count == 2
        assert [(e.node_id, e.stage) for e in result.per_node_errors] == [
            ("1:1", IngestionStage.EXTRACT_TEXT.value)
        ]
        assert store.records[("DOCKEY", "1:1")].title == "Broken"
        assert store.records[("DOCKEY", "1:1")].extracted_text is None

    @pytest.mark.asyncio
    async def test_empty_document_is_not_an_error(self, store):
        client = FakeFigmaClient(document_node([page_node("0:1", "Empty", [])]))

        result = await make_service(store, client).ingest("DOCKEY")

        assert result.candidate_count == 0
        assert result.per_node_errors == []


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_document_too_large(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        client.file_error = FigmaRequestTooLargeError(400, "Request too large")

        with pytest.raises(DocumentTooLargeError) as excinfo:
            await make_service(store, client).ingest("DOCKEY")
        assert "selected_node_ids" in excinfo.value.suggestion
        assert store.records == {}

    @pytest.mark.asyncio
    async def test_auth_error_aborts_run(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        client.file_error = FigmaAuthError(403, "Invalid token")

        with pytest.raises(FigmaAuthError):
            await make_service(store, client).ingest("DOCKEY")

    @pytest.mark.asyncio
    async def test_invalid_reference(self, store, five_slide_document):
        with pytest.raises(InvalidDocumentRefError):
            await make_service(store, FakeFigmaClient(five_slide_document)).ingest("https://example.com/x")


class TestCancellationAndArchiving:
    @pytest.mark.asyncio
    async def test_cancel_between_candidates(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        cancel = asyncio.Event()
        service = make_service(store, client)

        original = store.upsert_draft

        async def upsert_then_cancel(draft):
            stored = await original(draft)
            cancel.set()
            return stored

        store.upsert_draft = upsert_then_cancel
        result = await service.ingest("DOCKEY", cancel_event=cancel)

        assert result.cancelled
        assert result.created_count == 1
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_archived_preview_replaces_url(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        s3 = AsyncMock()
        s3.upload_bytes_with_hash.return_value = {"s3_url": "s3://bucket/hash"}

        await make_service(store, client, archiver=PreviewArchiver(client, s3)).ingest(
            "DOCKEY", selected_node_ids=["1:1"]
        )

        assert store.records[("DOCKEY", "1:1")].image_ref == "s3://bucket/hash"

    @pytest.mark.asyncio
    async def test_archive_failure_keeps_external_url(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)
        s3 = AsyncMock()
        s3.upload_bytes_with_hash.side_effect = RuntimeError("S3 not initialized")

        result = await make_service(store, client, archiver=PreviewArchiver(client, s3)).ingest(
            "DOCKEY", selected_node_ids=["1:1"]
        )

        assert store.records[("DOCKEY", "1:1")].image_ref == "https://figma-render.test/1:1.jpg"
        assert result.per_node_errors[0].stage == IngestionStage.FETCH_IMAGE.value


class TestClassify:
    @pytest.mark.asyncio
    async def test_dry_run_persists_nothing(self, store, five_slide_document):
        client = FakeFigmaClient(five_slide_document)

        document_id, name, candidates, errors = await make_service(store, client).classify("DOCKEY")

        assert document_id == "DOCKEY"
        assert name == "Deck"
        assert len(candidates) == 6
        assert candidates[-1].node_id == "1:99"
        assert client.image_calls == []
        assert store.records == {}
