"""
Tests for the rate limiter, the degradation ladder and preview archiving.
"""

from unittest.mock import AsyncMock

import pytest

from figma_slides.core.images import ImageRetriever, IntervalRateLimiter, PreviewArchiver
from figma_slides.exceptions import (
    FigmaAPIError,
    FigmaAuthError,
    FigmaRequestTooLargeError,
    FigmaUnavailableError,
)
from figma_slides.utils.schemas import ImageResult

from conftest import FakeClock, RecordingSleep

SCALES = (0.5, 0.25, 0.1, 0.05, 0.02, 0.01)


class ScriptedClient:
    """Answers get_image_urls from a per-scale script."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    async def get_image_urls(self, file_id, ids, format="jpg", scale=None):
        self.calls.append((list(ids), format, scale))
        outcome = self.outcomes.get(scale, {})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def no_wait_limiter():
    return IntervalRateLimiter(0.5, clock=FakeClock(), sleep=RecordingSleep())


class TestIntervalRateLimiter:
    @pytest.mark.asyncio
    async def test_spaces_calls_without_wall_clock(self):
        clock = FakeClock()
        sleep = RecordingSleep()
        limiter = IntervalRateLimiter(0.5, clock=clock, sleep=sleep)

        await limiter.acquire()
        clock.advance(0.2)
        await limiter.acquire()
        clock.advance(1.0)
        await limiter.acquire()

        assert sleep.calls == [pytest.approx(0.3)]


class TestImageRetriever:
    @pytest.mark.asyncio
    async def test_first_rung_success(self):
        client = ScriptedClient({0.5: {"1:1": "https://img/1"}})

        results = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve("doc", ["1:1"])

        assert results["1:1"].image_ref == "https://img/1"
        assert results["1:1"].scale == 0.5
        assert results["1:1"].attempts == 1

    @pytest.mark.asyncio
    async def test_degrades_until_success(self):
        client = ScriptedClient({
            0.5: FigmaRequestTooLargeError(400, "Request too large"),
            0.25: {"1:1": None},
            0.1: FigmaUnavailableError("timeout"),
            0.05: {"1:1": "https://img/small"},
        })

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one("doc", "1:1")

        assert result.ok
        assert result.scale == 0.05
        assert result.attempts == 4
        assert [call[2] for call in client.calls] == [0.5, 0.25, 0.1, 0.05]

    @pytest.mark.asyncio
    async def test_ladder_terminates(self):
        """Every rung failing ends in a documented failure, once per rung."""
        client = ScriptedClient({})

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one("doc", "1:1")

        assert not result.ok
        assert result.attempts == len(SCALES)
        assert len(client.calls) == len(SCALES)
        assert "failed" in result.error

    @pytest.mark.asyncio
    async def test_batch_size_one_and_per_node_failure(self):
        client = ScriptedClient({0.5: {"1:1": "https://img/1", "1:3": "https://img/3"}})
        sleep = RecordingSleep()
        limiter = IntervalRateLimiter(0.5, clock=FakeClock(), sleep=sleep)

        results = await ImageRetriever(client, limiter, SCALES).retrieve("doc", ["1:1", "1:2", "1:3"])

        assert all(len(call[0]) == 1 for call in client.calls)
        assert results["1:1"].ok and results["1:3"].ok
        assert not results["1:2"].ok
        # fake clock never advances: every call after the first waits the full interval
        assert sleep.calls == [0.5] * (len(client.calls) - 1)

    @pytest.mark.asyncio
    async def test_auth_error_propagates(self):
        client = ScriptedClient({0.5: FigmaAuthError(403, "forbidden")})

        with pytest.raises(FigmaAuthError):
            await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve("doc", ["1:1"])

    @pytest.mark.asyncio
    async def test_rejected_render_moves_to_next_scale(self):
        client = ScriptedClient({
            0.5: FigmaAPIError(400, "Render timeout, try requesting fewer or smaller images"),
            0.25: {"1:1": "https://img/small"},
        })

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one("doc", "1:1")

        assert result.ok
        assert result.scale == 0.25
        assert [call[2] for call in client.calls] == [0.5, 0.25]

    @pytest.mark.asyncio
    async def test_unexpected_error_counts_as_failed_rung(self):
        client = ScriptedClient({
            0.5: ValueError("Expecting value: line 1 column 1 (char 0)"),
            0.25: {"1:1": "https://img/small"},
        })

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one("doc", "1:1")

        assert result.ok
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_every_rung_rejected_reports_last_reason(self):
        rejection = FigmaAPIError(400, "Render timeout")
        client = ScriptedClient({scale: rejection for scale in SCALES})

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one("doc", "1:1")

        assert not result.ok
        assert result.attempts == len(SCALES)
        assert "Render timeout" in result.error

    @pytest.mark.asyncio
    async def test_high_fidelity_uses_svg_single_rung(self):
        client = ScriptedClient({None: {"1:1": "https://img/1.svg"}})

        result = await ImageRetriever(client, no_wait_limiter(), SCALES).retrieve_one(
            "doc", "1:1", high_fidelity=True
        )

        assert result.ok
        assert result.format == "svg"
        assert client.calls == [(["1:1"], "svg", None)]


class TestPreviewArchiver:
    @pytest.mark.asyncio
    async def test_stores_under_content_hash(self):
        client = AsyncMock()
        client.download.return_value = b"jpeg-bytes"
        s3 = AsyncMock()
        s3.upload_bytes_with_hash.return_value = {"s3_url": "s3://bucket/abc"}

        ref = await PreviewArchiver(client, s3).archive(
            ImageResult(node_id="1:1", image_ref="https://img/1", scale=0.5)
        )

        assert ref == "s3://bucket/abc"
        client.download.assert_awaited_once_with("https://img/1")
        s3.upload_bytes_with_hash.assert_awaited_once()
        assert s3.upload_bytes_with_hash.await_args.args[0] == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_refuses_failed_result(self):
        with pytest.raises(ValueError):
            await PreviewArchiver(AsyncMock(), AsyncMock()).archive(ImageResult(node_id="1:1"))
