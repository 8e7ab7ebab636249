"""
Image Retriever

Renders candidate frames through the Figma image export endpoint.

Figma rejects large or complex exports non-deterministically, so every node
is exported on its own and walks down a ladder of decreasing scales until
one render succeeds. Export calls are spaced by an injected rate limiter.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Sequence

from ..constants import DEFAULT_IMAGE_SCALES, VECTOR_FORMATS
from ..exceptions import FigmaAPIError, FigmaAuthError
from ..utils.schemas import ImageResult

logger = logging.getLogger(__name__)


class IntervalRateLimiter:
    """
    Enforces a minimum interval between consecutive calls.

    The first call goes through immediately. Clock and sleep are injectable
    so tests can run without wall-clock waits.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            if self._last_call is not None:
                wait = self.min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    await self._sleep(wait)
            self._last_call = self._clock()


class ImageRetriever:
    """
    Degradation-ladder image export.

    Workflow (per node, sequentially):
    1. Wait for the rate limiter
    2. Request a render of this single node at the current scale
    3. Stop at the first scale that yields a URL
    4. On a missing entry, a too-large rejection or a transient failure
       (already retried by the client), move to the next smaller scale
    5. When every rung fails, record the failure and continue with the next node

    Auth failures abort the whole retrieval.
    """

    def __init__(
        self,
        client,
        rate_limiter: Optional[IntervalRateLimiter] = None,
        scales: Sequence[float] = DEFAULT_IMAGE_SCALES,
        format: str = "jpg",
    ):
        """
        Args:
            client: FigmaClient (or anything with `get_image_urls`)
            rate_limiter: Spacing between export calls
            scales: Ladder rungs, largest first
            format: Raster format used on the default path
        """
        if not scales:
            raise ValueError("At least one export scale is required")
        self.client = client
        self.rate_limiter = rate_limiter or IntervalRateLimiter()
        self.scales = tuple(scales)
        self.format = format

    async def retrieve(
        self,
        document_id: str,
        node_ids: Iterable[str],
        high_fidelity: bool = False,
    ) -> Dict[str, ImageResult]:
        """
        Render each node, one export call per node and rung.

        Args:
            document_id: Figma file key
            node_ids: Frames to render
            high_fidelity: Export as SVG instead of the raster format

        Returns:
            Mapping node id -> ImageResult (failed nodes have image_ref None)
        """
        results: Dict[str, ImageResult] = {}
        for node_id in node_ids:
            if node_id in results:
                continue
            results[node_id] = await self.retrieve_one(document_id, node_id, high_fidelity)
        return results

    async def retrieve_one(
        self,
        document_id: str,
        node_id: str,
        high_fidelity: bool = False,
    ) -> ImageResult:
        export_format = VECTOR_FORMATS[0] if high_fidelity else self.format
        # Figma ignores scale for vector exports, so there is a single rung
        rungs = (None,) if export_format in VECTOR_FORMATS else self.scales

        attempts = 0
        last_reason = "no export attempted"
        for scale in rungs:
            attempts += 1
            await self.rate_limiter.acquire()
            try:
                urls = await self.client.get_image_urls(
                    document_id, [node_id], format=export_format, scale=scale
                )
            except FigmaAuthError:
                raise
            except FigmaAPIError as e:
                last_reason = str(e)
                logger.info(f"Export of {node_id} failed at scale {scale}: {e}")
                continue
            except Exception as e:
                last_reason = f"{type(e).__name__}: {e}"
                logger.warning(f"Unexpected export failure for {node_id} at scale {scale}: {last_reason}")
                continue

            url = urls.get(node_id)
            if url:
                logger.debug(f"Rendered {node_id} at scale {scale} after {attempts} attempt(s)")
                return ImageResult(
                    node_id=node_id,
                    image_ref=url,
                    scale=scale,
                    format=export_format,
                    attempts=attempts,
                )
            last_reason = f"node not rendered at scale {scale}"

        logger.warning(f"No image for {node_id} after {attempts} attempt(s): {last_reason}")
        return ImageResult(
            node_id=node_id,
            format=export_format,
            attempts=attempts,
            error=f"Image export failed after {attempts} attempt(s): {last_reason}",
        )


class PreviewArchiver:
    """Copies rendered previews to S3 under their content hash."""

    def __init__(self, client, s3):
        self.client = client
        self.s3 = s3

    async def archive(self, result: ImageResult) -> str:
        """
        Download a rendered image and store it in S3.

        Returns:
            The s3:// URL of the stored preview
        """
        if not result.ok:
            raise ValueError(f"Nothing to archive for node {result.node_id}")
        data = await self.client.download(result.image_ref)
        mapping = await self.s3.upload_bytes_with_hash(
            data,
            file_type=result.format,
            metadata={"figma-node-id": result.node_id},
        )
        return mapping["s3_url"]
