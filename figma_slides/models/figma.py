"""
Figma REST client.

Thin async wrapper over the Figma v1 API (files, nodes, image exports and
the token check). Every call goes through one retry loop: transport
failures, throttling and 5xx responses are retried with exponential
backoff, everything else is mapped to the slide library exceptions.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

import httpx

from ..constants import FIGMA_API_BASE
from ..exceptions import (
    FigmaAPIError,
    FigmaAuthError,
    FigmaRequestTooLargeError,
    FigmaTransientError,
    FigmaUnavailableError,
    InvalidDocumentRefError,
    MissingTokenError,
)

logger = logging.getLogger(__name__)

_FIGMA_URL = re.compile(r"figma\.com/(?:file|design)/([a-zA-Z0-9]+)")
_FILE_KEY = re.compile(r"^[a-zA-Z0-9]+$")

TOO_LARGE_MARKER = "request too large"


def normalize_node_id(raw: str) -> str:
    """URL node ids use '-' or '%3A' where the API uses ':'."""
    return unquote(raw).replace("-", ":")


def parse_figma_url(url: str) -> Optional[Tuple[str, Optional[str]]]:
    """
    Extract (file_key, node_id) from a Figma file or design URL.

    Returns:
        Tuple of file key and optional node id, or None if `url` is not a Figma link
    """
    match = _FIGMA_URL.search(url or "")
    if not match:
        return None
    node_ids = parse_qs(urlparse(url).query).get("node-id")
    node_id = normalize_node_id(node_ids[0]) if node_ids else None
    return match.group(1), node_id


def resolve_document_ref(ref: str) -> Tuple[str, Optional[str]]:
    """
    Accept either a bare file key or a Figma URL.

    Raises:
        InvalidDocumentRefError: If `ref` is neither
    """
    ref = (ref or "").strip()
    if _FILE_KEY.match(ref):
        return ref, None
    parsed = parse_figma_url(ref)
    if parsed is None:
        raise InvalidDocumentRefError(f"Not a Figma file key or URL: {ref!r}")
    return parsed


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("err") or body.get("message") or body)
    return str(body)


class FigmaClient:
    """
    Async Figma API client.

    Args:
        token_provider: Object with `async get()` and `invalidate()`
        api_base: API root URL
        timeout: Per-request timeout in seconds
        max_retries: Attempts per request, including the first one
        backoff_base: Seconds; the n-th retry waits backoff_base * 2**n
        sleep: Awaitable sleep, injectable for tests
        http_client: Optional preconfigured httpx.AsyncClient
    """

    def __init__(
        self,
        token_provider,
        api_base: str = FIGMA_API_BASE,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.token_provider = token_provider
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings, token_provider, **kwargs) -> "FigmaClient":
        return cls(
            token_provider,
            api_base=settings.api_base,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
            **kwargs,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def get_file(self, file_id: str, depth: Optional[int] = None) -> Dict[str, Any]:
        """GET /files/{file_id}. The `document` key holds the node tree."""
        params = {"depth": depth} if depth is not None else None
        return await self._get_json(f"/files/{file_id}", params=params)

    async def get_nodes(self, file_id: str, ids: List[str]) -> Dict[str, Any]:
        """
        GET /files/{file_id}/nodes for the given node ids.

        Returns:
            The raw response. `nodes` maps each requested id to
            {"document": ...} or to null when the node does not exist.
        """
        return await self._get_json(
            f"/files/{file_id}/nodes",
            params={"ids": ",".join(ids)},
        )

    async def get_image_urls(
        self,
        file_id: str,
        ids: List[str],
        format: str = "jpg",
        scale: Optional[float] = None,
    ) -> Dict[str, Optional[str]]:
        """
        Ask Figma to render nodes and return their temporary download URLs.

        Args:
            file_id: Figma file key
            ids: Node ids to render
            format: jpg, png or svg
            scale: Render scale; ignored by Figma for svg

        Returns:
            Mapping node id -> URL (None when the render failed)
        """
        params: Dict[str, Any] = {
            "ids": ",".join(ids),
            "format": format,
            "use_absolute_bounds": "true",
        }
        if scale is not None:
            params["scale"] = scale
        data = await self._get_json(f"/images/{file_id}", params=params)
        images = data.get("images") or {}
        if not isinstance(images, dict):
            raise FigmaAPIError(200, "unexpected images payload")
        return images

    async def download(self, url: str) -> bytes:
        """Download a rendered image. Export URLs are pre-signed, so no token is sent."""
        response = await self._send(url, headers=None, params=None)
        return response.content

    async def validate_token(self) -> Dict[str, Any]:
        """GET /me. Raises FigmaAuthError when the token is rejected."""
        return await self._get_json("/me")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = await self.token_provider.get()
        if not token:
            raise MissingTokenError()
        response = await self._send(
            f"{self.api_base}{path}",
            headers={"X-Figma-Token": token},
            params=params,
        )
        try:
            data = response.json()
        except ValueError as e:
            raise FigmaAPIError(response.status_code, "invalid JSON body") from e
        if not isinstance(data, dict):
            raise FigmaAPIError(response.status_code, "unexpected response body")
        if data.get("err"):
            self._raise_for_error(response.status_code, str(data["err"]))
        return data

    async def _send(
        self,
        url: str,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        client = self._get_client()
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = await client.get(url, headers=headers, params=params)
                if response.is_success:
                    return response
                self._raise_for_error(response.status_code, _error_detail(response))
            except FigmaTransientError as e:
                last_error = e
            except httpx.TransportError as e:
                last_error = FigmaUnavailableError(f"{type(e).__name__}: {e}")

            if attempt < self.max_retries - 1:
                delay = self.backoff_base * (2 ** attempt)
                logger.warning(
                    f"Figma request failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{last_error}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        logger.error(f"Figma request gave up after {self.max_retries} attempts: {last_error}")
        raise last_error

    def _raise_for_error(self, status_code: int, detail: str):
        if status_code in (401, 403):
            self.token_provider.invalidate()
            raise FigmaAuthError(status_code, detail)
        if status_code == 413 or TOO_LARGE_MARKER in detail.lower():
            raise FigmaRequestTooLargeError(status_code, detail)
        if status_code == 429 or status_code >= 500:
            raise FigmaTransientError(status_code, detail)
        raise FigmaAPIError(status_code, detail)
