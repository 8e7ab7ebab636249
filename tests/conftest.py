"""
Pytest Configuration and Fixtures

Node-tree builders (raw Figma API payloads), an in-memory draft store and
fakes for the Figma client, the token provider and sleep.
"""

from typing import Any, Dict, List, Optional

import pytest

from figma_slides.utils.schemas import SlideDraft


# ---------------------------------------------------------------------------
# Raw payload builders
# ---------------------------------------------------------------------------

def text_node(node_id: str, characters: str, font_size: Optional[float] = None,
              font_weight: Optional[float] = None) -> Dict[str, Any]:
    node = {"id": node_id, "type": "TEXT", "name": characters[:20], "characters": characters}
    style = {}
    if font_size is not None:
        style["fontSize"] = font_size
    if font_weight is not None:
        style["fontWeight"] = font_weight
    if style:
        node["style"] = style
    return node


def frame_node(node_id: str, name: str, width: float = 1920, height: float = 1080,
               children: Optional[List[Dict[str, Any]]] = None, node_type: str = "FRAME") -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": node_type,
        "name": name,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": width, "height": height},
        "children": children or [],
    }


def page_node(node_id: str, name: str, children: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"id": node_id, "type": "CANVAS", "name": name, "children": children}


def document_node(pages: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"id": "0:0", "type": "DOCUMENT", "name": "Document", "children": pages}


def slide_frame(node_id: str, name: str, body: str) -> Dict[str, Any]:
    """A 1920x1080 frame with a heading and one body text."""
    return frame_node(node_id, name, children=[
        text_node(f"{node_id}-t", name, font_size=48),
        text_node(f"{node_id}-b", body, font_size=16),
    ])


def make_slide(slide_id: str, text: Optional[str], document_id: str = "doc",
               node_id: Optional[str] = None, **fields) -> SlideDraft:
    return SlideDraft(
        id=slide_id,
        title=fields.pop("title", slide_id),
        extracted_text=text,
        source_document_id=document_id,
        source_node_id=node_id or f"node-{slide_id}",
        **fields,
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float):
        self.calls.append(delay)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StaticTokenProvider:
    def __init__(self, token: Optional[str] = "figd_test_token_1234"):
        self.token = token
        self.invalidations = 0

    async def get(self) -> Optional[str]:
        return self.token

    def invalidate(self):
        self.invalidations += 1


class InMemorySlideStore:
    """Draft store with the SlideStorageAdapter interface."""

    def __init__(self):
        self.records: Dict[tuple, SlideDraft] = {}
        self.upserts = 0

    async def find_by_source(self, document_id: str, node_id: str) -> Optional[SlideDraft]:
        record = self.records.get((document_id, node_id))
        return record.model_copy(deep=True) if record else None

    async def get_slide(self, slide_id: str) -> Optional[SlideDraft]:
        for record in self.records.values():
            if record.id == slide_id:
                return record.model_copy(deep=True)
        return None

    async def upsert_draft(self, draft: SlideDraft):
        self.upserts += 1
        key = (draft.source_document_id, draft.source_node_id)
        existing = self.records.get(key)
        stored = draft.model_copy(deep=True)
        if existing is not None:
            stored.id = existing.id
            stored.created_at = existing.created_at
            stored.is_active = existing.is_active
        self.records[key] = stored
        return stored.model_copy(deep=True), existing is None

    async def list_slides(self, scope: str = "all", with_text: bool = False) -> List[SlideDraft]:
        slides = [
            record for record in self.records.values()
            if (scope == "all" or not record.is_active)
            and (not with_text or record.extracted_text)
        ]
        return sorted(slides, key=lambda s: s.created_at, reverse=True)

    async def delete_slide(self, slide_id: str) -> bool:
        for key, record in list(self.records.items()):
            if record.id == slide_id:
                del self.records[key]
                return True
        return False

    async def close(self):
        pass


class FakeFigmaClient:
    """
    In-process Figma client.

    `failing_images` lists node ids that never render, `missing_nodes` node
    ids that /nodes reports as null.
    """

    def __init__(self, document: Dict[str, Any], name: str = "Deck",
                 failing_images=(), missing_nodes=()):
        self.document = document
        self.name = name
        self.failing_images = set(failing_images)
        self.missing_nodes = set(missing_nodes)
        self.file_error: Optional[Exception] = None
        self.image_calls: List[tuple] = []
        self.node_calls: List[List[str]] = []

    def _find(self, node_id: str) -> Optional[Dict[str, Any]]:
        stack = [self.document]
        while stack:
            node = stack.pop()
            if node.get("id") == node_id:
                return node
            stack.extend(node.get("children", []))
        return None

    async def get_file(self, file_id: str, depth=None) -> Dict[str, Any]:
        if self.file_error is not None:
            raise self.file_error
        return {"name": self.name, "document": self.document}

    async def get_nodes(self, file_id: str, ids: List[str]) -> Dict[str, Any]:
        self.node_calls.append(list(ids))
        nodes = {}
        for node_id in ids:
            found = None if node_id in self.missing_nodes else self._find(node_id)
            nodes[node_id] = {"document": found} if found else None
        return {"name": self.name, "nodes": nodes}

    async def get_image_urls(self, file_id: str, ids: List[str], format: str = "jpg", scale=None):
        self.image_calls.append((tuple(ids), format, scale))
        return {
            node_id: (None if node_id in self.failing_images
                      else f"https://figma-render.test/{node_id}.{format}")
            for node_id in ids
        }

    async def download(self, url: str) -> bytes:
        return b"image-bytes:" + url.encode()

    async def close(self):
        pass


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemorySlideStore:
    return InMemorySlideStore()


@pytest.fixture
def token_provider() -> StaticTokenProvider:
    return StaticTokenProvider()


@pytest.fixture
def five_slide_document() -> Dict[str, Any]:
    bodies = [
        "Revenue growth for the fintech payments platform in 2022 and 2023",
        "Healthcare clinic onboarding for patients across the region",
        "Logistics delivery network with real-time shipping tracking",
        "Education platform for university students and courses",
        "Retail marketplace expansion into new stores",
    ]
    frames = [slide_frame(f"1:{i}", f"Slide {i}", body) for i, body in enumerate(bodies, start=1)]
    frames.append(frame_node("1:99", "icon-button", width=48, height=48))
    return document_node([page_node("0:1", "Deck", frames)])
