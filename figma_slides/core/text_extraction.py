"""
Text Extractor

Collects the text of a frame subtree and derives a title for the slide.
Extraction is a pure function of the subtree, so re-ingesting an unchanged
frame yields byte-identical text.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..exceptions import TextExtractionError
from ..utils.schemas import FigmaNode

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

UNTITLED = "Untitled Slide"


@dataclass(frozen=True)
class TextSegment:
    """A non-empty text node in traversal order."""
    text: str
    order: int
    font_size: Optional[float] = None
    font_weight: Optional[float] = None

    @property
    def is_heading(self) -> bool:
        return (self.font_size or 0) > 20 or (self.font_weight or 0) >= 700


@dataclass(frozen=True)
class ExtractedText:
    text: str
    suggested_title: str
    segments: Tuple[TextSegment, ...] = ()


class TextExtractor:
    """
    Depth-first text extraction over a single frame.

    Title rule: among the first `title_window` text segments, the first one
    shorter than `max_title_length` wins, preferring heading-styled segments
    when style information is available. Otherwise the frame name is used.
    """

    def __init__(self, max_title_length: int = 80, title_window: int = 5):
        self.max_title_length = max_title_length
        self.title_window = title_window

    def extract(self, frame: FigmaNode) -> ExtractedText:
        """
        Extract text and a suggested title from a frame subtree.

        Args:
            frame: Root of the candidate frame

        Returns:
            ExtractedText with newline-joined text and the derived title

        Raises:
            TextExtractionError: If a node in the subtree is malformed
        """
        segments = self.collect_segments(frame)
        text = "\n".join(segment.text for segment in segments)
        title = self.suggest_title(frame, segments)
        return ExtractedText(text=text, suggested_title=title, segments=tuple(segments))

    def collect_segments(self, frame: FigmaNode) -> List[TextSegment]:
        segments: List[TextSegment] = []
        stack = [frame]
        while stack:
            node = stack.pop()
            if node.issues:
                raise TextExtractionError(node.id or frame.id, "; ".join(node.issues))
            if node.text_content:
                collapsed = _WHITESPACE.sub(" ", node.text_content).strip()
                if collapsed:
                    segments.append(
                        TextSegment(
                            text=collapsed,
                            order=len(segments),
                            font_size=node.font_size,
                            font_weight=node.font_weight,
                        )
                    )
            stack.extend(reversed(node.children))
        return segments

    def suggest_title(self, frame: FigmaNode, segments: List[TextSegment]) -> str:
        window = [
            segment for segment in segments[: self.title_window]
            if len(segment.text) < self.max_title_length
        ]
        headings = [segment for segment in window if segment.is_heading]
        if headings:
            return headings[0].text
        if window:
            return window[0].text

        name = _WHITESPACE.sub(" ", frame.name or "").strip()
        return name or UNTITLED
