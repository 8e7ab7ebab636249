"""
Tests for the text extractor.
"""

import pytest

from figma_slides.core.text_extraction import UNTITLED, TextExtractor
from figma_slides.exceptions import TextExtractionError
from figma_slides.utils.schemas import FigmaNode

from conftest import frame_node, text_node


def build(raw):
    return FigmaNode.from_api(raw)


class TestExtraction:
    def test_depth_first_order_and_whitespace(self):
        frame = build(frame_node("1:1", "Frame", children=[
            text_node("t1", "  Hello\n\n   world  "),
            {"id": "g1", "type": "GROUP", "name": "group", "children": [
                text_node("t2", "Nested"),
                text_node("t3", "   "),
            ]},
            text_node("t4", "Last"),
        ]))

        extracted = TextExtractor().extract(frame)

        assert extracted.text == "Hello world\nNested\nLast"
        assert [s.order for s in extracted.segments] == [0, 1, 2]

    def test_pure_and_deterministic(self):
        """Running twice on the same subtree gives byte-identical output."""
        frame = build(frame_node("1:1", "Frame", children=[text_node("t1", "Alpha"), text_node("t2", "Beta")]))
        extractor = TextExtractor()

        first = extractor.extract(frame)
        second = extractor.extract(frame)

        assert first == second
        assert first.text.encode() == second.text.encode()

    def test_malformed_subtree_raises(self):
        frame = build(frame_node("1:1", "Frame", children=[
            {"id": "t1", "type": "TEXT", "characters": 42},
        ]))

        with pytest.raises(TextExtractionError) as excinfo:
            TextExtractor().extract(frame)
        assert excinfo.value.node_id == "t1"


class TestTitle:
    def test_prefers_heading_styled_segment(self):
        frame = build(frame_node("1:1", "Frame", children=[
            text_node("t1", "confidential", font_size=10),
            text_node("t2", "Market Overview", font_size=40),
        ]))

        assert TextExtractor().extract(frame).suggested_title == "Market Overview"

    def test_bold_counts_as_heading(self):
        frame = build(frame_node("1:1", "Frame", children=[
            text_node("t1", "small print", font_size=12),
            text_node("t2", "Bold title", font_size=12, font_weight=700),
        ]))

        assert TextExtractor().extract(frame).suggested_title == "Bold title"

    def test_first_short_segment_without_styles(self):
        frame = build(frame_node("1:1", "Frame", children=[
            text_node("t1", "x" * 120),
            text_node("t2", "Short one"),
        ]))

        assert TextExtractor().extract(frame).suggested_title == "Short one"

    def test_only_first_segments_are_considered(self):
        children = [text_node(f"t{i}", "y" * 100) for i in range(5)]
        children.append(text_node("t9", "Late title", font_size=50))
        frame = build(frame_node("1:1", "Frame name", children=children))

        assert TextExtractor().extract(frame).suggested_title == "Frame name"

    def test_falls_back_to_untitled(self):
        frame = build(frame_node("1:1", "   "))

        extracted = TextExtractor().extract(frame)

        assert extracted.text == ""
        assert extracted.suggested_title == UNTITLED
