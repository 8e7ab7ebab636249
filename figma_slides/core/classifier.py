"""
Frame Classifier

Walks a Figma node tree and scores frames that look like presentation slides.
The score is a ranking heuristic; callers choose their own acceptance threshold.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..utils.schemas import CandidateFlags, CandidateSlide, FigmaNode

logger = logging.getLogger(__name__)

PAGE_TYPES = frozenset({"PAGE", "CANVAS"})
FRAME_TYPES = frozenset({"FRAME", "COMPONENT"})
DOCUMENT_TYPE = "DOCUMENT"


@dataclass(frozen=True)
class ScoringRules:
    """
    Thresholds and weights of the slide scoring policy.

    Sizes are (min_width, min_height) pairs. A frame matches a band when both
    dimensions reach the band's minimum.
    """
    large_enough: Tuple[float, float] = (600, 400)
    standard_sizes: Tuple[Tuple[float, float], ...] = (
        (1200, 600),   # wide
        (800, 600),    # standard
        (1920, 1080),  # full HD
    )
    probably_slide: Tuple[float, float] = (800, 500)
    name_blocklist: Tuple[str, ...] = (
        "icon", "button", "component", "symbol", "group",
        "mask", "overlay", "popup", "modal", "tooltip",
    )
    max_candidate_depth: int = 2

    weight_large_enough: int = 1
    weight_standard_size: int = 2
    weight_plausible_name: int = 1
    weight_probably_slide: int = 1
    weight_top_level: int = 2

    @property
    def max_score(self) -> int:
        return (
            self.weight_large_enough
            + self.weight_standard_size
            + self.weight_plausible_name
            + self.weight_probably_slide
            + self.weight_top_level
        )


DEFAULT_RULES = ScoringRules()

# Lower bound of each bucket, best first
QUALITY_BUCKETS = (
    ("excellent", 4),
    ("good", 2),
    ("ok", 1),
    ("poor", 0),
)


def quality_bucket(score: int) -> str:
    """Map a score to excellent (>=4), good (2-3), ok (1) or poor (0)."""
    for label, lower_bound in QUALITY_BUCKETS:
        if score >= lower_bound:
            return label
    return "poor"


def _fits(width: float, height: float, band: Tuple[float, float]) -> bool:
    return width >= band[0] and height >= band[1]


def evaluate_frame(
    width: float,
    height: float,
    name: str,
    depth: int,
    rules: ScoringRules = DEFAULT_RULES,
) -> Tuple[int, CandidateFlags]:
    """
    Score one frame. Pure function of its size, name and depth.

    Args:
        width: Frame width
        height: Frame height
        name: Frame name
        depth: Depth below the containing page (1 = direct child)
        rules: Scoring policy

    Returns:
        Tuple of (score, flags)
    """
    lowered = (name or "").lower()
    flags = CandidateFlags(
        is_large_enough=_fits(width, height, rules.large_enough),
        is_standard_size=any(_fits(width, height, band) for band in rules.standard_sizes),
        has_plausible_name=not any(token in lowered for token in rules.name_blocklist),
        is_probably_slide=_fits(width, height, rules.probably_slide),
        is_top_level=depth == 1,
    )
    score = (
        (rules.weight_large_enough if flags.is_large_enough else 0)
        + (rules.weight_standard_size if flags.is_standard_size else 0)
        + (rules.weight_plausible_name if flags.has_plausible_name else 0)
        + (rules.weight_probably_slide if flags.is_probably_slide else 0)
        + (rules.weight_top_level if flags.is_top_level else 0)
    )
    return score, flags


class FrameClassifier:
    """
    Finds candidate slide frames in a document tree.

    Pages are containers: only their children and grandchildren are
    evaluated. Nodes reached before any page (the document root, or a frame
    selected directly by the caller) are treated as direct children of an
    implicit page.
    """

    def __init__(self, rules: ScoringRules = DEFAULT_RULES):
        self.rules = rules

    def classify(self, root: FigmaNode) -> List[CandidateSlide]:
        """
        Score every candidate frame below `root`.

        Args:
            root: Document, page or frame node

        Returns:
            Candidates sorted by descending score, ties in encounter order
        """
        return self.classify_many([root])

    def classify_many(self, roots: Iterable[FigmaNode]) -> List[CandidateSlide]:
        """Classify several subtrees (e.g. the result of a /nodes request)."""
        candidates: List[CandidateSlide] = []
        for root in roots:
            candidates.extend(self._walk(root))
        # sorted() is stable, so equal scores keep encounter order
        ranked = sorted(candidates, key=lambda c: -c.score)
        logger.info(f"Classified {len(ranked)} candidate frames")
        return ranked

    def _walk(self, root: FigmaNode) -> List[CandidateSlide]:
        found: List[CandidateSlide] = []
        seen_ids = set()

        # (node, depth below page or None outside a page, path, page)
        stack: List[Tuple[FigmaNode, Optional[int], str, Optional[FigmaNode]]] = []
        if root.type in PAGE_TYPES:
            stack.append((root, 0, root.name, root))
        elif root.type in FRAME_TYPES:
            stack.append((root, 1, root.name, None))
        elif root.type == DOCUMENT_TYPE:
            stack.append((root, None, root.name, None))
        else:
            # a selected section or group stands in for its page
            stack.append((root, 0, root.name, None))

        while stack:
            node, depth, path, page = stack.pop()

            if depth is not None and depth >= 1 and node.type in FRAME_TYPES:
                candidate = self._evaluate(node, depth, path, page)
                if candidate is not None and candidate.node_id not in seen_ids:
                    seen_ids.add(candidate.node_id)
                    found.append(candidate)

            children = []
            for child in node.children:
                child_path = f"{path} > {child.name}" if path else child.name
                if child.type in PAGE_TYPES:
                    children.append((child, 0, child_path, child))
                elif depth is None:
                    children.append((child, None, child_path, page))
                elif depth < self.rules.max_candidate_depth:
                    children.append((child, depth + 1, child_path, page))
            stack.extend(reversed(children))

        return found

    def _evaluate(
        self,
        node: FigmaNode,
        depth: int,
        path: str,
        page: Optional[FigmaNode],
    ) -> Optional[CandidateSlide]:
        if node.bounding_box is None:
            return None
        width = node.bounding_box.width
        height = node.bounding_box.height
        score, flags = evaluate_frame(width, height, node.name, depth, self.rules)
        return CandidateSlide(
            node_id=node.id,
            name=node.name,
            width=width,
            height=height,
            depth=depth,
            score=score,
            flags=flags,
            path=path,
            page_id=page.id if page is not None else None,
            page_name=page.name if page is not None else None,
            child_count=len(node.children),
            node=node,
        )


def summarize(candidates: Iterable[CandidateSlide]) -> Dict[str, int]:
    """Count candidates per quality bucket."""
    counts = {label: 0 for label, _ in QUALITY_BUCKETS}
    for candidate in candidates:
        counts[quality_bucket(candidate.score)] += 1
    return counts
