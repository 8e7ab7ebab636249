"""
Duplicate Detector

Finds near-duplicate slides with Jaccard similarity over normalized text
tokens. Two slides imported from the same source node are always exact
duplicates, whatever their text.

Clustering is a single greedy pass: it is order dependent and not
transitively closed. If A~B and B~C pass the threshold but A~C does not,
C may or may not join A's group depending on processing order.
"""

import logging
import re
from typing import FrozenSet, Iterable, List, Optional, Sequence

from ..utils.schemas import (
    DuplicateGroup,
    DuplicateMatch,
    DuplicateMember,
    DuplicateReport,
    DuplicateStats,
    SlideDraft,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
MIN_TOKEN_LENGTH = 3

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: Optional[str]) -> FrozenSet[str]:
    """Lowercase, punctuation to spaces, split, drop tokens of length <= 2."""
    if not text:
        return frozenset()
    normalized = _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", text.lower())).strip()
    return frozenset(token for token in normalized.split(" ") if len(token) >= MIN_TOKEN_LENGTH)


def jaccard(tokens_a: FrozenSet[str], tokens_b: FrozenSet[str]) -> float:
    """|A ∩ B| / |A ∪ B|, or 0.0 when either set is empty."""
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def text_similarity(text_a: Optional[str], text_b: Optional[str]) -> float:
    return jaccard(tokenize(text_a), tokenize(text_b))


def same_source(slide_a: SlideDraft, slide_b: SlideDraft) -> bool:
    return (
        slide_a.source_document_id == slide_b.source_document_id
        and slide_a.source_node_id == slide_b.source_node_id
    )


class DuplicateDetector:
    """
    Greedy duplicate clustering over a slide corpus.

    Workflow:
    1. Tokenize every slide's extracted text once
    2. For each unprocessed slide (the anchor), compare with every later
       unprocessed slide
    3. Slides meeting the threshold join the anchor's group and are marked
       processed
    4. Emit groups with at least two members, by descending max similarity

    Pure and CPU-bound. Safe to run in a worker thread.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def similarity(
        self,
        slide_a: SlideDraft,
        slide_b: SlideDraft,
        tokens_a: Optional[FrozenSet[str]] = None,
        tokens_b: Optional[FrozenSet[str]] = None,
    ) -> float:
        if same_source(slide_a, slide_b):
            return 1.0
        if tokens_a is None:
            tokens_a = tokenize(slide_a.extracted_text)
        if tokens_b is None:
            tokens_b = tokenize(slide_b.extracted_text)
        return jaccard(tokens_a, tokens_b)

    def detect(
        self,
        slides: Sequence[SlideDraft],
        threshold: Optional[float] = None,
    ) -> DuplicateReport:
        """
        Cluster `slides` into duplicate groups.

        Args:
            slides: Corpus in processing order (newest first by convention)
            threshold: Overrides the detector's threshold for this run

        Returns:
            DuplicateReport with stats and groups
        """
        threshold = self.threshold if threshold is None else threshold
        tokens = [tokenize(slide.extracted_text) for slide in slides]
        processed = [False] * len(slides)
        groups: List[DuplicateGroup] = []

        for i, anchor in enumerate(slides):
            if processed[i]:
                continue

            members = [self._member(anchor, 1.0)]
            max_similarity = 0.0
            for j in range(i + 1, len(slides)):
                if processed[j]:
                    continue
                score = self.similarity(anchor, slides[j], tokens[i], tokens[j])
                if score >= threshold:
                    members.append(self._member(slides[j], score))
                    processed[j] = True
                    max_similarity = max(max_similarity, score)

            if len(members) > 1:
                processed[i] = True
                # anchor stays first: sorted() is stable and its score is 1.0
                members = sorted(members, key=lambda m: -m.similarity)
                groups.append(
                    DuplicateGroup(
                        id=f"group-{len(groups) + 1}",
                        members=members,
                        max_similarity=max_similarity,
                    )
                )

        groups.sort(key=lambda g: -g.max_similarity)
        stats = DuplicateStats(
            total_slides=len(slides),
            group_count=len(groups),
            duplicate_slides=sum(len(group.members) for group in groups),
            threshold=threshold,
        )
        logger.info(
            f"Duplicate detection: {stats.group_count} groups "
            f"({stats.duplicate_slides} slides) in {stats.total_slides} slides at threshold {threshold}"
        )
        return DuplicateReport(stats=stats, groups=groups)

    def matches_for(
        self,
        corpus: Iterable[SlideDraft],
        target: Optional[SlideDraft] = None,
        text: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> List[DuplicateMatch]:
        """
        Find every corpus slide similar to one target slide or a raw text.

        Args:
            corpus: Slides to compare against (the target itself is skipped)
            target: Target slide; enables the exact-source shortcut
            text: Raw text, used when no target slide is given

        Returns:
            Matches meeting the threshold, by descending similarity
        """
        if target is None and text is None:
            raise ValueError("Either a target slide or a text is required")

        threshold = self.threshold if threshold is None else threshold
        target_tokens = tokenize(target.extracted_text if target is not None else text)

        matches: List[DuplicateMatch] = []
        for slide in corpus:
            if target is not None and slide.id == target.id:
                continue
            exact = target is not None and same_source(target, slide)
            score = 1.0 if exact else jaccard(target_tokens, tokenize(slide.extracted_text))
            if score >= threshold:
                matches.append(
                    DuplicateMatch(
                        slide_id=slide.id,
                        similarity=score,
                        is_exact_duplicate=exact,
                        title=slide.title,
                    )
                )
        matches.sort(key=lambda m: -m.similarity)
        return matches

    @staticmethod
    def _member(slide: SlideDraft, similarity: float) -> DuplicateMember:
        return DuplicateMember(
            slide_id=slide.id,
            similarity=similarity,
            title=slide.title,
            image_ref=slide.image_ref,
            is_active=slide.is_active,
        )
