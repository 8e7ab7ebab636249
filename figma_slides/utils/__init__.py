"""
Slide Library Utils Package

Schemas shared by the slide library services.
"""

from .schemas import (
    BoundingBox,
    FigmaNode,
    CandidateFlags,
    CandidateSlide,
    SlideMetadataFields,
    MetadataPatch,
    SlideDraft,
    ImageResult,
    NodeError,
    IngestionResult,
    DuplicateMember,
    DuplicateGroup,
    DuplicateStats,
    DuplicateReport,
    DuplicateMatch,
)

__all__ = [
    "BoundingBox",
    "FigmaNode",
    "CandidateFlags",
    "CandidateSlide",
    "SlideMetadataFields",
    "MetadataPatch",
    "SlideDraft",
    "ImageResult",
    "NodeError",
    "IngestionResult",
    "DuplicateMember",
    "DuplicateGroup",
    "DuplicateStats",
    "DuplicateReport",
    "DuplicateMatch",
]
