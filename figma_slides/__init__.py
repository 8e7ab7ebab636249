"""
Figma Slide Library

Imports slide frames from Figma documents as draft slides and finds
near-duplicate slides across the library.
"""

from .core import (
    DuplicateDetector,
    FigmaTokenProvider,
    FrameClassifier,
    ImageRetriever,
    IngestionSettings,
    IntervalRateLimiter,
    MetadataAutoFiller,
    SlideIngestionService,
    SlideStorageAdapter,
    TextExtractor,
)
from .models import FigmaClient, parse_figma_url
from .orchestrator import SlideLibraryOrchestrator
from .utils.schemas import (
    CandidateSlide,
    DuplicateGroup,
    DuplicateReport,
    FigmaNode,
    IngestionResult,
    SlideDraft,
)

__all__ = [
    "DuplicateDetector",
    "FigmaTokenProvider",
    "FrameClassifier",
    "ImageRetriever",
    "IngestionSettings",
    "IntervalRateLimiter",
    "MetadataAutoFiller",
    "SlideIngestionService",
    "SlideStorageAdapter",
    "TextExtractor",
    "FigmaClient",
    "parse_figma_url",
    "SlideLibraryOrchestrator",
    "CandidateSlide",
    "DuplicateGroup",
    "DuplicateReport",
    "FigmaNode",
    "IngestionResult",
    "SlideDraft",
]
