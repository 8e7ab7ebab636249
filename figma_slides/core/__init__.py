"""
Slide Library Core Module

Classification, extraction, autofill, image retrieval, duplicate detection
and the ingestion pipeline.
"""

from .autofill import MetadataAutoFiller
from .classifier import DEFAULT_RULES, FrameClassifier, ScoringRules, evaluate_frame, quality_bucket, summarize
from .config import FigmaTokenProvider, IngestionSettings
from .duplicates import DuplicateDetector, jaccard, tokenize
from .images import ImageRetriever, IntervalRateLimiter, PreviewArchiver
from .ingestion import IngestionStage, SlideIngestionService
from .storage import SlideStorageAdapter
from .text_extraction import TextExtractor

__all__ = [
    "MetadataAutoFiller",
    "DEFAULT_RULES",
    "FrameClassifier",
    "ScoringRules",
    "evaluate_frame",
    "quality_bucket",
    "summarize",
    "FigmaTokenProvider",
    "IngestionSettings",
    "DuplicateDetector",
    "jaccard",
    "tokenize",
    "ImageRetriever",
    "IntervalRateLimiter",
    "PreviewArchiver",
    "IngestionStage",
    "SlideIngestionService",
    "SlideStorageAdapter",
    "TextExtractor",
]
