"""
Slide Library Schemas

Pydantic models for the Figma node tree, ingestion results, persisted slide
drafts and duplicate detection reports.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import uuid

from ..constants import UNSET_SENTINELS


def normalize_unset(value: Any) -> Any:
    """Map None / empty string / "none" to None, strip other strings."""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lower() in UNSET_SENTINELS:
            return None
        return stripped
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Node tree
# ---------------------------------------------------------------------------

class BoundingBox(BaseModel):
    """Absolute bounding box of a node, in design-tool pixels."""
    width: float
    height: float


class FigmaNode(BaseModel):
    """
    One node of a Figma document tree.

    Built from the raw API payload with `from_api`, which never raises for
    malformed content fields. Problems are recorded in `issues` so that the
    text extractor can reject only the affected frame.
    """
    id: str
    type: str
    name: str = ""
    children: List["FigmaNode"] = Field(default_factory=list)
    bounding_box: Optional[BoundingBox] = None
    text_content: Optional[str] = None
    font_size: Optional[float] = None
    font_weight: Optional[float] = None
    issues: List[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "FigmaNode":
        """
        Build a node tree from a Figma API `document` payload.

        Args:
            raw: Node dict as returned by /files or /files/{id}/nodes

        Returns:
            Root FigmaNode
        """
        if not isinstance(raw, dict):
            raise ValueError("Figma node payload must be an object")

        root = cls._from_fields(raw)
        stack = [(raw, root)]
        while stack:
            raw_node, node = stack.pop()
            raw_children = raw_node.get("children")
            if raw_children is None:
                continue
            if not isinstance(raw_children, list):
                node.issues.append("children is not a list")
                continue
            built = []
            for raw_child in raw_children:
                if not isinstance(raw_child, dict):
                    node.issues.append("malformed child entry")
                    continue
                child = cls._from_fields(raw_child)
                node.children.append(child)
                built.append((raw_child, child))
            stack.extend(reversed(built))
        return root

    @classmethod
    def _from_fields(cls, raw: Dict[str, Any]) -> "FigmaNode":
        issues: List[str] = []

        node_id = raw.get("id")
        if not isinstance(node_id, str) or not node_id:
            issues.append("missing id")
            node_id = ""

        node_type = raw.get("type")
        if not isinstance(node_type, str) or not node_type:
            node_type = "UNKNOWN"

        name = raw.get("name")
        if not isinstance(name, str):
            name = ""

        bounding_box = None
        raw_box = raw.get("absoluteBoundingBox", raw.get("boundingBox"))
        if raw_box is not None:
            try:
                bounding_box = BoundingBox(width=raw_box["width"], height=raw_box["height"])
            except (KeyError, TypeError, ValueError):
                issues.append("invalid bounding box")

        text_content = None
        raw_text = raw.get("characters", raw.get("textContent"))
        if isinstance(raw_text, str):
            text_content = raw_text
        elif raw_text is not None:
            issues.append("text content is not a string")

        font_size = None
        font_weight = None
        style = raw.get("style")
        if isinstance(style, dict):
            if isinstance(style.get("fontSize"), (int, float)):
                font_size = float(style["fontSize"])
            if isinstance(style.get("fontWeight"), (int, float)):
                font_weight = float(style["fontWeight"])

        return cls(
            id=node_id,
            type=node_type.upper(),
            name=name,
            bounding_box=bounding_box,
            text_content=text_content,
            font_size=font_size,
            font_weight=font_weight,
            issues=issues,
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class CandidateFlags(BaseModel):
    """Independent predicates evaluated for a candidate frame."""
    is_large_enough: bool
    is_standard_size: bool
    has_plausible_name: bool
    is_probably_slide: bool
    is_top_level: bool


class CandidateSlide(BaseModel):
    """A scored frame that may be a slide. Transient, never persisted."""
    node_id: str
    name: str
    width: float
    height: float
    depth: int
    score: int
    flags: CandidateFlags
    path: str = ""
    page_id: Optional[str] = None
    page_name: Optional[str] = None
    child_count: int = 0
    node: Optional[FigmaNode] = Field(default=None, exclude=True, repr=False)


# ---------------------------------------------------------------------------
# Slide records
# ---------------------------------------------------------------------------

_METADATA_STRING_FIELDS = (
    "status", "format", "language", "region",
    "domain", "department", "author_name",
)


class SlideMetadataFields(BaseModel):
    """Structured metadata of a slide. Unset values are stored as None."""
    status: Optional[str] = None
    format: Optional[str] = None
    language: Optional[str] = None
    region: Optional[str] = None
    domain: Optional[str] = None
    department: Optional[str] = None
    author_name: Optional[str] = None
    is_case_study: bool = False
    year_start: Optional[int] = None
    year_finish: Optional[int] = None
    solution_area_codes: List[str] = Field(default_factory=list)

    @field_validator(*_METADATA_STRING_FIELDS, mode="before")
    @classmethod
    def _normalize_strings(cls, value: Any) -> Any:
        return normalize_unset(value)

    @field_validator("is_case_study", mode="before")
    @classmethod
    def _normalize_flag(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("year_start", "year_finish", mode="before")
    @classmethod
    def _normalize_years(cls, value: Any) -> Any:
        return normalize_unset(value)

    def merged(self, patch: "MetadataPatch") -> "SlideMetadataFields":
        """Return a copy with every field present in `patch` applied."""
        updates = patch.model_dump(exclude_none=True)
        if not updates.get("solution_area_codes"):
            updates.pop("solution_area_codes", None)
        return self.model_copy(update=updates)


class MetadataPatch(BaseModel):
    """Fields the autofiller is confident about. None means "leave as is"."""
    status: Optional[str] = None
    format: Optional[str] = None
    language: Optional[str] = None
    region: Optional[str] = None
    domain: Optional[str] = None
    department: Optional[str] = None
    is_case_study: Optional[bool] = None
    year_start: Optional[int] = None
    year_finish: Optional[int] = None
    solution_area_codes: Optional[List[str]] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class SlideDraft(BaseModel):
    """
    A slide record in the library.

    Imported slides start as drafts (is_active=False) in the moderation queue.
    (source_document_id, source_node_id) is the natural key.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    extracted_text: Optional[str] = None
    source_document_id: str
    source_node_id: str
    source_document_name: Optional[str] = None
    image_ref: Optional[str] = None
    width: float = 0
    height: float = 0
    is_active: bool = False
    metadata: SlideMetadataFields = Field(default_factory=SlideMetadataFields)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("image_ref", "extracted_text", "source_document_name", mode="before")
    @classmethod
    def _normalize_optional(cls, value: Any) -> Any:
        return normalize_unset(value)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class ImageResult(BaseModel):
    """Outcome of the degradation ladder for one node."""
    node_id: str
    image_ref: Optional[str] = None
    scale: Optional[float] = None
    format: str = "jpg"
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image_ref is not None


class NodeError(BaseModel):
    """A recoverable, per-candidate failure."""
    node_id: str
    stage: str
    reason: str


class IngestionResult(BaseModel):
    """Summary of one ingestion run."""
    document_id: str
    document_name: Optional[str] = None
    candidate_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    per_node_errors: List[NodeError] = Field(default_factory=list)
    slide_ids: List[str] = Field(default_factory=list)
    cancelled: bool = False


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------

class DuplicateMember(BaseModel):
    slide_id: str
    similarity: float
    title: Optional[str] = None
    image_ref: Optional[str] = None
    is_active: bool = False


class DuplicateGroup(BaseModel):
    """Slides similar to the group's anchor (the first member)."""
    id: str
    members: List[DuplicateMember]
    max_similarity: float


class DuplicateStats(BaseModel):
    total_slides: int
    group_count: int
    duplicate_slides: int
    threshold: float


class DuplicateReport(BaseModel):
    stats: DuplicateStats
    groups: List[DuplicateGroup]


class DuplicateMatch(BaseModel):
    """A corpus slide similar to a single target slide or text."""
    slide_id: str
    similarity: float
    is_exact_duplicate: bool = False
    title: Optional[str] = None
