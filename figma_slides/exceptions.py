"""
Slide library errors.

Fatal-to-run errors (auth, unreachable API) abort an ingestion run,
DocumentTooLargeError aborts the whole-document path only, and the
per-candidate errors are caught by the ingestion service and reported
in the IngestionResult.
"""

from typing import Optional


class SlideLibraryError(Exception):
    """Base class for all slide library errors."""


class InvalidDocumentRefError(SlideLibraryError, ValueError):
    """The document reference is neither a file key nor a Figma URL."""


class FigmaAPIError(SlideLibraryError):
    """The Figma API answered with a non-success status."""

    def __init__(self, status_code: Optional[int], detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = f"Figma API request failed with status {status_code}"
        if detail:
            message += f": {detail[:300]}"
        super().__init__(message)


class FigmaAuthError(FigmaAPIError):
    """Token missing, invalid or not allowed to read the document."""


class MissingTokenError(FigmaAuthError):
    def __init__(self):
        super().__init__(
            None,
            "Figma access token not configured. Set FIGMA_ACCESS_TOKEN or update it in settings.",
        )


class FigmaRequestTooLargeError(FigmaAPIError):
    """The API refused the request because the payload would be too large."""


class FigmaTransientError(FigmaAPIError):
    """5xx / throttling response that is worth retrying."""


class FigmaUnavailableError(FigmaTransientError):
    """Transport-level failure: connection refused, DNS, timeout."""

    def __init__(self, detail: str = ""):
        super().__init__(None, detail)


class DocumentTooLargeError(SlideLibraryError):
    """The whole document cannot be fetched; the caller must select frames."""

    suggestion = (
        "Select specific frames (selected_node_ids) to import, split the file "
        "into smaller files, or move content into separate pages."
    )

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Figma file {document_id} is too large to process as a whole")


class TextExtractionError(SlideLibraryError):
    """A frame subtree is malformed and its text cannot be extracted."""

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Cannot extract text from node {node_id}: {reason}")


class SlideNotFoundError(SlideLibraryError, LookupError):
    def __init__(self, slide_id: str):
        self.slide_id = slide_id
        super().__init__(f"Slide not found: {slide_id}")
