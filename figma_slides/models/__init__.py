from .figma import FigmaClient, parse_figma_url, resolve_document_ref

__all__ = ["FigmaClient", "parse_figma_url", "resolve_document_ref"]
