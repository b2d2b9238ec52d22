"""Extractor implementations - raw text from uploaded documents."""

from .pdf_text_extractor import FALLBACK_MARKER, PDFTextExtractor, is_fallback

__all__ = [
    "FALLBACK_MARKER",
    "PDFTextExtractor",
    "is_fallback",
]
