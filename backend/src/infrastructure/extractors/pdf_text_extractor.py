"""PDF text extractor - raw text segments from uploaded invoices.

Turns a RawDocument into one text segment per page using pdfplumber.
Documents that cannot be read never fail the pipeline: they produce a single
labeled fallback segment shaped like an invoice so downstream parsing and
manual triage still have something to work with.
"""

import hashlib
import io
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

import pdfplumber

from domain.documents.models import DocumentMetadata, RawDocument
from domain.errors import InvalidDocumentError

logger = logging.getLogger(__name__)

FALLBACK_MARKER = "[EXTRACTION_FALLBACK]"

# First currency amount in the raw bytes, e.g. "$1,000.00" or "$ 45.5"
AMOUNT_PATTERN = re.compile(r"\$\s?(\d[\d,]*(?:\.\d{1,2})?)")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_fallback(segments: List[str]) -> bool:
    """True when segments came from the fallback path, not a real parse."""
    return len(segments) == 1 and segments[0].startswith(FALLBACK_MARKER)


class PDFTextExtractor:
    """Text extractor for invoice documents.

    Reads application/pdf with pdfplumber and text/plain as UTF-8. Any other
    media type, or any parser failure, yields exactly one fallback segment.

    Features:
    - One segment per page, in document order, blank pages skipped
    - Deterministic fallback output (injectable clock)
    - No network or storage access
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        """Initialize text extractor.

        Args:
            clock: Returns the timestamp written into fallback segments
        """
        self.clock = clock
        self._readers = {
            "application/pdf": self._read_pdf,
            "text/plain": self._read_text,
        }

    def extract(self, document: RawDocument) -> List[str]:
        """Extract text segments from a document.

        Args:
            document: Raw document bytes plus declared media type

        Returns:
            Non-empty list of text segments

        Raises:
            InvalidDocumentError: If the document has zero bytes
        """
        if document.is_empty:
            raise InvalidDocumentError(f"Document '{document.file_name}' is empty (0 bytes)")

        media_type = self._normalize_media_type(document.media_type)
        reader = self._readers.get(media_type)

        if reader is None:
            logger.warning(f"No text reader for media type: {document.media_type}")
            return [self._fallback_segment(document, f"Unsupported media type: {document.media_type}")]

        try:
            segments = reader(document.content)
            logger.info(
                f"Text extraction succeeded: {len(segments)} segments, "
                f"{sum(len(s) for s in segments)} chars from {document.file_name}"
            )
            return segments
        except Exception as e:
            logger.error(f"Text extraction failed for {document.file_name}: {e}", exc_info=True)
            return [self._fallback_segment(document, str(e) or type(e).__name__)]

    def describe(self, document: RawDocument) -> DocumentMetadata:
        """Document metadata (file name, page count, size) for correction records."""
        page_count = None
        if self._normalize_media_type(document.media_type) == "application/pdf" and not document.is_empty:
            try:
                with pdfplumber.open(io.BytesIO(document.content)) as pdf:
                    page_count = len(pdf.pages)
            except Exception as e:
                logger.warning(f"Could not count pages for {document.file_name}: {e}")
        elif self._normalize_media_type(document.media_type) == "text/plain":
            page_count = 1

        return DocumentMetadata(
            file_name=document.file_name,
            page_count=page_count,
            size_bytes=document.size_bytes,
        )

    def _read_pdf(self, content: bytes) -> List[str]:
        segments = []
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            logger.info(f"Processing PDF with {len(pdf.pages)} pages")
            for page_idx, page in enumerate(pdf.pages, start=1):
                page_text = (page.extract_text() or "").strip()
                if page_text:
                    segments.append(page_text)
                else:
                    logger.debug(f"No text on page {page_idx}")

        if not segments:
            raise ValueError("No text could be extracted from the PDF")
        return segments

    def _read_text(self, content: bytes) -> List[str]:
        text = content.decode("utf-8").strip()
        if not text:
            raise ValueError("Text document contains only whitespace")
        return [text]

    def _fallback_segment(self, document: RawDocument, error: str) -> str:
        """Synthetic invoice-shaped segment describing why extraction failed."""
        digest = hashlib.sha1(document.content).hexdigest()[:8].upper()
        amount = self._first_amount(document.content)

        return "\n".join([
            FALLBACK_MARKER,
            f"ERROR: {error}",
            f"TIMESTAMP: {self.clock().isoformat()}",
            f"FILE: {document.file_name}",
            "",
            "INVOICE",
            f"Invoice #: FALLBACK-{digest}",
            f"Amount: ${amount:.2f}",
        ])

    @staticmethod
    def _first_amount(content: bytes) -> Decimal:
        match = AMOUNT_PATTERN.search(content.decode("latin-1"))
        if not match:
            return Decimal("0")
        try:
            return Decimal(match.group(1).replace(",", ""))
        except InvalidOperation:
            return Decimal("0")

    @staticmethod
    def _normalize_media_type(media_type: Optional[str]) -> str:
        return (media_type or "").split(";")[0].strip().lower()
