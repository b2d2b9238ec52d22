"""Unit tests for the PDF text extractor

Tests cover:
- Page segments from pdfplumber (mocked)
- Plain text documents
- Fallback segment for unreadable or unsupported documents
- Empty documents rejected before extraction
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from domain.documents.models import RawDocument
from domain.errors import InvalidDocumentError
from infrastructure.extractors.pdf_text_extractor import FALLBACK_MARKER, PDFTextExtractor, is_fallback

FIXED_NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def extractor():
    return PDFTextExtractor(clock=lambda: FIXED_NOW)


def mock_pdf(*page_texts):
    pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pages.append(page)
    pdf = MagicMock()
    pdf.pages = pages
    pdf.__enter__.return_value = pdf
    pdf.__exit__.return_value = False
    return pdf


class TestPdfExtraction:
    """Test text extraction from PDF pages"""

    def test_one_segment_per_page(self, extractor):
        doc = RawDocument(content=b"%PDF-1.4 fake", file_name="inv.pdf")
        with patch("infrastructure.extractors.pdf_text_extractor.pdfplumber.open",
                   return_value=mock_pdf("Page one", "Page two")):
            segments = extractor.extract(doc)

        assert segments == ["Page one", "Page two"]
        assert is_fallback(segments) is False

    def test_blank_pages_skipped(self, extractor):
        doc = RawDocument(content=b"%PDF-1.4 fake", file_name="inv.pdf")
        with patch("infrastructure.extractors.pdf_text_extractor.pdfplumber.open",
                   return_value=mock_pdf("Page one", None, "   ")):
            segments = extractor.extract(doc)

        assert segments == ["Page one"]

    def test_pdf_without_text_falls_back(self, extractor):
        doc = RawDocument(content=b"%PDF-1.4 scanned", file_name="scan.pdf")
        with patch("infrastructure.extractors.pdf_text_extractor.pdfplumber.open",
                   return_value=mock_pdf(None)):
            segments = extractor.extract(doc)

        assert is_fallback(segments)
        assert "No text could be extracted" in segments[0]


class TestFallback:
    """Test fallback segment for unreadable documents"""

    def test_corrupt_pdf_produces_invoice_shaped_segment(self, extractor):
        """Test unparseable bytes give one segment with INVOICE and ERROR: tokens"""
        doc = RawDocument(content=b"this is not a pdf Total $1,234.50", file_name="broken.pdf")

        segments = extractor.extract(doc)

        assert len(segments) == 1
        segment = segments[0]
        assert segment.startswith(FALLBACK_MARKER)
        assert "INVOICE" in segment
        assert "ERROR:" in segment
        assert "FILE: broken.pdf" in segment
        assert f"TIMESTAMP: {FIXED_NOW.isoformat()}" in segment
        assert "Amount: $1234.50" in segment
        assert "Invoice #: FALLBACK-" in segment

    def test_truncated_pdf_header_falls_back(self, extractor):
        """Test a PDF header followed by plain text still yields the fallback segment"""
        doc = RawDocument(
            content=b"%PDF-1.4\nINVOICE\nAmount: $1000.00",
            media_type="application/pdf",
            file_name="truncated.pdf",
        )

        segments = extractor.extract(doc)

        assert len(segments) == 1
        assert is_fallback(segments)
        assert "INVOICE" in segments[0]
        assert "ERROR:" in segments[0]
        assert "Amount: $1000.00" in segments[0]

    def test_fallback_is_deterministic(self, extractor):
        doc = RawDocument(content=b"garbage bytes", file_name="x.pdf")
        assert extractor.extract(doc) == extractor.extract(doc)

    def test_unsupported_media_type(self, extractor):
        doc = RawDocument(content=b"\x89PNG...", media_type="image/png", file_name="photo.png")

        segments = extractor.extract(doc)

        assert is_fallback(segments)
        assert "Unsupported media type: image/png" in segments[0]
        assert "Amount: $0.00" in segments[0]


class TestPlainText:
    """Test text/plain documents"""

    def test_plain_text_single_segment(self, extractor):
        doc = RawDocument(content=b"  Invoice #: 42\nTotal: $10.00  ", media_type="text/plain; charset=utf-8")
        assert extractor.extract(doc) == ["Invoice #: 42\nTotal: $10.00"]

    def test_whitespace_only_text_falls_back(self, extractor):
        doc = RawDocument(content=b"   \n ", media_type="text/plain")
        assert is_fallback(extractor.extract(doc))


class TestEmptyDocument:
    """Test zero-length input"""

    def test_empty_document_rejected(self, extractor):
        with pytest.raises(InvalidDocumentError) as exc_info:
            extractor.extract(RawDocument(content=b"", file_name="empty.pdf"))
        assert exc_info.value.kind == "INVALID_DOCUMENT"


class TestDescribe:
    """Test document metadata"""

    def test_plain_text_metadata(self, extractor):
        doc = RawDocument(content=b"hello", media_type="text/plain", file_name="a.txt")
        metadata = extractor.describe(doc)
        assert metadata.file_name == "a.txt"
        assert metadata.page_count == 1
        assert metadata.size_bytes == 5

    def test_pdf_page_count(self, extractor):
        doc = RawDocument(content=b"%PDF-1.4 fake", file_name="inv.pdf")
        with patch("infrastructure.extractors.pdf_text_extractor.pdfplumber.open",
                   return_value=mock_pdf("a", "b", "c")):
            assert extractor.describe(doc).page_count == 3
