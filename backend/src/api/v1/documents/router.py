"""Document text extraction endpoint.

POST /api/v1/documents/extract-text turns an uploaded PDF (or plain text)
into text segments ready for /api/v1/invoices/parse. Unreadable documents
still produce a response: a single fallback segment flagged with
``fallback: true`` so the review workflow can continue by hand.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from config import get_settings
from dependencies import get_actor_id, get_text_extractor
from domain.documents.models import RawDocument
from domain.documents.validation import validate_file_size, validate_filename
from domain.errors import InputValidationError, InvalidDocumentError
from infrastructure.extractors.pdf_text_extractor import PDFTextExtractor, is_fallback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


@router.post("/extract-text")
async def extract_text(
    file: UploadFile = File(...),
    actor_id: str = Depends(get_actor_id),
    extractor: PDFTextExtractor = Depends(get_text_extractor),
):
    """Extract text segments from an uploaded document.

    Returns:
        dict: success, segments, metadata and the fallback flag

    Raises:
        InputValidationError: If the file name is invalid or the size is
            over MAX_UPLOAD_SIZE_BYTES
        InvalidDocumentError: If the upload has zero bytes
    """
    file_name = file.filename or ""
    is_valid, error = validate_filename(file_name)
    if not is_valid:
        raise InputValidationError(error)

    content = await file.read()
    if not content:
        raise InvalidDocumentError(f"Document '{file_name}' is empty (0 bytes)")
    is_valid, error = validate_file_size(len(content), get_settings().MAX_UPLOAD_SIZE_BYTES)
    if not is_valid:
        raise InputValidationError(error)

    document = RawDocument(
        content=content,
        media_type=file.content_type or "application/octet-stream",
        file_name=file_name,
    )

    # pdfplumber is blocking
    segments = await run_in_threadpool(extractor.extract, document)
    metadata = await run_in_threadpool(extractor.describe, document)
    fallback = is_fallback(segments)

    logger.info(
        f"Extracted {len(segments)} segments from {file_name} (fallback={fallback})",
        extra={"actor_id": actor_id},
    )
    return {
        "success": not fallback,
        "segments": segments,
        "metadata": {
            "fileName": metadata.file_name,
            "mediaType": document.media_type,
            "pageCount": metadata.page_count,
            "sizeBytes": metadata.size_bytes,
        },
        "fallback": fallback,
    }
