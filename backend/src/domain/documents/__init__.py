"""Documents domain module - raw documents, metadata and upload validation"""

from .models import RawDocument, DocumentMetadata
from .validation import (
    validate_file_size,
    validate_filename,
)

__all__ = [
    "RawDocument",
    "DocumentMetadata",
    "validate_file_size",
    "validate_filename",
]
