"""Error taxonomy shared by extraction and learning.

Every error carries a machine-readable ``kind`` and a human-readable message
so API handlers can turn it into a structured failure body.
"""

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured failure object returned to callers instead of a bare exception."""

    kind: str
    message: str


class InvoiceLearnError(Exception):
    """Base exception for extraction and learning operations"""

    kind = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(kind=self.kind, message=self.message)


class InvalidDocumentError(InvoiceLearnError):
    """Empty or unreadable input byte stream"""

    kind = "INVALID_DOCUMENT"


class ProviderFailureError(InvoiceLearnError):
    """A single provider attempt errored or timed out"""

    kind = "PROVIDER_FAILURE"


class ChainExhaustedError(InvoiceLearnError):
    """Every provider in a fallback chain failed or stayed below threshold"""

    kind = "CHAIN_EXHAUSTED"


class InputValidationError(InvoiceLearnError):
    """Required fields missing on correction ingestion or learning actions"""

    kind = "VALIDATION_ERROR"


class NotFoundError(InvoiceLearnError):
    """Referenced matching-history entry or line item does not exist"""

    kind = "NOT_FOUND"
