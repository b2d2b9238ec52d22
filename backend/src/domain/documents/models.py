"""Document models consumed by the text extractor."""

from typing import Optional

from pydantic import BaseModel, Field


class RawDocument(BaseModel):
    """Binary document as received from the upload transport.

    Zero-length content is legal to construct but rejected by the extractor
    before any parsing is attempted.
    """

    content: bytes
    media_type: str = Field("application/pdf", description="Declared MIME type")
    file_name: str = "document"

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def is_empty(self) -> bool:
        return self.size_bytes == 0


class DocumentMetadata(BaseModel):
    """Source document facts stored with each correction record"""

    file_name: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    size_bytes: Optional[int] = Field(None, ge=0)
