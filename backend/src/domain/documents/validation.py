"""Upload checks for invoice documents

Only emptiness, size and the filename are rejected at upload time. Any media
type is accepted because the text extractor degrades to a fallback segment.
Each check returns ``(is_valid, error_message)``.
"""

from typing import Optional, Tuple

MAX_FILENAME_LENGTH = 255

Check = Tuple[bool, Optional[str]]


def validate_file_size(size_bytes: int, max_size: int) -> Check:
    """Reject empty uploads and uploads above ``max_size`` bytes.

    >>> validate_file_size(0, 1024)
    (False, 'File is empty (0 bytes)')
    """
    if size_bytes <= 0:
        return False, "File is empty (0 bytes)"
    if size_bytes > max_size:
        return False, f"File exceeds maximum size of {max_size} bytes (got {size_bytes} bytes)"
    return True, None


def validate_filename(filename: Optional[str]) -> Check:
    """Reject names that are blank, overlong, or could escape the upload directory."""
    if not filename or not filename.strip():
        return False, "Filename cannot be empty"

    if len(filename) > MAX_FILENAME_LENGTH:
        return False, f"Filename exceeds {MAX_FILENAME_LENGTH} characters (got {len(filename)})"

    if ".." in filename or "/" in filename or "\\" in filename:
        return False, "Filename contains path traversal or directory separators"

    if "\x00" in filename:
        return False, "Filename contains null bytes"

    if any(ord(ch) < 32 for ch in filename):
        return False, "Filename contains control characters"

    return True, None
