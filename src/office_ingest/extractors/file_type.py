"""
File type detection and text decoding.
"""

from pathlib import PurePath
from typing import Optional

from ..pipeline.errors import TextExtractionError
from .base import FileType

EXTENSION_TYPES = {
    ".csv": FileType.CSV,
    ".xlsx": FileType.EXCEL,
    ".xls": FileType.EXCEL,
    ".pdf": FileType.PDF,
    ".txt": FileType.TEXT,
}

# Content sniffing looks at this many leading bytes
SNIFF_BYTES = 1000

# Latin-1 stands in for the platform default encoding; it decodes any byte
TEXT_ENCODINGS = ("utf-8", "ascii", "latin-1")


def is_valid_text(text: str) -> bool:
    """Reject control characters other than tab, CR and LF."""
    return all(ch >= " " or ch in "\t\n\r" for ch in text)


def detect_file_type(file_name: str, content: bytes) -> FileType:
    """
    Detect a file's type from its extension, falling back to magic bytes.

    PK (zip) is treated as Excel, %PDF as PDF, and anything that decodes as
    clean UTF-8 text as plain text.
    """
    extension = PurePath(file_name).suffix.lower()
    if extension in EXTENSION_TYPES:
        return EXTENSION_TYPES[extension]
    return detect_by_magic_bytes(content)


def detect_by_magic_bytes(content: bytes) -> FileType:
    if len(content) < 4:
        return FileType.UNKNOWN
    if content[:2] == b"PK":
        return FileType.EXCEL
    if content[:4] == b"%PDF":
        return FileType.PDF

    sample = content[:SNIFF_BYTES].decode("utf-8", errors="ignore")
    if sample and is_valid_text(sample):
        return FileType.TEXT
    return FileType.UNKNOWN


def decode_text(content: bytes, encodings: Optional[tuple[str, ...]] = None) -> str:
    """
    Decode text trying each encoding in turn.

    A decoding is accepted only if the result contains no stray control
    characters. A leading UTF-8 BOM is removed.

    Raises:
        TextExtractionError: If no encoding yields valid text
    """
    for encoding in encodings or TEXT_ENCODINGS:
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError:
            continue
        text = text.lstrip("\ufeff")
        if is_valid_text(text):
            return text
    raise TextExtractionError("Could not extract valid text from file")
