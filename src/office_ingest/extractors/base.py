"""
Base extractor interface and common types.

An extractor turns uploaded file bytes into document text in which every
page ends with a PAGE_MARKER line, ready for the page splitter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..pipeline.splitter import PAGE_MARKER


class FileType(str, Enum):
    """Supported upload types."""

    UNKNOWN = "unknown"
    CSV = "csv"
    EXCEL = "excel"
    PDF = "pdf"
    TEXT = "text"


@dataclass
class ExtractedText:
    """Text extracted from one file."""

    text: str
    file_type: FileType
    extractor: str  # Extractor name, for timings and logs
    page_count: int = 0


def page_break(index: int) -> str:
    """Separator line closing page `index` (1-based)."""
    return f"{PAGE_MARKER} {index} -------------------------"


def join_pages(pages: list[str]) -> str:
    """Join pages, closing every page with a separator line."""
    parts = []
    for i, page in enumerate(pages, start=1):
        parts.append(page)
        parts.append(page_break(i))
    return "\n".join(parts)


class BaseExtractor(ABC):
    """
    Base class for all extractors.

    Each extractor handles one family of file types:
    - Delimited / plain text
    - Excel workbooks
    - PDF via the OCR service
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor name for logging and timings."""
        pass

    @property
    @abstractmethod
    def priority(self) -> int:
        """
        Priority for extractor selection.
        Higher = tried first.
        """
        pass

    @abstractmethod
    def can_extract(self, file_type: FileType, file_bytes: Optional[bytes] = None) -> bool:
        """
        Check if this extractor handles the detected file type.

        Args:
            file_type: Type detected from name and content
            file_bytes: Original file bytes

        Returns:
            True if this extractor should be used
        """
        pass

    @abstractmethod
    def extract(self, file_name: str, file_bytes: bytes, file_type: FileType) -> ExtractedText:
        """
        Extract paged text from a file.

        Raises:
            TextExtractionError: If no usable text could be produced
        """
        pass
