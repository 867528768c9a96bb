"""
Plain-text and delimited-text extractors.

Delimited files (CSV, TSV, semicolon-separated) are cut into pages of at
most ROWS_PER_PAGE data rows, each repeating the header line so the
assistant sees column names on every page.
"""

import logging
from enum import Enum
from typing import Optional

from ..pipeline.splitter import PAGE_MARKER
from .base import BaseExtractor, ExtractedText, FileType, join_pages
from .file_type import decode_text

logger = logging.getLogger(__name__)

ROWS_PER_PAGE = 10
DELIMITER_SAMPLE_LINES = 10


class DelimiterType(str, Enum):
    UNKNOWN = ""
    COMMA = ","
    SEMICOLON = ";"
    TAB = "\t"


def detect_delimiter(text: str) -> DelimiterType:
    """
    Guess the column separator from the first lines.

    Tabs win ties, then semicolons, then commas.
    """
    if not text or not text.strip():
        return DelimiterType.UNKNOWN

    commas = semicolons = tabs = 0
    for line in text.split("\n")[:DELIMITER_SAMPLE_LINES]:
        if not line.strip():
            continue
        commas += line.count(",")
        semicolons += line.count(";")
        tabs += line.count("\t")

    if tabs > 0 and tabs >= commas and tabs >= semicolons:
        return DelimiterType.TAB
    if semicolons > 0 and semicolons >= commas:
        return DelimiterType.SEMICOLON
    if commas > 0:
        return DelimiterType.COMMA
    return DelimiterType.UNKNOWN


def split_delimited(
    text: str,
    delimiter: DelimiterType,
    rows_per_page: int = ROWS_PER_PAGE,
) -> list[str]:
    """
    Split delimited text into pages of header + up to rows_per_page rows.

    Text with an unknown delimiter, or with no data rows, is one page.
    """
    if not text or not text.strip() or delimiter == DelimiterType.UNKNOWN:
        return [text]

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if len(lines) <= 1:
        return [text]

    header, rows = lines[0], lines[1:]
    return [
        "\n".join([header, *rows[i : i + rows_per_page]])
        for i in range(0, len(rows), rows_per_page)
    ]


class DelimitedTextExtractor(BaseExtractor):
    """CSV and other delimited text, paged by row count."""

    def __init__(self, rows_per_page: int = ROWS_PER_PAGE):
        self.rows_per_page = rows_per_page

    @property
    def name(self) -> str:
        return "delimited_text"

    @property
    def priority(self) -> int:
        return 50

    def can_extract(self, file_type: FileType, file_bytes: Optional[bytes] = None) -> bool:
        return file_type == FileType.CSV

    def extract(self, file_name: str, file_bytes: bytes, file_type: FileType) -> ExtractedText:
        text = decode_text(file_bytes)
        delimiter = detect_delimiter(text)
        pages = [p for p in split_delimited(text, delimiter, self.rows_per_page) if p.strip()]
        logger.debug(
            "Split %s into %d pages (delimiter=%r)", file_name, len(pages), delimiter.value
        )
        return ExtractedText(
            text=join_pages(pages),
            file_type=file_type,
            extractor=self.name,
            page_count=len(pages),
        )


class PlainTextExtractor(BaseExtractor):
    """
    Plain text files.

    Text that already carries page markers (e.g. a saved OCR result) is kept
    as is. Otherwise the whole file becomes a single page.
    """

    @property
    def name(self) -> str:
        return "plain_text"

    @property
    def priority(self) -> int:
        return 10

    def can_extract(self, file_type: FileType, file_bytes: Optional[bytes] = None) -> bool:
        return file_type == FileType.TEXT

    def extract(self, file_name: str, file_bytes: bytes, file_type: FileType) -> ExtractedText:
        text = decode_text(file_bytes)
        marker_count = sum(
            1 for line in text.splitlines() if line.startswith(PAGE_MARKER)
        )
        if marker_count:
            return ExtractedText(
                text=text, file_type=file_type, extractor=self.name, page_count=marker_count
            )

        pages = [text.strip()] if text.strip() else []
        return ExtractedText(
            text=join_pages(pages),
            file_type=file_type,
            extractor=self.name,
            page_count=len(pages),
        )
