"""
Excel workbook extractor (openpyxl).

Each non-empty worksheet becomes one page:

    === HOJA: <sheet name> ===
    <cell>\t<cell>\t...

Dates are rendered as YYYY-MM-DD.
"""

import io
import logging
import zipfile
from datetime import date, datetime
from typing import Any, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..pipeline.errors import TextExtractionError
from .base import BaseExtractor, ExtractedText, FileType, join_pages

logger = logging.getLogger(__name__)

SHEET_HEADER = "=== HOJA: {name} ==="


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value)


def worksheet_text(worksheet) -> Optional[str]:
    """Render one worksheet, or None if it holds no values."""
    rows = [
        [format_cell(v) for v in row]
        for row in worksheet.iter_rows(values_only=True)
    ]
    if not any(cell for row in rows for cell in row):
        return None

    lines = [SHEET_HEADER.format(name=worksheet.title)]
    lines.extend("\t".join(row) for row in rows)
    return "\n".join(lines)


class ExcelExtractor(BaseExtractor):
    """Extract worksheets as tab-separated pages."""

    @property
    def name(self) -> str:
        return "excel"

    @property
    def priority(self) -> int:
        return 60

    def can_extract(self, file_type: FileType, file_bytes: Optional[bytes] = None) -> bool:
        return file_type == FileType.EXCEL

    def extract(self, file_name: str, file_bytes: bytes, file_type: FileType) -> ExtractedText:
        try:
            workbook = openpyxl.load_workbook(
                io.BytesIO(file_bytes), data_only=True, read_only=True
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise TextExtractionError(f"Error reading Excel content: {e}") from e

        try:
            pages = [
                text
                for text in (worksheet_text(ws) for ws in workbook.worksheets)
                if text is not None
            ]
        finally:
            workbook.close()

        logger.debug("Extracted %d sheets from %s", len(pages), file_name)
        return ExtractedText(
            text=join_pages(pages),
            file_type=file_type,
            extractor=self.name,
            page_count=len(pages),
        )
