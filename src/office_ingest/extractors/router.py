"""
Extractor router - detects the file type and applies the matching extractor.
"""

import logging
from typing import Optional

from ..ocr_client import OCRClient
from ..pipeline.errors import UnsupportedFileTypeError
from .base import BaseExtractor, ExtractedText, FileType
from .excel_extractor import ExcelExtractor
from .file_type import detect_file_type
from .pdf_extractor import PdfOcrExtractor
from .text_extractor import DelimitedTextExtractor, PlainTextExtractor

logger = logging.getLogger(__name__)


class ExtractorRouter:
    """
    Routes files to the extractor for their type.

    Tries extractors in priority order:
    1. PDF via OCR (only when an OCR client is configured)
    2. Excel workbooks
    3. Delimited text (CSV)
    4. Plain text
    """

    def __init__(
        self,
        ocr_client: Optional[OCRClient] = None,
        extractors: Optional[list[BaseExtractor]] = None,
    ):
        if extractors is None:
            extractors = [ExcelExtractor(), DelimitedTextExtractor(), PlainTextExtractor()]
            if ocr_client is not None:
                extractors.append(PdfOcrExtractor(ocr_client))
        self.extractors = sorted(extractors, key=lambda e: -e.priority)

    def select(self, file_type: FileType, file_bytes: bytes) -> Optional[BaseExtractor]:
        for extractor in self.extractors:
            if extractor.can_extract(file_type, file_bytes):
                return extractor
        return None

    def extract(self, file_name: str, file_bytes: bytes) -> ExtractedText:
        """
        Extract paged text from an uploaded file.

        Raises:
            UnsupportedFileTypeError: If no extractor handles the file
            TextExtractionError: If the extractor fails
        """
        file_type = detect_file_type(file_name, file_bytes)
        extractor = self.select(file_type, file_bytes)
        if extractor is None:
            raise UnsupportedFileTypeError(f"Unsupported file type: {file_type.value}")

        logger.info("Extracting %s as %s with %s", file_name, file_type.value, extractor.name)
        return extractor.extract(file_name, file_bytes, file_type)
