"""
PDF extractor backed by the OCR service.
"""

import logging
from typing import Optional

from ..ocr_client import OCRClient, OCRError
from ..pipeline.errors import TextExtractionError
from ..pipeline.splitter import PAGE_MARKER
from .base import BaseExtractor, ExtractedText, FileType

logger = logging.getLogger(__name__)


class PdfOcrExtractor(BaseExtractor):
    """Send PDFs to OCR; the service already marks page ends."""

    def __init__(self, ocr_client: OCRClient):
        self.ocr_client = ocr_client

    @property
    def name(self) -> str:
        return "pdf_ocr"

    @property
    def priority(self) -> int:
        return 100

    def can_extract(self, file_type: FileType, file_bytes: Optional[bytes] = None) -> bool:
        return file_type == FileType.PDF

    def extract(self, file_name: str, file_bytes: bytes, file_type: FileType) -> ExtractedText:
        try:
            text = self.ocr_client.extract_text(file_name, file_bytes)
        except OCRError as e:
            raise TextExtractionError(f"OCR failed for {file_name}: {e}") from e

        pages = sum(1 for line in text.splitlines() if line.startswith(PAGE_MARKER))
        logger.info("OCR completed - %d chars, %d pages", len(text), pages)
        return ExtractedText(text=text, file_type=file_type, extractor=self.name, page_count=pages)
