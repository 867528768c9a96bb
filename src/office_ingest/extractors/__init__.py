"""
File-content extractors.

Provides:
- ExtractorRouter: Detects the file type and picks an extractor
- PDF (OCR service), Excel, delimited text and plain text extractors
- Base classes for custom extractors

Every extractor returns text with a page marker line after each page.
"""

from .base import BaseExtractor, ExtractedText, FileType, join_pages, page_break
from .excel_extractor import ExcelExtractor
from .file_type import decode_text, detect_file_type, is_valid_text
from .pdf_extractor import PdfOcrExtractor
from .router import ExtractorRouter
from .text_extractor import (
    DelimitedTextExtractor,
    DelimiterType,
    PlainTextExtractor,
    detect_delimiter,
    split_delimited,
)

__all__ = [
    "ExtractorRouter",
    "BaseExtractor",
    "ExtractedText",
    "FileType",
    "ExcelExtractor",
    "PdfOcrExtractor",
    "DelimitedTextExtractor",
    "PlainTextExtractor",
    "DelimiterType",
    "detect_delimiter",
    "split_delimited",
    "detect_file_type",
    "decode_text",
    "is_valid_text",
    "join_pages",
    "page_break",
]
