"""Tests for file-content extractors."""

import io
from datetime import datetime
from unittest.mock import MagicMock

import openpyxl
import pytest

from office_ingest.extractors import (
    DelimitedTextExtractor,
    DelimiterType,
    ExcelExtractor,
    ExtractorRouter,
    FileType,
    PdfOcrExtractor,
    PlainTextExtractor,
    decode_text,
    detect_delimiter,
    detect_file_type,
    split_delimited,
)
from office_ingest.ocr_client import OCRAPIError
from office_ingest.pipeline.errors import TextExtractionError, UnsupportedFileTypeError
from office_ingest.pipeline.splitter import PAGE_MARKER, split_chunks


def workbook_bytes() -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Pagos"
    sheet.append(["check_number", "patient", "amount", "date"])
    sheet.append(["100234", "John Doe", 100.5, datetime(2024, 1, 15)])
    sheet.append(["100235", "Ann Poe", 80, None])
    workbook.create_sheet("Vacia")
    notes = workbook.create_sheet("Notas")
    notes["A1"] = "revisado"
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestFileTypeDetection:
    """Tests for detect_file_type()."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("a.csv", FileType.CSV),
            ("a.XLSX", FileType.EXCEL),
            ("a.xls", FileType.EXCEL),
            ("a.pdf", FileType.PDF),
            ("a.txt", FileType.TEXT),
        ],
    )
    def test_by_extension(self, name, expected):
        assert detect_file_type(name, b"") == expected

    def test_by_magic_bytes(self):
        assert detect_file_type("upload", b"PK\x03\x04rest") == FileType.EXCEL
        assert detect_file_type("upload", b"%PDF-1.7") == FileType.PDF
        assert detect_file_type("upload", b"plain words here") == FileType.TEXT
        assert detect_file_type("upload", b"\x00\x01\x02\x03\x04") == FileType.UNKNOWN
        assert detect_file_type("upload", b"ab") == FileType.UNKNOWN


class TestDecodeText:
    """Tests for decode_text()."""

    def test_utf8_with_bom(self):
        assert decode_text("\ufeffPágina".encode("utf-8")) == "Página"

    def test_latin1_fallback(self):
        assert decode_text("Página".encode("latin-1")) == "Página"

    def test_binary_rejected(self):
        with pytest.raises(TextExtractionError):
            decode_text(b"\x00\x01\x02binary")


class TestDelimitedText:
    """Tests for CSV paging."""

    def test_detect_delimiter(self):
        assert detect_delimiter("a,b,c\n1,2,3") == DelimiterType.COMMA
        assert detect_delimiter("a;b;c\n1;2;3") == DelimiterType.SEMICOLON
        assert detect_delimiter("a\tb\n1\t2") == DelimiterType.TAB
        assert detect_delimiter("no separators") == DelimiterType.UNKNOWN
        assert detect_delimiter("") == DelimiterType.UNKNOWN

    def test_pages_repeat_header(self):
        text = "h1,h2\n" + "\n".join(f"{i},x" for i in range(25))

        pages = split_delimited(text, DelimiterType.COMMA, rows_per_page=10)

        assert len(pages) == 3
        assert all(page.startswith("h1,h2\n") for page in pages)
        assert pages[2].count("\n") == 5

    def test_extractor_output_splits_into_chunks(self):
        content = ("check,amount\n" + "\n".join(f"{i},1.00" for i in range(12))).encode()

        extracted = DelimitedTextExtractor().extract("pagos.csv", content, FileType.CSV)
        chunks = split_chunks(extracted.text)

        assert extracted.page_count == 2
        assert len(chunks) == 2
        assert chunks[1].text == "check,amount\n10,1.00\n11,1.00"


class TestPlainText:
    """Tests for PlainTextExtractor."""

    def test_single_page(self):
        extracted = PlainTextExtractor().extract("a.txt", b"hello\nworld\n", FileType.TEXT)

        assert extracted.page_count == 1
        assert [c.text for c in split_chunks(extracted.text)] == ["hello\nworld"]

    def test_existing_markers_kept(self, sample_document_text):
        extracted = PlainTextExtractor().extract(
            "ocr.txt", sample_document_text.encode("utf-8"), FileType.TEXT
        )

        assert extracted.text == sample_document_text
        assert extracted.page_count == 2

    def test_empty_file(self):
        extracted = PlainTextExtractor().extract("a.txt", b"   ", FileType.TEXT)
        assert split_chunks(extracted.text) == []


class TestExcel:
    """Tests for ExcelExtractor."""

    def test_one_page_per_non_empty_sheet(self):
        extracted = ExcelExtractor().extract("pagos.xlsx", workbook_bytes(), FileType.EXCEL)
        chunks = split_chunks(extracted.text)

        assert extracted.page_count == 2
        assert len(chunks) == 2
        lines = chunks[0].text.split("\n")
        assert lines[0] == "=== HOJA: Pagos ==="
        assert lines[1] == "check_number\tpatient\tamount\tdate"
        assert lines[2] == "100234\tJohn Doe\t100.5\t2024-01-15"
        assert lines[3] == "100235\tAnn Poe\t80"
        assert "100235\tAnn Poe\t80\t\n" in extracted.text
        assert chunks[1].text.startswith("=== HOJA: Notas ===")

    def test_corrupt_workbook(self):
        with pytest.raises(TextExtractionError):
            ExcelExtractor().extract("bad.xlsx", b"PK\x03\x04not really a zip", FileType.EXCEL)


class TestPdfOcr:
    """Tests for PdfOcrExtractor."""

    def test_delegates_to_ocr(self):
        ocr = MagicMock()
        ocr.extract_text.return_value = f"page one\n{PAGE_MARKER} 1 ---\n"

        extracted = PdfOcrExtractor(ocr).extract("eob.pdf", b"%PDF", FileType.PDF)

        ocr.extract_text.assert_called_once_with("eob.pdf", b"%PDF")
        assert extracted.page_count == 1
        assert extracted.extractor == "pdf_ocr"

    def test_ocr_failure(self):
        ocr = MagicMock()
        ocr.extract_text.side_effect = OCRAPIError(503, "Service Unavailable")

        with pytest.raises(TextExtractionError, match="OCR failed"):
            PdfOcrExtractor(ocr).extract("eob.pdf", b"%PDF", FileType.PDF)


class TestExtractorRouter:
    """Tests for ExtractorRouter."""

    def test_routes_by_type(self):
        router = ExtractorRouter()

        assert router.extract("a.csv", b"a,b\n1,2").extractor == "delimited_text"
        assert router.extract("a.txt", b"text").extractor == "plain_text"
        assert router.extract("a.xlsx", workbook_bytes()).extractor == "excel"

    def test_pdf_needs_ocr_client(self):
        with pytest.raises(UnsupportedFileTypeError):
            ExtractorRouter().extract("a.pdf", b"%PDF-1.4")

        ocr = MagicMock()
        ocr.extract_text.return_value = "x"
        assert ExtractorRouter(ocr_client=ocr).extract("a.pdf", b"%PDF-1.4").extractor == "pdf_ocr"

    def test_unknown_type(self):
        with pytest.raises(UnsupportedFileTypeError):
            ExtractorRouter().extract("blob.bin", b"\x00\x01\x02\x03\x04\x05")
