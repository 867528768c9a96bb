"""Tests for the page splitter."""

from office_ingest.pipeline.splitter import PAGE_MARKER, split_chunks, split_pages

from .conftest import MARKER_LINE


class TestSplitPages:
    """Tests for split_pages()."""

    def test_two_pages(self, sample_document_text):
        """Each marker closes one page; marker lines are removed."""
        pages = list(split_pages(sample_document_text))

        assert len(pages) == 2
        assert pages[0].startswith("EXPLANATION OF BENEFITS")
        assert pages[1].startswith("Check # 100235")
        assert all(PAGE_MARKER not in page for page in pages)

    def test_empty_text(self):
        assert list(split_pages("")) == []

    def test_no_marker_yields_nothing(self):
        """An unterminated document is dropped by default."""
        assert list(split_pages("just some text\nwithout markers")) == []

    def test_trailing_text_dropped(self):
        text = "page one\n" + MARKER_LINE.format(n=1) + "\ntrailing footer"
        assert list(split_pages(text)) == ["page one"]

    def test_trailing_text_kept_when_requested(self):
        text = "page one\n" + MARKER_LINE.format(n=1) + "\ntrailing footer"
        assert list(split_pages(text, keep_trailing=True)) == ["page one", "trailing footer"]

    def test_blank_pages_skipped(self):
        """Consecutive markers do not produce empty chunks."""
        text = "\n".join(
            ["first", MARKER_LINE.format(n=1), "   ", MARKER_LINE.format(n=2), "third", MARKER_LINE.format(n=3)]
        )
        assert list(split_pages(text)) == ["first", "third"]

    def test_crlf_line_endings(self):
        text = "line a\r\nline b\r\n" + MARKER_LINE.format(n=1) + "\r\n"
        assert list(split_pages(text)) == ["line a\nline b"]

    def test_marker_must_start_the_line(self):
        """A marker in the middle of a line is ordinary text."""
        text = f"total {PAGE_MARKER}\n" + MARKER_LINE.format(n=1)
        assert list(split_pages(text)) == [f"total {PAGE_MARKER}"]

    def test_page_content_is_trimmed(self):
        text = "\n\n   padded page   \n\n" + MARKER_LINE.format(n=1)
        assert list(split_pages(text)) == ["padded page"]

    def test_custom_marker(self):
        assert list(split_pages("a\n--END\nb\n--END", marker="--END")) == ["a", "b"]


class TestSplitChunks:
    """Tests for split_chunks()."""

    def test_indices_are_zero_based_and_ordered(self, sample_document_text):
        chunks = split_chunks(sample_document_text)

        assert [c.index for c in chunks] == [0, 1]
        assert "100234" in chunks[0].text
        assert "100235" in chunks[1].text

    def test_many_pages(self):
        text = "\n".join(f"page {i}\n{MARKER_LINE.format(n=i)}" for i in range(12))
        chunks = split_chunks(text)

        assert len(chunks) == 12
        assert chunks[7].text == "page 7"
