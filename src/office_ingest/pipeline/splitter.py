"""
Page splitter.

Extracted document text marks the end of every page with a separator line
starting with PAGE_MARKER. Each page becomes one chunk sent to the
assistant. The separator line itself is never part of a chunk.
"""

import logging
import re
from collections.abc import Iterable, Iterator

from ..schemas import Chunk

logger = logging.getLogger(__name__)

PAGE_MARKER = "------------------------- FIN PÁGINA"

_LINE_BREAK = re.compile(r"\r?\n")


def split_pages(
    text: str,
    marker: str = PAGE_MARKER,
    keep_trailing: bool = False,
) -> Iterator[str]:
    """
    Yield trimmed page texts in document order.

    Lines are buffered until a line starting with ``marker`` closes the
    page. A page that is empty after trimming is skipped. Text after the
    last marker is only yielded when ``keep_trailing`` is set; otherwise an
    unterminated final page is dropped, as is a document with no marker.

    Args:
        text: Full extracted document text
        marker: Page separator prefix
        keep_trailing: Emit the unterminated final page as well

    Yields:
        Page texts, stripped of surrounding whitespace
    """
    if not text:
        return

    buffer: list[str] = []
    for line in _LINE_BREAK.split(text):
        if line.startswith(marker):
            page = "\n".join(buffer).strip()
            buffer = []
            if page:
                yield page
        else:
            buffer.append(line)

    if buffer:
        trailing = "\n".join(buffer).strip()
        if trailing:
            if keep_trailing:
                yield trailing
            else:
                logger.debug(
                    "Dropping %d chars after last page marker", len(trailing)
                )


def iter_chunks(pages: Iterable[str]) -> Iterator[Chunk]:
    """Number pages from 0 in emission order."""
    for index, page in enumerate(pages):
        yield Chunk(index=index, text=page)


def split_chunks(
    text: str,
    marker: str = PAGE_MARKER,
    keep_trailing: bool = False,
) -> list[Chunk]:
    """Split text into indexed chunks."""
    return list(iter_chunks(split_pages(text, marker, keep_trailing)))
