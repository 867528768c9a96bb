"""
Extraction pipeline core.

- splitter: page-marker chunking
- orchestrator: batched chunk dispatch with fail-fast consolidation
- parser / grouping: assistant response to header/detail rows

The document service lives in pipeline.service and is imported from there.
"""

from .errors import (
    AssistantProvisioningError,
    ChunkTimeoutError,
    ConsolidationFailure,
    IngestError,
    ParseError,
    TextExtractionError,
    TransientCollaboratorError,
    UnsupportedFileTypeError,
)
from .grouping import extract_rows, flatten_groups, group_by_check
from .orchestrator import BatchOrchestrator, DispatchContext
from .parser import parse_response
from .splitter import PAGE_MARKER, iter_chunks, split_chunks, split_pages

__all__ = [
    "PAGE_MARKER",
    "split_pages",
    "split_chunks",
    "iter_chunks",
    "parse_response",
    "group_by_check",
    "flatten_groups",
    "extract_rows",
    "BatchOrchestrator",
    "DispatchContext",
    "IngestError",
    "AssistantProvisioningError",
    "ParseError",
    "TransientCollaboratorError",
    "ChunkTimeoutError",
    "ConsolidationFailure",
    "UnsupportedFileTypeError",
    "TextExtractionError",
]
