"""
Pipeline error hierarchy.

Errors raised inside a chunk's dispatch become failed ChunkOutcomes; only
AssistantProvisioningError and ConsolidationFailure reach the document
service, which turns them into a structured failure result.
"""


class IngestError(Exception):
    """Base exception for the ingestion pipeline."""

    pass


class AssistantProvisioningError(IngestError):
    """The office has no assistant and one could not be created."""

    pass


class ParseError(IngestError):
    """The assistant's response could not be read as a transaction array."""

    pass


class TransientCollaboratorError(IngestError):
    """A collaborator call (extraction or history write) failed for one chunk."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(message)


class ChunkTimeoutError(IngestError):
    """A chunk did not finish before its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Chunk exceeded deadline of {timeout:g}s")


class ConsolidationFailure(IngestError):
    """The first failed chunk (by index) of a document."""

    def __init__(
        self,
        chunk_number: int,
        detail: str,
        chunk_timings: list[dict[str, float]] | None = None,
    ):
        self.chunk_number = chunk_number  # 1-based
        self.detail = detail
        self.chunk_timings = chunk_timings or []
        super().__init__(f"Error procesando chunk {chunk_number}: {detail}")


class UnsupportedFileTypeError(IngestError):
    """The uploaded file's type could not be determined."""

    pass


class TextExtractionError(IngestError):
    """Text could not be extracted from the uploaded file."""

    pass
