"""
Typed result envelopes for the extraction pipeline.

Each collaborator call and each pipeline stage returns one of these instead
of a loosely typed dictionary. Only ProcessResult.to_dict() produces the
camelCase wire shape handed to callers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .transactions import LedgerRow


class ErrorKind(str, Enum):
    """Why a chunk failed."""

    PARSE = "parse"
    COLLABORATOR = "collaborator"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Chunk:
    """One page-bounded unit of document text."""

    index: int  # 0-based, emission order
    text: str


@dataclass(frozen=True)
class ExtractionCallResult:
    """Outcome of one assistant run over a chunk."""

    response_text: str
    run_id: str
    thread_id: str
    message: str = "Chunk procesado con asistente"


@dataclass
class ChunkOutcome:
    """
    Result of dispatching one chunk.

    Invariant: a failed outcome carries no records and always has an
    error_detail.
    """

    index: int
    records: list[LedgerRow] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    success: bool = True
    error_detail: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def failed(
        cls,
        index: int,
        detail: str,
        kind: ErrorKind,
        timings: Optional[dict[str, float]] = None,
    ) -> "ChunkOutcome":
        return cls(
            index=index,
            records=[],
            timings=timings or {},
            success=False,
            error_detail=detail,
            error_kind=kind,
        )


@dataclass
class BatchResult:
    """Consolidated output of a fully successful batch run."""

    chunks_processed: int
    records: list[LedgerRow]
    chunk_timings: list[dict[str, float]]

    @property
    def total_transactions(self) -> int:
        return len(self.records)


@dataclass
class ProcessResult:
    """Per-document result returned to callers."""

    success: bool
    error: Optional[str] = None
    total_seconds: int = -1
    assistant_id: Optional[str] = None
    batch: Optional[BatchResult] = None
    timings: dict[str, float] = field(default_factory=dict)
    chunk_timings: list[dict[str, float]] = field(default_factory=list)

    @classmethod
    def failure(
        cls,
        error: str,
        timings: dict[str, float],
        chunk_timings: Optional[list[dict[str, float]]] = None,
    ) -> "ProcessResult":
        return cls(
            success=False,
            error=error,
            total_seconds=-1,
            timings=timings,
            chunk_timings=chunk_timings or [],
        )

    def to_dict(self) -> dict:
        result = None
        if self.success and self.batch is not None:
            result = {
                "assistantId": self.assistant_id,
                "chunksProcessed": self.batch.chunks_processed,
                "totalTransactions": self.batch.total_transactions,
                "flattenedTransactions": [row.to_dict() for row in self.batch.records],
            }
        return {
            "success": self.success,
            "error": self.error,
            "totalSeconds": self.total_seconds,
            "result": result,
            "timings": self.timings,
            "chunkTimings": self.chunk_timings,
        }
