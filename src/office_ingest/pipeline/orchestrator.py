"""
Batch orchestrator.

Chunks are dispatched in sequential batches; chunks within a batch run
concurrently. Every chunk goes through three timed steps:

1. process_chunk   - assistant extraction call
2. record_history  - persist the exchange for human validation
3. parse_response  - parse, group and flatten the response

A failure in any step fails only that chunk. After all batches finish the
outcomes are consolidated in chunk order and the first failure aborts the
whole document.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from ..schemas import BatchResult, Chunk, ChunkOutcome, ErrorKind, ExtractionCallResult
from .errors import ChunkTimeoutError, ConsolidationFailure, ParseError, TransientCollaboratorError
from .grouping import extract_rows

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 0.1

STEP_PROCESS = "process_chunk"
STEP_RECORD = "record_history"
STEP_PARSE = "parse_response"
STEP_ERROR = "error"


class ExtractionClient(Protocol):
    async def process_chunk(
        self, assistant_id: str, chunk_text: str, prompt_text: str
    ) -> ExtractionCallResult: ...


class ExtractionRecorder(Protocol):
    async def record_extraction(
        self,
        office_id: int,
        file_name: str,
        chunk_text: str,
        call_result: ExtractionCallResult,
        prompt_text: str,
        assistant_id: str,
    ) -> int: ...


@dataclass(frozen=True)
class DispatchContext:
    """Per-document values shared by every chunk."""

    office_id: int
    file_name: str
    assistant_id: str
    prompt_text: str


class BatchOrchestrator:
    """Bounded-concurrency chunk dispatcher with fail-fast consolidation."""

    def __init__(
        self,
        client: ExtractionClient,
        recorder: ExtractionRecorder,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        chunk_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.client = client
        self.recorder = recorder
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.chunk_timeout = chunk_timeout
        self._sleep = sleep

    def effective_batch_size(self, chunk_count: int) -> int:
        return max(1, min(self.batch_size, chunk_count))

    async def run(self, chunks: Sequence[Chunk], context: DispatchContext) -> BatchResult:
        """
        Process all chunks and consolidate.

        Raises:
            ConsolidationFailure: For the lowest-index failed chunk
        """
        outcomes = await self.dispatch_all(chunks, context)
        return self.consolidate(outcomes)

    async def dispatch_all(
        self, chunks: Sequence[Chunk], context: DispatchContext
    ) -> list[ChunkOutcome]:
        """Dispatch every chunk batch by batch; never raises for chunk errors."""
        total = len(chunks)
        if total == 0:
            return []

        size = self.effective_batch_size(total)
        outcomes: list[ChunkOutcome] = []
        for start in range(0, total, size):
            batch = chunks[start : start + size]
            logger.info(
                "Processing batch %d: chunks %d-%d of %d",
                start // size + 1,
                start + 1,
                start + len(batch),
                total,
            )
            results = await asyncio.gather(
                *(self.dispatch(chunk, context, total) for chunk in batch)
            )
            outcomes.extend(results)

            if start + size < total:
                await self._sleep(self.batch_delay)

        return outcomes

    async def dispatch(self, chunk: Chunk, context: DispatchContext, total: int) -> ChunkOutcome:
        """Run one chunk through all steps, converting errors to a failed outcome."""
        timings: dict[str, float] = {}
        started = time.perf_counter()
        logger.info("Processing chunk %d/%d", chunk.index + 1, total)

        try:
            if self.chunk_timeout is None:
                records = await self._run_steps(chunk, context, timings)
            else:
                try:
                    records = await asyncio.wait_for(
                        self._run_steps(chunk, context, timings), timeout=self.chunk_timeout
                    )
                except asyncio.TimeoutError as e:
                    raise ChunkTimeoutError(self.chunk_timeout) from e
        except ParseError as e:
            return self._failed(chunk, e, ErrorKind.PARSE, timings, started)
        except ChunkTimeoutError as e:
            return self._failed(chunk, e, ErrorKind.TIMEOUT, timings, started)
        except Exception as e:
            return self._failed(chunk, e, ErrorKind.COLLABORATOR, timings, started)

        logger.info(
            "Chunk %d completed in %.2fs with %d rows",
            chunk.index + 1,
            sum(timings.values()),
            len(records),
        )
        return ChunkOutcome(index=chunk.index, records=records, timings=timings)

    async def _run_steps(
        self, chunk: Chunk, context: DispatchContext, timings: dict[str, float]
    ) -> list:
        mark = time.perf_counter()
        try:
            call_result = await self.client.process_chunk(
                context.assistant_id, chunk.text, context.prompt_text
            )
        except Exception as e:
            raise TransientCollaboratorError(STEP_PROCESS, str(e)) from e
        timings[STEP_PROCESS] = time.perf_counter() - mark

        mark = time.perf_counter()
        try:
            await self.recorder.record_extraction(
                office_id=context.office_id,
                file_name=context.file_name,
                chunk_text=chunk.text,
                call_result=call_result,
                prompt_text=context.prompt_text,
                assistant_id=context.assistant_id,
            )
        except Exception as e:
            raise TransientCollaboratorError(STEP_RECORD, str(e)) from e
        timings[STEP_RECORD] = time.perf_counter() - mark

        mark = time.perf_counter()
        records = extract_rows(call_result.response_text)
        timings[STEP_PARSE] = time.perf_counter() - mark
        return records

    def _failed(
        self,
        chunk: Chunk,
        error: Exception,
        kind: ErrorKind,
        timings: dict[str, float],
        started: float,
    ) -> ChunkOutcome:
        logger.error("Error processing chunk %d (%s): %s", chunk.index + 1, kind.value, error)
        timings[STEP_ERROR] = time.perf_counter() - started
        return ChunkOutcome.failed(chunk.index, str(error), kind, timings)

    @staticmethod
    def consolidate(outcomes: Sequence[ChunkOutcome]) -> BatchResult:
        """
        Merge outcomes in chunk order.

        Raises:
            ConsolidationFailure: Naming the first failed chunk (1-based),
                with timings of every chunk up to and including it
        """
        records: list = []
        chunk_timings: list[dict[str, float]] = []
        ordered = sorted(outcomes, key=lambda o: o.index)
        for outcome in ordered:
            chunk_timings.append(outcome.timings)
            if not outcome.success:
                raise ConsolidationFailure(
                    outcome.index + 1, outcome.error_detail or "", chunk_timings
                )
            records.extend(outcome.records)

        logger.info("Consolidated %d rows from %d chunks", len(records), len(ordered))
        return BatchResult(
            chunks_processed=len(ordered),
            records=records,
            chunk_timings=chunk_timings,
        )
