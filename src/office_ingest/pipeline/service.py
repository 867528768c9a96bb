"""
Document processing service.

Entry point of the pipeline: one uploaded file in, one ProcessResult out.

Steps (each timed):
1. find_assistant  - resolve or create the office's assistant
2. extract_text    - file bytes to paged text (OCR for PDFs)
3. split_chunks    - one chunk per page
4. get_prompt      - office prompt, seeded with the default if missing
5. process_chunks  - batch dispatch and consolidation

Every failure is returned as a structured result; nothing raises to the
caller except programming errors.
"""

import asyncio
import logging
import sqlite3
import time
from typing import Optional

from ..assistant_client import AssistantClient
from ..config import Config
from ..extractors import ExtractorRouter
from ..ocr_client import OCRClient
from ..schemas import ProcessResult
from ..services import (
    AssistantProvisioner,
    FineTuningQueueService,
    FineTuningService,
    HistoryRecorder,
    PromptService,
)
from ..state_store import StateStore
from .errors import (
    AssistantProvisioningError,
    ConsolidationFailure,
    TextExtractionError,
    UnsupportedFileTypeError,
)
from .orchestrator import BatchOrchestrator, DispatchContext
from .splitter import PAGE_MARKER, split_chunks

logger = logging.getLogger(__name__)


class DocumentService:
    """Runs one document through extraction, dispatch and consolidation."""

    def __init__(
        self,
        config: Config,
        extractor_router: ExtractorRouter,
        provisioner: AssistantProvisioner,
        prompts: PromptService,
        orchestrator: BatchOrchestrator,
    ):
        self.config = config
        self.router = extractor_router
        self.provisioner = provisioner
        self.prompts = prompts
        self.orchestrator = orchestrator

    async def process_document(
        self,
        file_bytes: bytes,
        file_name: str,
        office_id: int,
        user_id: int,
    ) -> ProcessResult:
        """
        Extract ledger rows from an uploaded file.

        Returns:
            ProcessResult; on failure success is False, total_seconds is -1
            and error holds the reason
        """
        started = time.perf_counter()
        timings: dict[str, float] = {}
        logger.info(
            "Processing %s for office %d (user %d, %d bytes)",
            file_name,
            office_id,
            user_id,
            len(file_bytes),
        )

        max_bytes = self.config.pipeline.max_file_bytes
        if len(file_bytes) > max_bytes:
            return ProcessResult.failure(
                f"El archivo excede el tamaño máximo permitido ({max_bytes} bytes)", timings
            )

        mark = time.perf_counter()
        try:
            assistant = await self.provisioner.ensure_assistant(office_id)
        except AssistantProvisioningError as e:
            timings["find_assistant"] = time.perf_counter() - mark
            return ProcessResult.failure(str(e), timings)
        timings["find_assistant"] = time.perf_counter() - mark

        mark = time.perf_counter()
        try:
            extracted = await asyncio.to_thread(self.router.extract, file_name, file_bytes)
        except (UnsupportedFileTypeError, TextExtractionError) as e:
            timings["extract_text"] = time.perf_counter() - mark
            logger.error("Could not read %s: %s", file_name, e)
            return ProcessResult.failure(f"Error al extraer texto: {e}", timings)
        timings["extract_text"] = time.perf_counter() - mark
        logger.debug("Extracted %d chars from %s", len(extracted.text), file_name)

        mark = time.perf_counter()
        chunks = split_chunks(
            extracted.text, PAGE_MARKER, keep_trailing=self.config.pipeline.keep_trailing_page
        )
        timings["split_chunks"] = time.perf_counter() - mark

        mark = time.perf_counter()
        try:
            prompt = await asyncio.to_thread(self.prompts.get_or_create, office_id)
        except sqlite3.Error as e:
            timings["get_prompt"] = time.perf_counter() - mark
            logger.error("Could not load prompt for office %d: %s", office_id, e)
            return ProcessResult.failure(f"Error al obtener el prompt: {e}", timings)
        timings["get_prompt"] = time.perf_counter() - mark

        context = DispatchContext(
            office_id=office_id,
            file_name=file_name,
            assistant_id=assistant.assistant_id,
            prompt_text=prompt.content,
        )

        mark = time.perf_counter()
        try:
            batch = await self.orchestrator.run(chunks, context)
        except ConsolidationFailure as e:
            timings["process_chunks"] = time.perf_counter() - mark
            return ProcessResult.failure(str(e), timings, e.chunk_timings)
        timings["process_chunks"] = time.perf_counter() - mark

        elapsed = time.perf_counter() - started
        timings["total"] = elapsed
        logger.info(
            "Processed %s: %d rows from %d chunks in %.2fs",
            file_name,
            batch.total_transactions,
            batch.chunks_processed,
            elapsed,
        )
        return ProcessResult(
            success=True,
            total_seconds=int(elapsed),
            assistant_id=assistant.assistant_id,
            batch=batch,
            timings=timings,
            chunk_timings=batch.chunk_timings,
        )


def build_document_service(
    config: Config,
    state_store: Optional[StateStore] = None,
    client: Optional[AssistantClient] = None,
) -> DocumentService:
    """Wire a DocumentService and its collaborators from configuration."""
    store = state_store or StateStore(config.state_db_path)
    if client is None:
        client = AssistantClient(
            api_key=config.openai.api_key,
            base_url=config.openai.base_url,
            timeout=config.openai.timeout_seconds,
            run_timeout=config.openai.run_timeout_seconds,
            poll_interval=config.openai.poll_interval_seconds,
        )

    ocr_client = None
    if config.ocr.endpoint:
        ocr_client = OCRClient(
            config.ocr.endpoint,
            timeout=config.ocr.timeout_seconds,
            max_retries=config.ocr.max_retries,
        )

    provisioner = AssistantProvisioner(
        store,
        client,
        default_model=config.openai.default_model,
        cache_ttl=config.pipeline.assistant_cache_ttl_seconds,
    )
    fine_tuning = FineTuningService(store, client, config.fine_tuning, provisioner)
    queue = FineTuningQueueService(
        store, fine_tuning, max_retries=config.fine_tuning.queue_max_retries
    )
    orchestrator = BatchOrchestrator(
        client,
        HistoryRecorder(store, queue),
        batch_size=config.pipeline.batch_size,
        batch_delay=config.pipeline.batch_delay_seconds,
        chunk_timeout=config.pipeline.chunk_timeout_seconds,
    )
    return DocumentService(
        config,
        ExtractorRouter(ocr_client=ocr_client),
        provisioner,
        PromptService(store),
        orchestrator,
    )
