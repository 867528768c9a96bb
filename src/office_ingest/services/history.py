"""
Extraction history.

Every chunk sent to the assistant is stored with its response so a human
can validate or correct it later. Validated records feed fine-tuning.

Recording a chunk (and validating a record) enqueues a fine-tuning
eligibility check for the office. Enqueueing is best-effort: a failure is
logged and never fails the caller.
"""

import asyncio
import json
import logging
from typing import Optional

from ..schemas import ExtractionCallResult
from ..state_store import StateStore, ValidationRecord, ValidationStatus
from .fine_tuning_queue import FineTuningQueueService

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Persists chunk exchanges and triggers eligibility checks."""

    def __init__(
        self,
        state_store: StateStore,
        queue: Optional[FineTuningQueueService] = None,
    ):
        self.store = state_store
        self.queue = queue

    async def record_extraction(
        self,
        office_id: int,
        file_name: str,
        chunk_text: str,
        call_result: ExtractionCallResult,
        prompt_text: str,
        assistant_id: str,
    ) -> int:
        """
        Store one chunk's extraction.

        Returns:
            History record ID

        Raises:
            sqlite3.Error: If the record cannot be written
        """
        record_id = await asyncio.to_thread(
            self.store.save_validation,
            office_id,
            file_name,
            chunk_text,
            call_result.response_text,
            prompt_text,
            assistant_id,
            call_result.thread_id,
            call_result.run_id,
        )
        await asyncio.to_thread(self.request_eligibility_check, office_id)
        return record_id

    def request_eligibility_check(self, office_id: int) -> Optional[int]:
        """Enqueue a fine-tuning check; errors are logged only."""
        if self.queue is None:
            return None
        try:
            return self.queue.enqueue(office_id)
        except Exception as e:
            logger.warning("Could not enqueue fine-tuning check for office %d: %s", office_id, e)
            return None

    # Validation

    def list_records(
        self,
        office_id: int,
        status: Optional[ValidationStatus] = None,
        limit: int = 100,
    ) -> list[ValidationRecord]:
        return self.store.list_validations(office_id, status=status, limit=limit)

    def validate(
        self,
        record_id: int,
        status: ValidationStatus,
        validated_by: str,
        corrected_json: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ValidationRecord:
        """
        Record a human decision on an extraction.

        A CORRECTED decision requires corrected_json, which must be a JSON
        array. Corrected JSON is stored in canonical (compact) form.

        Raises:
            KeyError: If the record does not exist
            ValueError: If the decision is inconsistent
        """
        if status == ValidationStatus.CORRECTED and not corrected_json:
            raise ValueError("A corrected validation needs corrected JSON")
        if corrected_json:
            try:
                parsed = json.loads(corrected_json)
            except json.JSONDecodeError as e:
                raise ValueError(f"Corrected JSON is invalid: {e}") from e
            if not isinstance(parsed, list):
                raise ValueError("Corrected JSON must be an array of transactions")
            corrected_json = json.dumps(parsed, ensure_ascii=False)

        if not self.store.mark_validated(record_id, status, validated_by, corrected_json, notes):
            raise KeyError(f"Extraction record {record_id} not found")

        record = self.store.get_validation(record_id)
        logger.info("Record %d validated as %s by %s", record_id, status.value, validated_by)
        self.request_eligibility_check(record.office_id)
        return record
