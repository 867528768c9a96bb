"""
Fine-tuning from validated extraction history.

An office becomes eligible each time its validated record count reaches a
positive multiple of the configured threshold. Submission exports the
validated history as chat-format JSONL, uploads it and creates a job. The
monitor polls running jobs and, when one succeeds, switches the office to
the fine-tuned model.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from ..assistant_client import AssistantClient
from ..config import FineTuningConfig
from ..state_store import (
    FineTuningJobRecord,
    FineTuningJobState,
    StateStore,
    ValidationRecord,
    ValidationStatus,
)
from .assistants import AssistantProvisioner
from .prompts import DEFAULT_EXTRACTION_PROMPT

logger = logging.getLogger(__name__)


class FineTuningError(Exception):
    """Raised when a fine-tuning job cannot be submitted."""

    pass


def select_training_records(
    records: list[ValidationRecord],
    max_examples: int,
    keep_examples: int,
) -> tuple[list[ValidationRecord], list[ValidationRecord]]:
    """
    Split validated records into (keep, drop).

    Nothing is dropped until there are more than max_examples records.
    Past that, keep_examples records survive: corrected records first, then
    the most recently validated ones. `records` must be newest first.
    """
    if len(records) <= max_examples:
        return list(records), []

    corrected = [r for r in records if r.status == ValidationStatus.CORRECTED]
    others = [r for r in records if r.status != ValidationStatus.CORRECTED]
    ranked = corrected + others
    return ranked[:keep_examples], ranked[keep_examples:]


def build_jsonl(records: list[ValidationRecord]) -> str:
    """One chat-format training example per line."""
    lines = []
    for record in records:
        example = {
            "messages": [
                {"role": "system", "content": record.prompt_used or DEFAULT_EXTRACTION_PROMPT},
                {"role": "user", "content": record.input_text},
                {"role": "assistant", "content": record.training_response},
            ]
        }
        lines.append(json.dumps(example, ensure_ascii=False))
    return "\n".join(lines) + "\n" if lines else ""


class FineTuningService:
    """Submits and monitors per-office fine-tuning jobs."""

    def __init__(
        self,
        state_store: StateStore,
        client: AssistantClient,
        config: FineTuningConfig,
        provisioner: Optional[AssistantProvisioner] = None,
    ):
        self.store = state_store
        self.client = client
        self.config = config
        self.provisioner = provisioner

    def is_eligible(self, validated_count: int) -> bool:
        return validated_count > 0 and validated_count % self.config.threshold == 0

    async def check_office(
        self, office_id: int, validated_count: Optional[int] = None
    ) -> tuple[int, Optional[str]]:
        """
        Submit a job when the office is eligible at the given validated count.

        Args:
            office_id: Office to check
            validated_count: Count captured when the check was queued; the
                current count is used when omitted

        Returns:
            (validated_count, job_id or None if nothing was submitted)
        """
        count = validated_count
        if count is None:
            count = await asyncio.to_thread(self.store.count_validated, office_id)
        if not self.is_eligible(count):
            logger.debug(
                "Office %d has %d validated records, not a multiple of %d",
                office_id,
                count,
                self.config.threshold,
            )
            return count, None

        if await asyncio.to_thread(self.store.has_job_for_count, office_id, count):
            logger.info("Office %d already has a job for %d validated records", office_id, count)
            return count, None

        job_id = await self.submit_for_office(office_id, validated_count=count)
        return count, job_id

    async def submit_for_office(self, office_id: int, validated_count: int = 0) -> str:
        """
        Export validated history and create a fine-tuning job.

        Raises:
            FineTuningError: If the office has no validated records
            AssistantError: On API failures
        """
        records = await asyncio.to_thread(self.store.get_validated_records, office_id)
        keep, drop = select_training_records(
            records, self.config.max_examples, self.config.keep_examples
        )
        if drop:
            deleted = await asyncio.to_thread(
                self.store.delete_validations, [r.id for r in drop]
            )
            logger.info("Pruned %d old validated records for office %d", deleted, office_id)
        # Rejected extractions without a correction are not training material
        examples = [r for r in keep if r.status != ValidationStatus.INCORRECT]
        if not examples:
            raise FineTuningError(f"Office {office_id} has no usable validated records")

        jsonl = build_jsonl(examples)
        content = jsonl.encode("utf-8")
        now = datetime.now(timezone.utc)
        file_name = f"fine_tuning_office_{office_id}_{now:%Y%m%d%H%M%S}.jsonl"

        file_id = await self.client.upload_file(file_name, content)
        await self.client.wait_for_file(file_id)
        job_id = await self.client.create_fine_tuning_job(
            training_file=file_id,
            model=self.config.base_model,
            n_epochs=self.config.n_epochs,
            suffix=f"office-{office_id}-{now:%Y%m%d}",
        )

        await asyncio.to_thread(
            self.store.save_fine_tuning_job,
            office_id,
            job_id,
            file_id,
            len(examples),
            len(content),
            validated_count,
        )
        logger.info(
            "Submitted fine-tuning job %s for office %d (%d examples)", job_id, office_id, len(examples)
        )
        return job_id

    # Monitoring

    async def check_running_jobs(self) -> list[FineTuningJobRecord]:
        """
        Poll every non-terminal job once.

        A failure for one job is logged and does not stop the others.

        Returns:
            Jobs that reached a terminal state in this pass
        """
        running = await asyncio.to_thread(self.store.get_running_fine_tuning_jobs)
        if not running:
            logger.debug("No fine-tuning jobs in progress")
            return []

        finished = []
        for job in running:
            try:
                if await self._check_job(job):
                    finished.append(job)
            except Exception as e:
                logger.error("Error checking fine-tuning job %s: %s", job.job_id, e)
        return finished

    async def _check_job(self, job: FineTuningJobRecord) -> bool:
        status = await self.client.get_fine_tuning_job(job.job_id)

        if status.status == FineTuningJobState.SUCCEEDED.value:
            await asyncio.to_thread(
                self.store.update_fine_tuning_job,
                job.job_id,
                status.status,
                status.fine_tuned_model,
            )
            if status.fine_tuned_model:
                await asyncio.to_thread(self._activate_model, job, status.fine_tuned_model)
            return True

        if status.status in (FineTuningJobState.FAILED.value, FineTuningJobState.CANCELLED.value):
            logger.warning(
                "Fine-tuning job %s for office %d ended as %s: %s",
                job.job_id,
                job.office_id,
                status.status,
                status.error_message,
            )
            await asyncio.to_thread(
                self.store.update_fine_tuning_job,
                job.job_id,
                status.status,
                None,
                status.error_message,
            )
            return True

        if status.status and status.status != job.status:
            await asyncio.to_thread(self.store.update_fine_tuning_job, job.job_id, status.status)
        logger.debug("Fine-tuning job %s still %s", job.job_id, status.status)
        return False

    def _activate_model(self, job: FineTuningJobRecord, model_id: str) -> None:
        current = self.store.get_office_model_config(job.office_id)
        base_model = current.model_name if current else self.config.base_model
        self.store.upsert_office_model_config(
            job.office_id,
            base_model,
            True,
            model_id,
            f"Fine-tuning job {job.job_id}",
        )
        if self.provisioner is not None:
            self.provisioner.invalidate(job.office_id)
        logger.info("Office %d now uses fine-tuned model %s", job.office_id, model_id)

    async def monitor(self, interval: Optional[float] = None, iterations: Optional[int] = None) -> None:
        """Poll running jobs every `interval` seconds (forever unless iterations is set)."""
        interval = interval if interval is not None else self.config.monitor_interval_seconds
        done = 0
        while iterations is None or done < iterations:
            try:
                await self.check_running_jobs()
            except Exception as e:
                logger.error("Fine-tuning monitor pass failed: %s", e)
            done += 1
            if iterations is None or done < iterations:
                await asyncio.sleep(interval)
