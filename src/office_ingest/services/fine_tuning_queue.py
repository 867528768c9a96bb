"""
Fine-tuning eligibility queue.

Recording or validating an extraction only enqueues a check for the
office; a worker drains the queue and runs the (slow) count-and-submit
step outside the request path.

Features:
- Each entry carries the validated count it was queued at
- One active (PENDING/PROCESSING) entry per office and count
- Priority ordering, then oldest first
- Failed checks are retried up to max_retries
"""

import asyncio
import logging
from typing import Any, Optional

from ..state_store import StateStore
from .fine_tuning import FineTuningError, FineTuningService

logger = logging.getLogger(__name__)


class FineTuningQueueService:
    """Schedules and processes fine-tuning eligibility checks."""

    def __init__(
        self,
        state_store: StateStore,
        fine_tuning: Optional[FineTuningService] = None,
        max_retries: int = 3,
    ):
        """
        Args:
            state_store: State store holding the queue
            fine_tuning: Service that runs the check; required to process entries
            max_retries: Attempts allowed for a failing check
        """
        self.store = state_store
        self.fine_tuning = fine_tuning
        self.max_retries = max_retries

    def enqueue(
        self,
        office_id: int,
        priority: int = 0,
        created_by: str = "AUTO",
    ) -> Optional[int]:
        """
        Queue an eligibility check for an office.

        Returns:
            Entry ID, or None if a check for the current count is already pending
        """
        entry_id = self.store.enqueue_fine_tuning_check(
            office_id,
            priority=priority,
            max_retries=self.max_retries,
            created_by=created_by,
        )
        if entry_id:
            logger.debug("Queued fine-tuning check #%d for office %d", entry_id, office_id)
        else:
            logger.debug("Fine-tuning check for this count already pending for office %d", office_id)
        return entry_id

    def get_next_entries(self, batch_size: int = 1) -> list[dict[str, Any]]:
        return self.store.get_next_queue_entries(limit=batch_size)

    async def process_entry(self, entry: dict[str, Any]) -> bool:
        """
        Run one eligibility check.

        Returns:
            True if the check completed (whether or not a job was submitted)
        """
        if self.fine_tuning is None:
            raise RuntimeError("FineTuningQueueService needs a FineTuningService to process entries")

        entry_id = entry["id"]
        office_id = entry["office_id"]

        if not await asyncio.to_thread(self.store.start_queue_entry, entry_id):
            logger.warning("Could not start check #%d - may already be processing", entry_id)
            return False

        try:
            count, job_id = await self.fine_tuning.check_office(
                office_id, entry.get("validated_count")
            )
        except FineTuningError as e:
            logger.error("Fine-tuning check #%d for office %d failed: %s", entry_id, office_id, e)
            await asyncio.to_thread(self.store.fail_queue_entry, entry_id, str(e), False)
            return False
        except Exception as e:
            logger.error("Fine-tuning check #%d for office %d failed: %s", entry_id, office_id, e)
            await asyncio.to_thread(self.store.fail_queue_entry, entry_id, str(e), True)
            return False

        await asyncio.to_thread(self.store.complete_queue_entry, entry_id, count, job_id)
        if job_id:
            logger.info("Check #%d submitted job %s for office %d", entry_id, job_id, office_id)
        return True

    async def run_once(self, batch_size: int = 10) -> int:
        """
        Process up to batch_size pending entries, one at a time.

        Returns:
            Number of entries that completed
        """
        entries = await asyncio.to_thread(self.get_next_entries, batch_size)
        completed = 0
        for entry in entries:
            if await self.process_entry(entry):
                completed += 1
        if entries:
            logger.info("Processed %d/%d fine-tuning checks", completed, len(entries))
        return completed

    def get_queue_stats(self) -> dict[str, int]:
        return self.store.get_queue_stats()

    def cleanup_old_entries(self, days: int = 30) -> int:
        """Remove old completed/failed entries."""
        count = self.store.cleanup_queue(days)
        if count:
            logger.info("Cleaned up %d old fine-tuning checks", count)
        return count
