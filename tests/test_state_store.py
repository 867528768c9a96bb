"""Tests for state store."""

import pytest

from office_ingest.state_store import (
    FineTuningJobState,
    StateStore,
    ValidationStatus,
    content_hash,
)

from .conftest import add_validated


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created, including migrated ones."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            assert "assistants" in table_names
            assert "prompts" in table_names
            assert "office_model_config" in table_names
            assert "extraction_validations" in table_names
            assert "fine_tuning_jobs" in table_names
            assert "fine_tuning_queue" in table_names
        finally:
            conn.close()

    def test_reopen_is_idempotent(self, temp_db):
        StateStore(temp_db).save_prompt(office_id=1, name="p", content="x")
        store = StateStore(temp_db)
        assert store.get_latest_prompt(1).content == "x"


class TestAssistantOperations:
    """Tests for assistant records."""

    def test_save_and_get(self, store):
        store.save_assistant(1, "Oficina_1", "Sistema_General", "asst_1", "vs_1", "gpt-4o")

        record = store.get_active_assistant(1)

        assert record.assistant_id == "asst_1"
        assert record.vector_store_id == "vs_1"
        assert record.model_id == "gpt-4o"
        assert record.active is True

    def test_new_assistant_deactivates_previous(self, store):
        store.save_assistant(1, "Oficina_1", "S", "asst_old", "vs_1", "gpt-4o")
        store.save_assistant(1, "Oficina_1", "S", "asst_new", "vs_1", "ft:model")

        assert store.get_active_assistant(1).assistant_id == "asst_new"

    def test_deactivate(self, store):
        store.save_assistant(1, "Oficina_1", "S", "asst_1", "vs_1", "gpt-4o")
        assert store.deactivate_assistant("asst_1") is True
        assert store.get_active_assistant(1) is None

    def test_vector_store_survives_deactivation(self, store):
        store.save_assistant(1, "Oficina_1", "S", "asst_1", "vs_1", "gpt-4o")
        store.deactivate_assistant("asst_1")
        assert store.get_vector_store_id(1) == "vs_1"
        assert store.get_vector_store_id(2) is None

    def test_offices_are_separate(self, store):
        store.save_assistant(1, "Oficina_1", "S", "asst_1", "vs_1", "gpt-4o")
        assert store.get_active_assistant(2) is None


class TestPromptOperations:
    """Tests for prompt versions."""

    def test_latest_prompt(self, store):
        store.save_prompt(office_id=1, name="v1", content="first")
        store.save_prompt(office_id=1, name="v2", content="second")

        latest = store.get_latest_prompt(1)

        assert latest.content == "second"
        assert latest.content_hash == content_hash("second")
        assert [p.name for p in store.list_prompts(1)] == ["v2", "v1"]

    def test_no_prompt(self, store):
        assert store.get_latest_prompt(99) is None


class TestOfficeModelConfig:
    """Tests for model configuration."""

    def test_upsert(self, store):
        store.upsert_office_model_config(1, "gpt-4o")
        config = store.get_office_model_config(1)
        assert config.model_to_use() == "gpt-4o"

        store.upsert_office_model_config(1, "gpt-4o", True, "ft:gpt-4o:office-1", "job ftjob-1")
        config = store.get_office_model_config(1)
        assert config.is_fine_tuned is True
        assert config.model_to_use() == "ft:gpt-4o:office-1"
        assert config.notes == "job ftjob-1"

    def test_fine_tuned_flag_without_model(self, store):
        store.upsert_office_model_config(1, "gpt-4o", True, None)
        assert store.get_office_model_config(1).model_to_use() == "gpt-4o"


class TestValidationOperations:
    """Tests for extraction history."""

    def _save(self, store, office_id=1, text="page"):
        return store.save_validation(
            office_id=office_id,
            file_name="eob.pdf",
            input_text=text,
            openai_response="[]",
            prompt_used="extract",
            assistant_id="asst_1",
            thread_id="thread_1",
            run_id="run_1",
        )

    def test_saved_as_pending(self, store):
        record = store.get_validation(self._save(store))

        assert record.status == ValidationStatus.PENDING
        assert record.validated_at is None
        assert record.thread_id == "thread_1"

    def test_mark_validated(self, store):
        record_id = self._save(store)

        assert store.mark_validated(record_id, ValidationStatus.CORRECTED, "ana", "[1]", "fixed")
        record = store.get_validation(record_id)

        assert record.status == ValidationStatus.CORRECTED
        assert record.validated_by == "ana"
        assert record.validated_at is not None
        assert record.training_response == "[1]"

    def test_mark_missing_record(self, store):
        assert store.mark_validated(404, ValidationStatus.CORRECT, "ana") is False

    def test_cannot_revert_to_pending(self, store):
        with pytest.raises(ValueError):
            store.mark_validated(self._save(store), ValidationStatus.PENDING, "ana")

    def test_count_validated_per_office(self, store):
        add_validated(store, 1, 3)
        add_validated(store, 2, 1)
        self._save(store, office_id=1)

        assert store.count_validated(1) == 3
        assert store.count_validated(2) == 1

    def test_list_filters_by_status(self, store):
        add_validated(store, 1, 2)
        self._save(store)

        assert len(store.list_validations(1)) == 3
        assert len(store.list_validations(1, status=ValidationStatus.PENDING)) == 1

    def test_delete(self, store):
        ids = add_validated(store, 1, 3)
        assert store.delete_validations(ids[:2]) == 2
        assert store.delete_validations([]) == 0
        assert store.count_validated(1) == 1


class TestFineTuningJobs:
    """Tests for fine-tuning job records."""

    def test_save_and_update(self, store):
        store.save_fine_tuning_job(1, "ftjob-1", "file-1", 50, 1234, validated_count=50)

        job = store.get_fine_tuning_job("ftjob-1")
        assert job.status == FineTuningJobState.RUNNING.value
        assert job.validated_count == 50
        assert [j.job_id for j in store.get_running_fine_tuning_jobs()] == ["ftjob-1"]

        store.update_fine_tuning_job("ftjob-1", "succeeded", "ft:model")
        job = store.get_fine_tuning_job("ftjob-1")
        assert job.fine_tuned_model_id == "ft:model"
        assert store.get_running_fine_tuning_jobs() == []

    def test_list_by_office(self, store):
        store.save_fine_tuning_job(1, "ftjob-1", "file-1", 50, 10)
        store.save_fine_tuning_job(2, "ftjob-2", "file-2", 50, 10)

        assert [j.job_id for j in store.list_fine_tuning_jobs(2)] == ["ftjob-2"]
        assert len(store.list_fine_tuning_jobs()) == 2

    def test_has_job_for_count(self, store):
        store.save_fine_tuning_job(1, "ftjob-1", "file-1", 50, 1234, validated_count=50)

        assert store.has_job_for_count(1, 50)
        assert not store.has_job_for_count(1, 100)
        assert not store.has_job_for_count(2, 50)

    def test_terminal_states(self):
        assert FineTuningJobState.is_terminal("failed")
        assert not FineTuningJobState.is_terminal("queued")


class TestFineTuningQueue:
    """Tests for the eligibility-check queue."""

    def test_one_active_entry_per_office_and_count(self, store):
        first = store.enqueue_fine_tuning_check(1)

        assert first is not None
        assert store.get_queue_entry(first)["validated_count"] == 0
        assert store.enqueue_fine_tuning_check(1) is None
        assert store.enqueue_fine_tuning_check(2) is not None

    def test_new_count_gets_its_own_entry(self, store):
        add_validated(store, 1, 2)
        at_two = store.enqueue_fine_tuning_check(1)
        add_validated(store, 1, 1)
        at_three = store.enqueue_fine_tuning_check(1)

        assert at_three is not None
        assert at_three != at_two
        assert store.get_queue_entry(at_two)["validated_count"] == 2
        assert store.get_queue_entry(at_three)["validated_count"] == 3
        assert store.enqueue_fine_tuning_check(1) is None

    def test_priority_order(self, store):
        low = store.enqueue_fine_tuning_check(1)
        high = store.enqueue_fine_tuning_check(2, priority=5)

        assert [e["id"] for e in store.get_next_queue_entries(10)] == [high, low]

    def test_lifecycle(self, store):
        entry_id = store.enqueue_fine_tuning_check(1)

        assert store.start_queue_entry(entry_id)
        assert not store.start_queue_entry(entry_id)
        store.complete_queue_entry(entry_id, 50, "ftjob-1")

        entry = store.get_queue_entry(entry_id)
        assert entry["status"] == "COMPLETED"
        assert entry["job_id"] == "ftjob-1"
        # A completed entry no longer blocks new checks
        assert store.enqueue_fine_tuning_check(1) is not None

    def test_retry_until_max(self, store):
        entry_id = store.enqueue_fine_tuning_check(1, max_retries=2)

        store.start_queue_entry(entry_id)
        store.fail_queue_entry(entry_id, "timeout")
        assert store.get_queue_entry(entry_id)["status"] == "PENDING"

        store.start_queue_entry(entry_id)
        store.fail_queue_entry(entry_id, "timeout")
        assert store.get_queue_entry(entry_id)["status"] == "FAILED"

    def test_non_retryable_failure(self, store):
        entry_id = store.enqueue_fine_tuning_check(1)
        store.fail_queue_entry(entry_id, "bad data", can_retry=False)
        assert store.get_queue_entry(entry_id)["status"] == "FAILED"

    def test_stats_and_cleanup(self, store):
        done = store.enqueue_fine_tuning_check(1)
        store.complete_queue_entry(done, 3)
        store.enqueue_fine_tuning_check(2)

        assert store.get_queue_stats() == {"pending": 1, "processing": 0, "completed": 1, "failed": 0}
        assert store.cleanup_queue(days=0) == 1
        assert store.cleanup_queue(days=30) == 0


class TestStats:
    """Tests for get_stats()."""

    def test_counts(self, store):
        store.save_assistant(1, "Oficina_1", "S", "asst_1", "vs_1", "gpt-4o")
        add_validated(store, 1, 2)
        store.save_fine_tuning_job(1, "ftjob-1", "file-1", 2, 10)

        stats = store.get_stats()

        assert stats["active_assistants"] == 1
        assert stats["extractions_total"] == 2
        assert stats["pending_validation"] == 0
        assert stats["validated"] == 2
        assert stats["fine_tuning_jobs"] == 1
        assert stats["fine_tuning_running"] == 1
