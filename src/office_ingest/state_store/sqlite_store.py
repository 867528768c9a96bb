"""
SQLite-based state store implementation.

Tables:
- assistants: One active extraction assistant per office
- prompts: Versioned extraction prompts per office
- office_model_config: Base / fine-tuned model selection per office
- extraction_validations: Per-chunk extraction history for human validation
- fine_tuning_jobs: Submitted fine-tuning jobs (migration 001)
- fine_tuning_queue: Pending fine-tuning eligibility checks (migration 002)
"""

import hashlib
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def content_hash(content: str) -> str:
    """SHA-256 hex digest of prompt content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ValidationStatus(str, Enum):
    """Human validation state of an extraction record."""

    PENDING = "PendingUserValidation"
    CORRECT = "ValidatedCorrect"
    INCORRECT = "ValidatedIncorrect"
    CORRECTED = "Corrected"


class FineTuningJobState(str, Enum):
    """Status values reported by the fine-tuning API (plus 'running')."""

    RUNNING = "running"
    VALIDATING_FILES = "validating_files"
    QUEUED = "queued"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in (cls.SUCCEEDED.value, cls.FAILED.value, cls.CANCELLED.value)


@dataclass
class AssistantRecord:
    """An office's extraction assistant."""

    id: str
    office_id: int
    office_name: str
    source_system: str
    assistant_id: str
    vector_store_id: str | None
    model_id: str | None
    active: bool
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AssistantRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            office_id=row["office_id"],
            office_name=row["office_name"],
            source_system=row["source_system"],
            assistant_id=row["assistant_id"],
            vector_store_id=row["vector_store_id"],
            model_id=row["model_id"],
            active=bool(row["active"]),
            created_at=row["created_at"],
        )


@dataclass
class PromptRecord:
    """One version of an office's extraction prompt."""

    id: str
    office_id: int | None
    name: str
    description: str | None
    content: str
    content_hash: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PromptRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            office_id=row["office_id"],
            name=row["name"],
            description=row["description"],
            content=row["content"],
            content_hash=row["content_hash"],
            created_at=row["created_at"],
        )


@dataclass
class OfficeModelConfig:
    """Which model an office's assistant should run."""

    office_id: int
    model_name: str
    is_fine_tuned: bool
    fine_tuned_model_id: str | None
    created_at: str
    updated_at: str
    notes: str | None = None

    def model_to_use(self) -> str:
        """Fine-tuned model when enabled and known, else the base model."""
        if self.is_fine_tuned and self.fine_tuned_model_id:
            return self.fine_tuned_model_id
        return self.model_name

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "OfficeModelConfig":
        """Create from database row."""
        return cls(
            office_id=row["office_id"],
            model_name=row["model_name"],
            is_fine_tuned=bool(row["is_fine_tuned"]),
            fine_tuned_model_id=row["fine_tuned_model_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            notes=row["notes"],
        )


@dataclass
class ValidationRecord:
    """Extraction history for one chunk."""

    id: int
    file_id: int
    file_name: str
    office_id: int
    input_text: str
    openai_response: str
    prompt_used: str
    assistant_id: str
    thread_id: str
    run_id: str
    status: ValidationStatus
    corrected_json: str | None
    validated_by: str | None
    validated_at: str | None
    validation_notes: str | None
    created_at: str
    updated_at: str

    @property
    def training_response(self) -> str:
        """What the model should have answered."""
        return self.corrected_json or self.openai_response

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ValidationRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            file_id=row["file_id"],
            file_name=row["file_name"],
            office_id=row["office_id"],
            input_text=row["input_text"],
            openai_response=row["openai_response"],
            prompt_used=row["prompt_used"],
            assistant_id=row["assistant_id"],
            thread_id=row["thread_id"],
            run_id=row["run_id"],
            status=ValidationStatus(row["status"]),
            corrected_json=row["corrected_json"],
            validated_by=row["validated_by"],
            validated_at=row["validated_at"],
            validation_notes=row["validation_notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class FineTuningJobRecord:
    """A submitted fine-tuning job."""

    id: int
    office_id: int
    job_id: str
    file_id: str
    total_examples: int
    jsonl_size: int
    validated_count: int
    status: str
    fine_tuned_model_id: str | None
    error_message: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FineTuningJobRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            office_id=row["office_id"],
            job_id=row["job_id"],
            file_id=row["file_id"],
            total_examples=row["total_examples"],
            jsonl_size=row["jsonl_size"],
            validated_count=row["validated_count"],
            status=row["status"],
            fine_tuned_model_id=row["fine_tuned_model_id"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class StateStore:
    """
    SQLite-based state store for the pipeline.

    Provides persistent tracking of:
    - Office assistants and their model configuration
    - Extraction prompts
    - Extraction history and human validation
    - Fine-tuning jobs and the eligibility-check queue

    Each call opens its own connection, so one store may be shared by
    worker threads (asyncio.to_thread).
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            # Schema version tracking
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS assistants (
                    id TEXT PRIMARY KEY,
                    office_id INTEGER NOT NULL,
                    office_name TEXT NOT NULL,
                    source_system TEXT NOT NULL,
                    assistant_id TEXT NOT NULL,
                    vector_store_id TEXT,
                    model_id TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS prompts (
                    id TEXT PRIMARY KEY,
                    office_id INTEGER,
                    name TEXT NOT NULL,
                    description TEXT,
                    content TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS office_model_config (
                    office_id INTEGER PRIMARY KEY,
                    model_name TEXT NOT NULL,
                    is_fine_tuned INTEGER NOT NULL DEFAULT 0,
                    fine_tuned_model_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    notes TEXT
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS extraction_validations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_id INTEGER NOT NULL DEFAULT 0,
                    file_name TEXT NOT NULL,
                    office_id INTEGER NOT NULL,
                    input_text TEXT NOT NULL,
                    openai_response TEXT NOT NULL,
                    prompt_used TEXT NOT NULL,
                    assistant_id TEXT NOT NULL,
                    thread_id TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    corrected_json TEXT,
                    validated_by TEXT,
                    validated_at TEXT,
                    validation_notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            # Create indexes
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_assistants_office ON assistants(office_id, active)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_prompts_office ON prompts(office_id, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_validations_office ON extraction_validations(office_id)"
            )

            # Set schema version
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Assistant methods

    def get_active_assistant(self, office_id: int) -> AssistantRecord | None:
        """Get the office's active assistant, if any."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM assistants
                WHERE office_id = ? AND active = 1
                ORDER BY created_at DESC
                LIMIT 1
            """,
                (office_id,),
            ).fetchone()
            return AssistantRecord.from_row(row) if row else None

    def save_assistant(
        self,
        office_id: int,
        office_name: str,
        source_system: str,
        assistant_id: str,
        vector_store_id: str | None,
        model_id: str | None,
    ) -> AssistantRecord:
        """
        Register a new active assistant for an office.

        Any previously active assistant of the office is deactivated.
        """
        now = _now()
        record_id = str(uuid.uuid4())
        with self._transaction() as conn:
            conn.execute(
                "UPDATE assistants SET active = 0 WHERE office_id = ? AND active = 1",
                (office_id,),
            )
            conn.execute(
                """
                INSERT INTO assistants
                (id, office_id, office_name, source_system, assistant_id,
                 vector_store_id, model_id, active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
            """,
                (
                    record_id,
                    office_id,
                    office_name,
                    source_system,
                    assistant_id,
                    vector_store_id,
                    model_id,
                    now,
                ),
            )
        return AssistantRecord(
            id=record_id,
            office_id=office_id,
            office_name=office_name,
            source_system=source_system,
            assistant_id=assistant_id,
            vector_store_id=vector_store_id,
            model_id=model_id,
            active=True,
            created_at=now,
        )

    def deactivate_assistant(self, assistant_id: str) -> bool:
        """Mark an assistant as inactive."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE assistants SET active = 0 WHERE assistant_id = ?", (assistant_id,)
            )
            return cursor.rowcount > 0

    def get_vector_store_id(self, office_id: int) -> str | None:
        """Most recent vector store used by any assistant of the office."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT vector_store_id FROM assistants
                WHERE office_id = ? AND vector_store_id IS NOT NULL AND vector_store_id != ''
                ORDER BY active DESC, created_at DESC
                LIMIT 1
            """,
                (office_id,),
            ).fetchone()
            return row["vector_store_id"] if row else None

    # Prompt methods

    def get_latest_prompt(self, office_id: int) -> PromptRecord | None:
        """Get the office's most recent prompt."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM prompts
                WHERE office_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
            """,
                (office_id,),
            ).fetchone()
            return PromptRecord.from_row(row) if row else None

    def save_prompt(
        self,
        office_id: int | None,
        name: str,
        content: str,
        description: str | None = None,
    ) -> PromptRecord:
        """Store a new prompt version."""
        record = PromptRecord(
            id=str(uuid.uuid4()),
            office_id=office_id,
            name=name,
            description=description,
            content=content,
            content_hash=content_hash(content),
            created_at=_now(),
        )
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO prompts (id, office_id, name, description, content, content_hash, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record.id,
                    record.office_id,
                    record.name,
                    record.description,
                    record.content,
                    record.content_hash,
                    record.created_at,
                ),
            )
        return record

    def list_prompts(self, office_id: int) -> list[PromptRecord]:
        """All prompt versions of an office, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM prompts WHERE office_id = ? ORDER BY created_at DESC, rowid DESC",
                (office_id,),
            ).fetchall()
            return [PromptRecord.from_row(row) for row in rows]

    # Office model config methods

    def get_office_model_config(self, office_id: int) -> OfficeModelConfig | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM office_model_config WHERE office_id = ?", (office_id,)
            ).fetchone()
            return OfficeModelConfig.from_row(row) if row else None

    def upsert_office_model_config(
        self,
        office_id: int,
        model_name: str,
        is_fine_tuned: bool = False,
        fine_tuned_model_id: str | None = None,
        notes: str | None = None,
    ) -> None:
        """Insert or update an office's model selection."""
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO office_model_config
                (office_id, model_name, is_fine_tuned, fine_tuned_model_id, created_at, updated_at, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(office_id) DO UPDATE SET
                    model_name = excluded.model_name,
                    is_fine_tuned = excluded.is_fine_tuned,
                    fine_tuned_model_id = excluded.fine_tuned_model_id,
                    updated_at = excluded.updated_at,
                    notes = COALESCE(excluded.notes, office_model_config.notes)
            """,
                (office_id, model_name, int(is_fine_tuned), fine_tuned_model_id, now, now, notes),
            )

    # Extraction history methods

    def save_validation(
        self,
        office_id: int,
        file_name: str,
        input_text: str,
        openai_response: str,
        prompt_used: str,
        assistant_id: str,
        thread_id: str,
        run_id: str,
        file_id: int = 0,
    ) -> int:
        """
        Store one chunk's extraction for later validation.

        Returns:
            Record ID
        """
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO extraction_validations
                (file_id, file_name, office_id, input_text, openai_response, prompt_used,
                 assistant_id, thread_id, run_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    file_id,
                    file_name,
                    office_id,
                    input_text,
                    openai_response,
                    prompt_used,
                    assistant_id,
                    thread_id,
                    run_id,
                    ValidationStatus.PENDING.value,
                    now,
                    now,
                ),
            )
            return cursor.lastrowid

    def get_validation(self, record_id: int) -> ValidationRecord | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM extraction_validations WHERE id = ?", (record_id,)
            ).fetchone()
            return ValidationRecord.from_row(row) if row else None

    def list_validations(
        self,
        office_id: int,
        status: ValidationStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ValidationRecord]:
        """Extraction history of an office, newest first."""
        query = "SELECT * FROM extraction_validations WHERE office_id = ?"
        params: list[Any] = [office_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [ValidationRecord.from_row(row) for row in rows]

    def mark_validated(
        self,
        record_id: int,
        status: ValidationStatus,
        validated_by: str,
        corrected_json: str | None = None,
        notes: str | None = None,
    ) -> bool:
        """
        Record a human validation decision.

        Returns:
            True if the record exists
        """
        if status == ValidationStatus.PENDING:
            raise ValueError("Cannot validate a record back to pending")
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE extraction_validations
                SET status = ?, validated_by = ?, validated_at = ?,
                    corrected_json = COALESCE(?, corrected_json),
                    validation_notes = COALESCE(?, validation_notes),
                    updated_at = ?
                WHERE id = ?
            """,
                (status.value, validated_by, now, corrected_json, notes, now, record_id),
            )
            return cursor.rowcount > 0

    def count_validated(self, office_id: int) -> int:
        """Number of human-validated records for an office."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) as count FROM extraction_validations
                WHERE office_id = ? AND validated_at IS NOT NULL
            """,
                (office_id,),
            ).fetchone()
            return row["count"] if row else 0

    def get_validated_records(self, office_id: int) -> list[ValidationRecord]:
        """Validated records of an office, most recently validated first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM extraction_validations
                WHERE office_id = ? AND validated_at IS NOT NULL
                ORDER BY validated_at DESC, id DESC
            """,
                (office_id,),
            ).fetchall()
            return [ValidationRecord.from_row(row) for row in rows]

    def delete_validations(self, record_ids: list[int]) -> int:
        """Delete history records by ID."""
        if not record_ids:
            return 0
        placeholders = ",".join("?" for _ in record_ids)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM extraction_validations WHERE id IN ({placeholders})",
                record_ids,
            )
            return cursor.rowcount

    # Fine-tuning job methods

    def save_fine_tuning_job(
        self,
        office_id: int,
        job_id: str,
        file_id: str,
        total_examples: int,
        jsonl_size: int,
        validated_count: int = 0,
        status: str = FineTuningJobState.RUNNING.value,
    ) -> int:
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO fine_tuning_jobs
                (office_id, job_id, file_id, total_examples, jsonl_size, validated_count,
                 status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    office_id,
                    job_id,
                    file_id,
                    total_examples,
                    jsonl_size,
                    validated_count,
                    status,
                    now,
                    now,
                ),
            )
            return cursor.lastrowid

    def get_fine_tuning_job(self, job_id: str) -> FineTuningJobRecord | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM fine_tuning_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
            return FineTuningJobRecord.from_row(row) if row else None

    def has_job_for_count(self, office_id: int, validated_count: int) -> bool:
        """Whether a job was already submitted at this validated count."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM fine_tuning_jobs
                WHERE office_id = ? AND validated_count = ?
                LIMIT 1
            """,
                (office_id, validated_count),
            ).fetchone()
            return row is not None

    def get_running_fine_tuning_jobs(self) -> list[FineTuningJobRecord]:
        """Jobs not yet in a terminal state, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM fine_tuning_jobs
                WHERE status NOT IN ('succeeded', 'failed', 'cancelled')
                ORDER BY created_at ASC
            """
            ).fetchall()
            return [FineTuningJobRecord.from_row(row) for row in rows]

    def list_fine_tuning_jobs(self, office_id: int | None = None) -> list[FineTuningJobRecord]:
        query = "SELECT * FROM fine_tuning_jobs"
        params: tuple = ()
        if office_id is not None:
            query += " WHERE office_id = ?"
            params = (office_id,)
        query += " ORDER BY created_at DESC"
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [FineTuningJobRecord.from_row(row) for row in rows]

    def update_fine_tuning_job(
        self,
        job_id: str,
        status: str,
        fine_tuned_model_id: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE fine_tuning_jobs
                SET status = ?,
                    fine_tuned_model_id = COALESCE(?, fine_tuned_model_id),
                    error_message = COALESCE(?, error_message),
                    updated_at = ?
                WHERE job_id = ?
            """,
                (status, fine_tuned_model_id, error_message, _now(), job_id),
            )
            return cursor.rowcount > 0

    # Fine-tuning queue methods

    def enqueue_fine_tuning_check(
        self,
        office_id: int,
        priority: int = 0,
        max_retries: int = 3,
        created_by: str = "AUTO",
    ) -> int | None:
        """
        Queue an eligibility check for an office.

        The office's validated count is captured when the check is queued,
        so every count the office passes through gets its own check. Only
        one PENDING/PROCESSING entry per office and count is allowed.

        Returns:
            Queue entry ID, or None if an active entry for the same count exists
        """
        now = _now()
        with self._transaction() as conn:
            # Hold the write lock across the count, the check and the insert
            conn.execute("BEGIN IMMEDIATE")
            validated_count = conn.execute(
                """
                SELECT COUNT(*) as count FROM extraction_validations
                WHERE office_id = ? AND validated_at IS NOT NULL
            """,
                (office_id,),
            ).fetchone()["count"]
            existing = conn.execute(
                """
                SELECT id FROM fine_tuning_queue
                WHERE office_id = ? AND validated_count = ?
                  AND status IN ('PENDING', 'PROCESSING')
            """,
                (office_id, validated_count),
            ).fetchone()
            if existing:
                return None

            cursor = conn.execute(
                """
                INSERT INTO fine_tuning_queue
                (office_id, status, priority, scheduled_at, validated_count,
                 max_retries, created_by)
                VALUES (?, 'PENDING', ?, ?, ?, ?, ?)
            """,
                (office_id, priority, now, validated_count, max_retries, created_by),
            )
            return cursor.lastrowid

    def get_queue_entry(self, entry_id: int) -> dict[str, Any] | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM fine_tuning_queue WHERE id = ?", (entry_id,)
            ).fetchone()
            return dict(row) if row else None

    def get_next_queue_entries(self, limit: int = 1) -> list[dict[str, Any]]:
        """Pending entries, highest priority first, then oldest."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM fine_tuning_queue
                WHERE status = 'PENDING'
                ORDER BY priority DESC, scheduled_at ASC, id ASC
                LIMIT ?
            """,
                (limit,),
            ).fetchall()
            return [dict(row) for row in rows]

    def start_queue_entry(self, entry_id: int) -> bool:
        """Move a PENDING entry to PROCESSING."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE fine_tuning_queue
                SET status = 'PROCESSING', started_at = ?
                WHERE id = ? AND status = 'PENDING'
            """,
                (_now(), entry_id),
            )
            return cursor.rowcount > 0

    def complete_queue_entry(
        self,
        entry_id: int,
        validated_count: int,
        job_id: str | None = None,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE fine_tuning_queue
                SET status = 'COMPLETED', completed_at = ?, validated_count = ?,
                    job_id = ?, error_message = NULL
                WHERE id = ?
            """,
                (_now(), validated_count, job_id, entry_id),
            )

    def fail_queue_entry(self, entry_id: int, error_message: str, can_retry: bool = True) -> None:
        """
        Record a failed check.

        Retryable entries go back to PENDING until max_retries is reached.
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT retry_count, max_retries FROM fine_tuning_queue WHERE id = ?",
                (entry_id,),
            ).fetchone()
            if not row:
                return
            retry_count = row["retry_count"] + 1
            if can_retry and retry_count < row["max_retries"]:
                status = "PENDING"
            else:
                status = "FAILED"
            conn.execute(
                """
                UPDATE fine_tuning_queue
                SET status = ?, retry_count = ?, error_message = ?, completed_at = ?
                WHERE id = ?
            """,
                (status, retry_count, error_message, _now(), entry_id),
            )

    def get_queue_stats(self) -> dict[str, int]:
        """Count queue entries per status."""
        stats = {"pending": 0, "processing": 0, "completed": 0, "failed": 0}
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) as count FROM fine_tuning_queue GROUP BY status"
            ).fetchall()
            for row in rows:
                stats[row["status"].lower()] = row["count"]
        return stats

    def cleanup_queue(self, days: int = 30) -> int:
        """Remove finished queue entries older than `days`."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat().replace(
            "+00:00", "Z"
        )
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM fine_tuning_queue
                WHERE status IN ('COMPLETED', 'FAILED') AND completed_at < ?
            """,
                (cutoff,),
            )
            return cursor.rowcount

    # Statistics

    def get_stats(self) -> dict[str, Any]:
        """Get pipeline statistics."""
        with self._transaction() as conn:
            assistants = conn.execute(
                "SELECT COUNT(*) as count FROM assistants WHERE active = 1"
            ).fetchone()
            extractions = conn.execute(
                "SELECT COUNT(*) as count FROM extraction_validations"
            ).fetchone()
            pending = conn.execute(
                "SELECT COUNT(*) as count FROM extraction_validations WHERE status = ?",
                (ValidationStatus.PENDING.value,),
            ).fetchone()
            validated = conn.execute(
                "SELECT COUNT(*) as count FROM extraction_validations WHERE validated_at IS NOT NULL"
            ).fetchone()
            jobs = conn.execute("SELECT COUNT(*) as count FROM fine_tuning_jobs").fetchone()
            running = conn.execute(
                """
                SELECT COUNT(*) as count FROM fine_tuning_jobs
                WHERE status NOT IN ('succeeded', 'failed', 'cancelled')
            """
            ).fetchone()

            return {
                "active_assistants": assistants["count"] if assistants else 0,
                "extractions_total": extractions["count"] if extractions else 0,
                "pending_validation": pending["count"] if pending else 0,
                "validated": validated["count"] if validated else 0,
                "fine_tuning_jobs": jobs["count"] if jobs else 0,
                "fine_tuning_running": running["count"] if running else 0,
            }
