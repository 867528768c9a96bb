"""
Migration 001: Add fine_tuning_jobs table.

One row per job submitted to the fine-tuning API. Status starts as
'running' and is updated by the job monitor until it reaches succeeded,
failed or cancelled.
"""

import sqlite3

VERSION = 1
NAME = "fine_tuning_jobs"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the fine_tuning_jobs table."""
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS fine_tuning_jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            office_id INTEGER NOT NULL,
            job_id TEXT NOT NULL UNIQUE,
            file_id TEXT NOT NULL,
            total_examples INTEGER NOT NULL,
            jsonl_size INTEGER NOT NULL,

            -- Validated record count that triggered the submission
            validated_count INTEGER NOT NULL DEFAULT 0,

            -- running, validating_files, queued, succeeded, failed, cancelled
            status TEXT NOT NULL DEFAULT 'running',

            fine_tuned_model_id TEXT,
            error_message TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_fine_tuning_jobs_status
        ON fine_tuning_jobs (status)
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_fine_tuning_jobs_office
        ON fine_tuning_jobs (office_id)
    """)

    conn.commit()


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the fine_tuning_jobs table."""
    cursor = conn.cursor()
    cursor.execute("DROP INDEX IF EXISTS idx_fine_tuning_jobs_status")
    cursor.execute("DROP INDEX IF EXISTS idx_fine_tuning_jobs_office")
    cursor.execute("DROP TABLE IF EXISTS fine_tuning_jobs")
    conn.commit()
