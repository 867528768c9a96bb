"""
Migration 002: Add fine_tuning_queue table.

Queue of fine-tuning eligibility checks. The extraction path only inserts
rows here; a separate worker counts validated records and submits jobs.

Features:
- One active (PENDING/PROCESSING) entry per office and validated count,
  enforced in the store
- Status tracking: PENDING, PROCESSING, COMPLETED, FAILED
- Retry tracking for failed checks
"""

import sqlite3

VERSION = 2
NAME = "fine_tuning_queue"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the fine_tuning_queue table."""
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS fine_tuning_queue (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            office_id INTEGER NOT NULL,

            -- Status: PENDING, PROCESSING, COMPLETED, FAILED
            status TEXT NOT NULL DEFAULT 'PENDING',

            -- Priority (higher = processed first)
            priority INTEGER NOT NULL DEFAULT 0,

            scheduled_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,

            -- Validated count captured at enqueue time
            validated_count INTEGER,

            -- Results
            job_id TEXT,
            error_message TEXT,

            -- Retry tracking
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,

            created_by TEXT  -- 'AUTO', 'USER'
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_fine_tuning_queue_pending
        ON fine_tuning_queue (status, priority DESC)
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_fine_tuning_queue_active_office
        ON fine_tuning_queue (office_id, status)
        WHERE status IN ('PENDING', 'PROCESSING')
    """)

    conn.commit()


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop the fine_tuning_queue table."""
    cursor = conn.cursor()
    cursor.execute("DROP INDEX IF EXISTS idx_fine_tuning_queue_pending")
    cursor.execute("DROP INDEX IF EXISTS idx_fine_tuning_queue_active_office")
    cursor.execute("DROP TABLE IF EXISTS fine_tuning_queue")
    conn.commit()
