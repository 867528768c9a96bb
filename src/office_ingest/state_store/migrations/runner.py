"""
Migration runner for versioned database schema changes.

Migrations live next to this file, named {version}_{name}.py, e.g.
001_fine_tuning_jobs.py. Each module defines:
- VERSION: int
- NAME: str
- upgrade(conn: Connection) -> None
- downgrade(conn: Connection) -> None  (optional)

Applied versions are recorded in the `migrations` table.
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_PACKAGE = "office_ingest.state_store.migrations"


class MigrationError(Exception):
    """Raised when a migration module is malformed."""

    pass


@dataclass
class Migration:
    """One schema migration."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def load_migration(module_name: str) -> Migration:
    """Import one migration module by file stem."""
    module = importlib.import_module(f"{MIGRATIONS_PACKAGE}.{module_name}")
    try:
        return Migration(
            version=module.VERSION,
            name=module.NAME,
            upgrade=module.upgrade,
            downgrade=getattr(module, "downgrade", None),
        )
    except AttributeError as e:
        raise MigrationError(f"Migration {module_name} is incomplete: {e}") from e


def get_all_migrations() -> list[Migration]:
    """
    Load all migrations from the migrations directory.

    Returns migrations sorted by version. Duplicate versions are an error.
    """
    migrations_dir = Path(__file__).parent
    migrations = [
        load_migration(py_file.stem)
        for py_file in sorted(migrations_dir.glob("[0-9][0-9][0-9]_*.py"))
    ]

    seen: set[int] = set()
    for migration in migrations:
        if migration.version in seen:
            raise MigrationError(f"Duplicate migration version {migration.version}")
        seen.add(migration.version)

    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """
    Applies migrations in version order on one connection.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def get_applied_versions(self) -> set[int]:
        cursor = self.conn.execute("SELECT version FROM migrations")
        return {row[0] for row in cursor.fetchall()}

    def get_current_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        cursor = self.conn.execute("SELECT MAX(version) FROM migrations")
        result = cursor.fetchone()[0]
        return result if result is not None else 0

    def get_pending(self) -> list[Migration]:
        applied = self.get_applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def apply_migration(self, migration: Migration) -> None:
        """Apply one migration and record it; rolls back on failure."""
        logger.info("Applying migration %03d: %s", migration.version, migration.name)
        try:
            migration.upgrade(self.conn)
            applied_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            self.conn.execute(
                "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, applied_at),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("Migration %03d failed: %s", migration.version, e)
            raise

    def rollback_migration(self, migration: Migration) -> None:
        """Revert one migration and forget it."""
        if migration.downgrade is None:
            raise NotImplementedError(
                f"Migration {migration.version} ({migration.name}) does not support rollback"
            )

        logger.info("Rolling back migration %03d: %s", migration.version, migration.name)
        try:
            migration.downgrade(self.conn)
            self.conn.execute("DELETE FROM migrations WHERE version = ?", (migration.version,))
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("Rollback of migration %03d failed: %s", migration.version, e)
            raise

    def run_pending(self) -> list[int]:
        """
        Run all pending migrations.

        Returns list of applied migration versions.
        """
        applied_versions = []
        for migration in self.get_pending():
            self.apply_migration(migration)
            applied_versions.append(migration.version)

        if applied_versions:
            logger.info("Applied %d migrations: %s", len(applied_versions), applied_versions)
        else:
            logger.debug("No pending migrations")
        return applied_versions

    def migrate_to(self, target_version: int) -> None:
        """Upgrade or downgrade to target_version."""
        current = self.get_current_version()
        by_version = {m.version: m for m in get_all_migrations()}

        if target_version > current:
            for version in range(current + 1, target_version + 1):
                if version in by_version:
                    self.apply_migration(by_version[version])
        elif target_version < current:
            for version in range(current, target_version, -1):
                if version in by_version:
                    self.rollback_migration(by_version[version])
