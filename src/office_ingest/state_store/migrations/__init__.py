"""
Versioned schema migrations for the SQLite state store.
"""

from .runner import Migration, MigrationError, MigrationRunner, get_all_migrations

__all__ = ["Migration", "MigrationError", "MigrationRunner", "get_all_migrations"]
