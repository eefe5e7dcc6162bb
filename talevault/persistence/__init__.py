"""Persistence: SQLite stores for the library and preferences, plus migrations."""

from talevault.persistence.library_store import SQLiteLibraryStore
from talevault.persistence.migrations import run_migrations
from talevault.persistence.preference_store import SQLitePreferenceStore

__all__ = [
    "SQLiteLibraryStore",
    "SQLitePreferenceStore",
    "run_migrations",
]
