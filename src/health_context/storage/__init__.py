"""Storage adapters for health data and context settings."""

from .sqlite_store import SQLiteDocumentStore, SQLiteHealthStore, SQLiteLabPanelStore

__all__ = ["SQLiteHealthStore", "SQLiteDocumentStore", "SQLiteLabPanelStore"]
