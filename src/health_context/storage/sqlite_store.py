"""Async SQLite persistence for documents, lab panels and context settings."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Set
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..categories import Category
from ..config import DEFAULT_ENABLED_CATEGORIES
from ..models import LabPanel, LabResult, MedicalDocument

ENABLED_CATEGORIES_KEY = "enabled_categories"


class SQLiteHealthStore:
    """Persistence facade implementing the category flag store.

    ``documents`` and ``panels`` expose the document and lab-panel store
    interfaces over the same connection.
    """

    def __init__(self, sqlite_path: str | Path) -> None:
        self.sqlite_path = Path(sqlite_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self.documents = SQLiteDocumentStore(self)
        self.panels = SQLiteLabPanelStore(self)

    async def connect(self) -> None:
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.sqlite_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL;")
        await self._conn.commit()
        await self.init_schema()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteHealthStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def init_schema(self) -> None:
        """Create tables for documents, lab panels and context settings."""

        conn = self._require_conn()
        async with self._lock:
            await conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS medical_documents (
                    document_id TEXT PRIMARY KEY,
                    file_name TEXT NOT NULL,
                    document_category TEXT NOT NULL,
                    processing_status TEXT NOT NULL,
                    extracted_text TEXT,
                    include_in_ai_context INTEGER NOT NULL DEFAULT 0,
                    document_date TEXT,
                    provider_name TEXT
                );

                CREATE TABLE IF NOT EXISTS lab_panels (
                    panel_id TEXT PRIMARY KEY,
                    test_date TEXT NOT NULL,
                    laboratory_name TEXT,
                    results_json TEXT NOT NULL,
                    include_in_ai_context INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS context_settings (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_lab_panels_date ON lab_panels(test_date DESC);
                """
            )
            await conn.commit()

    async def upsert_document(self, document: MedicalDocument) -> str:
        conn = self._require_conn()
        async with self._lock:
            await conn.execute(
                """
                INSERT INTO medical_documents(
                    document_id, file_name, document_category, processing_status,
                    extracted_text, include_in_ai_context, document_date, provider_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    file_name = excluded.file_name,
                    document_category = excluded.document_category,
                    processing_status = excluded.processing_status,
                    extracted_text = excluded.extracted_text,
                    include_in_ai_context = excluded.include_in_ai_context,
                    document_date = excluded.document_date,
                    provider_name = excluded.provider_name
                """,
                (
                    document.id,
                    document.file_name,
                    document.document_category.value,
                    document.processing_status.value,
                    document.extracted_text,
                    int(document.include_in_ai_context),
                    _iso_or_none(document.document_date),
                    document.provider_name,
                ),
            )
            await conn.commit()
        return document.id

    async def upsert_panel(self, panel: LabPanel) -> str:
        conn = self._require_conn()
        async with self._lock:
            await conn.execute(
                """
                INSERT INTO lab_panels(panel_id, test_date, laboratory_name, results_json, include_in_ai_context)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(panel_id) DO UPDATE SET
                    test_date = excluded.test_date,
                    laboratory_name = excluded.laboratory_name,
                    results_json = excluded.results_json,
                    include_in_ai_context = excluded.include_in_ai_context
                """,
                (
                    panel.id,
                    panel.test_date.isoformat(),
                    panel.laboratory_name,
                    _json_dumps([result.model_dump() for result in panel.results]),
                    int(panel.include_in_ai_context),
                ),
            )
            await conn.commit()
        return panel.id

    async def get_documents(self) -> list[MedicalDocument]:
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT document_id, file_name, document_category, processing_status, extracted_text,
                   include_in_ai_context, document_date, provider_name
            FROM medical_documents
            ORDER BY COALESCE(document_date, '') DESC, document_id ASC
            """
        )
        rows = await cursor.fetchall()
        return [
            MedicalDocument(
                id=row["document_id"],
                file_name=row["file_name"],
                document_category=row["document_category"],
                processing_status=row["processing_status"],
                extracted_text=row["extracted_text"],
                include_in_ai_context=bool(row["include_in_ai_context"]),
                document_date=_parse_dt(row["document_date"]),
                provider_name=row["provider_name"],
            )
            for row in rows
        ]

    async def get_panels(self) -> list[LabPanel]:
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT panel_id, test_date, laboratory_name, results_json, include_in_ai_context
            FROM lab_panels
            ORDER BY test_date DESC
            """
        )
        rows = await cursor.fetchall()
        return [
            LabPanel(
                id=row["panel_id"],
                test_date=datetime.fromisoformat(row["test_date"]),
                laboratory_name=row["laboratory_name"],
                results=[LabResult(**result) for result in _json_loads(row["results_json"]) or []],
                include_in_ai_context=bool(row["include_in_ai_context"]),
            )
            for row in rows
        ]

    async def set_included(self, table: str, item_id: str, included: bool) -> None:
        """Write one inclusion flag; raises KeyError when the row does not exist."""

        id_column = {"medical_documents": "document_id", "lab_panels": "panel_id"}[table]
        conn = self._require_conn()
        async with self._lock:
            cursor = await conn.execute(
                f"UPDATE {table} SET include_in_ai_context = ? WHERE {id_column} = ?",
                (int(included), item_id),
            )
            await conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"No row in {table} with id {item_id!r}")

    async def fetch_enabled_categories(self) -> set[Category]:
        conn = self._require_conn()
        cursor = await conn.execute(
            "SELECT value_json FROM context_settings WHERE key = ?",
            (ENABLED_CATEGORIES_KEY,),
        )
        row = await cursor.fetchone()
        if row is None:
            return {Category(value) for value in DEFAULT_ENABLED_CATEGORIES}
        stored = _json_loads(row["value_json"]) or []
        known = {category.value for category in Category}
        return {Category(value) for value in stored if value in known}

    async def persist_enabled_categories(self, categories: Set[Category]) -> None:
        conn = self._require_conn()
        values = sorted(Category(category).value for category in categories)
        async with self._lock:
            await conn.execute(
                """
                INSERT INTO context_settings(key, value_json) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json
                """,
                (ENABLED_CATEGORIES_KEY, _json_dumps(values)),
            )
            await conn.commit()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteHealthStore is not connected. Call connect() first.")
        return self._conn


class SQLiteDocumentStore:
    """Document store view over a SQLiteHealthStore."""

    def __init__(self, store: SQLiteHealthStore) -> None:
        self._store = store

    async def fetch_all(self) -> list[MedicalDocument]:
        return await self._store.get_documents()

    async def update(self, document: MedicalDocument) -> None:
        await self._store.set_included("medical_documents", document.id, document.include_in_ai_context)


class SQLiteLabPanelStore:
    """Lab-panel store view over a SQLiteHealthStore."""

    def __init__(self, store: SQLiteHealthStore) -> None:
        self._store = store

    async def fetch_all(self) -> list[LabPanel]:
        return await self._store.get_panels()

    async def update(self, panel: LabPanel) -> None:
        await self._store.set_included("lab_panels", panel.id, panel.include_in_ai_context)


def _iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _json_dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _json_loads(value: str | None) -> Any:
    if not value:
        return None
    return json.loads(value)
