"""Interfaces of the external stores the engine reads from and writes to."""

from __future__ import annotations

from collections.abc import Set
from typing import Protocol

from .categories import Category
from .models import LabPanel, MedicalDocument


class DocumentStore(Protocol):
    async def fetch_all(self) -> list[MedicalDocument]:
        ...

    async def update(self, document: MedicalDocument) -> None:
        ...


class LabPanelStore(Protocol):
    async def fetch_all(self) -> list[LabPanel]:
        ...

    async def update(self, panel: LabPanel) -> None:
        ...


class CategoryFlagStore(Protocol):
    async def fetch_enabled_categories(self) -> set[Category]:
        ...

    async def persist_enabled_categories(self, categories: Set[Category]) -> None:
        ...
