"""Health data items and read-only views used by the context engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .categories import Category, DocumentCategory, ItemKind, kind_for_document_category


class ProcessingStatus(str, Enum):
    """Extraction lifecycle of an imported document."""

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    queued = "queued"


class SizeLevel(str, Enum):
    """Coarse classification of an estimated payload size."""

    small = "small"
    medium = "medium"
    large = "large"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MedicalDocument(BaseModel):
    """Imported document whose extracted text may be shared with the AI."""

    id: str = Field(default_factory=_new_id, min_length=1)
    file_name: str = Field(..., min_length=1)
    document_category: DocumentCategory = DocumentCategory.other
    processing_status: ProcessingStatus = ProcessingStatus.completed
    extracted_text: str | None = None
    include_in_ai_context: bool = False
    document_date: datetime | None = None
    provider_name: str | None = None

    @field_validator("document_date")
    @classmethod
    def normalize_dt(cls, value: datetime | None) -> datetime | None:
        return _utc(value)

    @property
    def kind(self) -> ItemKind | None:
        return kind_for_document_category(self.document_category)

    @property
    def text_length(self) -> int | None:
        """Length of the extracted text, or None when nothing was extracted."""

        if self.extracted_text is None:
            return None
        return len(self.extracted_text)


class LabResult(BaseModel):
    """Single measured value inside a lab panel."""

    name: str = Field(..., min_length=1)
    value: str
    unit: str | None = None
    reference_range: str | None = None
    is_abnormal: bool = False


class LabPanel(BaseModel):
    """One dated set of lab results."""

    id: str = Field(default_factory=_new_id, min_length=1)
    test_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    laboratory_name: str | None = None
    results: list[LabResult] = Field(default_factory=list)
    include_in_ai_context: bool = False

    @field_validator("test_date")
    @classmethod
    def normalize_dt(cls, value: datetime) -> datetime:
        return _utc(value)  # type: ignore[return-value]

    @property
    def kind(self) -> ItemKind:
        return ItemKind.lab_panel

    @property
    def result_count(self) -> int:
        return len(self.results)

    @property
    def abnormal_count(self) -> int:
        return sum(1 for result in self.results if result.is_abnormal)


@dataclass(frozen=True)
class ContextDescriptor:
    """What the chat client may put in the context payload."""

    enabled_categories: frozenset[Category]
    document_ids: frozenset[str]
    lab_panel_ids: frozenset[str]

    @property
    def item_ids(self) -> frozenset[str]:
        return self.document_ids | self.lab_panel_ids

    @property
    def is_empty(self) -> bool:
        return not self.enabled_categories and not self.item_ids


@dataclass(frozen=True)
class CostBreakdown:
    """Token subtotals per category. Subtotals sum to ``total``."""

    by_category: dict[Category, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.by_category.values())

    def tokens_for(self, category: Category) -> int:
        return self.by_category.get(category, 0)
