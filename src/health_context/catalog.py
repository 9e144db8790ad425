"""Snapshot of the selectable items known to an engine session."""

from __future__ import annotations

from collections.abc import Iterable

from .categories import Category, ItemKind, category_for_kind
from .models import LabPanel, MedicalDocument, ProcessingStatus

Item = MedicalDocument | LabPanel


class ItemCatalog:
    """Known documents and lab panels, keyed by id, with their last-seen flags.

    Only completed documents whose classification maps to an item kind are
    known. Everything else is invisible to selection, costing and saving.
    """

    def __init__(
        self,
        documents: Iterable[MedicalDocument] = (),
        panels: Iterable[LabPanel] = (),
    ) -> None:
        self._documents: dict[str, MedicalDocument] = {}
        self._panels: dict[str, LabPanel] = {}
        for document in documents:
            if document.processing_status is ProcessingStatus.completed and document.kind is not None:
                self._documents[document.id] = document
        for panel in panels:
            self._panels[panel.id] = panel
        overlap = self._documents.keys() & self._panels.keys()
        if overlap:
            raise ValueError(f"Item ids shared between documents and lab panels: {sorted(overlap)}")

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._documents or item_id in self._panels

    def __len__(self) -> int:
        return len(self._documents) + len(self._panels)

    @property
    def documents(self) -> list[MedicalDocument]:
        return list(self._documents.values())

    @property
    def panels(self) -> list[LabPanel]:
        return list(self._panels.values())

    def items(self) -> list[Item]:
        return [*self._documents.values(), *self._panels.values()]

    def get(self, item_id: str) -> Item | None:
        return self._documents.get(item_id) or self._panels.get(item_id)

    def document(self, item_id: str) -> MedicalDocument | None:
        return self._documents.get(item_id)

    def panel(self, item_id: str) -> LabPanel | None:
        return self._panels.get(item_id)

    def kind_of(self, item_id: str) -> ItemKind | None:
        item = self.get(item_id)
        return item.kind if item is not None else None

    def category_of(self, item_id: str) -> Category | None:
        kind = self.kind_of(item_id)
        return category_for_kind(kind) if kind is not None else None

    def ids_in(self, category: Category) -> list[str]:
        return [item.id for item in self.items() if category_for_kind(item.kind) is category]  # type: ignore[arg-type]

    def documents_in(self, category: Category) -> list[MedicalDocument]:
        return [
            document
            for document in self._documents.values()
            if category_for_kind(document.kind) is category  # type: ignore[arg-type]
        ]

    def included_ids(self) -> set[str]:
        """Ids whose persisted flag says they are in the AI context."""

        return {item.id for item in self.items() if item.include_in_ai_context}

    def mark_persisted(self, item_id: str, included: bool) -> None:
        """Record a successful write so the next diff starts from it."""

        if item_id in self._documents:
            self._documents[item_id] = self._documents[item_id].model_copy(
                update={"include_in_ai_context": included}
            )
        elif item_id in self._panels:
            self._panels[item_id] = self._panels[item_id].model_copy(update={"include_in_ai_context": included})
        else:
            raise KeyError(item_id)
