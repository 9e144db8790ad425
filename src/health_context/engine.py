"""Context selection engine: load, mutate, query and save the AI context selection."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .catalog import ItemCatalog
from .categories import Category, category_for_kind, spec_for
from .config import EngineConfig
from .context_budget import CostEstimator, format_token_count
from .errors import (
    EngineBusyError,
    EngineClosedError,
    EngineStateError,
    LoadFailure,
    PersistenceFailure,
    ValidationFailure,
)
from .logging import get_logger
from .models import ContextDescriptor, CostBreakdown, LabPanel, MedicalDocument, SizeLevel
from .reconcile import PersistenceAdapter, SaveReport, plan_writes
from .selection import SelectionState, SelectionStore
from .stores import CategoryFlagStore, DocumentStore, LabPanelStore

log = get_logger(__name__)


class EngineState(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    saving = "saving"
    error = "error"


ChangeCallback = Callable[["ContextEngine"], None]


@dataclass(frozen=True)
class EngineSnapshot:
    """Pull-based view of everything a context selector screen displays."""

    state: EngineState
    enabled_categories: frozenset[Category]
    selected_item_ids: frozenset[str]
    enabled_categories_count: int
    included_documents_count: int
    included_panels_count: int
    estimated_tokens: int
    estimated_context_size: str
    size_level: SizeLevel
    breakdown: CostBreakdown
    orphaned_ids: tuple[str, ...]


class ContextEngine:
    """Owns one editing session of the AI context selection.

    All mutations are synchronous. Only ``load`` and ``save`` suspend, and at
    most one of them runs at a time; a second call while one is in flight is
    rejected with EngineBusyError.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        panel_store: LabPanelStore,
        flag_store: CategoryFlagStore,
        *,
        config: EngineConfig | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.document_store = document_store
        self.panel_store = panel_store
        self.flag_store = flag_store
        self.on_change = on_change

        self._selection = SelectionStore()
        self._catalog = ItemCatalog()
        self._estimator = CostEstimator(self.config)
        self._adapter = PersistenceAdapter(document_store, panel_store, flag_store, config=self.config)

        self._state = EngineState.idle
        self._has_loaded = False
        self._closed = False
        self.last_error: Exception | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def catalog(self) -> ItemCatalog:
        return self._catalog

    @property
    def estimator(self) -> CostEstimator:
        return self._estimator

    # Lifecycle

    async def load(self) -> None:
        """Replace the selection with the stores' current persisted state.

        Fetches run concurrently. On failure the previous selection is kept
        and the engine moves to ``error``; calling load again retries.
        """

        self._ensure_open("load")
        self._ensure_idle("load")
        previous = self._state
        self._state = EngineState.loading
        log.debug("context_load_started")

        try:
            documents, panels, enabled = await asyncio.gather(
                self.document_store.fetch_all(),
                self.panel_store.fetch_all(),
                self.flag_store.fetch_enabled_categories(),
            )
            catalog = ItemCatalog(documents, panels)
            enabled_categories = {Category(category) for category in enabled}
        except asyncio.CancelledError:
            self._state = previous
            log.debug("context_load_cancelled", restored=previous.value)
            raise
        except Exception as exc:
            if self._closed:
                raise
            failure = LoadFailure(
                f"Failed to load context selection: {exc}",
                details={"error_type": type(exc).__name__},
            )
            self._state = EngineState.error
            self.last_error = failure
            log.error("context_load_failed", error=str(exc), error_type=type(exc).__name__)
            raise failure from exc

        if self._closed:
            log.debug("context_load_discarded")
            return

        self._catalog = catalog
        self._selection.replace(enabled_categories, catalog.included_ids())
        self._estimator.invalidate()
        self._has_loaded = True
        self._state = EngineState.ready
        self.last_error = None
        log.info(
            "context_load_completed",
            documents=len(catalog.documents),
            panels=len(catalog.panels),
            enabled_categories=sorted(category.value for category in enabled_categories),
        )
        self._notify()

    async def save(self) -> SaveReport:
        """Persist the category flags and every item whose inclusion changed.

        Raises ValidationFailure without writing anything when a selected item
        belongs to a disabled category. Toggles made while the save is in
        flight are not part of it; they are picked up by the next save. A
        cancelled save leaves the engine in ``error`` and a load is required
        before saving again.
        """

        self._ensure_open("save")
        self._ensure_idle("save")
        if not self._has_loaded or self._state not in (EngineState.ready, EngineState.error):
            raise EngineStateError("save", self._state.value)

        orphaned = self.orphaned_selections()
        if orphaned:
            log.warning("context_save_rejected", orphaned=len(orphaned))
            raise ValidationFailure(orphaned)

        frozen = self._selection.freeze()
        plan = plan_writes(frozen, self._catalog)
        catalog = self._catalog
        self._state = EngineState.saving
        log.debug("context_save_started", writes=len(plan))

        try:
            report = await self._adapter.apply(plan, frozen.enabled_categories)
        except asyncio.CancelledError:
            # Some writes may have landed; the last-known flags are no longer trusted.
            self._has_loaded = False
            self._state = EngineState.error
            log.warning("context_save_cancelled", writes=len(plan))
            raise
        except PersistenceFailure as failure:
            if self._closed:
                raise
            self._fold_written(catalog, frozen, failure.succeeded)
            self._state = EngineState.error
            self.last_error = failure
            log.error(
                "context_save_failed",
                failed=len(failure.failures),
                succeeded=len(failure.succeeded),
                category_flags_persisted=failure.category_flags_persisted,
            )
            raise

        if self._closed:
            log.debug("context_save_discarded")
            return report

        self._fold_written(catalog, frozen, report.written)
        self._state = EngineState.ready
        self.last_error = None
        log.info("context_save_completed", writes=report.write_count)
        return report

    def close(self) -> None:
        """End the session; results of any in-flight load or save are dropped."""

        self._closed = True
        self.on_change = None

    # Mutations

    def toggle_category(self, category: Category, enabled: bool) -> None:
        """Flip a category and apply its registry auto-select policy."""

        self._ensure_open("toggle category")
        category = Category(category)
        changed = self._selection.set_category_enabled(category, enabled)
        if spec_for(category).auto_select_on_enable:
            changed = self._selection.set_all_items_in_category(category, enabled, self._catalog) > 0 or changed
        if changed:
            self._notify()

    def set_category_enabled(self, category: Category, enabled: bool) -> None:
        """Set only the category flag; item membership is left untouched."""

        self._ensure_open("set category")
        if self._selection.set_category_enabled(category, enabled):
            self._notify()

    def set_item_selected(self, item_id: str, selected: bool) -> None:
        self._ensure_open("select item")
        if self._selection.set_item_selected(item_id, selected):
            self._notify()

    def toggle_item(self, item_id: str) -> bool:
        self._ensure_open("toggle item")
        selected = self._selection.toggle_item(item_id)
        self._notify()
        return selected

    def set_all_items_in_category(self, category: Category, selected: bool) -> int:
        self._ensure_open("select category items")
        changed = self._selection.set_all_items_in_category(category, selected, self._catalog)
        if changed:
            self._notify()
        return changed

    # Queries

    def selection_state(self) -> SelectionState:
        return self._selection.freeze()

    def is_category_enabled(self, category: Category) -> bool:
        return self._selection.is_enabled(category)

    def is_item_selected(self, item_id: str) -> bool:
        return self._selection.is_selected(item_id)

    @property
    def panels(self) -> list[LabPanel]:
        return self._catalog.panels

    def documents_in(self, category: Category) -> list[MedicalDocument]:
        return self._catalog.documents_in(Category(category))

    @property
    def enabled_categories_count(self) -> int:
        return len(self._selection.enabled_categories)

    @property
    def included_documents_count(self) -> int:
        return sum(1 for item_id in self._effective_ids() if self._catalog.document(item_id) is not None)

    @property
    def included_panels_count(self) -> int:
        return sum(1 for item_id in self._effective_ids() if self._catalog.panel(item_id) is not None)

    def estimated_tokens(self) -> int:
        return self._estimator.estimate(self._selection.freeze(), self._catalog)

    def estimated_context_size(self) -> str:
        return format_token_count(self.estimated_tokens())

    def size_level(self) -> SizeLevel:
        return self._estimator.size_level(self.estimated_tokens())

    def breakdown(self) -> CostBreakdown:
        return self._estimator.snapshot(self._selection.freeze(), self._catalog).breakdown

    def orphaned_selections(self) -> list[str]:
        """Known items that are selected while their category is disabled."""

        enabled = self._selection.enabled_categories
        orphaned: list[str] = []
        for item_id in sorted(self._selection.selected_item_ids):
            category = self._catalog.category_of(item_id)
            if category is not None and category not in enabled:
                orphaned.append(item_id)
        return orphaned

    def current_context_descriptor(self) -> ContextDescriptor:
        """Enabled categories and the effectively selected items, for payload assembly."""

        effective = self._effective_ids()
        return ContextDescriptor(
            enabled_categories=self._selection.enabled_categories,
            document_ids=frozenset(item_id for item_id in effective if self._catalog.document(item_id) is not None),
            lab_panel_ids=frozenset(item_id for item_id in effective if self._catalog.panel(item_id) is not None),
        )

    def current_snapshot(self) -> EngineSnapshot:
        cost = self._estimator.snapshot(self._selection.freeze(), self._catalog)
        return EngineSnapshot(
            state=self._state,
            enabled_categories=self._selection.enabled_categories,
            selected_item_ids=self._selection.selected_item_ids,
            enabled_categories_count=self.enabled_categories_count,
            included_documents_count=self.included_documents_count,
            included_panels_count=self.included_panels_count,
            estimated_tokens=cost.tokens,
            estimated_context_size=format_token_count(cost.tokens),
            size_level=self._estimator.size_level(cost.tokens),
            breakdown=cost.breakdown,
            orphaned_ids=tuple(self.orphaned_selections()),
        )

    # Internals

    def _effective_ids(self) -> list[str]:
        enabled = self._selection.enabled_categories
        effective: list[str] = []
        for item_id in sorted(self._selection.selected_item_ids):
            item = self._catalog.get(item_id)
            if item is not None and category_for_kind(item.kind) in enabled:
                effective.append(item_id)
        return effective

    @staticmethod
    def _fold_written(catalog: ItemCatalog, frozen: SelectionState, written: list[str]) -> None:
        for item_id in written:
            if item_id in catalog:
                catalog.mark_persisted(item_id, frozen.is_selected(item_id))

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise EngineClosedError(operation)

    def _ensure_idle(self, operation: str) -> None:
        if self._state in (EngineState.loading, EngineState.saving):
            raise EngineBusyError(operation, self._state.value)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
