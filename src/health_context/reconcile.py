"""Diff the in-memory selection against persisted flags and write only the changes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Set
from dataclasses import dataclass, field

from .catalog import Item, ItemCatalog
from .categories import Category, ItemKind
from .config import EngineConfig
from .errors import PersistenceFailure
from .logging import get_logger
from .models import LabPanel, MedicalDocument
from .selection import SelectionState
from .stores import CategoryFlagStore, DocumentStore, LabPanelStore

log = get_logger(__name__)

CATEGORY_FLAGS_KEY = "category_flags"


@dataclass(frozen=True)
class PendingWrite:
    """One item whose desired inclusion differs from its persisted flag."""

    item_id: str
    kind: ItemKind
    include: bool
    item: Item


@dataclass
class SaveReport:
    written: list[str] = field(default_factory=list)
    category_flags_persisted: bool = False

    @property
    def write_count(self) -> int:
        return len(self.written)


def plan_writes(selection: SelectionState, catalog: ItemCatalog) -> list[PendingWrite]:
    """Return exactly the items where ``id in selected != include_in_ai_context``."""

    plan: list[PendingWrite] = []
    for item in sorted(catalog.items(), key=lambda entry: entry.id):
        desired = item.id in selection.selected_item_ids
        if desired == item.include_in_ai_context:
            continue
        updated = item.model_copy(update={"include_in_ai_context": desired})
        plan.append(
            PendingWrite(item_id=item.id, kind=item.kind, include=desired, item=updated)  # type: ignore[arg-type]
        )
    return plan


class PersistenceAdapter:
    """Issue planned writes concurrently and observe every outcome."""

    def __init__(
        self,
        document_store: DocumentStore,
        panel_store: LabPanelStore,
        flag_store: CategoryFlagStore,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        self.document_store = document_store
        self.panel_store = panel_store
        self.flag_store = flag_store
        self.max_concurrency = (config or EngineConfig()).max_write_concurrency

    async def apply(self, plan: list[PendingWrite], enabled_categories: Set[Category]) -> SaveReport:
        """Persist category flags and item writes, waiting for all of them.

        The category-flag write and the item writes are independent: a failure
        in one neither cancels nor rolls back the others. When anything fails,
        PersistenceFailure carries the first failure to complete.
        """

        semaphore = asyncio.Semaphore(self.max_concurrency)
        flags_write = self.flag_store.persist_enabled_categories(set(enabled_categories))
        observed = [self._observe(CATEGORY_FLAGS_KEY, flags_write)]
        observed.extend(self._observe(write.item_id, self._write(write, semaphore)) for write in plan)

        first_error: BaseException | None = None
        failures: dict[str, BaseException] = {}
        written: list[str] = []
        flags_persisted = False

        for outcome in asyncio.as_completed([asyncio.ensure_future(coro) for coro in observed]):
            key, error = await outcome
            if error is None:
                if key == CATEGORY_FLAGS_KEY:
                    flags_persisted = True
                else:
                    written.append(key)
                continue
            log.warning("context_write_failed", item_id=key, error=str(error))
            failures[key] = error
            if first_error is None:
                first_error = error

        if first_error is not None:
            raise PersistenceFailure(
                first_error=first_error,
                failures=failures,
                succeeded=sorted(written),
                category_flags_persisted=flags_persisted,
            ) from first_error

        return SaveReport(written=sorted(written), category_flags_persisted=flags_persisted)

    async def _write(self, write: PendingWrite, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            if isinstance(write.item, LabPanel):
                await self.panel_store.update(write.item)
            elif isinstance(write.item, MedicalDocument):
                await self.document_store.update(write.item)
            else:
                raise TypeError(f"Unsupported item type for {write.item_id}: {type(write.item).__name__}")

    @staticmethod
    async def _observe(key: str, operation: Awaitable[None]) -> tuple[str, Exception | None]:
        try:
            await operation
        except Exception as exc:
            return key, exc
        return key, None
