"""In-memory selection state: enabled categories and selected item ids."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .categories import Category

if TYPE_CHECKING:
    from .catalog import ItemCatalog


@dataclass(frozen=True)
class SelectionState:
    """Immutable copy of a selection, used for diffs and fingerprints."""

    enabled_categories: frozenset[Category]
    selected_item_ids: frozenset[str]

    def is_enabled(self, category: Category) -> bool:
        return category in self.enabled_categories

    def is_selected(self, item_id: str) -> bool:
        return item_id in self.selected_item_ids


class SelectionStore:
    """Mutable selection owned by a single engine.

    Category enablement and item membership are independent flags: changing
    one never changes the other. Callers that want a category toggle to select
    or deselect its items do so with ``set_all_items_in_category``.
    """

    def __init__(self) -> None:
        self._enabled: set[Category] = set()
        self._selected: set[str] = set()

    @property
    def enabled_categories(self) -> frozenset[Category]:
        return frozenset(self._enabled)

    @property
    def selected_item_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    def is_enabled(self, category: Category) -> bool:
        return Category(category) in self._enabled

    def is_selected(self, item_id: str) -> bool:
        return item_id in self._selected

    def set_category_enabled(self, category: Category, enabled: bool) -> bool:
        """Set a category flag. Returns True when the flag changed."""

        category = Category(category)
        if enabled == (category in self._enabled):
            return False
        if enabled:
            self._enabled.add(category)
        else:
            self._enabled.discard(category)
        return True

    def set_item_selected(self, item_id: str, selected: bool) -> bool:
        """Idempotently add or remove an id. Returns True when membership changed.

        Unknown ids are accepted; they have no effect until the next load prunes them.
        """

        if selected == (item_id in self._selected):
            return False
        if selected:
            self._selected.add(item_id)
        else:
            self._selected.discard(item_id)
        return True

    def toggle_item(self, item_id: str) -> bool:
        """Flip membership and return the new selected state."""

        selected = item_id not in self._selected
        self.set_item_selected(item_id, selected)
        return selected

    def set_all_items_in_category(self, category: Category, selected: bool, catalog: ItemCatalog) -> int:
        """Apply one selected state to every currently known item of a category.

        Returns how many memberships changed.
        """

        return sum(
            1 for item_id in catalog.ids_in(Category(category)) if self.set_item_selected(item_id, selected)
        )

    def replace(self, enabled: Iterable[Category], selected: Iterable[str]) -> None:
        """Supersede the whole selection, as load does."""

        self._enabled = {Category(category) for category in enabled}
        self._selected = set(selected)

    def freeze(self) -> SelectionState:
        return SelectionState(
            enabled_categories=frozenset(self._enabled),
            selected_item_ids=frozenset(self._selected),
        )
