"""Token cost estimation for the selected AI context, with a fingerprinted cache."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from dataclasses import dataclass

from .catalog import ItemCatalog
from .categories import Category, CostFunction, category_for_kind, cost_function_for, spec_for
from .config import EngineConfig
from .models import CostBreakdown, SizeLevel
from .selection import SelectionState


@dataclass(frozen=True)
class DocumentCost:
    item_id: str
    category: Category
    text_length: int | None


@dataclass(frozen=True)
class PanelCost:
    item_id: str
    category: Category
    result_count: int


@dataclass(frozen=True)
class CostInputs:
    """Every value the estimate depends on, and nothing else.

    ``compute_breakdown`` reads only this record and the fingerprint hashes all
    of its fields, so a field added here is costed and fingerprinted together.
    """

    enabled_categories: tuple[Category, ...]
    selected_item_ids: tuple[str, ...]
    documents: tuple[DocumentCost, ...]
    panels: tuple[PanelCost, ...]


@dataclass(frozen=True)
class CostSnapshot:
    tokens: int
    fingerprint: str
    breakdown: CostBreakdown


def collect_cost_inputs(selection: SelectionState, catalog: ItemCatalog) -> CostInputs:
    """Gather the cost-relevant inputs for selected items whose category is enabled."""

    documents: list[DocumentCost] = []
    panels: list[PanelCost] = []
    for item_id in sorted(selection.selected_item_ids):
        item = catalog.get(item_id)
        if item is None:
            continue
        category = category_for_kind(item.kind)
        if category not in selection.enabled_categories:
            continue
        if cost_function_for(item.kind) is CostFunction.lab_panel:
            panels.append(PanelCost(item_id, category, item.result_count))  # type: ignore[union-attr]
        else:
            documents.append(DocumentCost(item_id, category, item.text_length))  # type: ignore[union-attr]

    return CostInputs(
        enabled_categories=tuple(sorted(selection.enabled_categories, key=lambda category: category.value)),
        selected_item_ids=tuple(sorted(selection.selected_item_ids)),
        documents=tuple(documents),
        panels=tuple(panels),
    )


def fingerprint(inputs: CostInputs) -> str:
    """Hash every field of the cost inputs into a stable hex digest."""

    payload = json.dumps(dataclasses.asdict(inputs), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def document_tokens(text_length: int | None, config: EngineConfig) -> int:
    """Estimate a document's tokens from its extracted text length.

    Missing or empty text degrades to the default per-item estimate.
    """

    if not text_length:
        return config.default_item_tokens
    return text_length // config.chars_per_token


def panel_tokens(result_count: int, config: EngineConfig) -> int:
    return result_count * config.per_result_tokens + config.panel_header_tokens


def compute_breakdown(inputs: CostInputs, config: EngineConfig) -> CostBreakdown:
    """Compute per-category token subtotals from scratch."""

    by_category: dict[Category, int] = {}
    for category in inputs.enabled_categories:
        spec = spec_for(category)
        by_category[category] = spec.base_tokens

    for document in inputs.documents:
        by_category[document.category] = by_category.get(document.category, 0) + document_tokens(
            document.text_length, config
        )
    for panel in inputs.panels:
        by_category[panel.category] = by_category.get(panel.category, 0) + panel_tokens(panel.result_count, config)

    return CostBreakdown(by_category=by_category)


def estimate_tokens(selection: SelectionState, catalog: ItemCatalog, config: EngineConfig | None = None) -> int:
    """Uncached estimate over a selection."""

    return compute_breakdown(collect_cost_inputs(selection, catalog), config or EngineConfig()).total


class CostEstimator:
    """Memoised estimate that is trusted only while its fingerprint matches."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self._snapshot: CostSnapshot | None = None
        self.recomputations = 0
        self.cache_hits = 0

    @property
    def cached(self) -> CostSnapshot | None:
        return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None

    def snapshot(self, selection: SelectionState, catalog: ItemCatalog) -> CostSnapshot:
        inputs = collect_cost_inputs(selection, catalog)
        current = fingerprint(inputs)
        cached = self._snapshot
        if cached is not None and cached.fingerprint == current:
            self.cache_hits += 1
            return cached

        self._snapshot = None
        breakdown = compute_breakdown(inputs, self.config)
        fresh = CostSnapshot(tokens=breakdown.total, fingerprint=current, breakdown=breakdown)
        self._snapshot = fresh
        self.recomputations += 1
        return fresh

    def estimate(self, selection: SelectionState, catalog: ItemCatalog) -> int:
        return self.snapshot(selection, catalog).tokens

    def size_level(self, tokens: int) -> SizeLevel:
        return size_level(tokens, self.config)


def format_token_count(tokens: int) -> str:
    """Render a token count compactly: "850", "4.2K", "15K"."""

    if tokens < 1000:
        return str(tokens)
    if tokens < 10_000:
        return f"{tokens / 1000:.1f}K"
    return f"{tokens / 1000:.0f}K"


def size_level(tokens: int, config: EngineConfig | None = None) -> SizeLevel:
    active = config or EngineConfig()
    if tokens < active.small_context_tokens:
        return SizeLevel.small
    if tokens < active.large_context_tokens:
        return SizeLevel.medium
    return SizeLevel.large
