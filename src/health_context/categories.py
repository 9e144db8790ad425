"""Fixed registry of AI context categories and the item kinds they govern."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from .config import PERSONAL_INFO_TOKENS


class Category(str, Enum):
    """Health-data groupings offered to the user as one on/off unit."""

    personal_info = "personal_info"
    lab_panel = "lab_panel"
    imaging_report = "imaging_report"
    health_checkup = "health_checkup"


class ItemKind(str, Enum):
    """Closed set of selectable item kinds, each owned by exactly one category."""

    lab_panel = "lab_panel"
    lab_document = "lab_document"
    imaging_document = "imaging_document"
    checkup_document = "checkup_document"


class DocumentCategory(str, Enum):
    """Classification assigned to an imported medical document."""

    doctors_note = "doctors_note"
    imaging_report = "imaging_report"
    lab_report = "lab_report"
    prescription = "prescription"
    discharge_summary = "discharge_summary"
    operative_report = "operative_report"
    pathology_report = "pathology_report"
    consultation = "consultation"
    vaccine_record = "vaccine_record"
    referral = "referral"
    other = "other"


class CostFunction(str, Enum):
    """How the cost of one item of a given kind is computed."""

    lab_panel = "lab_panel"
    document_text = "document_text"


@dataclass(frozen=True)
class CategorySpec:
    category: Category
    label: str
    kinds: frozenset[ItemKind]
    base_tokens: int
    auto_select_on_enable: bool


_SPECS: dict[Category, CategorySpec] = {
    Category.personal_info: CategorySpec(
        category=Category.personal_info,
        label="Personal Information",
        kinds=frozenset(),
        base_tokens=PERSONAL_INFO_TOKENS,
        auto_select_on_enable=False,
    ),
    # Panels and lab-report documents share one toggle, but enabling it never
    # selects anything on the user's behalf.
    Category.lab_panel: CategorySpec(
        category=Category.lab_panel,
        label="Lab Results",
        kinds=frozenset({ItemKind.lab_panel, ItemKind.lab_document}),
        base_tokens=0,
        auto_select_on_enable=False,
    ),
    Category.imaging_report: CategorySpec(
        category=Category.imaging_report,
        label="Imaging Reports",
        kinds=frozenset({ItemKind.imaging_document}),
        base_tokens=0,
        auto_select_on_enable=True,
    ),
    Category.health_checkup: CategorySpec(
        category=Category.health_checkup,
        label="Medical Visits",
        kinds=frozenset({ItemKind.checkup_document}),
        base_tokens=0,
        auto_select_on_enable=True,
    ),
}

REGISTRY: MappingProxyType[Category, CategorySpec] = MappingProxyType(_SPECS)

_KIND_TO_CATEGORY: dict[ItemKind, Category] = {
    kind: spec.category for spec in _SPECS.values() for kind in spec.kinds
}

_DOCUMENT_KINDS: dict[DocumentCategory, ItemKind] = {
    DocumentCategory.lab_report: ItemKind.lab_document,
    DocumentCategory.imaging_report: ItemKind.imaging_document,
    DocumentCategory.doctors_note: ItemKind.checkup_document,
    DocumentCategory.consultation: ItemKind.checkup_document,
}


def spec_for(category: Category) -> CategorySpec:
    return REGISTRY[Category(category)]


def category_for_kind(kind: ItemKind) -> Category:
    """Return the category that owns an item kind."""

    return _KIND_TO_CATEGORY[ItemKind(kind)]


def cost_function_for(kind: ItemKind) -> CostFunction:
    if ItemKind(kind) is ItemKind.lab_panel:
        return CostFunction.lab_panel
    return CostFunction.document_text


def kind_for_document_category(document_category: DocumentCategory) -> ItemKind | None:
    """Map a stored document classification to a selectable kind, if it has one."""

    return _DOCUMENT_KINDS.get(DocumentCategory(document_category))


def parse_category(value: str) -> Category:
    """Parse a category from its value or member name, case-insensitively."""

    normalized = value.strip().lower().replace("-", "_")
    try:
        return Category(normalized)
    except ValueError:
        choices = ", ".join(category.value for category in Category)
        raise ValueError(f"Unknown category {value!r}; expected one of: {choices}") from None


def _check_registry() -> None:
    missing = set(ItemKind) - set(_KIND_TO_CATEGORY)
    if missing:
        raise RuntimeError(f"Item kinds without an owning category: {sorted(missing)}")
    if set(_SPECS) != set(Category):
        raise RuntimeError("Every category must have a registry entry.")


_check_registry()
