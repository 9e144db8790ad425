"""AI context selection and token budget engine for personal health data."""

from .categories import Category, DocumentCategory, ItemKind
from .config import EngineConfig
from .context_budget import CostEstimator, format_token_count
from .engine import ContextEngine, EngineSnapshot, EngineState
from .errors import (
    ContextEngineError,
    EngineBusyError,
    EngineClosedError,
    EngineStateError,
    LoadFailure,
    PersistenceFailure,
    ValidationFailure,
)
from .models import ContextDescriptor, LabPanel, LabResult, MedicalDocument, ProcessingStatus

__all__ = [
    "Category",
    "ContextDescriptor",
    "ContextEngine",
    "ContextEngineError",
    "CostEstimator",
    "DocumentCategory",
    "EngineBusyError",
    "EngineClosedError",
    "EngineConfig",
    "EngineSnapshot",
    "EngineState",
    "EngineStateError",
    "ItemKind",
    "LabPanel",
    "LabResult",
    "LoadFailure",
    "MedicalDocument",
    "PersistenceFailure",
    "ProcessingStatus",
    "SQLiteHealthStore",
    "ValidationFailure",
    "format_token_count",
]


def __getattr__(name: str):
    if name == "SQLiteHealthStore":
        from .storage import SQLiteHealthStore

        return SQLiteHealthStore
    raise AttributeError(f"module 'health_context' has no attribute {name!r}")
