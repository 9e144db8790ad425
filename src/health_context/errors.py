"""Exception taxonomy for the context engine.

All engine failures derive from ContextEngineError and carry:
- a human-readable message
- a machine-readable code
- an optional details dictionary
"""

from __future__ import annotations

from typing import Any


class ContextEngineError(Exception):
    """Base exception for every failure surfaced by the engine.

    Attributes:
        message: Human-readable error message.
        code: Machine-readable error code (e.g. 'LOAD_FAILURE').
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        code: str = "ENGINE_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class LoadFailure(ContextEngineError):
    """Raised when any store fetch fails during load."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="LOAD_FAILURE", details=details)


class ValidationFailure(ContextEngineError):
    """Raised when save would persist selections whose category is disabled.

    No writes are attempted when this is raised.
    """

    def __init__(self, orphaned_ids: list[str]) -> None:
        self.orphaned_ids = sorted(orphaned_ids)
        super().__init__(
            message=(
                f"{len(self.orphaned_ids)} selected item(s) belong to a disabled category; "
                "enable the category or deselect the items before saving"
            ),
            code="VALIDATION_FAILURE",
            details={"orphaned_ids": self.orphaned_ids},
        )


class PersistenceFailure(ContextEngineError):
    """Raised when one or more writes failed during save.

    Writes that succeeded are not rolled back; ``succeeded`` lists them so a
    caller can tell how much of the diff reached the stores.
    """

    def __init__(
        self,
        first_error: BaseException,
        failures: dict[str, BaseException],
        succeeded: list[str],
        category_flags_persisted: bool,
    ) -> None:
        self.first_error = first_error
        self.failures = failures
        self.succeeded = succeeded
        self.category_flags_persisted = category_flags_persisted
        super().__init__(
            message=f"{len(failures)} write(s) failed while saving context selection: {first_error}",
            code="PERSISTENCE_FAILURE",
            details={
                "failed": sorted(failures),
                "succeeded": sorted(succeeded),
                "category_flags_persisted": category_flags_persisted,
            },
        )


class EngineBusyError(ContextEngineError):
    """Raised when load or save is called while another one is in flight."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(
            message=f"Cannot {operation} while engine is {state}",
            code="ENGINE_BUSY",
            details={"operation": operation, "state": state},
        )


class EngineStateError(ContextEngineError):
    """Raised when an operation is not valid from the current state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(
            message=f"Cannot {operation} from state {state}",
            code="INVALID_STATE",
            details={"operation": operation, "state": state},
        )


class EngineClosedError(ContextEngineError):
    """Raised when an engine is used after close()."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"Cannot {operation}: engine session is closed",
            code="ENGINE_CLOSED",
            details={"operation": operation},
        )
