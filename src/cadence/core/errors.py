"""
Structured error types for the cadence engine.

The engine distinguishes four failure shapes and the hierarchy mirrors
them:

- **Claim race** — not an error at all. Conditional updates return
  ``False`` and callers skip.
- **Application processing error** — whatever the user-supplied processor
  raises. Contained by the executor, recorded on the record.
- **Infrastructure fault** — :class:`StoreError` and subclasses. Aborts the
  current scan/sweep pass; the tick wrapper logs it and the next tick
  retries.
- **Programming error** — :class:`IllegalTransitionError`, raised when code
  asks a store for an edge outside the record state machine.

Architecture:
    ::

        CadenceError  (category, retryable, context, cause)
        ├── StoreError                 DATABASE, retryable
        │   └── StoreUnavailableError
        ├── ValidationError            VALIDATION
        ├── ConfigError                CONFIG
        ├── IllegalTransitionError     INTERNAL
        ├── WorkflowNotFoundError      ORCHESTRATION
        └── ProcessingError            PROCESSING

Usage:
    from cadence.core.errors import StoreUnavailableError

    try:
        conn.execute(stmt)
    except SQLAlchemyError as e:
        raise StoreUnavailableError("records update failed", cause=e) from e
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    PROCESSING = "PROCESSING"
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging."""

    workflow_id: int | None = None
    record_id: int | None = None
    operation: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, skipping unset fields."""
        result: dict[str, Any] = {}
        for key in ("workflow_id", "record_id", "operation"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CadenceError(Exception):
    """Base exception for all cadence errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    can override either per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CadenceError:
        """Add context to this error (fluent API).

        Usage:
            raise StoreError("claim failed").with_context(record_id=42)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# INFRASTRUCTURE
# =============================================================================


class StoreError(CadenceError):
    """Record or workflow store could not complete an operation.

    Aborts the current pass. Never raised for a lost claim race.
    """

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class StoreUnavailableError(StoreError):
    """The backing database is unreachable or rejected the statement."""


# =============================================================================
# INPUT / CONFIGURATION
# =============================================================================


class ValidationError(CadenceError):
    """Invalid input to a configuration-surface operation."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field_name:
            result["field"] = self.field_name
        return result


class ConfigError(CadenceError):
    """Invalid engine configuration."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# ENGINE
# =============================================================================


class IllegalTransitionError(CadenceError):
    """A store was asked for a record transition outside the state machine."""

    default_category = ErrorCategory.INTERNAL

    def __init__(self, source: str, target: str):
        super().__init__(f"Illegal record transition: {source} -> {target}")
        self.source = source
        self.target = target


class WorkflowNotFoundError(CadenceError):
    """No workflow with the given id exists."""

    default_category = ErrorCategory.ORCHESTRATION

    def __init__(self, workflow_id: int):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.context.workflow_id = workflow_id


class ProcessingError(CadenceError):
    """Optional error type for processors to signal an application failure.

    Any exception a processor raises is treated the same way; this class
    only exists so processors can attach structured context.
    """

    default_category = ErrorCategory.PROCESSING


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CadenceError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
    "ConfigError",
    "IllegalTransitionError",
    "WorkflowNotFoundError",
    "ProcessingError",
]
