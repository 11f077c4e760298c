"""
Error taxonomy for pgorm.

Every error raised by the engine derives from ``ORMError`` so callers can catch
the whole family at once. ``is_fatal`` tells whether the current call chain
can continue after the error (validation failures only abort the mutation that
triggered them).
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class ORMError(Exception):
    """Base class for all pgorm errors."""

    is_fatal: bool = True

    def __init__(self, message: str, *, is_fatal: Optional[bool] = None) -> None:
        super().__init__(message)
        self.message = message
        if is_fatal is not None:
            self.is_fatal = is_fatal

    def __str__(self) -> str:
        prefix = "FATAL : " if self.is_fatal else ""
        return f"{prefix}{type(self).__name__} : {self.message}"


class ValidationError(ORMError):
    """One or more validation rules rejected the submitted data."""

    is_fatal = False

    def __init__(self, errors: Sequence[str], message: str = "The given data was invalid.") -> None:
        super().__init__(message)
        self.errors: List[str] = list(errors)

    def get_errors(self) -> List[str]:
        return list(self.errors)

    def __str__(self) -> str:
        return f"{type(self).__name__} : {self.message} ({'; '.join(self.errors)})"


class ModelNotFoundError(ORMError):
    """No model source is registered under the requested name."""


class ModelDefinitionError(ORMError):
    """A model source exists but its configuration is malformed."""


class InvalidRuleError(ModelDefinitionError):
    """A validation rule string could not be parsed."""


class ProtectedFieldError(ORMError):
    """A write was attempted on a field outside the fillable set."""


class MethodNotFoundError(ORMError):
    """A model method was called that the model source does not define."""


class RelationNotFoundError(ORMError):
    """The bound model declares no relation with the requested name."""


class RecordNotFoundError(ORMError):
    """The row targeted by an update does not exist."""


class QueryBuilderError(ORMError):
    """Structural misuse of the query builder, detected before any SQL is sent."""


class QueryExecutionError(ORMError):
    """The backend rejected or failed to run a statement."""

    def __init__(self, message: str, *, sql: Optional[str] = None) -> None:
        super().__init__(message)
        self.sql = sql


class DatabaseConnectionError(ORMError):
    """The connection pool could not be created or is unavailable."""


class MigrationError(ORMError):
    """A migration file could not be loaded or applied."""


__all__ = [
    "ORMError",
    "ValidationError",
    "ModelNotFoundError",
    "ModelDefinitionError",
    "InvalidRuleError",
    "ProtectedFieldError",
    "MethodNotFoundError",
    "RelationNotFoundError",
    "RecordNotFoundError",
    "QueryBuilderError",
    "QueryExecutionError",
    "DatabaseConnectionError",
    "MigrationError",
]
