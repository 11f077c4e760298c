"""
pgorm - Lightweight asynchronous data-access engine for PostgreSQL.

This package provides:

- A fluent SELECT query builder rendering ``$n`` placeholders
- An ORM layer with create/read/update/upsert/delete, pagination and relations
- Declarative model definitions with fillable and hidden field policies
- A validation rule engine, including database existence checks
- Timestamped migrations and a small CLI

Connections go through a shared asyncpg pool; every value is bound out of band.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from pgorm.config import Settings, build_dsn, get_settings
from pgorm.domain.models import ModelConfig, PaginatedResult, RelationSpec
from pgorm.exceptions import (
    DatabaseConnectionError,
    InvalidRuleError,
    MethodNotFoundError,
    MigrationError,
    ModelDefinitionError,
    ModelNotFoundError,
    ORMError,
    ProtectedFieldError,
    QueryBuilderError,
    QueryExecutionError,
    RecordNotFoundError,
    RelationNotFoundError,
    ValidationError,
)
from pgorm.infrastructure.executor import QueryExecutor, QueryResult, SQLExecutor
from pgorm.models.definition import ModelDefinition
from pgorm.models.registry import ModelRegistry, get_registry
from pgorm.orm import ORM, ModelContext
from pgorm.query.builder import QueryBuilder
from pgorm.utils.logging import configure_logging, get_logger
from pgorm.validation.rules import ValidationRule
from pgorm.validation.validator import Validator

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "build_dsn",
    "get_settings",
    # Engine
    "ORM",
    "ModelContext",
    "QueryBuilder",
    "QueryExecutor",
    "QueryResult",
    "SQLExecutor",
    # Models
    "ModelConfig",
    "ModelDefinition",
    "ModelRegistry",
    "PaginatedResult",
    "RelationSpec",
    "get_registry",
    # Validation
    "ValidationRule",
    "Validator",
    # Errors
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
    # Logging
    "configure_logging",
    "get_logger",
]
