"""
Pytest configuration for pgorm.

Provides fixtures for:
- A scripted in-memory executor recording every statement
- A model registry preloaded with sample models
- Settings and DSN for integration tests
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import pytest

from pgorm.config import Settings, build_dsn
from pgorm.infrastructure.executor import QueryResult
from pgorm.models.registry import ModelRegistry

USER_SOURCE: Dict[str, Any] = {
    "config": {
        "table": "users",
        "fillable_fields": ["email", "name", "password", "company_id"],
        "hidden_fields": ["password"],
        "validations": {
            "email": ["required", "email"],
            "name": ["string", "maxLength:32"],
        },
        "relations": {
            "company": {"model": "company", "local_field": "company_id", "distant_field": "id"},
        },
    },
    "fields": {"id": None, "email": None, "name": None, "password": None, "company_id": None},
    "methods": {
        "getDisplayName": lambda model: (model.get_field("name") or model.get_field("email")),
    },
}

COMPANY_SOURCE: Dict[str, Any] = {
    "config": {
        "table": "companies",
        "fillable_fields": ["label"],
        "soft_delete": True,
        "validations": {"label": "required"},
    },
    "fields": {"id": None, "label": None},
}

TOKEN_SOURCE: Dict[str, Any] = {
    "config": {
        "table": "tokens",
        "use_autoincrement": False,
        "timestamps": False,
        "fillable_fields": ["value", "user_id"],
        "validations": {"user_id": ["required", "exist:users"]},
    },
    "fields": {"id": None, "value": None, "user_id": None},
}


class FakeExecutor:
    """
    Executor double: replays queued results and records (sql, params) pairs.

    Statements without a queued result get an empty ``QueryResult``.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, List[Any]]] = []
        self.transactions = 0
        self._results: List[QueryResult] = []

    def push(self, rows: Optional[Sequence[Dict[str, Any]]] = None, row_count: Optional[int] = None) -> "FakeExecutor":
        rows = list(rows or [])
        self._results.append(QueryResult(rows=rows, row_count=len(rows) if row_count is None else row_count))
        return self

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        self.calls.append((sql, list(params or [])))
        if self._results:
            return self._results.pop(0)
        return QueryResult()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["FakeExecutor"]:
        self.transactions += 1
        yield self

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.calls]


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def registry() -> ModelRegistry:
    registry = ModelRegistry()
    registry.register("user", USER_SOURCE)
    registry.register("company", COMPANY_SOURCE)
    registry.register("token", TOKEN_SOURCE)
    return registry


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "pgorm"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)
