"""
Integration tests for the ORM against a real PostgreSQL instance.

These tests verify that:
1. Records survive a create / find round trip with managed timestamps
2. Soft delete keeps the row and stamps deleted_at
3. Pagination totals match the table contents
4. Upsert and bulk update behave as their SQL promises
5. Migrations are applied once and recorded

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import psycopg
import pytest

from pgorm.exceptions import ValidationError
from pgorm.infrastructure.executor import QueryExecutor
from pgorm.migrations import run_migrations
from pgorm.models import ModelRegistry
from pgorm.orm import ORM

PAGINATION_ROWS = 47
PAGE_SIZE = 25

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)

SCHEMA = [
    "DROP TABLE IF EXISTS it_users",
    "DROP TABLE IF EXISTS it_companies",
    """CREATE TABLE it_companies (
        id SERIAL PRIMARY KEY,
        label VARCHAR(64) NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP DEFAULT NULL,
        deleted_at TIMESTAMP DEFAULT NULL
    )""",
    """CREATE TABLE it_users (
        id SERIAL PRIMARY KEY,
        email VARCHAR(128) NOT NULL UNIQUE,
        name VARCHAR(64),
        company_id INTEGER,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP DEFAULT NULL,
        deleted_at TIMESTAMP DEFAULT NULL
    )""",
]


@pytest.fixture
def db_connection(test_dsn: str) -> Generator[psycopg.Connection, None, None]:
    """
    Autocommit connection with freshly created test tables.

    Skips tests if database is not available.
    """
    try:
        conn = psycopg.connect(test_dsn, autocommit=True, connect_timeout=5)
    except psycopg.OperationalError as exc:
        pytest.skip(f"Database not available for integration tests: {exc}")
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        yield conn
    finally:
        conn.close()


@pytest.fixture
def it_registry() -> ModelRegistry:
    registry = ModelRegistry()
    registry.register(
        "user",
        {
            "config": {
                "table": "it_users",
                "fillable_fields": ["email", "name", "company_id"],
                "validations": {"email": ["required", "email"], "company_id": ["existNotDeleted:it_companies"]},
                "relations": {"company": {"model": "company", "local_field": "company_id", "distant_field": "id"}},
            },
            "fields": {"id": None, "email": None, "name": None, "company_id": None},
        },
    )
    registry.register(
        "company",
        {"config": {"table": "it_companies", "fillable_fields": ["label"], "soft_delete": True}},
    )
    return registry


async def _connect(test_dsn: str, registry: ModelRegistry, test_settings) -> ORM:
    return ORM(await QueryExecutor.connect(test_dsn, test_settings), registry)


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_create_then_find_by_id(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            created = await orm.model("user").create({"email": "jane@example.com", "name": "Jane"})
            found = await orm.model("user").find_by_id(created["id"])
        finally:
            await orm.close()

        assert found is not None
        assert found["email"] == "jane@example.com"
        assert found["created_at"] is not None
        assert found["updated_at"] is None

    @pytest.mark.asyncio
    async def test_update_stamps_updated_at(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            created = await orm.model("user").create({"email": "bob@example.com"})
            updated = await orm.model("user").update(created["id"], {"name": "Bob"})
            found = await orm.model("user").find_by_id(created["id"])
        finally:
            await orm.close()

        assert updated["name"] == "Bob"
        assert found is not None and found["updated_at"] is not None

    @pytest.mark.asyncio
    async def test_exist_rule_and_relation(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            company = await orm.model("company").create({"label": "ACME"})
            with pytest.raises(ValidationError):
                await orm.model("user").create({"email": "x@example.com", "company_id": company["id"] + 100})

            context = orm.model("user")
            await context.create({"email": "eve@example.com", "company_id": company["id"]})
            related = await context.load("company")
        finally:
            await orm.close()

        assert related["label"] == "ACME"


class TestDeletion:
    @pytest.mark.asyncio
    async def test_soft_delete_keeps_row(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            company = await orm.model("company").create({"label": "Initech"})
            await orm.model("company").delete(company["id"])
        finally:
            await orm.close()

        row = db_connection.execute("SELECT deleted_at FROM it_companies WHERE id = %s", (company["id"],)).fetchone()
        assert row is not None and row[0] is not None

    @pytest.mark.asyncio
    async def test_hard_delete_removes_row(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            created = await orm.model("user").create({"email": "gone@example.com"})
            deleted = await orm.model("user").delete(created["id"])
            found = await orm.model("user").find_by_id(created["id"])
        finally:
            await orm.close()

        assert deleted == 1
        assert found is None


class TestBulkOperations:
    @pytest.mark.asyncio
    async def test_pagination_totals(self, db_connection, it_registry, test_dsn, test_settings):
        db_connection.execute(
            "INSERT INTO it_users (email) SELECT 'user' || g || '@example.com' FROM generate_series(1, %s) AS g",
            (PAGINATION_ROWS,),
        )
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            page = await orm.model("user").find_many_paginate(page=2, limit=PAGE_SIZE, order_by=[("id", "ASC")])
        finally:
            await orm.close()

        assert page.total == PAGINATION_ROWS
        assert page.page_count == 2
        assert page.current_page == 2
        assert len(page.data) == PAGINATION_ROWS - PAGE_SIZE

    @pytest.mark.asyncio
    async def test_upsert_updates_existing_row(self, db_connection, it_registry, test_dsn, test_settings):
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            first = await orm.model("user").upsert({"email": "up@example.com", "name": "First"}, "email")
            second = await orm.model("user").upsert({"email": "up@example.com", "name": "Second"}, "email")
        finally:
            await orm.close()

        assert first["id"] == second["id"]
        assert second["name"] == "Second"
        assert second["updated_at"] is not None
        count = db_connection.execute("SELECT COUNT(*) FROM it_users").fetchone()
        assert count is not None and count[0] == 1

    @pytest.mark.asyncio
    async def test_update_where_returns_affected_rows(self, db_connection, it_registry, test_dsn, test_settings):
        db_connection.execute(
            "INSERT INTO it_users (email, name) SELECT 'bulk' || g || '@example.com', 'old' "
            "FROM generate_series(1, 5) AS g"
        )
        orm = await _connect(test_dsn, it_registry, test_settings)
        try:
            affected = await orm.model("user").update_where({"name": "new"}, [["name", "old"], ["id", "<=", 3]])
        finally:
            await orm.close()

        assert affected == 3


class TestMigrations:
    def test_run_migrations_applies_each_file_once(self, db_connection, tmp_path: Path, test_dsn: str):
        db_connection.execute("DROP TABLE IF EXISTS migrations")
        db_connection.execute("DROP TABLE IF EXISTS it_migrated")
        (tmp_path / "20240101000000-it_migrated.py").write_text(
            "queries = ['CREATE TABLE it_migrated (id SERIAL PRIMARY KEY)']\n", encoding="utf-8"
        )

        assert run_migrations(tmp_path, dsn=test_dsn) == ["20240101000000-it_migrated.py"]
        assert run_migrations(tmp_path, dsn=test_dsn) == []

        recorded = db_connection.execute("SELECT file FROM migrations").fetchall()
        assert recorded == [("20240101000000-it_migrated.py",)]
        db_connection.execute("DROP TABLE it_migrated")
