"""
Timestamped SQL migrations: file generator and runner.

A migration is a Python module named ``<YYYYmmddHHMMSS>-<name>.py`` exposing a
``queries`` list of SQL statements. The runner records every applied file in a
``migrations`` table and, on the next run, only executes files stamped after
the last recorded one. Each file runs in its own transaction.
"""

from __future__ import annotations

import importlib.util
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Union

import psycopg

from pgorm.config import get_settings
from pgorm.exceptions import MigrationError
from pgorm.infrastructure.db_factory import get_sync_connection
from pgorm.utils.logging import get_logger

log = get_logger(__name__)

MIGRATION_KINDS = ("create", "alter")
MIGRATIONS_TABLE = "migrations"

_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_FILE_RE = re.compile(r"^(\d{14})-[A-Za-z0-9_]+\.py$")

_CREATE_TEMPLATE = '''"""Auto-generated migration: {name}."""

queries = [
    """CREATE TABLE {table} (
        id SERIAL PRIMARY KEY,
        field VARCHAR(64) NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP DEFAULT NULL,
        deleted_at TIMESTAMP DEFAULT NULL
    )""",
]
'''

_ALTER_TEMPLATE = '''"""Auto-generated migration: {name}."""

queries = [
    """ALTER TABLE {table} ADD COLUMN field VARCHAR(64) DEFAULT NULL""",
]
'''


def _resolve_directory(directory: Optional[Union[str, Path]]) -> Path:
    return Path(directory) if directory is not None else Path(get_settings().migrations_dir)


def create_migration(
    name: str,
    table: str = "tablename",
    kind: str = "create",
    directory: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Write a new migration file from the ``create`` or ``alter`` template.

    Parameters
    ----------
    name : str
        Migration name; letters, digits and underscores.
    table : str
        Table the template statement targets.
    kind : str
        ``create`` or ``alter``.
    directory : str or Path, optional
        Destination; ``settings.migrations_dir`` by default. Created if missing.

    Returns
    -------
    Path
        The written file.
    """
    if not _NAME_RE.fullmatch(name):
        raise MigrationError(f"Invalid migration name '{name}': use letters, digits and underscores")
    if not _NAME_RE.fullmatch(table):
        raise MigrationError(f"Invalid table name '{table}'")
    kind = kind.lower()
    if kind not in MIGRATION_KINDS:
        raise MigrationError(f"Migration kind must be one of {', '.join(MIGRATION_KINDS)} (got '{kind}')")

    target_dir = _resolve_directory(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"{datetime.now().strftime('%Y%m%d%H%M%S')}-{name}.py"
    if path.exists():
        raise MigrationError(f"Migration {path.name} already exists")

    template = _CREATE_TEMPLATE if kind == "create" else _ALTER_TEMPLATE
    path.write_text(template.format(name=name, table=table), encoding="utf-8")
    log.info("created migration %s", path.name)
    return path


def list_migration_files(directory: Union[str, Path]) -> List[Path]:
    """Migration files of ``directory`` in application order."""
    path = Path(directory)
    if not path.is_dir():
        raise MigrationError(f"Migrations directory {path} does not exist")
    return sorted(file for file in path.iterdir() if _FILE_RE.fullmatch(file.name))


def load_queries(file: Path) -> List[str]:
    """Import a migration file and return its ``queries`` list."""
    spec = importlib.util.spec_from_file_location(f"pgorm_migrations.m{file.stem.split('-')[0]}", file)
    if spec is None or spec.loader is None:
        raise MigrationError(f"Can not import migration {file.name}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise MigrationError(f"Migration {file.name} failed to import: {exc}") from exc

    queries = getattr(module, "queries", None)
    if not isinstance(queries, (list, tuple)) or not all(isinstance(query, str) for query in queries):
        raise MigrationError(f"Migration {file.name} must define 'queries' as a list of SQL strings")
    return list(queries)


def pending_migrations(files: Sequence[Path], last_applied: Optional[str]) -> List[Path]:
    """Files stamped strictly after ``last_applied`` (every file when nothing was applied)."""
    if last_applied is None:
        return list(files)
    last_stamp = last_applied.split("-")[0]
    return [file for file in files if file.name.split("-")[0] > last_stamp]


def run_migrations(directory: Optional[Union[str, Path]] = None, dsn: Optional[str] = None) -> List[str]:
    """
    Apply every pending migration and return the applied file names.

    Raises
    ------
    MigrationError
        If the database is unreachable, a file is malformed or a statement
        fails. The failing file is rolled back; files applied before it stay.
    """
    files = list_migration_files(_resolve_directory(directory))

    try:
        conn = get_sync_connection(dsn)
    except psycopg.Error as exc:
        raise MigrationError(f"Unable to connect for migrations: {exc}") from exc

    applied: List[str] = []
    with conn:
        conn.autocommit = True
        try:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (id SERIAL PRIMARY KEY, file VARCHAR NOT NULL)"
            )
            row = conn.execute(f"SELECT file FROM {MIGRATIONS_TABLE} ORDER BY id DESC LIMIT 1").fetchone()
        except psycopg.Error as exc:
            raise MigrationError(f"Unable to read the {MIGRATIONS_TABLE} table: {exc}") from exc

        last_applied = row[0] if row else None
        if last_applied:
            log.info("last migrated file was %s", last_applied)

        for file in pending_migrations(files, last_applied):
            queries = load_queries(file)
            try:
                with conn.transaction():
                    for query in queries:
                        conn.execute(query)
                    conn.execute(f"INSERT INTO {MIGRATIONS_TABLE} (file) VALUES (%s)", (file.name,))
            except psycopg.Error as exc:
                raise MigrationError(f"Migration {file.name} failed: {exc}") from exc
            log.info("executed migration %s", file.name)
            applied.append(file.name)

    log.info("migration finished, %d file(s) applied", len(applied))
    return applied


__all__ = [
    "MIGRATION_KINDS",
    "MIGRATIONS_TABLE",
    "create_migration",
    "list_migration_files",
    "load_queries",
    "pending_migrations",
    "run_migrations",
]
