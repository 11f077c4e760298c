from __future__ import annotations

import sys
from typing import Optional

import typer

from pgorm.config import get_settings
from pgorm.exceptions import ORMError
from pgorm.migrations import MIGRATION_KINDS, create_migration, run_migrations
from pgorm.models.registry import get_registry
from pgorm.reporter import print_migrations, print_models
from pgorm.utils.logging import configure_logging

app = typer.Typer(help="pgorm: async PostgreSQL data-access engine CLI.")


def _fail(exc: ORMError) -> None:
    typer.echo(str(exc), err=True)
    raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool={settings.pool_min_size}..{settings.pool_max_size} "
        f"models={settings.models_dir} migrations={settings.migrations_dir}"
    )


@app.command()
def models(
    directory: Optional[str] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Directory holding model sources (default from settings).",
    ),
) -> None:
    """
    Discover model sources and list them.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level)
    registry = get_registry()
    try:
        registry.discover(directory or settings.models_dir)
    except ORMError as exc:
        _fail(exc)
    print_models(registry)


@app.command("make-migration")
def make_migration(
    name: str = typer.Argument(..., help="Migration name (letters, digits, underscores)."),
    table: str = typer.Argument("tablename", help="Table the generated statement targets."),
    kind: str = typer.Option(
        "create",
        "--kind",
        "-k",
        help=f"Statement template: {' or '.join(MIGRATION_KINDS)}.",
    ),
) -> None:
    """
    Generate a timestamped migration file.
    """
    configure_logging(level=get_settings().log_level)
    try:
        path = create_migration(name, table=table, kind=kind)
    except ORMError as exc:
        _fail(exc)
    typer.echo(f"Database migration {path.name} successfully created!")


@app.command()
def migrate(
    directory: Optional[str] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Directory holding migration files (default from settings).",
    ),
) -> None:
    """
    Apply pending migrations in filename order.
    """
    configure_logging(level=get_settings().log_level)
    typer.echo("Start migration process")
    try:
        applied = run_migrations(directory)
    except ORMError as exc:
        _fail(exc)
    print_migrations(applied)
    typer.echo(f"End of migration, {len(applied)} file(s) imported!")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
