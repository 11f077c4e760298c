from __future__ import annotations

from typing import List, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from pgorm.models.definition import ModelDefinition
from pgorm.models.registry import ModelRegistry


def _policies(definition: ModelDefinition) -> str:
    flags = []
    if definition.use_autoincrement:
        flags.append("autoincrement")
    else:
        flags.append("uniqid")
    if definition.timestamps:
        flags.append("timestamps")
    if definition.soft_delete:
        flags.append("soft delete")
    return ", ".join(flags)


def build_models_table(registry: ModelRegistry) -> Table:
    """
    Summarize registered models: table, write/read policies, rules and relations.
    """
    table = Table(
        title="Registered models",
        box=box.ROUNDED,
        caption=f"{len(registry)} model(s)",
    )

    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Table", style="magenta")
    table.add_column("Policies", style="green")
    table.add_column("Fillable")
    table.add_column("Hidden", style="dim")
    table.add_column("Rules", justify="right", style="blue")
    table.add_column("Relations")

    for name in registry.names():
        definition = registry.get(name)
        fillable = (
            ", ".join(sorted(definition.fillable_fields)) if definition.fillable_fields else "[dim]-[/dim]"
        )
        relations = ", ".join(
            f"{relation} -> {spec.model}" for relation, spec in sorted(definition.relations.items())
        )
        table.add_row(
            definition.name,
            definition.table,
            _policies(definition),
            fillable,
            ", ".join(sorted(definition.hidden_fields)) or "-",
            str(sum(len(rules) for rules in definition.validations.values())),
            relations or "-",
        )
    return table


def print_models(registry: ModelRegistry) -> None:
    console = Console()
    if not len(registry):
        console.print("[yellow]No models registered.[/yellow]")
        return
    console.print(build_models_table(registry))


def print_migrations(applied: Sequence[str]) -> None:
    """Render the files applied by a migration run."""
    console = Console()
    if not applied:
        console.print("[yellow]Nothing to migrate.[/yellow]")
        return

    table = Table(title="Applied migrations", box=box.ROUNDED)
    table.add_column("#", justify="right", style="blue")
    table.add_column("File", style="cyan")
    rows: List[str] = list(applied)
    for index, file in enumerate(rows, start=1):
        table.add_row(str(index), file)
    console.print(table)


__all__ = ["build_models_table", "print_migrations", "print_models"]
