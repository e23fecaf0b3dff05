from __future__ import annotations

from typing import Mapping, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from shardtest.domain.models import InstanceIdentity, LifecycleOutcome
from shardtest.infrastructure.database_types import DataSource


def print_outcomes(outcomes: Sequence[LifecycleOutcome], console: Console | None = None) -> None:
    """
    Render lifecycle outcomes as a rich table, in execution order.
    """
    console = console or Console()

    if not outcomes:
        console.print("[yellow]No operations were run.[/yellow]")
        return

    failed = sum(1 for outcome in outcomes if not outcome.succeeded)
    table = Table(
        title="Environment Lifecycle",
        box=box.ROUNDED,
        caption=f"{len(outcomes) - failed} succeeded, {failed} failed",
    )
    table.add_column("Operation", style="cyan", no_wrap=True)
    table.add_column("Rule Type", style="magenta")
    table.add_column("Result")
    table.add_column("Finished", style="dim")
    table.add_column("Error", style="red")

    for outcome in outcomes:
        result = "[green]ok[/green]" if outcome.succeeded else "[bold red]failed[/bold red]"
        error = f"{outcome.error_type}: {outcome.error}" if outcome.error_type else ""
        table.add_row(
            outcome.operation,
            outcome.rule_type,
            result,
            outcome.finished_at.isoformat(timespec="seconds"),
            error,
        )

    console.print(table)


def print_instance_map(
    rule_type: str,
    data_source_map: Mapping[str, DataSource],
    instance_map: Mapping[str, DataSource],
    identities: Mapping[str, InstanceIdentity],
    console: Console | None = None,
) -> None:
    """
    Render every logical data source with its identity and whether it represents an instance.
    """
    console = console or Console()
    table = Table(title=f"Instances for '{rule_type}'", box=box.ROUNDED)
    table.add_column("Data Source", style="cyan", no_wrap=True)
    table.add_column("Instance", style="magenta")
    table.add_column("Representative", justify="center")

    for name in data_source_map:
        identity = identities.get(name)
        table.add_row(
            name,
            str(identity) if identity is not None else "[dim]role[/dim]",
            "[green]yes[/green]" if name in instance_map else "[dim]no[/dim]",
        )

    console.print(table)
