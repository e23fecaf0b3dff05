from __future__ import annotations

import sys
from typing import List

import typer

from shardtest import lifecycle
from shardtest.config import get_settings
from shardtest.domain.models import LifecycleOutcome
from shardtest.env import IntegrateTestEnvironment
from shardtest.reporter import print_instance_map, print_outcomes
from shardtest.session import HarnessSession
from shardtest.utils.logging import configure_logging

app = typer.Typer(help="Sharding integration-test environment CLI.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(
        level=settings.log_level, json_logs=settings.log_json, time_zone=settings.tzinfo
    )


def _finish(outcomes: List[LifecycleOutcome], strict: bool) -> None:
    print_outcomes(outcomes)
    if strict and any(not outcome.succeeded for outcome in outcomes):
        raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    environment = IntegrateTestEnvironment(settings)
    backends = ", ".join(
        f"{env.name}{'' if env.enabled else ' (disabled)'}"
        for env in environment.database_type_environments()
    )
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port} | "
        f"backends={backends} | rule_types={','.join(environment.rule_types)} | "
        f"resources={settings.resources_dir} | tz={settings.time_zone}"
    )


@app.command()
def create(
    target: str = typer.Argument("all", help="What to create: all, databases or tables."),
    strict: bool = typer.Option(False, "--strict", help="Exit 1 when any operation failed."),
) -> None:
    """
    Create databases and/or tables for every configured rule type.
    """
    _configure()
    operations = {
        "all": lifecycle.create_databases_and_tables,
        "databases": lifecycle.create_databases,
        "tables": lifecycle.create_tables,
    }
    if target not in operations:
        raise typer.BadParameter(f"Unknown target '{target}'. Use: {', '.join(operations)}")
    _finish(operations[target](), strict)


@app.command()
def drop(
    target: str = typer.Argument(..., help="What to drop: databases or tables."),
    strict: bool = typer.Option(False, "--strict", help="Exit 1 when any operation failed."),
) -> None:
    """
    Drop databases or tables for every configured rule type.
    """
    _configure()
    operations = {
        "databases": lifecycle.drop_databases,
        "tables": lifecycle.drop_tables,
    }
    if target not in operations:
        raise typer.BadParameter(f"Unknown target '{target}'. Use: {', '.join(operations)}")
    _finish(operations[target](), strict)


@app.command()
def topology(
    rule_type: str = typer.Option(..., "--rule-type", "-r", help="Rule type to inspect."),
    database_type: str = typer.Option(
        "sqlite", "--database-type", "-d", help="Backend kind to inspect."
    ),
) -> None:
    """
    Show which logical data sources share a physical instance.
    """
    _configure()
    environment = IntegrateTestEnvironment().database_type_environment(database_type)
    if not environment.enabled:
        typer.echo(f"Backend '{environment.name}' is not enabled for this run.", err=True)
        raise typer.Exit(code=1)
    with HarnessSession(rule_type, environment) as session:
        print_instance_map(
            rule_type,
            session.data_source_map,
            session.instance_data_source_map,
            session.instance_identities,
        )


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
