"""Scratch table maintenance CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from dbconnectors.cli.utils import console, print_exception
from dbconnectors.config import get_config
from dbconnectors.db import get_connection_manager
from dbconnectors.exceptions import ConfigurationError, DatabaseError
from dbconnectors.temp_tables import TempTableHandler


@click.group(name="temp")
def temp_group() -> None:
    """Scratch table maintenance."""
    pass


@temp_group.command(name="gc")
@click.option("--database", "-d", help="Database to clean up (default: default database)")
@click.option("--ttl", help="Retention period, e.g. '7 days' (default: from configuration)")
@click.option("--temporary", is_flag=True, help="Look in the schema used for temporary tables")
@click.pass_context
def gc_command(ctx: click.Context, database: Optional[str], ttl: Optional[str], temporary: bool) -> None:
    """Drop scratch tables older than the retention period."""
    try:
        config = get_config(ctx.obj.get('config'))
        manager = get_connection_manager(config)

        db_name = database or config.default_database
        connector = manager.get_connector(db_name)

        settings = config.temp_tables
        handler = TempTableHandler(
            connector,
            ttl or settings.ttl,
            temporary or settings.use_temporary_tables,
        )

        console.print(
            f"[bold blue]Collecting zombie tables in {db_name} "
            f"(schema: {handler.temporary_schema or '-'}, ttl: {handler.ttl_temp_table})[/bold blue]\n"
        )
        dropped = handler.run_gc()

        if not dropped:
            console.print("[green]No zombie tables found[/green]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", width=4)
        table.add_column("Dropped Table", style="cyan")
        for i, table_name in enumerate(dropped, start=1):
            table.add_row(str(i), table_name)

        console.print(table)
        console.print(f"\n[dim]Total: {len(dropped)} table(s) dropped[/dim]")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except (DatabaseError, ValueError) as exc:
        print_exception("Garbage collection failed", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc
