"""Database connection CLI commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from dbconnectors.cli.utils import console, print_exception
from dbconnectors.config import get_config
from dbconnectors.db import get_connection_manager
from dbconnectors.exceptions import ConfigurationError, DatabaseError


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """Database connection management."""
    pass


@db_group.command(name="test")
@click.option("--database", "-d", help="Specific database to test (default: all)")
@click.pass_context
def test_connection_command(ctx: click.Context, database: Optional[str]) -> None:
    """Test database connections."""
    try:
        config = get_config(ctx.obj.get('config'))
        manager = get_connection_manager(config)

        console.print("[bold blue]Testing Database Connections[/bold blue]\n")

        if database:
            results = {database: manager.test_connection(database)}
        else:
            results = manager.test_all_connections()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Database", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Status")
        table.add_column("Response Time", justify="right")
        table.add_column("Message")

        for db_name, result in results.items():
            status_color = "green" if result['status'] == 'success' else "red"
            db_type = config.databases[db_name].type.value if db_name in config.databases else "-"
            table.add_row(
                db_name,
                db_type,
                f"[{status_color}]{result['status'].upper()}[/{status_color}]",
                f"{result.get('response_time', 0)} ms",
                result.get('message', ''),
            )

        console.print(table)

        if any(result['status'] != 'success' for result in results.values()):
            raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show configured databases and whether a connector is active."""
    try:
        config = get_config(ctx.obj.get('config'))
        manager = get_connection_manager(config)

        status_info = manager.get_connection_status()
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Database", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Status", style="yellow")
        table.add_column("Default", style="blue")

        for db_name, conn_info in status_info['connections'].items():
            status = "Active" if conn_info['active'] else "Inactive"
            is_default = "yes" if db_name == status_info['default_database'] else ""
            table.add_row(db_name, conn_info['type'], status, is_default)

        console.print(table)
        console.print(
            f"\nTotal: {status_info['total_active']} active / {status_info['total_configured']} configured"
        )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="tables")
@click.option("--database", "-d", help="Database to list tables from (default: default database)")
@click.option("--schema", "-s", required=True, help="Schema to list tables from")
@click.pass_context
def tables_command(ctx: click.Context, database: Optional[str], schema: str) -> None:
    """List tables in a schema."""
    try:
        config = get_config(ctx.obj.get('config'))
        manager = get_connection_manager(config)

        db_name = database or config.default_database
        connector = manager.get_connector(db_name)
        tables = connector.list_tables_in_database(schema)

        console.print(f"[bold blue]Tables in {db_name} (schema: {schema})[/bold blue]\n")
        if not tables.has_at_least_one_table():
            console.print("[yellow]No tables found[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", width=4)
        table.add_column("Table Name", style="cyan")
        table.add_column("Engine", style="green")
        table.add_column("Rows", justify="right")
        for i, db_table in enumerate(tables, start=1):
            rows = "" if db_table.rows is None else str(db_table.rows)
            table.add_row(str(i), db_table.name, db_table.engine or "", rows)

        console.print(table)
        console.print(f"\n[dim]Total: {len(tables)} table(s)[/dim]")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc
