"""Main CLI entry point for dbconnectors."""

from __future__ import annotations

import click

from dbconnectors import __version__
from dbconnectors.cli.commands import register_commands
from dbconnectors.cli.commands.configuration import config_group
from dbconnectors.cli.commands.database import db_group
from dbconnectors.cli.commands.temp_tables import temp_group
from dbconnectors.cli.utils import configure_logging, console
from dbconnectors.config import EnvironmentSettings


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, config: str, verbose: bool) -> None:
    """dbconnectors - MySQL and ClickHouse connectors with test isolation."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "verbose": verbose,
        }
    )

    env_settings = EnvironmentSettings()
    configure_logging(verbose or env_settings.debug, env_settings.log_level)

    if version:
        console.print(f"dbconnectors v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


COMMAND_REGISTRY = [
    db_group,
    temp_group,
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


if __name__ == "__main__":
    cli()
