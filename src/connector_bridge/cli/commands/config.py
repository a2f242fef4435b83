"""
Configuration management commands.

This module provides commands for validating and creating Connector
Bridge configuration files.
"""

from pathlib import Path

import click

from connector_bridge.cli.context import BridgeContext
from connector_bridge.cli.decorators import handle_errors, pass_context, requires_config
from connector_bridge.cli.utils import echo_error, echo_info, echo_success, print_pairs
from connector_bridge.config import BridgeConfig, save_config_to_yaml
from connector_bridge.store.database import validate_database_connection
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="validate")
@click.option("--check-database", is_flag=True, help="Test that the store database is reachable")
@pass_context
@requires_config
@handle_errors
def validate(ctx: BridgeContext, check_database: bool) -> None:
    """Validate a configuration file.

    Examples:

        connector-bridge --config config.yaml config validate

        connector-bridge --config config.yaml config validate --check-database
    """
    echo_info(f"Validating configuration: {ctx.config_path}")
    settings = ctx.config

    click.echo()
    _display_config_summary(settings)

    if check_database:
        click.echo()
        echo_info("Testing database connection...")
        if not validate_database_connection(settings.store.database_url):
            echo_error(f"Cannot connect to {settings.store.database_url}")
            raise click.exceptions.Exit(2)
        echo_success("Database connection OK")

    click.echo()
    echo_success("Configuration is valid!")


@config.command(name="init")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@handle_errors
def init(output: Path, force: bool) -> None:
    """Write a configuration file with default settings."""
    if output.exists() and not force:
        echo_error(f"{output} already exists (use --force to overwrite)")
        raise click.exceptions.Exit(1)

    save_config_to_yaml(BridgeConfig(), output)
    echo_success(f"Configuration written to {output}")


def _display_config_summary(settings: BridgeConfig) -> None:
    rows = [
        ("Database", settings.store.database_url),
        ("Document format", settings.export.output_format),
        ("Format version", settings.export.format_version),
        ("Transitive mappings", settings.export.include_transitive_mappings),
        ("Mapping call functions", settings.export.mapping_call_functions),
        ("Rewrite mapping calls", settings.export.rewrite_mapping_calls),
        ("Stop on error", settings.import_.stop_on_error),
        ("Log level", settings.logging.level),
    ]
    print_pairs("Configuration Summary", ("Setting", "Value"), rows)
