"""
Main CLI entry point for Connector Bridge.

This module provides the command-line interface for exporting connector
configurations to portable documents and importing them elsewhere.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from connector_bridge import __version__
from connector_bridge.cli.commands import config as config_commands
from connector_bridge.cli.commands import export_import
from connector_bridge.cli.commands import slugs as slug_commands
from connector_bridge.cli.context import BridgeContext
from connector_bridge.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="connector-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="CONNECTOR_BRIDGE_CONFIG",
)
@click.option(
    "--db",
    "database",
    help="Store database path or URL (overrides the configuration file)",
    envvar="CONNECTOR_BRIDGE_DB",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Set console logging level (file logging stays at DEBUG)",
    envvar="CONNECTOR_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also log to this file",
    envvar="CONNECTOR_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    database: str | None,
    log_level: str,
    log_file: Path | None,
) -> None:
    """Connector Bridge - Move connector configurations between deployments.

    Exports sources, endpoints, mappings, rules, jobs and synchronizations
    with slugs in place of environment-local ids, and imports them back.

    Examples:

        # Export configuration 42
        connector-bridge --db source.db export 42 -o bundle.json

        # Import it elsewhere
        connector-bridge --db target.db import bundle.json

        # Give every entity a persisted slug
        connector-bridge --db source.db slugs backfill
    """
    configure_logging(level=log_level, log_file=str(log_file) if log_file else None)

    ctx.obj = BridgeContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
        database=database,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


# Register command groups
cli.add_command(config_commands.config)
cli.add_command(slug_commands.slugs)

# Register standalone commands
cli.add_command(export_import.export)
cli.add_command(export_import.export_register)
cli.add_command(export_import.import_cmd, name="import")


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the code of an explicit Exit
        result = cli(standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
