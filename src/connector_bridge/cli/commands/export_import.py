"""
Export and import commands.

This module provides commands for exporting a configuration (or the
entities bound to a register) to a portable document and importing such a
document into a store.
"""

from pathlib import Path

import click

from connector_bridge.cli.context import BridgeContext
from connector_bridge.cli.decorators import handle_errors, pass_context
from connector_bridge.cli.utils import (
    console,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    count_entities,
)
from connector_bridge.configuration.document import ExportDocument, load_document, save_document
from connector_bridge.reporting.report import TransferReport
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)

FORMAT_CHOICE = click.Choice(["json", "yaml"], case_sensitive=False)


def _write_export(
    ctx: BridgeContext,
    document: ExportDocument,
    output: Path,
    output_format: str | None,
    report_path: Path | None,
) -> None:
    if output_format is None and output.suffix.lower() not in (".yaml", ".yml", ".json"):
        output_format = ctx.config.export.output_format

    path = save_document(document, output, output_format)
    echo_success(f"Exported {count_entities(document.count())} to {path}")

    report = TransferReport.from_export(document)
    report.print_summary(console)
    if report_path:
        report.generate(report_path)
        echo_info(f"Report written to {report_path}")

    if document.failures:
        echo_warning(f"{len(document.failures)} entities could not be exported")


@click.command(name="export")
@click.argument("configuration_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    required=True,
    help="Output file for the export document",
)
@click.option("--format", "output_format", type=FORMAT_CHOICE, help="Document format")
@click.option(
    "--transitive/--no-transitive",
    default=None,
    help="Include mappings reachable only through rules or mapping calls",
)
@click.option("--report", "report_path", type=click.Path(path_type=Path), help="Write a report")
@pass_context
@handle_errors
def export(
    ctx: BridgeContext,
    configuration_id: str,
    output: Path,
    output_format: str | None,
    transitive: bool | None,
    report_path: Path | None,
) -> None:
    """Export a configuration to a portable document.

    Examples:

        connector-bridge export 42 -o petstore.json

        connector-bridge export 42 -o petstore.yaml --no-transitive
    """
    if transitive is not None:
        ctx.config.export.include_transitive_mappings = transitive

    echo_info(f"Exporting configuration {configuration_id}")
    document = ctx.service.export_configuration(configuration_id)
    _write_export(ctx, document, output, output_format and output_format.lower(), report_path)


@click.command(name="export-register")
@click.argument("register_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    required=True,
    help="Output file for the export document",
)
@click.option("--format", "output_format", type=FORMAT_CHOICE, help="Document format")
@click.option("--endpoints/--no-endpoints", default=True, help="Include endpoints")
@click.option(
    "--synchronizations/--no-synchronizations", default=True, help="Include synchronizations"
)
@click.option("--search-source/--no-search-source", default=True, help="Match sync sources")
@click.option("--search-target/--no-search-target", default=True, help="Match sync targets")
@click.option("--report", "report_path", type=click.Path(path_type=Path), help="Write a report")
@pass_context
@handle_errors
def export_register(
    ctx: BridgeContext,
    register_id: str,
    output: Path,
    output_format: str | None,
    endpoints: bool,
    synchronizations: bool,
    search_source: bool,
    search_target: bool,
    report_path: Path | None,
) -> None:
    """Export the endpoints and synchronizations bound to a register.

    Example:

        connector-bridge export-register 3 -o register-3.json --no-search-source
    """
    echo_info(f"Exporting register {register_id}")
    document = ctx.service.export_register(
        register_id,
        include_endpoints=endpoints,
        include_synchronizations=synchronizations,
        search_source=search_source,
        search_target=search_target,
    )
    _write_export(ctx, document, output, output_format and output_format.lower(), report_path)


@click.command(name="import")
@click.argument("document_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--stop-on-error/--continue-on-error",
    default=None,
    help="Abort after the first entity that fails",
)
@click.option("--report", "report_path", type=click.Path(path_type=Path), help="Write a report")
@pass_context
@handle_errors
def import_cmd(
    ctx: BridgeContext,
    document_path: Path,
    stop_on_error: bool | None,
    report_path: Path | None,
) -> None:
    """Import a configuration document into the store.

    Entities whose slug already exists are updated; others are created.

    Example:

        connector-bridge --db target.db import petstore.json
    """
    if stop_on_error is not None:
        ctx.config.import_.stop_on_error = stop_on_error

    document = load_document(document_path)
    echo_info(f"Importing {count_entities(document.count())} from {document_path}")

    result = ctx.service.import_configuration(document)

    report = TransferReport.from_import(result)
    report.print_summary(console)
    if report_path:
        report.generate(report_path)
        echo_info(f"Report written to {report_path}")

    if not result.success:
        echo_error(f"{len(result.failures)} entities failed to import")
        raise click.exceptions.Exit(1)

    echo_success("Import complete")
