"""Export and import report generation.

This module renders the outcome of an export or import as JSON, Markdown
or a Rich summary table.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from connector_bridge.configuration.document import ExportDocument
from connector_bridge.configuration.service import ImportReport
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LISTED_ERRORS = 10


class TransferReport:
    """Summary of one export or import run."""

    def __init__(self, operation: str, summary: dict[str, Any]):
        """Initialize transfer report.

        Args:
            operation: "export" or "import"
            summary: Counts per type under "counts", failures under "errors"
        """
        self.operation = operation
        self.summary = summary
        self.generated_at = datetime.now(UTC)

    @classmethod
    def from_import(cls, report: ImportReport) -> "TransferReport":
        return cls(
            "import",
            {
                "status": "completed" if report.success else "aborted" if report.aborted else "partial",
                "counts": report.counts(),
                "errors": [
                    {"type": str(o.entity_type), "slug": o.slug, "error": o.error}
                    for o in report.failures
                ],
            },
        )

    @classmethod
    def from_export(cls, document: ExportDocument) -> "TransferReport":
        failures = document.failures
        return cls(
            "export",
            {
                "status": "completed" if not failures else "partial",
                "configuration_id": document.configuration_id,
                "counts": {
                    type_name: {"exported": len(records)}
                    for type_name, records in document.entities.items()
                },
                "errors": [
                    {"type": str(f.entity_type), "id": f.entity_id, "error": f.error}
                    for f in failures
                ],
            },
        )

    @property
    def columns(self) -> list[str]:
        if self.operation == "export":
            return ["exported"]
        return ["created", "updated", "failed"]

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        report = {
            "report_version": "1.0",
            "operation": self.operation,
            "generated_at": self.generated_at.isoformat(),
            **self.summary,
        }
        json_str = json.dumps(report, indent=2, default=str)

        if output_path:
            Path(output_path).write_text(json_str)
            logger.info("json_report_saved", path=str(output_path))

        return json_str

    def generate_markdown(self, output_path: str | Path | None = None) -> str:
        """Generate Markdown report.

        Args:
            output_path: Optional path to save report

        Returns:
            Markdown report as string
        """
        lines = [
            f"# Configuration {self.operation.title()} Report",
            "",
            f"**Generated:** {self.generated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}  ",
            f"**Status:** {self.summary.get('status', 'unknown')}  ",
            "",
            "## Entities",
            "",
            "| Type | " + " | ".join(c.title() for c in self.columns) + " |",
            "|------|" + "|".join("------:" for _ in self.columns) + "|",
        ]

        for type_name, counts in self.summary.get("counts", {}).items():
            cells = " | ".join(f"{counts.get(c, 0):,}" for c in self.columns)
            lines.append(f"| {type_name} | {cells} |")
        lines.append("")

        errors = self.summary.get("errors", [])
        if errors:
            lines.extend(["## Errors", "", f"Total errors encountered: {len(errors)}", ""])
            for error in errors[:MAX_LISTED_ERRORS]:
                target = error.get("slug") or error.get("id") or "unknown"
                lines.append(f"- **{error.get('type')}** `{target}`: {error.get('error')}")
            if len(errors) > MAX_LISTED_ERRORS:
                lines.append(f"- *... and {len(errors) - MAX_LISTED_ERRORS} more errors*")
            lines.append("")

        markdown = "\n".join(lines)

        if output_path:
            Path(output_path).write_text(markdown)
            logger.info("markdown_report_saved", path=str(output_path))

        return markdown

    def generate(self, output_path: str | Path) -> str:
        """Write the report in the format implied by the file suffix."""
        if Path(output_path).suffix.lower() in (".md", ".markdown"):
            return self.generate_markdown(output_path)
        return self.generate_json(output_path)

    def to_table(self) -> Table:
        """Summary counts as a Rich table."""
        table = Table(title=f"{self.operation.title()} summary")
        table.add_column("Type", style="cyan")
        for column in self.columns:
            style = "red" if column == "failed" else "green"
            table.add_column(column.title(), justify="right", style=style)

        for type_name, counts in self.summary.get("counts", {}).items():
            table.add_row(type_name, *(str(counts.get(c, 0)) for c in self.columns))
        return table

    def print_summary(self, console: Console | None = None) -> None:
        console = console or Console()
        console.print(self.to_table())
        for error in self.summary.get("errors", [])[:MAX_LISTED_ERRORS]:
            target = error.get("slug") or error.get("id") or "unknown"
            console.print(f"[red]✗[/red] {error.get('type')} {target}: {error.get('error')}")
