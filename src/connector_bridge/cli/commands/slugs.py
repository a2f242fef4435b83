"""
Slug maintenance commands.
"""

import click

from connector_bridge.cli.context import BridgeContext
from connector_bridge.cli.decorators import handle_errors, pass_context
from connector_bridge.cli.utils import echo_info, echo_success, print_pairs
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="slugs")
def slugs() -> None:
    """Slug management commands."""
    pass


@slugs.command(name="backfill")
@pass_context
@handle_errors
def backfill(ctx: BridgeContext) -> None:
    """Persist a slug for every entity that has none.

    Slugs derive from the entity name; duplicates within a type get a
    numeric suffix.
    """
    updated = ctx.store.backfill_slugs()
    total = sum(updated.values())

    if not total:
        echo_info("All entities already have slugs")
        return

    print_pairs(
        "Slugs generated",
        ("Type", "Count"),
        ((str(entity_type), count) for entity_type, count in updated.items() if count),
    )
    echo_success(f"Generated {total} slugs")
