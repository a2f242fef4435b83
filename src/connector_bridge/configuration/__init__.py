"""
Configuration export/import engine.

This module provides the identifier/slug mapping table, the per-type entity
handlers with their reference schemas, and the service that exports and
imports whole configuration bundles.
"""

from connector_bridge.configuration.document import (
    FORMAT_MARKER,
    ExportDocument,
    load_document,
    parse_document,
    save_document,
)
from connector_bridge.configuration.handlers import (
    EntityHandler,
    ExportResult,
    HandlerRegistry,
    create_handlers,
)
from connector_bridge.configuration.mapping_table import (
    MappingTable,
    SlugIndex,
    assign_missing_slugs,
    build_mapping_table,
)
from connector_bridge.configuration.references import Direction, resolve_references
from connector_bridge.configuration.service import (
    ConfigurationService,
    ImportOutcome,
    ImportReport,
)

__all__ = [
    # Mapping table
    "MappingTable",
    "SlugIndex",
    "build_mapping_table",
    "assign_missing_slugs",
    # References
    "Direction",
    "resolve_references",
    # Handlers
    "EntityHandler",
    "ExportResult",
    "HandlerRegistry",
    "create_handlers",
    # Documents
    "FORMAT_MARKER",
    "ExportDocument",
    "parse_document",
    "load_document",
    "save_document",
    # Service
    "ConfigurationService",
    "ImportOutcome",
    "ImportReport",
]
