"""
Export document model and (de)serialization.

A document looks like::

    format: connector-bridge/configuration
    version: "1.0"
    configurationId: "42"
    exportDate: "2026-01-01T00:00:00+00:00"
    entities:
      source: [...]
      mapping: [...]

Entity groups may be keyed by singular type name or by plural collection
name, and may be a list of records or a dict of records indexed by slug.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from connector_bridge.exceptions import DocumentError
from connector_bridge.resources import (
    EXPORTABLE_TYPES,
    EntityType,
    get_info,
    normalize_entity_type,
)

FORMAT_MARKER = "connector-bridge/configuration"


class ExportDocument(BaseModel):
    """A portable configuration bundle."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    format: str = Field(default=FORMAT_MARKER)
    version: str = Field(default="1.0")
    configuration_id: str | None = Field(default=None, alias="configurationId")
    export_date: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias="exportDate"
    )
    entities: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    # Entities of this export that could not be converted; never serialized
    failures: list[Any] = Field(default_factory=list, exclude=True, repr=False)

    @field_validator("configuration_id", mode="before")
    @classmethod
    def coerce_configuration_id(cls, v: Any) -> Any:
        """Accept numeric configuration ids."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """Accept versions written as bare YAML numbers."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("entities", mode="before")
    @classmethod
    def normalize_groups(cls, v: Any) -> Any:
        """Key groups by singular type name and turn slug-indexed dicts into lists."""
        if not isinstance(v, dict):
            return v

        groups: dict[str, list] = {}
        for name, records in v.items():
            try:
                entity_type = normalize_entity_type(name)
            except KeyError:
                raise ValueError(f"Unknown entity type: {name}") from None
            if not get_info(entity_type).exportable:
                raise ValueError(f"Entity type cannot be imported: {name}")

            if isinstance(records, dict):
                records = list(records.values())
            if records is None:
                records = []
            if not isinstance(records, list):
                raise ValueError(f"Entity group {name} must be a list or a mapping")
            groups.setdefault(entity_type.value, []).extend(records)
        return groups

    def grouped(self) -> dict[EntityType, list[dict[str, Any]]]:
        """Records per type, in import dependency order."""
        return {
            entity_type: self.entities[entity_type.value]
            for entity_type in EXPORTABLE_TYPES
            if entity_type.value in self.entities
        }

    def count(self) -> int:
        return sum(len(records) for records in self.entities.values())

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_document(data: Any) -> ExportDocument:
    """Validate raw data as an export document.

    Raises:
        DocumentError: If the data is not a valid document
    """
    if not isinstance(data, dict):
        raise DocumentError("Export document must be a mapping")
    if "entities" not in data:
        raise DocumentError("Export document has no 'entities' section")

    try:
        document = ExportDocument.model_validate(data)
    except PydanticValidationError as e:
        raise DocumentError(f"Invalid export document: {e}") from e

    if document.format != FORMAT_MARKER:
        raise DocumentError(f"Unsupported document format: {document.format}")
    return document


def load_document(path: str | Path) -> ExportDocument:
    """Read an export document from a JSON or YAML file.

    Raises:
        DocumentError: If the file is missing or cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise DocumentError(f"Document not found: {path}")

    text = path.read_text()
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        raise DocumentError(f"Failed to parse {path}: {e}") from e

    return parse_document(data)


def render_document(document: ExportDocument | dict[str, Any], output_format: str = "json") -> str:
    """Render a document as JSON or YAML text."""
    data = document.to_dict() if isinstance(document, ExportDocument) else document
    if output_format == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2, ensure_ascii=False)


def save_document(
    document: ExportDocument | dict[str, Any],
    output_path: str | Path,
    output_format: str | None = None,
) -> Path:
    """Write a document to disk.

    The format defaults to YAML for ``.yaml``/``.yml`` paths and JSON
    otherwise.
    """
    output_path = Path(output_path)
    if output_format is None:
        output_format = "yaml" if output_path.suffix.lower() in (".yaml", ".yml") else "json"

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_document(document, output_format))
    return output_path
