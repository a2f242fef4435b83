"""
Schema-driven reference resolution.

Each entity handler declares which record fields hold references to other
entities and of which kind. ``resolve_references`` walks that declaration
and rewrites identifiers to slugs (export) or slugs to identifiers (import).
A reference with no table entry is left as it is, except where a field
explicitly drops unresolved entries.
"""

import json
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

from connector_bridge.configuration.expressions import (
    DEFAULT_FUNCTIONS,
    rewrite_mapping_body,
    scan_mapping_body,
)
from connector_bridge.configuration.mapping_table import MappingTable, SlugIndex
from connector_bridge.resources import EntityType
from connector_bridge.utils.slugs import dedupe, is_numeric, is_uuid

SOURCE_TARGET_TYPES = ("api", "database")
COMPOSITE_TARGET_TYPE = "register/schema"

# Types located by key name inside nested configuration objects
NESTED_REFERENCE_TYPES = (
    EntityType.SOURCE,
    EntityType.JOB,
    EntityType.ENDPOINT,
    EntityType.MAPPING,
    EntityType.REGISTER,
    EntityType.SCHEMA,
)


class Direction(str, Enum):
    """Which way references are translated."""

    EXPORT = "export"  # identifier -> slug
    IMPORT = "import"  # slug -> identifier


def translate(value: Any, index: SlugIndex, direction: Direction) -> tuple[Any, bool]:
    """Translate one reference value.

    Returns:
        Tuple of (translated value, whether the table had an entry). The
        original value comes back unchanged when there is no entry.
    """
    if direction is Direction.EXPORT:
        found = index.slug_for(value)
    else:
        found = index.id_for(value)
    if found is None:
        return value, False
    return found, True


def mapping_id_for(value: Any, table: MappingTable) -> int | str | None:
    """Native mapping identifier for a slug or a known identifier."""
    index = table[EntityType.MAPPING]
    entity_id = index.id_for(value)
    if entity_id is not None:
        return entity_id
    slug = index.slug_for(value)
    if slug is not None:
        return index.slug_to_id[slug]
    return None


class FieldReference:
    """A record field that holds references to other entities."""

    field: str

    def apply(self, record: dict[str, Any], table: MappingTable, direction: Direction) -> list:
        """Rewrite the field in place.

        Returns:
            Mapping identifiers discovered while exporting
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.field!r})>"


class SimpleReference(FieldReference):
    """A field holding one identifier of a fixed type."""

    def __init__(self, field: str, target: EntityType):
        self.field = field
        self.target = target

    def apply(self, record, table, direction):
        value = record.get(self.field)
        if value is None or value == "":
            return []
        record[self.field], _ = translate(value, table[self.target], direction)
        return []


class TypedTargetReference(FieldReference):
    """An identifier whose target type is named by a sibling field.

    ``api`` and ``database`` targets are sources. A ``register/schema``
    target holds ``<register>/<schema>`` and each half is translated on its
    own. Other target types and values without a ``/`` pass through.
    """

    def __init__(self, field: str, type_field: str):
        self.field = field
        self.type_field = type_field

    def apply(self, record, table, direction):
        value = record.get(self.field)
        target_type = record.get(self.type_field)
        if value is None or value == "" or target_type is None:
            return []

        if target_type in SOURCE_TARGET_TYPES:
            record[self.field], _ = translate(value, table[EntityType.SOURCE], direction)
        elif target_type == COMPOSITE_TARGET_TYPE and isinstance(value, str) and "/" in value:
            register_part, schema_part = value.split("/", 1)
            register_value, _ = translate(register_part, table[EntityType.REGISTER], direction)
            schema_value, _ = translate(schema_part, table[EntityType.SCHEMA], direction)
            record[self.field] = f"{register_value}/{schema_value}"
        return []


class ArrayReference(FieldReference):
    """A list of identifiers of one type, each translated independently.

    Args:
        field: Record field holding the list
        target: Entity type of the entries
        drop_unresolved: Remove entries with no table entry instead of
            keeping them
        identifiers_only: On export, only translate entries that are numeric
            or UUIDs; anything else passes through untouched
    """

    def __init__(
        self,
        field: str,
        target: EntityType,
        drop_unresolved: bool = False,
        identifiers_only: bool = False,
    ):
        self.field = field
        self.target = target
        self.drop_unresolved = drop_unresolved
        self.identifiers_only = identifiers_only

    def apply(self, record, table, direction):
        values = record.get(self.field)
        if not isinstance(values, list):
            return []

        index = table[self.target]
        result = []
        for entry in values:
            if (
                self.identifiers_only
                and direction is Direction.EXPORT
                and not (is_numeric(entry) or is_uuid(entry))
            ):
                result.append(entry)
                continue

            translated, resolved = translate(entry, index, direction)
            if resolved or not self.drop_unresolved:
                result.append(translated)

        record[self.field] = result
        return []


class NestedReference(FieldReference):
    """Identifiers located by key name anywhere inside a configuration object.

    A key equal to a type name (``mapping``) or ending in ``<type>Id``
    (``sourceId``, ``mappingId``) holds an identifier of that type.
    Matching is case-sensitive, so ``targetMappingId`` is not a mapping key.
    Resolved mapping references are reported as discovered on export.
    """

    def __init__(self, field: str, types: Sequence[EntityType] = NESTED_REFERENCE_TYPES):
        self.field = field
        self.types = tuple(types)

    def apply(self, record, table, direction):
        value = record.get(self.field)
        if not isinstance(value, (dict, list)):
            return []
        discovered: list = []
        record[self.field] = self._walk(value, table, direction, discovered)
        return discovered

    def _walk(self, node, table, direction, discovered):
        if isinstance(node, list):
            return [self._walk(item, table, direction, discovered) for item in node]
        if not isinstance(node, dict):
            # List entries are only references when keyed
            return node

        result = {}
        for key, value in node.items():
            if isinstance(value, (dict, list)):
                result[key] = self._walk(value, table, direction, discovered)
                continue

            result[key] = value
            target = self._target_for(key)
            if target is None or value is None:
                continue

            translated, resolved = translate(value, table[target], direction)
            result[key] = translated
            if resolved and target is EntityType.MAPPING and direction is Direction.EXPORT:
                discovered.append(table[EntityType.MAPPING].slug_to_id[translated])
        return result

    def _target_for(self, key: Any) -> EntityType | None:
        if not isinstance(key, str):
            return None
        for entity_type in self.types:
            if key == entity_type.value or key.endswith(f"{entity_type.value}Id"):
                return entity_type
        return None


class ArgumentReference(FieldReference):
    """Identifier keys inside a job's arguments.

    The arguments may be stored as a dict or as a JSON string; the original
    form is kept.
    """

    DEFAULT_KEYS = {
        "synchronizationId": EntityType.SYNCHRONIZATION,
        "endpointId": EntityType.ENDPOINT,
        "sourceId": EntityType.SOURCE,
    }

    def __init__(self, field: str, keys: dict[str, EntityType] | None = None):
        self.field = field
        self.keys = keys or dict(self.DEFAULT_KEYS)

    def apply(self, record, table, direction):
        value = record.get(self.field)

        if isinstance(value, str):
            try:
                arguments = json.loads(value)
            except ValueError:
                return []
            if isinstance(arguments, dict):
                record[self.field] = json.dumps(self._resolve(arguments, table, direction))
        elif isinstance(value, dict):
            record[self.field] = self._resolve(dict(value), table, direction)
        return []

    def _resolve(self, arguments, table, direction):
        for key, target in self.keys.items():
            if arguments.get(key) is not None:
                arguments[key], _ = translate(arguments[key], table[target], direction)
        return arguments


class ExpressionReference(FieldReference):
    """Mapping calls embedded in template strings of a mapping body.

    Calls are always reported as discovered on export. Their arguments are
    rewritten only when ``rewrite`` is set.
    """

    def __init__(
        self,
        field: str,
        functions: Iterable[str] = DEFAULT_FUNCTIONS,
        rewrite: bool = False,
    ):
        self.field = field
        self.functions = tuple(functions)
        self.rewrite = rewrite

    def apply(self, record, table, direction):
        body = record.get(self.field)
        if body is None:
            return []

        discovered = []
        if direction is Direction.EXPORT:
            for argument in scan_mapping_body(body, self.functions):
                entity_id = mapping_id_for(argument, table)
                if entity_id is not None:
                    discovered.append(entity_id)

        if self.rewrite:
            index = table[EntityType.MAPPING]
            replace = index.slug_for if direction is Direction.EXPORT else index.id_for
            record[self.field] = rewrite_mapping_body(body, replace, self.functions)

        return discovered


def resolve_references(
    record: dict[str, Any],
    schema: Sequence[FieldReference],
    table: MappingTable,
    direction: Direction,
) -> list:
    """Rewrite every reference field of a record in place.

    Args:
        record: Wire-keyed record, modified in place
        schema: Reference fields of the record's entity type
        table: Mapping table for this call
        direction: Export (ids to slugs) or import (slugs to ids)

    Returns:
        Deduplicated mapping identifiers discovered while exporting
    """
    discovered: list = []
    for reference in schema:
        discovered.extend(reference.apply(record, table, direction))
    return dedupe(discovered)
