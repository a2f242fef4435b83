"""
Per-type entity handlers.

A handler converts a live entity into a portable, slug-addressed record and
back. All handlers share the same export/import steps; each one only
declares its reference fields, plus any type-specific desensitization.
"""

import copy
import re
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from connector_bridge.config import ExportConfig
from connector_bridge.configuration.mapping_table import MappingTable
from connector_bridge.configuration.references import (
    ArgumentReference,
    ArrayReference,
    Direction,
    ExpressionReference,
    FieldReference,
    NestedReference,
    SimpleReference,
    TypedTargetReference,
    resolve_references,
)
from connector_bridge.exceptions import TypeMismatchError
from connector_bridge.resources import EntityType, normalize_entity_type
from connector_bridge.store.mappers import EntityMapper, EntityStore
from connector_bridge.store.models import (
    Endpoint,
    Job,
    Mapping,
    PortableEntity,
    Rule,
    Source,
    Synchronization,
)
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)

# Fields that are environment-local and never travel in a document
INTERNAL_FIELDS = ("id", "uuid")


@dataclass
class ExportResult:
    """A portable record plus the mapping identifiers it references."""

    record: dict[str, Any]
    discovered_mapping_ids: list = field(default_factory=list)


class EntityHandler:
    """Export/import for one entity type.

    Subclasses set ``model`` and ``references``. Handlers are stateless
    apart from the store they write to and the export options.
    """

    model: type[PortableEntity]
    references: Sequence[FieldReference] = ()

    def __init__(self, store: EntityStore, export_config: ExportConfig | None = None):
        self.store = store
        self.export_config = export_config or ExportConfig()

    @property
    def entity_type(self) -> EntityType:
        return self.model.__entity_type__

    @property
    def mapper(self) -> EntityMapper:
        return self.store.mapper(self.entity_type)

    def reference_schema(self) -> Sequence[FieldReference]:
        return self.references

    def export_entity(self, entity: PortableEntity, mappings: MappingTable) -> ExportResult:
        """Convert an entity into a portable record.

        Args:
            entity: Entity of this handler's type
            mappings: Mapping table for the current export

        Returns:
            ExportResult with the record and discovered mapping identifiers

        Raises:
            TypeMismatchError: If the entity is of another type
        """
        if not isinstance(entity, self.model):
            raise TypeMismatchError(self.model.__name__, type(entity).__name__)

        record = entity.to_dict()
        for name in INTERNAL_FIELDS:
            record.pop(name, None)
        record["slug"] = entity.get_slug()

        discovered = resolve_references(
            record, self.reference_schema(), mappings, Direction.EXPORT
        )
        self.desensitize(record)

        return ExportResult(record=record, discovered_mapping_ids=discovered)

    def desensitize(self, record: dict[str, Any]) -> None:
        """Remove secrets from an exported record. No-op by default."""

    def import_entity(self, record: dict[str, Any], mappings: MappingTable) -> PortableEntity:
        """Create or update an entity from a portable record.

        The entity is updated in place when the record's slug is already
        known for this type, and created otherwise.

        Args:
            record: Portable record as found in an export document
            mappings: Mapping table built from the target store

        Returns:
            The persisted entity

        Raises:
            StoreError: If the store rejects the entity
        """
        return self.persist(self.resolve_import(record, mappings), mappings)

    def resolve_import(self, record: dict[str, Any], mappings: MappingTable) -> dict[str, Any]:
        """Copy of a record with internal fields dropped and slugs resolved."""
        data = copy.deepcopy(record)
        for name in INTERNAL_FIELDS:
            data.pop(name, None)

        resolve_references(data, self.reference_schema(), mappings, Direction.IMPORT)
        return data

    def persist(self, data: dict[str, Any], mappings: MappingTable) -> PortableEntity:
        """Create or update the entity for already resolved data."""
        slug = data.get("slug")
        existing_id = mappings[self.entity_type].id_for(slug) if slug else None

        if existing_id is not None:
            entity = self.mapper.update_from_array(existing_id, data)
            action = "updated"
        else:
            entity = self.mapper.create_from_array(data)
            action = "created"

        logger.debug(
            "entity_imported",
            entity_type=str(self.entity_type),
            slug=entity.slug,
            entity_id=entity.id,
            action=action,
        )
        return entity


def strip_sensitive_keys(config: Any, pattern: re.Pattern) -> Any:
    """Drop every key matching ``pattern``, recursing into dicts and lists.

    Flat dotted keys such as ``headers.Authorization`` are matched as a
    whole.
    """
    if isinstance(config, list):
        return [strip_sensitive_keys(item, pattern) for item in config]
    if not isinstance(config, dict):
        return config

    return {
        key: strip_sensitive_keys(value, pattern)
        for key, value in config.items()
        if not (isinstance(key, str) and pattern.search(key))
    }


class SourceHandler(EntityHandler):
    """Sources carry credentials, which are stripped on export."""

    model = Source

    def desensitize(self, record: dict[str, Any]) -> None:
        for name in self.export_config.sensitive_fields:
            record.pop(name, None)

        configuration = record.get("configuration")
        if isinstance(configuration, dict):
            pattern = re.compile(self.export_config.sensitive_key_pattern, re.IGNORECASE)
            record["configuration"] = strip_sensitive_keys(configuration, pattern)


class EndpointHandler(EntityHandler):
    model = Endpoint
    references = (
        SimpleReference("inputMapping", EntityType.MAPPING),
        SimpleReference("outputMapping", EntityType.MAPPING),
        TypedTargetReference("targetId", "targetType"),
        ArrayReference("rules", EntityType.RULE, drop_unresolved=True),
    )


class MappingHandler(EntityHandler):
    """Mappings may call other mappings from inside their templates."""

    model = Mapping

    def reference_schema(self) -> Sequence[FieldReference]:
        return (
            SimpleReference("source_id", EntityType.SOURCE),
            SimpleReference("target_id", EntityType.SOURCE),
            ExpressionReference(
                "mapping",
                functions=self.export_config.mapping_call_functions,
                rewrite=self.export_config.rewrite_mapping_calls,
            ),
        )


class RuleHandler(EntityHandler):
    model = Rule
    references = (
        SimpleReference("source_id", EntityType.SOURCE),
        SimpleReference("target_id", EntityType.SOURCE),
        NestedReference("configuration"),
    )


class JobHandler(EntityHandler):
    model = Job
    references = (ArgumentReference("arguments"),)


class SynchronizationHandler(EntityHandler):
    model = Synchronization
    references = (
        SimpleReference("sourceTargetMapping", EntityType.MAPPING),
        SimpleReference("targetSourceMapping", EntityType.MAPPING),
        SimpleReference("sourceHashMapping", EntityType.MAPPING),
        TypedTargetReference("sourceId", "sourceType"),
        TypedTargetReference("targetId", "targetType"),
        ArrayReference("actions", EntityType.RULE, identifiers_only=True),
        ArrayReference("conditions", EntityType.RULE, identifiers_only=True),
        ArrayReference("followUps", EntityType.SYNCHRONIZATION, identifiers_only=True),
    )


HANDLER_CLASSES: tuple[type[EntityHandler], ...] = (
    SourceHandler,
    EndpointHandler,
    MappingHandler,
    RuleHandler,
    JobHandler,
    SynchronizationHandler,
)


class HandlerRegistry:
    """Routes entities and records to the handler for their type."""

    def __init__(self, handlers: Iterable[EntityHandler]):
        self._handlers = {handler.entity_type: handler for handler in handlers}

    def get(self, entity_type: EntityType | str) -> EntityHandler:
        """Get the handler for a type.

        Raises:
            KeyError: If no handler exists for the type
        """
        entity_type = normalize_entity_type(entity_type)
        if entity_type not in self._handlers:
            raise KeyError(f"No handler for entity type: {entity_type}")
        return self._handlers[entity_type]

    def dispatch(self, entity: PortableEntity) -> EntityHandler:
        """Get the handler for a live entity.

        Raises:
            TypeMismatchError: If the entity's type has no handler
        """
        handler = self._handlers.get(getattr(entity, "__entity_type__", None))
        if handler is None:
            raise TypeMismatchError("an exportable entity", type(entity).__name__)
        return handler

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._handlers

    def __iter__(self) -> Iterator[EntityHandler]:
        return iter(self._handlers.values())


def create_handlers(store: EntityStore, export_config: ExportConfig | None = None) -> HandlerRegistry:
    """Create a registry with a handler for every exportable type."""
    return HandlerRegistry(handler_class(store, export_config) for handler_class in HANDLER_CLASSES)
