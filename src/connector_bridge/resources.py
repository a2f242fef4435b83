"""Central entity type definitions - single source of truth.

This module provides the definitive registry of all entity types known to
the configuration engine. All other modules should import from here rather
than spelling entity type names as loose strings.

This ensures consistency across:
- Mapping table sub-tables
- Handler dispatch
- Import ordering
- Export document grouping
"""

from dataclasses import dataclass
from enum import Enum


class EntityType(str, Enum):
    """Closed set of entity type tags."""

    SOURCE = "source"
    ENDPOINT = "endpoint"
    MAPPING = "mapping"
    RULE = "rule"
    JOB = "job"
    SYNCHRONIZATION = "synchronization"
    REGISTER = "register"
    SCHEMA = "schema"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EntityTypeInfo:
    """Metadata for an entity type."""

    entity_type: EntityType
    collection: str  # Plural name used by older export documents
    description: str
    import_order: int  # Lower = earlier in import (dependency order)
    exportable: bool = True


ENTITY_REGISTRY: dict[EntityType, EntityTypeInfo] = {
    EntityType.SOURCE: EntityTypeInfo(
        entity_type=EntityType.SOURCE,
        collection="sources",
        description="Sources",
        import_order=10,
    ),
    EntityType.MAPPING: EntityTypeInfo(
        entity_type=EntityType.MAPPING,
        collection="mappings",
        description="Mappings",
        import_order=20,  # Referenced by endpoints, rules and synchronizations
    ),
    EntityType.RULE: EntityTypeInfo(
        entity_type=EntityType.RULE,
        collection="rules",
        description="Rules",
        import_order=30,
    ),
    EntityType.ENDPOINT: EntityTypeInfo(
        entity_type=EntityType.ENDPOINT,
        collection="endpoints",
        description="Endpoints",
        import_order=40,
    ),
    EntityType.SYNCHRONIZATION: EntityTypeInfo(
        entity_type=EntityType.SYNCHRONIZATION,
        collection="synchronizations",
        description="Synchronizations",
        import_order=50,
    ),
    EntityType.JOB: EntityTypeInfo(
        entity_type=EntityType.JOB,
        collection="jobs",
        description="Jobs",
        import_order=60,  # Job arguments point at everything above
    ),
    # Reference targets only: never exported, never imported
    EntityType.REGISTER: EntityTypeInfo(
        entity_type=EntityType.REGISTER,
        collection="registers",
        description="Registers",
        import_order=0,
        exportable=False,
    ),
    EntityType.SCHEMA: EntityTypeInfo(
        entity_type=EntityType.SCHEMA,
        collection="schemas",
        description="Schemas",
        import_order=0,
        exportable=False,
    ),
}

_COLLECTION_TO_TYPE: dict[str, EntityType] = {
    info.collection: entity_type for entity_type, info in ENTITY_REGISTRY.items()
}


def get_exportable_types() -> list[EntityType]:
    """Get entity types that have handlers, in import dependency order.

    Returns:
        List of exportable entity types
    """
    return sorted(
        (t for t, info in ENTITY_REGISTRY.items() if info.exportable),
        key=lambda t: ENTITY_REGISTRY[t].import_order,
    )


def get_info(entity_type: EntityType | str) -> EntityTypeInfo:
    """Get full metadata for an entity type.

    Raises:
        KeyError: If entity type is not in registry
    """
    return ENTITY_REGISTRY[normalize_entity_type(entity_type)]


def normalize_entity_type(name: EntityType | str) -> EntityType:
    """Normalize a type tag or collection name to an EntityType.

    Accepts the singular tag ("source"), the plural collection name
    ("sources") and is case-insensitive.

    Example:
        >>> normalize_entity_type("synchronizations")
        <EntityType.SYNCHRONIZATION: 'synchronization'>

    Raises:
        KeyError: If the name does not denote a known entity type
    """
    if isinstance(name, EntityType):
        return name

    key = name.strip().lower()
    if key in _COLLECTION_TO_TYPE:
        return _COLLECTION_TO_TYPE[key]
    try:
        return EntityType(key)
    except ValueError:
        raise KeyError(f"Unknown entity type: {name}") from None


# Types that carry a handler, dependencies first
EXPORTABLE_TYPES = get_exportable_types()
