"""
Bidirectional identifier/slug mapping table.

The table is built once per export or import call from the complete entity
set under consideration. Handlers use it to replace environment-local
identifiers with slugs on export and slugs with identifiers on import.
"""

from collections.abc import Iterable
from typing import Any

from connector_bridge.resources import EntityType, normalize_entity_type
from connector_bridge.store.models import PortableEntity
from connector_bridge.utils.logging import get_logger
from connector_bridge.utils.slugs import fallback_slug, slugify, unique_slug

logger = get_logger(__name__)


class SlugIndex:
    """id <-> slug lookups for a single entity type.

    ``id_to_slug`` is keyed by the string form of the identifier so that
    ``5`` and ``"5"`` resolve identically. Entity UUIDs are indexed there as
    well. ``slug_to_id`` holds the native numeric identifier.
    """

    def __init__(self) -> None:
        self.id_to_slug: dict[str, str] = {}
        self.slug_to_id: dict[str, int | str] = {}

    def add(self, entity_id: int | str, slug: str, uuid: str | None = None) -> None:
        self.id_to_slug[str(entity_id)] = slug
        if uuid:
            self.id_to_slug[str(uuid)] = slug
        self.slug_to_id[slug] = entity_id

    def slug_for(self, value: Any) -> str | None:
        """Slug for an identifier, or None when the identifier is unknown."""
        if value is None or isinstance(value, (dict, list, bool)):
            return None
        return self.id_to_slug.get(str(value))

    def id_for(self, value: Any) -> int | str | None:
        """Identifier for a slug, or None when the slug is unknown."""
        if not isinstance(value, str):
            return None
        return self.slug_to_id.get(value)

    def __len__(self) -> int:
        return len(self.slug_to_id)

    def __contains__(self, slug: object) -> bool:
        return slug in self.slug_to_id


class MappingTable:
    """Per-type SlugIndex for every known entity type."""

    def __init__(self) -> None:
        self._indexes: dict[EntityType, SlugIndex] = {t: SlugIndex() for t in EntityType}

    def __getitem__(self, entity_type: EntityType | str) -> SlugIndex:
        return self._indexes[normalize_entity_type(entity_type)]

    def to_dict(self) -> dict[str, dict[str, dict[str, str]]]:
        """Render the table with string identifiers, grouped by type name."""
        return {
            str(entity_type): {
                "idToSlug": dict(index.id_to_slug),
                "slugToId": {slug: str(entity_id) for slug, entity_id in index.slug_to_id.items()},
            }
            for entity_type, index in self._indexes.items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, dict[str, dict[str, Any]]]) -> "MappingTable":
        """Build a table from its dict rendering.

        Numeric identifiers in ``slugToId`` are restored as integers.
        """
        table = cls()
        for type_name, sub_table in data.items():
            index = table[type_name]
            index.id_to_slug.update({str(k): v for k, v in sub_table.get("idToSlug", {}).items()})
            for slug, entity_id in sub_table.get("slugToId", {}).items():
                if isinstance(entity_id, str) and entity_id.isdigit():
                    entity_id = int(entity_id)
                index.slug_to_id[slug] = entity_id
        return table

    def counts(self) -> dict[str, int]:
        return {str(t): len(index) for t, index in self._indexes.items() if len(index)}


def build_mapping_table(entities: Iterable[PortableEntity]) -> MappingTable:
    """Build a mapping table from a collection of entities of any types.

    Every entity must already carry a slug. Entities without one are
    skipped with a warning, since generating slugs here could disagree with
    the slugs written to the document.

    Args:
        entities: Entities of any mix of types

    Returns:
        MappingTable covering every given entity
    """
    table = MappingTable()
    for entity in entities:
        if not entity.slug:
            logger.warning(
                "entity_without_slug_skipped",
                entity_type=str(entity.entity_type),
                entity_id=entity.id,
            )
            continue
        table[entity.entity_type].add(entity.id, entity.slug, entity.uuid)

    logger.debug("mapping_table_built", counts=table.counts())
    return table


def assign_missing_slugs(grouped: dict[EntityType, list[PortableEntity]]) -> int:
    """Give every slug-less entity a unique in-memory slug.

    Slugs are unique within each type. Nothing is persisted; use the
    ``slugs backfill`` command for that.

    Returns:
        Number of entities that received a slug
    """
    assigned = 0
    for entity_type, entities in grouped.items():
        taken = {entity.slug for entity in entities if entity.slug}
        for entity in entities:
            if entity.slug:
                continue
            base = slugify(entity.display_name) or fallback_slug(entity.id)
            entity.slug = unique_slug(base, taken)
            assigned += 1
            logger.debug(
                "slug_assigned",
                entity_type=str(entity_type),
                entity_id=entity.id,
                slug=entity.slug,
            )
    return assigned
