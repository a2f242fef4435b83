"""
Entity store adapters.

An EntityMapper gives the configuration engine find/create/update access to
one entity type. EntityStore bundles the mappers for every type on a single
database.
"""

from typing import Any

from sqlalchemy import select

from connector_bridge.exceptions import NotFoundError, ValidationError
from connector_bridge.resources import EXPORTABLE_TYPES, EntityType, normalize_entity_type
from connector_bridge.store.database import get_session, init_database
from connector_bridge.store.models import MODEL_REGISTRY, PortableEntity
from connector_bridge.utils.logging import get_logger
from connector_bridge.utils.slugs import fallback_slug, is_numeric, is_uuid, slugify, unique_slug

logger = get_logger(__name__)


class EntityMapper:
    """Store access for one entity type."""

    def __init__(self, model: type[PortableEntity], database_url: str):
        self.model = model
        self.database_url = database_url

    @property
    def entity_type(self) -> EntityType:
        return self.model.__entity_type__

    def find(self, entity_id: int | str) -> PortableEntity:
        """Find an entity by numeric id or UUID.

        Raises:
            NotFoundError: If no entity has that identifier
        """
        with get_session(self.database_url) as session:
            entity = None
            if is_numeric(entity_id):
                entity = session.get(self.model, int(entity_id))
            elif is_uuid(entity_id):
                entity = session.scalars(
                    select(self.model).where(self.model.uuid == entity_id)
                ).first()

            if entity is None:
                raise NotFoundError(
                    "Entity not found", entity_type=str(self.entity_type), entity_id=entity_id
                )
            return entity

    def find_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[PortableEntity]:
        """Find all entities of this type ordered by id.

        Args:
            limit: Maximum number of entities to return
            offset: Number of entities to skip
            filters: Attribute equality filters

        Returns:
            List of entities
        """
        stmt = select(self.model).order_by(self.model.id)
        for attr, value in (filters or {}).items():
            stmt = stmt.where(getattr(self.model, attr) == value)
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        with get_session(self.database_url) as session:
            return list(session.scalars(stmt))

    def find_by_configuration(self, configuration_id: int | str) -> list[PortableEntity]:
        """Find all entities that belong to a configuration.

        Membership is stored as a JSON list, so the filter runs in Python to
        stay portable across database backends.
        """
        wanted = str(configuration_id)
        return [
            entity
            for entity in self.find_all()
            if wanted in {str(c) for c in entity.configurations or []}
        ]

    def find_by_slug(self, slug: str) -> PortableEntity | None:
        """Find an entity by slug, returning None when absent."""
        with get_session(self.database_url) as session:
            return session.scalars(select(self.model).where(self.model.slug == slug)).first()

    def create_from_array(self, data: dict[str, Any]) -> PortableEntity:
        """Create an entity from a wire-keyed dict.

        A UUID is assigned when the data has none, and a slug unique within
        the type is generated when the data has none.

        Raises:
            ValidationError: If required fields are missing
        """
        missing = [name for name in self.model.REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                entity_type=str(self.entity_type),
                entity_id=data.get("slug"),
                missing_fields=missing,
            )

        with get_session(self.database_url) as session:
            entity = self.model()
            entity.hydrate(data)
            entity.ensure_uuid()
            if entity.configurations is None:
                entity.configurations = []

            session.add(entity)
            session.flush()

            if not entity.slug:
                taken = set(
                    session.scalars(
                        select(self.model.slug).where(
                            self.model.slug.is_not(None), self.model.id != entity.id
                        )
                    )
                )
                base = slugify(entity.display_name) or fallback_slug(entity.id)
                entity.slug = unique_slug(base, taken)

            logger.debug(
                "entity_created",
                entity_type=str(self.entity_type),
                entity_id=entity.id,
                slug=entity.slug,
            )
            return entity

    def update_from_array(self, entity_id: int | str, data: dict[str, Any]) -> PortableEntity:
        """Update an existing entity from a wire-keyed dict.

        Raises:
            NotFoundError: If the entity does not exist
        """
        with get_session(self.database_url) as session:
            entity = session.get(self.model, int(entity_id)) if is_numeric(entity_id) else None
            if entity is None:
                raise NotFoundError(
                    "Entity not found", entity_type=str(self.entity_type), entity_id=entity_id
                )

            entity.hydrate(data)
            session.flush()

            logger.debug(
                "entity_updated",
                entity_type=str(self.entity_type),
                entity_id=entity.id,
                slug=entity.slug,
            )
            return entity

    def save(self, entity: PortableEntity) -> PortableEntity:
        """Persist changes to an entity loaded from this store."""
        with get_session(self.database_url) as session:
            return session.merge(entity)


class EntityStore:
    """All entity mappers for one database."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        init_database(database_url)
        self._mappers: dict[EntityType, EntityMapper] = {}

    def mapper(self, entity_type: EntityType | str) -> EntityMapper:
        """Get the mapper for an entity type.

        Raises:
            KeyError: If the type is unknown
        """
        entity_type = normalize_entity_type(entity_type)
        if entity_type not in self._mappers:
            self._mappers[entity_type] = EntityMapper(MODEL_REGISTRY[entity_type], self.database_url)
        return self._mappers[entity_type]

    def load_configuration(
        self, configuration_id: int | str
    ) -> dict[EntityType, list[PortableEntity]]:
        """Load every exportable entity that belongs to a configuration."""
        loaded = {
            entity_type: self.mapper(entity_type).find_by_configuration(configuration_id)
            for entity_type in EXPORTABLE_TYPES
        }
        logger.info(
            "configuration_loaded",
            configuration_id=configuration_id,
            counts={str(t): len(items) for t, items in loaded.items()},
        )
        return loaded

    def find_all_by_type(
        self, types: list[EntityType] | None = None
    ) -> dict[EntityType, list[PortableEntity]]:
        """Load all entities of the given types (default: every known type)."""
        types = types if types is not None else list(MODEL_REGISTRY)
        return {entity_type: self.mapper(entity_type).find_all() for entity_type in types}

    def backfill_slugs(self) -> dict[EntityType, int]:
        """Persist a slug for every entity that has none.

        Slugs derive from the entity name; nameless entities get
        ``item-<id>``. Collisions within a type are resolved with numeric
        suffixes in id order.

        Returns:
            Number of entities updated per type
        """
        updated: dict[EntityType, int] = {}

        for entity_type, model in MODEL_REGISTRY.items():
            count = 0
            with get_session(self.database_url) as session:
                entities = list(session.scalars(select(model).order_by(model.id)))
                taken = {entity.slug for entity in entities if entity.slug}

                for entity in entities:
                    if entity.slug:
                        continue
                    base = slugify(entity.display_name) or fallback_slug(entity.id)
                    entity.slug = unique_slug(base, taken)
                    count += 1

            updated[entity_type] = count
            if count:
                logger.info("slugs_backfilled", entity_type=str(entity_type), count=count)

        return updated
