"""
Configuration export/import orchestration.

ConfigurationService loads the entities of a configuration, builds one
mapping table for the whole call, dispatches every entity to its handler
and assembles or consumes export documents.
"""

import json
from dataclasses import dataclass, field
from itertools import chain
from typing import Any

from connector_bridge.config import BridgeConfig
from connector_bridge.configuration.document import ExportDocument, parse_document
from connector_bridge.configuration.handlers import HandlerRegistry, create_handlers
from connector_bridge.configuration.mapping_table import (
    MappingTable,
    assign_missing_slugs,
    build_mapping_table,
)
from connector_bridge.configuration.references import COMPOSITE_TARGET_TYPE, SOURCE_TARGET_TYPES
from connector_bridge.exceptions import BridgeError, NotFoundError, StoreError
from connector_bridge.resources import EXPORTABLE_TYPES, EntityType, get_info
from connector_bridge.store.mappers import EntityStore
from connector_bridge.store.models import PortableEntity
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)

Bundle = dict[EntityType, list[PortableEntity]]


@dataclass
class ImportOutcome:
    """Result of importing one record."""

    entity_type: EntityType
    slug: str | None
    action: str  # created, updated or failed
    entity_id: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.action != "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": str(self.entity_type),
            "slug": self.slug,
            "action": self.action,
            "id": self.entity_id,
            "error": self.error,
        }


@dataclass
class ImportReport:
    """Everything an import produced.

    ``entities`` holds the persisted entities per type; ``outcomes`` has one
    entry per record in the order they were processed.
    """

    entities: Bundle = field(default_factory=dict)
    outcomes: list[ImportOutcome] = field(default_factory=list)
    aborted: bool = False

    @property
    def failures(self) -> list[ImportOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def success(self) -> bool:
        return not self.failures and not self.aborted

    def counts(self) -> dict[str, dict[str, int]]:
        """Created/updated/failed counts per type."""
        counts: dict[str, dict[str, int]] = {}
        for outcome in self.outcomes:
            per_type = counts.setdefault(
                str(outcome.entity_type), {"created": 0, "updated": 0, "failed": 0}
            )
            per_type[outcome.action] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "aborted": self.aborted,
            "counts": self.counts(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass
class ExportFailure:
    """An entity that could not be exported."""

    entity_type: EntityType
    entity_id: int | None
    error: str


@dataclass
class ExportBatch:
    """Records and failures collected by one export call."""

    records: dict[EntityType, list[dict[str, Any]]] = field(
        default_factory=lambda: {entity_type: [] for entity_type in EXPORTABLE_TYPES}
    )
    failures: list[ExportFailure] = field(default_factory=list)


@dataclass
class _ImportedRecord:
    """A record imported on the first pass and the data it was saved with."""

    entity_type: EntityType
    record: dict[str, Any]
    data: dict[str, Any]
    position: int


class ConfigurationService:
    """Exports and imports configuration bundles against one entity store."""

    def __init__(
        self,
        store: EntityStore,
        config: BridgeConfig | None = None,
        handlers: HandlerRegistry | None = None,
    ):
        self.store = store
        self.config = config or BridgeConfig()
        self.handlers = handlers or create_handlers(store, self.config.export)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_entities_by_configuration(
        self, configuration_id: int | str
    ) -> dict[str, dict[str, PortableEntity]]:
        """Entities of a configuration per collection name, indexed by slug.

        Entities without a slug are left out.
        """
        loaded = self.store.load_configuration(configuration_id)
        return {
            get_info(entity_type).collection: {
                entity.slug: entity for entity in entities if entity.slug
            }
            for entity_type, entities in loaded.items()
        }

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def prepare_export(self) -> tuple[MappingTable, dict[EntityType, dict[int, PortableEntity]]]:
        """Load every stored entity and build the export mapping table.

        The table covers the whole store so that composite register/schema
        references and mappings outside the bundle resolve. Entities without
        a slug get one in memory first.

        Returns:
            Tuple of (mapping table, entities per type indexed by id)
        """
        universe = self.store.find_all_by_type()
        assigned = assign_missing_slugs(universe)
        if assigned:
            logger.warning(
                "slugs_generated_for_export",
                count=assigned,
                hint="run 'connector-bridge slugs backfill' to persist them",
            )

        table = build_mapping_table(chain.from_iterable(universe.values()))
        by_id = {
            entity_type: {entity.id: entity for entity in entities}
            for entity_type, entities in universe.items()
        }
        return table, by_id

    def build_export(
        self,
        bundle: Bundle,
        mappings: MappingTable,
        known: dict[EntityType, dict[int, PortableEntity]] | None = None,
    ) -> ExportBatch:
        """Export every entity of a bundle with one shared mapping table.

        When transitive mappings are enabled, mappings that exported records
        reference but the bundle lacks are exported too, repeatedly, until
        no new mapping turns up. Entities that fail to export are logged,
        recorded in the returned batch and skipped.

        Args:
            bundle: Entities to export per type
            mappings: Mapping table for this export
            known: Already loaded entities per type indexed by id, used
                before falling back to the store for discovered mappings

        Returns:
            ExportBatch with records per type in dependency order
        """
        known = known or {}
        batch = ExportBatch()
        included: set = {entity.id for entity in bundle.get(EntityType.MAPPING, [])}
        discovered: list = []

        for entity_type in EXPORTABLE_TYPES:
            for entity in bundle.get(entity_type, []):
                discovered.extend(self._export_one(entity, mappings, batch))

        if not self.config.export.include_transitive_mappings:
            return batch

        pending = [mapping_id for mapping_id in discovered if mapping_id not in included]
        while pending:
            next_round: list = []
            for mapping_id in pending:
                if mapping_id in included:
                    continue
                included.add(mapping_id)

                entity = known.get(EntityType.MAPPING, {}).get(mapping_id)
                if entity is None:
                    entity = self._find_mapping(mapping_id)
                if entity is None:
                    continue

                logger.info("transitive_mapping_added", mapping_id=mapping_id, slug=entity.slug)
                next_round.extend(self._export_one(entity, mappings, batch))

            pending = [mapping_id for mapping_id in next_round if mapping_id not in included]

        return batch

    def _export_one(self, entity: PortableEntity, mappings: MappingTable, batch: ExportBatch) -> list:
        try:
            handler = self.handlers.dispatch(entity)
            result = handler.export_entity(entity, mappings)
        except BridgeError as e:
            entity_type = getattr(entity, "__entity_type__", None)
            logger.warning(
                "entity_export_failed",
                entity_type=str(entity_type),
                entity_id=getattr(entity, "id", None),
                error=str(e),
            )
            batch.failures.append(ExportFailure(entity_type, getattr(entity, "id", None), str(e)))
            return []

        batch.records[handler.entity_type].append(result.record)
        return result.discovered_mapping_ids

    def _find_mapping(self, mapping_id: int | str) -> PortableEntity | None:
        try:
            return self.store.mapper(EntityType.MAPPING).find(mapping_id)
        except NotFoundError:
            logger.warning("transitive_mapping_not_found", mapping_id=mapping_id)
            return None

    def _document(
        self,
        batch: ExportBatch,
        configuration_id: int | str | None = None,
        **extra: Any,
    ) -> ExportDocument:
        return ExportDocument(
            version=self.config.export.format_version,
            configurationId=configuration_id,
            entities={str(entity_type): items for entity_type, items in batch.records.items()},
            failures=batch.failures,
            **extra,
        )

    def export_configuration(self, configuration_id: int | str) -> ExportDocument:
        """Export a configuration as a portable document.

        Args:
            configuration_id: Configuration to export

        Returns:
            ExportDocument with records grouped by entity type
        """
        table, known = self.prepare_export()
        loaded = self.store.load_configuration(configuration_id)

        # Use the slug-assigned instances from the table's entity set
        bundle = {
            entity_type: [known[entity_type].get(entity.id, entity) for entity in entities]
            for entity_type, entities in loaded.items()
        }

        document = self._document(self.build_export(bundle, table, known), configuration_id)

        logger.info(
            "configuration_exported",
            configuration_id=configuration_id,
            entities=document.count(),
            failures=len(document.failures),
        )
        return document

    def export_register(
        self,
        register_id: int | str,
        include_endpoints: bool = True,
        include_synchronizations: bool = True,
        search_source: bool = True,
        search_target: bool = True,
    ) -> ExportDocument:
        """Export the endpoints and synchronizations bound to a register.

        Mappings, sources and rules they reference and jobs whose arguments
        point at any of them are included.

        Args:
            register_id: Register whose entities to export
            include_endpoints: Include endpoints targeting the register
            include_synchronizations: Include synchronizations using the register
            search_source: Match synchronizations whose source is the register
            search_target: Match synchronizations whose target is the register

        Returns:
            ExportDocument with a ``registerId`` marker
        """
        table, known = self.prepare_export()
        register_key = str(register_id)

        def on_register(entity_id: Any, entity_type: Any) -> bool:
            return (
                entity_type == COMPOSITE_TARGET_TYPE
                and isinstance(entity_id, str)
                and entity_id.split("/", 1)[0] == register_key
            )

        endpoints = []
        if include_endpoints:
            endpoints = [
                endpoint
                for endpoint in known[EntityType.ENDPOINT].values()
                if on_register(endpoint.target_id, endpoint.target_type)
            ]

        synchronizations = []
        if include_synchronizations:
            synchronizations = [
                sync
                for sync in known[EntityType.SYNCHRONIZATION].values()
                if (search_source and on_register(sync.source_id, sync.source_type))
                or (search_target and on_register(sync.target_id, sync.target_type))
            ]

        mapping_ids: set[str] = set()
        source_ids: set[str] = set()
        rule_ids: set[str] = set()

        for endpoint in endpoints:
            mapping_ids |= _id_set(endpoint.input_mapping, endpoint.output_mapping)
            if endpoint.target_type in SOURCE_TARGET_TYPES:
                source_ids |= _id_set(endpoint.target_id)
            rule_ids |= _id_set(*(endpoint.rules or []))

        for sync in synchronizations:
            mapping_ids |= _id_set(
                sync.source_target_mapping, sync.target_source_mapping, sync.source_hash_mapping
            )
            if sync.source_type in SOURCE_TARGET_TYPES:
                source_ids |= _id_set(sync.source_id)
            if sync.target_type in SOURCE_TARGET_TYPES:
                source_ids |= _id_set(sync.target_id)
            rule_ids |= _id_set(*(sync.actions or []))
            if isinstance(sync.conditions, list):
                rule_ids |= _id_set(*sync.conditions)

        endpoint_ids = _id_set(*(endpoint.id for endpoint in endpoints))
        sync_ids = _id_set(*(sync.id for sync in synchronizations))

        jobs = [
            job
            for job in known[EntityType.JOB].values()
            if _job_targets(job, sync_ids, endpoint_ids, source_ids)
        ]

        bundle: Bundle = {
            EntityType.SOURCE: _select(known[EntityType.SOURCE], source_ids),
            EntityType.MAPPING: _select(known[EntityType.MAPPING], mapping_ids),
            EntityType.RULE: _select(known[EntityType.RULE], rule_ids),
            EntityType.ENDPOINT: endpoints,
            EntityType.SYNCHRONIZATION: synchronizations,
            EntityType.JOB: jobs,
        }

        document = self._document(self.build_export(bundle, table, known), registerId=register_key)

        logger.info(
            "register_exported",
            register_id=register_key,
            entities=document.count(),
            failures=len(document.failures),
        )
        return document

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def build_import_table(self) -> MappingTable:
        """Mapping table built from the entities persisted in the store."""
        universe = self.store.find_all_by_type()
        return build_mapping_table(chain.from_iterable(universe.values()))

    def import_configuration(self, document: ExportDocument | dict[str, Any]) -> ImportReport:
        """Import a document into the store.

        Records are processed per type in dependency order. A record whose
        slug already exists updates that entity; any other record creates a
        new one. A failing record does not undo records imported before it.

        References to entities of a type imported later (a rule pointing at
        a job, a synchronization following up on a later one) cannot resolve
        on the first pass. Once every type is in, the table is rebuilt and
        records whose references now resolve differently are updated.

        Args:
            document: ExportDocument or its raw dict form

        Returns:
            ImportReport; ``report.entities`` holds the persisted entities per type

        Raises:
            DocumentError: If the document is malformed
        """
        if not isinstance(document, ExportDocument):
            document = parse_document(document)

        import_config = self.config.import_
        report = ImportReport()
        table = self.build_import_table()
        imported_records: list[_ImportedRecord] = []

        for entity_type, records in document.grouped().items():
            handler = self.handlers.get(entity_type)
            imported = report.entities.setdefault(entity_type, [])

            for record in records:
                slug = record.get("slug")
                existing = table[entity_type].id_for(slug) if slug else None

                try:
                    data = handler.resolve_import(record, table)
                    entity = handler.persist(data, table)
                except StoreError as e:
                    logger.error(
                        "entity_import_failed",
                        entity_type=str(entity_type),
                        slug=slug,
                        error=str(e),
                    )
                    report.outcomes.append(
                        ImportOutcome(entity_type, slug, "failed", error=str(e))
                    )
                    if import_config.stop_on_error:
                        report.aborted = True
                        logger.warning("import_aborted", entity_type=str(entity_type), slug=slug)
                        return report
                    continue

                # Later records in this batch can refer to this one
                table[entity_type].add(entity.id, entity.slug, entity.uuid)
                imported_records.append(_ImportedRecord(entity_type, record, data, len(imported)))
                imported.append(entity)
                report.outcomes.append(
                    ImportOutcome(
                        entity_type,
                        entity.slug,
                        "updated" if existing is not None else "created",
                        entity_id=entity.id,
                    )
                )

            if import_config.refresh_mappings_between_types:
                table = self.build_import_table()

        self._resolve_forward_references(report, imported_records)

        logger.info(
            "configuration_imported",
            configuration_id=document.configuration_id,
            counts=report.counts(),
            failures=len(report.failures),
        )
        return report

    def _resolve_forward_references(
        self, report: ImportReport, imported_records: list[_ImportedRecord]
    ) -> None:
        """Re-resolve imported records against the final table and update changed ones."""
        if not imported_records:
            return

        table = self.build_import_table()
        outcomes = {
            (outcome.entity_type, outcome.entity_id): outcome
            for outcome in report.outcomes
            if outcome.ok
        }

        updated = 0
        for item in imported_records:
            handler = self.handlers.get(item.entity_type)
            entity = report.entities[item.entity_type][item.position]
            data = handler.resolve_import(item.record, table)
            if data == item.data:
                continue

            try:
                report.entities[handler.entity_type][item.position] = handler.persist(data, table)
            except StoreError as e:
                logger.error(
                    "entity_reference_update_failed",
                    entity_type=str(handler.entity_type),
                    slug=entity.slug,
                    error=str(e),
                )
                outcome = outcomes.get((handler.entity_type, entity.id))
                if outcome is not None:
                    outcome.action = "failed"
                    outcome.error = str(e)
                continue
            updated += 1

        if updated:
            logger.info("forward_references_resolved", entities=updated)


def _id_set(*values: Any) -> set[str]:
    return {str(value) for value in values if value is not None and value != ""}


def _select(entities: dict[int, PortableEntity], ids: set[str]) -> list[PortableEntity]:
    return [entity for entity_id, entity in entities.items() if str(entity_id) in ids]


def _job_targets(
    job: PortableEntity, sync_ids: set[str], endpoint_ids: set[str], source_ids: set[str]
) -> bool:
    arguments = job.arguments
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except ValueError:
            return False
    if not isinstance(arguments, dict):
        return False
    return (
        str(arguments.get("synchronizationId")) in sync_ids
        or str(arguments.get("endpointId")) in endpoint_ids
        or str(arguments.get("sourceId")) in source_ids
    )
