"""Integration tests for configuration export and import."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from connector_bridge.config import BridgeConfig
from connector_bridge.configuration.document import FORMAT_MARKER, ExportDocument
from connector_bridge.configuration.service import ConfigurationService
from connector_bridge.exceptions import DocumentError
from connector_bridge.resources import EntityType
from connector_bridge.store.mappers import EntityStore


def by_slug(document: ExportDocument, entity_type: str) -> dict[str, dict[str, Any]]:
    return {record["slug"]: record for record in document.entities.get(entity_type, [])}


@pytest.fixture
def document(service: ConfigurationService, seeded: SimpleNamespace) -> ExportDocument:
    return service.export_configuration(seeded.configuration_id)


@pytest.fixture
def shifted_target(target_store: EntityStore) -> EntityStore:
    """Target store whose register and schema ids differ from the source store."""
    target_store.mapper(EntityType.REGISTER).create_from_array({"title": "Other register"})
    target_store.mapper(EntityType.SCHEMA).create_from_array({"title": "Other schema"})
    target_store.mapper(EntityType.REGISTER).create_from_array({"title": "Buildings"})
    target_store.mapper(EntityType.SCHEMA).create_from_array({"title": "Building"})
    return target_store


class TestExportConfiguration:
    """Tests for ConfigurationService.export_configuration."""

    @pytest.mark.integration
    def test_document_shape(self, document: ExportDocument, seeded: SimpleNamespace) -> None:
        data = document.to_dict()

        assert data["format"] == FORMAT_MARKER
        assert data["version"] == "1.0"
        assert data["configurationId"] == seeded.configuration_id
        assert data["exportDate"]
        assert list(data["entities"]) == [
            "source",
            "mapping",
            "rule",
            "endpoint",
            "synchronization",
            "job",
        ]

    @pytest.mark.integration
    def test_no_environment_identifiers(self, document: ExportDocument) -> None:
        """Records should carry slugs and never ids or uuids."""
        for records in document.entities.values():
            for record in records:
                assert "id" not in record
                assert "uuid" not in record
                assert record["slug"]

    @pytest.mark.integration
    def test_endpoint_references(self, document: ExportDocument) -> None:
        endpoints = by_slug(document, "endpoint")

        pets = endpoints["pets-endpoint"]
        assert pets["targetId"] == "buildings/building"
        assert pets["inputMapping"] == "pet-mapping"
        assert pets["rules"] == ["validate-pet", "log-errors"]

        assert endpoints["pet-proxy"]["targetId"] == "petstore-api"

    @pytest.mark.integration
    def test_synchronization_and_job_references(self, document: ExportDocument) -> None:
        sync = by_slug(document, "synchronization")["pet-sync"]
        assert sync["sourceId"] == "petstore-api"
        assert sync["targetId"] == "buildings/building"
        assert sync["sourceTargetMapping"] == "pet-mapping"
        assert sync["actions"] == ["validate-pet", "custom-action"]

        job = by_slug(document, "job")["pet-sync-job"]
        assert job["arguments"] == {"synchronizationId": "pet-sync"}

    @pytest.mark.integration
    def test_rule_references(self, document: ExportDocument) -> None:
        rule = by_slug(document, "rule")["validate-pet"]
        assert rule["source_id"] == "petstore-api"
        assert rule["configuration"] == {
            "mapping": "address-mapping",
            "nested": {"sourceId": "petstore-api", "other": 1},
        }

    @pytest.mark.integration
    def test_source_is_desensitized(self, document: ExportDocument) -> None:
        source = by_slug(document, "source")["petstore-api"]

        for name in ("username", "password", "apikey", "headers"):
            assert name not in source
        assert source["configuration"] == {"timeout": 30, "auth": {"mode": "basic"}}

    @pytest.mark.integration
    def test_transitive_mappings(self, document: ExportDocument) -> None:
        """Mappings reached through calls and rule configuration should be included."""
        assert list(by_slug(document, "mapping")) == [
            "pet-mapping",
            "owner-mapping",
            "address-mapping",
        ]

    @pytest.mark.integration
    def test_transitive_mappings_disabled(
        self, store: EntityStore, seeded: SimpleNamespace
    ) -> None:
        config = BridgeConfig()
        config.export.include_transitive_mappings = False

        document = ConfigurationService(store, config).export_configuration(
            seeded.configuration_id
        )

        assert list(by_slug(document, "mapping")) == ["pet-mapping"]

    @pytest.mark.integration
    def test_transitive_mappings_follow_chains(
        self, store: EntityStore, service: ConfigurationService
    ) -> None:
        """A mapping reached transitively should have its own calls followed."""
        mappings = store.mapper(EntityType.MAPPING)
        leaf = mappings.create_from_array({"name": "Leaf"})
        middle = mappings.create_from_array(
            {"name": "Middle", "mapping": {"x": "{{ executeMapping(%d) }}" % leaf.id}}
        )
        mappings.create_from_array(
            {
                "name": "Root",
                "mapping": {"y": "{{ executeMapping(%d) }}" % middle.id},
                "configurations": ["99"],
            }
        )

        document = service.export_configuration("99")

        assert list(by_slug(document, "mapping")) == ["root", "middle", "leaf"]

    @pytest.mark.integration
    def test_slugless_entities_are_exported(
        self, store: EntityStore, service: ConfigurationService, seeded: SimpleNamespace
    ) -> None:
        """Entities stored without a slug should still export with a generated one."""
        seeded.error_rule.slug = None
        store.mapper(EntityType.RULE).save(seeded.error_rule)

        document = service.export_configuration(seeded.configuration_id)

        assert "log-errors" in by_slug(document, "rule")
        assert by_slug(document, "endpoint")["pets-endpoint"]["rules"] == [
            "validate-pet",
            "log-errors",
        ]
        assert store.mapper(EntityType.RULE).find(seeded.error_rule.id).slug is None

    @pytest.mark.integration
    def test_unknown_configuration_is_empty(self, service: ConfigurationService) -> None:
        document = service.export_configuration("404")
        assert document.count() == 0
        assert document.failures == []


class TestBuildExport:
    """Tests for ConfigurationService.build_export."""

    @pytest.mark.integration
    def test_wrong_typed_entity_fails_alone(
        self, service: ConfigurationService, seeded: SimpleNamespace
    ) -> None:
        """An entity no handler accepts should be reported while the rest export."""
        table, known = service.prepare_export()
        bundle = {
            EntityType.MAPPING: [known[EntityType.MAPPING][seeded.pet_mapping.id], seeded.register],
            EntityType.RULE: [known[EntityType.RULE][seeded.error_rule.id]],
        }

        batch = service.build_export(bundle, table, known)

        assert [r["slug"] for r in batch.records[EntityType.MAPPING]] == [
            "pet-mapping",
            "owner-mapping",
        ]
        assert [r["slug"] for r in batch.records[EntityType.RULE]] == ["log-errors"]
        assert len(batch.failures) == 1
        failure = batch.failures[0]
        assert failure.entity_type is EntityType.REGISTER
        assert failure.entity_id == seeded.register.id
        assert "Register" in failure.error

    @pytest.mark.integration
    def test_failures_belong_to_each_call(
        self, service: ConfigurationService, seeded: SimpleNamespace
    ) -> None:
        """Failures of one export should not leak into the next."""
        table, known = service.prepare_export()

        failing = service.build_export({EntityType.MAPPING: [seeded.register]}, table, known)
        clean = service.build_export({EntityType.RULE: [seeded.error_rule]}, table, known)

        assert len(failing.failures) == 1
        assert clean.failures == []


class TestExportRegister:
    """Tests for ConfigurationService.export_register."""

    @pytest.mark.integration
    def test_register_bundle(self, service: ConfigurationService, seeded: SimpleNamespace) -> None:
        document = service.export_register(seeded.register.id)

        assert document.to_dict()["registerId"] == str(seeded.register.id)
        assert document.configuration_id is None
        assert list(by_slug(document, "endpoint")) == ["pets-endpoint"]
        assert list(by_slug(document, "synchronization")) == ["pet-sync"]
        assert list(by_slug(document, "source")) == ["petstore-api"]
        assert sorted(by_slug(document, "rule")) == ["log-errors", "validate-pet"]
        assert list(by_slug(document, "job")) == ["pet-sync-job"]
        assert sorted(by_slug(document, "mapping")) == [
            "address-mapping",
            "owner-mapping",
            "pet-mapping",
        ]

    @pytest.mark.integration
    def test_filters(self, service: ConfigurationService, seeded: SimpleNamespace) -> None:
        """Excluding endpoints and sync targets should leave nothing bound to the register."""
        document = service.export_register(
            seeded.register.id, include_endpoints=False, search_target=False
        )

        assert document.count() == 0

    @pytest.mark.integration
    def test_unknown_register(self, service: ConfigurationService, seeded: SimpleNamespace) -> None:
        assert service.export_register(404).count() == 0


class TestGetEntitiesByConfiguration:
    """Tests for ConfigurationService.get_entities_by_configuration."""

    @pytest.mark.integration
    def test_indexed_by_slug(self, service: ConfigurationService, seeded: SimpleNamespace) -> None:
        entities = service.get_entities_by_configuration(seeded.configuration_id)

        assert set(entities) == {
            "sources",
            "mappings",
            "rules",
            "endpoints",
            "synchronizations",
            "jobs",
        }
        assert list(entities["mappings"]) == ["pet-mapping"]
        assert sorted(entities["endpoints"]) == ["pet-proxy", "pets-endpoint"]
        assert entities["sources"]["petstore-api"].id == seeded.source.id


class TestImportConfiguration:
    """Tests for ConfigurationService.import_configuration."""

    @pytest.mark.integration
    def test_round_trip_into_new_store(
        self, document: ExportDocument, shifted_target: EntityStore
    ) -> None:
        """References should resolve to the target store's own identifiers."""
        target = ConfigurationService(shifted_target)

        report = target.import_configuration(document)

        assert report.success
        assert {o.action for o in report.outcomes} == {"created"}
        assert report.counts()["mapping"] == {"created": 3, "updated": 0, "failed": 0}

        source = shifted_target.mapper(EntityType.SOURCE).find_by_slug("petstore-api")
        rules = {r.slug: r for r in shifted_target.mapper(EntityType.RULE).find_all()}
        mappings = {m.slug: m for m in shifted_target.mapper(EntityType.MAPPING).find_all()}
        sync = shifted_target.mapper(EntityType.SYNCHRONIZATION).find_by_slug("pet-sync")

        endpoint = shifted_target.mapper(EntityType.ENDPOINT).find_by_slug("pets-endpoint")
        assert endpoint.target_id == "2/2"
        assert endpoint.input_mapping == str(mappings["pet-mapping"].id)
        assert endpoint.rules == [rules["validate-pet"].id, rules["log-errors"].id]

        proxy = shifted_target.mapper(EntityType.ENDPOINT).find_by_slug("pet-proxy")
        assert proxy.target_id == str(source.id)

        assert sync.target_id == "2/2"
        assert sync.source_id == str(source.id)
        assert sync.actions == [rules["validate-pet"].id, "custom-action"]

        assert rules["validate-pet"].configuration == {
            "mapping": mappings["address-mapping"].id,
            "nested": {"sourceId": source.id, "other": 1},
        }

        job = shifted_target.mapper(EntityType.JOB).find_by_slug("pet-sync-job")
        assert job.arguments == {"synchronizationId": sync.id}

    @pytest.mark.integration
    def test_references_to_later_records_resolve(
        self, store: EntityStore, service: ConfigurationService, target_store: EntityStore
    ) -> None:
        """A rule pointing at a job and a follow-up on a later sync should resolve."""
        member = {"configurations": ["11"]}
        job = store.mapper(EntityType.JOB).create_from_array({"name": "Nightly", **member})
        store.mapper(EntityType.RULE).create_from_array(
            {
                "name": "Run nightly",
                "type": "synchronization",
                "configuration": {"jobId": job.id, "fields": ["name", "id"]},
                **member,
            }
        )
        syncs = store.mapper(EntityType.SYNCHRONIZATION)
        first = syncs.create_from_array({"name": "First", **member})
        second = syncs.create_from_array({"name": "Second", **member})
        syncs.update_from_array(first.id, {"followUps": [second.id]})

        document = service.export_configuration("11")
        assert by_slug(document, "rule")["run-nightly"]["configuration"]["jobId"] == "nightly"

        # Shift the target's ids away from the source's
        target_store.mapper(EntityType.JOB).create_from_array({"name": "Other job"})
        target_store.mapper(EntityType.SYNCHRONIZATION).create_from_array({"name": "Other sync"})

        report = ConfigurationService(target_store).import_configuration(document)

        assert report.success
        target_job = target_store.mapper(EntityType.JOB).find_by_slug("nightly")
        target_second = target_store.mapper(EntityType.SYNCHRONIZATION).find_by_slug("second")
        rule = target_store.mapper(EntityType.RULE).find_by_slug("run-nightly")
        assert target_job.id != job.id
        assert rule.configuration == {"jobId": target_job.id, "fields": ["name", "id"]}
        assert report.entities[EntityType.RULE][0].configuration == rule.configuration
        target_first = target_store.mapper(EntityType.SYNCHRONIZATION).find_by_slug("first")
        assert target_first.follow_ups == [target_second.id]
        assert [o.action for o in report.outcomes] == ["created"] * 4

    @pytest.mark.integration
    def test_reimport_updates(self, document: ExportDocument, target_store: EntityStore) -> None:
        """Importing the same document twice should update, not duplicate."""
        target = ConfigurationService(target_store)
        target.import_configuration(document)

        report = target.import_configuration(document)

        assert report.success
        assert {o.action for o in report.outcomes} == {"updated"}
        assert len(target_store.mapper(EntityType.MAPPING).find_all()) == 3

    @pytest.mark.integration
    def test_update_keeps_credentials(
        self, document: ExportDocument, target_store: EntityStore
    ) -> None:
        """Stripped credentials should not wipe the ones already in the target."""
        target_store.mapper(EntityType.SOURCE).create_from_array(
            {"name": "Petstore API", "password": "target-secret"}
        )

        ConfigurationService(target_store).import_configuration(document)

        source = target_store.mapper(EntityType.SOURCE).find_by_slug("petstore-api")
        assert source.password == "target-secret"
        assert source.location == "https://petstore.example.com"

    @pytest.mark.integration
    def test_duplicate_slugs_in_one_document(self, target_store: EntityStore) -> None:
        """A repeated slug should update the entity its first record created."""
        document = {
            "format": FORMAT_MARKER,
            "entities": {
                "rule": [
                    {"slug": "validate", "name": "Validate", "type": "mapping"},
                    {"slug": "validate", "name": "Validate", "type": "error"},
                ]
            },
        }

        report = ConfigurationService(target_store).import_configuration(document)

        assert [o.action for o in report.outcomes] == ["created", "updated"]
        rules = target_store.mapper(EntityType.RULE).find_all()
        assert [(r.slug, r.type) for r in rules] == [("validate", "error")]

    @pytest.mark.integration
    def test_failures_continue_by_default(self, target_store: EntityStore) -> None:
        document = {
            "format": FORMAT_MARKER,
            "entities": {
                "mappings": [{"slug": "broken"}, {"slug": "fine", "name": "Fine"}],
            },
        }

        report = ConfigurationService(target_store).import_configuration(document)

        assert not report.success
        assert not report.aborted
        assert [o.action for o in report.outcomes] == ["failed", "created"]
        assert "name" in report.failures[0].error
        assert report.to_dict()["counts"]["mapping"] == {"created": 1, "updated": 0, "failed": 1}

    @pytest.mark.integration
    def test_stop_on_error(self, target_store: EntityStore) -> None:
        config = BridgeConfig()
        config.import_.stop_on_error = True
        document = {
            "format": FORMAT_MARKER,
            "entities": {
                "mapping": [{"slug": "broken"}, {"slug": "fine", "name": "Fine"}],
                "job": [{"slug": "job", "name": "Job"}],
            },
        }

        report = ConfigurationService(target_store, config).import_configuration(document)

        assert report.aborted
        assert [o.action for o in report.outcomes] == ["failed"]
        assert target_store.mapper(EntityType.MAPPING).find_all() == []
        assert target_store.mapper(EntityType.JOB).find_all() == []

    @pytest.mark.integration
    def test_malformed_document(self, target_store: EntityStore) -> None:
        with pytest.raises(DocumentError):
            ConfigurationService(target_store).import_configuration({"format": FORMAT_MARKER})
