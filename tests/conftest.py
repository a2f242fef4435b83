"""Shared fixtures for Connector Bridge tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from connector_bridge.config import BridgeConfig
from connector_bridge.configuration.service import ConfigurationService
from connector_bridge.resources import EntityType
from connector_bridge.store.database import dispose_database
from connector_bridge.store.mappers import EntityStore

CONFIGURATION_ID = "7"


def _open_store(path: Path) -> Iterator[EntityStore]:
    url = f"sqlite:///{path}"
    store = EntityStore(url)
    yield store
    dispose_database(url)


@pytest.fixture
def store(tmp_path: Path) -> Iterator[EntityStore]:
    """Empty entity store backed by a temporary SQLite file."""
    yield from _open_store(tmp_path / "source.db")


@pytest.fixture
def target_store(tmp_path: Path) -> Iterator[EntityStore]:
    """Second, independent store used as an import target."""
    yield from _open_store(tmp_path / "target.db")


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig()


@pytest.fixture
def service(store: EntityStore, config: BridgeConfig) -> ConfigurationService:
    return ConfigurationService(store, config)


@pytest.fixture
def seeded(store: EntityStore) -> SimpleNamespace:
    """A configuration with one entity of every type and cross references.

    Two mappings (owner and address) are referenced but not part of the
    configuration; they are only reachable through a mapping call and a
    rule's configuration.
    """
    create = {t: store.mapper(t).create_from_array for t in EntityType}
    member = {"configurations": [CONFIGURATION_ID]}

    register = create[EntityType.REGISTER]({"title": "Buildings"})
    schema = create[EntityType.SCHEMA]({"title": "Building"})

    source = create[EntityType.SOURCE](
        {
            "name": "Petstore API",
            "location": "https://petstore.example.com",
            "type": "api",
            "username": "admin",
            "password": "s3cret",
            "apikey": "abc123",
            "headers": {"X-Api-Key": "abc123"},
            "configuration": {
                "timeout": 30,
                "headers.Authorization": "Bearer xyz",
                "auth": {"token": "t0k3n", "mode": "basic"},
            },
            **member,
        }
    )

    owner_mapping = create[EntityType.MAPPING](
        {"name": "Owner mapping", "mapping": {"fullName": "{{ naam }}"}}
    )
    address_mapping = create[EntityType.MAPPING](
        {"name": "Address mapping", "mapping": {"street": "{{ straat }}"}}
    )
    pet_mapping = create[EntityType.MAPPING](
        {
            "name": "Pet mapping",
            "mapping": {
                "name": "{{ naam }}",
                "owner": "{{ executeMapping(%d, eigenaar) }}" % owner_mapping.id,
            },
            "source_id": str(source.id),
            **member,
        }
    )

    validate_rule = create[EntityType.RULE](
        {
            "name": "Validate pet",
            "type": "mapping",
            "source_id": str(source.id),
            "configuration": {
                "mapping": address_mapping.id,
                "nested": {"sourceId": source.id, "other": 1},
            },
            **member,
        }
    )
    error_rule = create[EntityType.RULE](
        {"name": "Log errors", "type": "error", "configuration": {"code": 500}, **member}
    )

    register_endpoint = create[EntityType.ENDPOINT](
        {
            "name": "Pets endpoint",
            "endpoint": "/api/pets",
            "method": "GET",
            "targetType": "register/schema",
            "targetId": f"{register.id}/{schema.id}",
            "inputMapping": str(pet_mapping.id),
            "rules": [validate_rule.id, error_rule.id, 999],
            **member,
        }
    )
    proxy_endpoint = create[EntityType.ENDPOINT](
        {
            "name": "Pet proxy",
            "endpoint": "/api/proxy/pets",
            "method": "GET",
            "targetType": "api",
            "targetId": str(source.id),
            **member,
        }
    )

    synchronization = create[EntityType.SYNCHRONIZATION](
        {
            "name": "Pet sync",
            "sourceId": str(source.id),
            "sourceType": "api",
            "targetId": f"{register.id}/{schema.id}",
            "targetType": "register/schema",
            "sourceTargetMapping": str(pet_mapping.id),
            "actions": [validate_rule.id, "custom-action"],
            **member,
        }
    )
    job = create[EntityType.JOB](
        {
            "name": "Pet sync job",
            "jobClass": "SynchronizationAction",
            "arguments": {"synchronizationId": synchronization.id},
            **member,
        }
    )

    return SimpleNamespace(
        configuration_id=CONFIGURATION_ID,
        register=register,
        schema=schema,
        source=source,
        owner_mapping=owner_mapping,
        address_mapping=address_mapping,
        pet_mapping=pet_mapping,
        validate_rule=validate_rule,
        error_rule=error_rule,
        register_endpoint=register_endpoint,
        proxy_endpoint=proxy_endpoint,
        synchronization=synchronization,
        job=job,
    )
