"""
Entity store for Connector Bridge.

This module provides the SQLAlchemy models for configuration entities, the
database helpers, and the per-type mappers the configuration engine uses.
"""

from connector_bridge.store.database import (
    create_database_engine,
    dispose_database,
    get_engine,
    get_session,
    init_database,
    validate_database_connection,
)
from connector_bridge.store.mappers import EntityMapper, EntityStore
from connector_bridge.store.models import (
    MODEL_REGISTRY,
    Base,
    Endpoint,
    Job,
    Mapping,
    PortableEntity,
    Register,
    Rule,
    Schema,
    Source,
    Synchronization,
)

__all__ = [
    # Models
    "Base",
    "PortableEntity",
    "Source",
    "Endpoint",
    "Mapping",
    "Rule",
    "Job",
    "Synchronization",
    "Register",
    "Schema",
    "MODEL_REGISTRY",
    # Database utilities
    "init_database",
    "get_engine",
    "get_session",
    "create_database_engine",
    "dispose_database",
    "validate_database_connection",
    # Mappers
    "EntityMapper",
    "EntityStore",
]
