"""
SQLAlchemy models for connector configuration entities.

Column names are the portable wire keys used in export documents
(``targetType``, ``inputMapping``); attribute names follow Python naming
(``target_type``, ``input_mapping``). ``to_dict`` and ``hydrate`` convert
between the two.
"""

import copy
from datetime import datetime, timezone
from typing import Any, ClassVar
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from connector_bridge.exceptions import SlugError
from connector_bridge.resources import EntityType
from connector_bridge.utils.slugs import fallback_slug, slugify


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class PortableEntity:
    """Columns and conversions shared by every configuration entity.

    Each entity has an environment-local numeric ``id``, a globally unique
    ``uuid`` and a ``slug`` that is unique within its type.
    """

    __entity_type__: ClassVar[EntityType]
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("name",)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str | None] = mapped_column(String(36), unique=True, nullable=True)
    slug: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, comment="Portable handle, unique per type"
    )
    configurations: Mapped[list | None] = mapped_column(
        JSON, nullable=True, default=list, comment="Configuration ids this entity belongs to"
    )
    created: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=_utcnow)
    updated: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=_utcnow, onupdate=_utcnow
    )

    @property
    def entity_type(self) -> EntityType:
        return self.__entity_type__

    @classmethod
    def wire_fields(cls) -> list[tuple[str, Column]]:
        """(attribute name, column) pairs for every mapped column."""
        return [(prop.key, prop.columns[0]) for prop in sa_inspect(cls).column_attrs]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entity using wire keys."""
        data: dict[str, Any] = {}
        for attr, column in self.wire_fields():
            value = getattr(self, attr)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, (dict, list)):
                value = copy.deepcopy(value)
            data[column.name] = value
        return data

    def hydrate(self, data: dict[str, Any]) -> "PortableEntity":
        """Set attributes from a wire-keyed dict.

        Keys that do not correspond to a column are ignored. The primary key
        is never overwritten.
        """
        for attr, column in self.wire_fields():
            if attr == "id" or column.name not in data:
                continue
            setattr(self, attr, _coerce(column, data[column.name]))
        return self

    def get_slug(self) -> str:
        """Return the slug, generating one from the name when unset.

        Raises:
            SlugError: If neither a name nor an id is available
        """
        if self.slug:
            return self.slug

        generated = slugify(self.display_name)
        if generated:
            return generated
        if self.id is not None:
            return fallback_slug(self.id)
        raise SlugError(f"Unable to generate a valid slug for {type(self).__name__}")

    def ensure_uuid(self) -> None:
        if not self.uuid:
            self.uuid = str(uuid4())

    @property
    def display_name(self) -> str | None:
        return getattr(self, "name", None)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, slug='{self.slug}')>"


def _coerce(column: Column, value: Any) -> Any:
    """Coerce a wire value to what the column stores."""
    if value is None:
        return None
    if isinstance(column.type, DateTime) and isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(column.type, String) and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(column.type, Integer) and isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value


class Source(PortableEntity, Base):
    """An external system data is read from or written to."""

    __tablename__ = "sources"
    __entity_type__ = EntityType.SOURCE

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")
    location: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_enabled: Mapped[bool | None] = mapped_column("isEnabled", Boolean, default=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True, comment="api, database, soap")
    locale: Mapped[str | None] = mapped_column(String(20), nullable=True)
    accept: Mapped[str | None] = mapped_column(String(255), nullable=True)
    documentation: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    log_retention: Mapped[int | None] = mapped_column("logRetention", Integer, default=3600)
    error_retention: Mapped[int | None] = mapped_column("errorRetention", Integer, default=86400)
    configuration: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    logging_config: Mapped[dict | None] = mapped_column("loggingConfig", JSON, nullable=True)

    # Authentication material, never exported
    auth: Mapped[str | None] = mapped_column(String(50), nullable=True)
    authorization_header: Mapped[str | None] = mapped_column(
        "authorizationHeader", String(1024), nullable=True
    )
    authentication_config: Mapped[dict | None] = mapped_column(
        "authenticationConfig", JSON, nullable=True
    )
    jwt: Mapped[str | None] = mapped_column(Text, nullable=True)
    jwt_id: Mapped[str | None] = mapped_column("jwtId", String(255), nullable=True)
    secret: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    apikey: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class Endpoint(PortableEntity, Base):
    """A public endpoint that proxies to a source or exposes register objects."""

    __tablename__ = "endpoints"
    __entity_type__ = EntityType.ENDPOINT

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")
    endpoint: Mapped[str | None] = mapped_column(
        String(1024), nullable=True, comment="Path such as /api/buildings/{{id}}"
    )
    endpoint_array: Mapped[list | None] = mapped_column("endpointArray", JSON, nullable=True)
    endpoint_regex: Mapped[str | None] = mapped_column("endpointRegex", String(1024), nullable=True)
    method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    target_type: Mapped[str | None] = mapped_column(
        "targetType", String(50), nullable=True, comment="api, database or register/schema"
    )
    target_id: Mapped[str | None] = mapped_column("targetId", String(255), nullable=True)
    conditions: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    input_mapping: Mapped[str | None] = mapped_column("inputMapping", String(255), nullable=True)
    output_mapping: Mapped[str | None] = mapped_column("outputMapping", String(255), nullable=True)
    rules: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)


class Mapping(PortableEntity, Base):
    """A field-transformation template that may call other mappings."""

    __tablename__ = "mappings"
    __entity_type__ = EntityType.MAPPING

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")
    mapping: Mapped[dict | None] = mapped_column(
        JSON, nullable=True, default=dict, comment="Target field to template string"
    )
    unset: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    cast: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    pass_through: Mapped[bool | None] = mapped_column("passThrough", Boolean, nullable=True)
    source_id: Mapped[str | None] = mapped_column("source_id", String(255), nullable=True)
    target_id: Mapped[str | None] = mapped_column("target_id", String(255), nullable=True)


class Rule(PortableEntity, Base):
    """A rule applied before or after an endpoint or synchronization action."""

    __tablename__ = "rules"
    __entity_type__ = EntityType.RULE

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")
    action: Mapped[str | None] = mapped_column(String(20), nullable=True)
    timing: Mapped[str | None] = mapped_column(String(20), nullable=True, default="before")
    conditions: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    type: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="mapping, error, script, synchronization, ..."
    )
    configuration: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    order: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    source_id: Mapped[str | None] = mapped_column("source_id", String(255), nullable=True)
    target_id: Mapped[str | None] = mapped_column("target_id", String(255), nullable=True)


class Job(PortableEntity, Base):
    """A scheduled job; its arguments point at the entity it acts on."""

    __tablename__ = "jobs"
    __entity_type__ = EntityType.JOB

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")
    job_class: Mapped[str | None] = mapped_column("jobClass", String(255), nullable=True)
    arguments: Mapped[dict | str | None] = mapped_column(JSON, nullable=True)
    interval: Mapped[int | None] = mapped_column(Integer, nullable=True, default=3600)
    execution_time: Mapped[int | None] = mapped_column("executionTime", Integer, default=3600)
    time_sensitive: Mapped[bool | None] = mapped_column("timeSensitive", Boolean, default=True)
    allow_parallel_runs: Mapped[bool | None] = mapped_column(
        "allowParallelRuns", Boolean, default=False
    )
    is_enabled: Mapped[bool | None] = mapped_column("isEnabled", Boolean, default=True)
    single_run: Mapped[bool | None] = mapped_column("singleRun", Boolean, default=False)
    schedule_after: Mapped[datetime | None] = mapped_column("scheduleAfter", DateTime)
    user_id: Mapped[str | None] = mapped_column("userId", String(255), nullable=True)
    log_retention: Mapped[int | None] = mapped_column("logRetention", Integer, default=3600)
    error_retention: Mapped[int | None] = mapped_column("errorRetention", Integer, default=86400)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)


class Synchronization(PortableEntity, Base):
    """Keeps objects of a source and a target in step."""

    __tablename__ = "synchronizations"
    __entity_type__ = EntityType.SYNCHRONIZATION

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version: Mapped[str | None] = mapped_column(String(50), nullable=True, default="0.0.0")

    source_id: Mapped[str | None] = mapped_column("sourceId", String(255), nullable=True)
    source_type: Mapped[str | None] = mapped_column(
        "sourceType", String(50), nullable=True, comment="api, database or register/schema"
    )
    source_hash_mapping: Mapped[str | None] = mapped_column(
        "sourceHashMapping", String(255), nullable=True
    )
    source_target_mapping: Mapped[str | None] = mapped_column(
        "sourceTargetMapping", String(255), nullable=True
    )
    source_config: Mapped[dict | None] = mapped_column("sourceConfig", JSON, nullable=True)
    current_page: Mapped[int | None] = mapped_column("currentPage", Integer, default=1)

    target_id: Mapped[str | None] = mapped_column("targetId", String(255), nullable=True)
    target_type: Mapped[str | None] = mapped_column("targetType", String(50), nullable=True)
    target_source_mapping: Mapped[str | None] = mapped_column(
        "targetSourceMapping", String(255), nullable=True
    )
    target_config: Mapped[dict | None] = mapped_column("targetConfig", JSON, nullable=True)

    conditions: Mapped[list | dict | None] = mapped_column(JSON, nullable=True, default=list)
    follow_ups: Mapped[list | None] = mapped_column("followUps", JSON, nullable=True, default=list)
    actions: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)


class Register(PortableEntity, Base):
    """An object register; only ever the target of a composite reference."""

    __tablename__ = "registers"
    __entity_type__ = EntityType.REGISTER
    REQUIRED_FIELDS = ("title",)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def display_name(self) -> str | None:
        return self.title


class Schema(PortableEntity, Base):
    """An object schema within a register."""

    __tablename__ = "schemas"
    __entity_type__ = EntityType.SCHEMA
    REQUIRED_FIELDS = ("title",)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def display_name(self) -> str | None:
        return self.title


MODEL_REGISTRY: dict[EntityType, type[PortableEntity]] = {
    EntityType.SOURCE: Source,
    EntityType.ENDPOINT: Endpoint,
    EntityType.MAPPING: Mapping,
    EntityType.RULE: Rule,
    EntityType.JOB: Job,
    EntityType.SYNCHRONIZATION: Synchronization,
    EntityType.REGISTER: Register,
    EntityType.SCHEMA: Schema,
}
