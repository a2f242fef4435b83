"""Configuration management for Connector Bridge using Pydantic.

This module provides type-safe configuration models for the entity store,
export desensitization and reference rewriting, import behaviour and logging.
"""

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SENSITIVE_FIELDS = [
    "headers",
    "auth",
    "authorizationHeader",
    "authenticationConfig",
    "jwt",
    "jwtId",
    "secret",
    "username",
    "password",
    "apikey",
]


class StoreConfig(BaseModel):
    """Entity store configuration."""

    db_path: str = Field(
        default="./connector_bridge.db",
        description="Path to SQLite database file or a full database URL",
    )
    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of connections to maintain in the pool (PostgreSQL only)",
    )
    db_max_overflow: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of connections to create beyond pool_size (PostgreSQL only)",
    )
    db_pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout in seconds for getting a connection from the pool",
    )
    db_pool_recycle: int = Field(
        default=3600,
        ge=60,
        le=28800,
        description="Recycle connections after this many seconds",
    )

    @property
    def database_url(self) -> str:
        """Full SQLAlchemy URL for the configured database."""
        if self.db_path.startswith(("postgresql://", "sqlite://", "mysql://")):
            return self.db_path
        return f"sqlite:///{self.db_path}"


class ExportConfig(BaseModel):
    """Export options."""

    format_version: str = Field(default="1.0", description="Version written to export documents")
    output_format: str = Field(default="json", description="Document format (json or yaml)")
    include_transitive_mappings: bool = Field(
        default=True,
        description="Also export mappings that are only reachable through rules or mapping calls",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_FIELDS),
        description="Source fields holding authentication material, removed on export",
    )
    sensitive_key_pattern: str = Field(
        default="authorization|token|key|secret",
        description="Case-insensitive pattern for source configuration keys removed on export",
    )
    mapping_call_functions: list[str] = Field(
        default_factory=lambda: ["executeMapping"],
        description="Template function names that invoke another mapping",
    )
    rewrite_mapping_calls: bool = Field(
        default=False,
        description=(
            "Rewrite mapping identifiers inside mapping call expressions "
            "(ids to slugs on export, slugs to ids on import)"
        ),
    )

    @field_validator("sensitive_key_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Validate the pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid sensitive_key_pattern: {e}") from e
        return v

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        v_lower = v.lower()
        if v_lower not in ("json", "yaml"):
            raise ValueError("Output format must be one of: json, yaml")
        return v_lower

    @field_validator("mapping_call_functions")
    @classmethod
    def validate_functions(cls, v: list[str]) -> list[str]:
        """Validate function names are plain identifiers."""
        for name in v:
            if not name.isidentifier():
                raise ValueError(f"Invalid mapping call function name: {name!r}")
        return v


class ImportConfig(BaseModel):
    """Import options."""

    stop_on_error: bool = Field(
        default=False,
        description="Abort the remaining batch after the first failed entity",
    )
    refresh_mappings_between_types: bool = Field(
        default=True,
        description="Rebuild the slug table after each entity type so later types see new ids",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="WARNING",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    file_level: str = Field(
        default="DEBUG",
        description="File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(default="json", description="Log format (json or console)")
    file: str | None = Field(default="logs/connector_bridge.log", description="Log file path")

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class BridgeConfig(BaseSettings):
    """Main Connector Bridge configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONNECTOR_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    store: StoreConfig = Field(default_factory=StoreConfig, description="Store configuration")
    export: ExportConfig = Field(default_factory=ExportConfig, description="Export configuration")
    import_: ImportConfig = Field(
        default_factory=ImportConfig,
        alias="import",
        description="Import configuration",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )


def load_config_from_yaml(config_path: str | Path) -> BridgeConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        BridgeConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    return BridgeConfig(**config_data)


def _expand_env_vars(data):
    """Recursively expand environment variables in config data.

    Supports ${VAR_NAME} syntax for environment variable substitution.
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' not found. "
                    f"Please set it in your environment or .env file."
                )
            return env_value
        return data
    else:
        return data


def save_config_to_yaml(config: BridgeConfig, output_path: str | Path) -> None:
    """Save configuration to YAML file.

    Args:
        config: Configuration to save
        output_path: Path to output YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(by_alias=True)

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
