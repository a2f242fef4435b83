"""
CLI context for Connector Bridge.

This module provides the context object that is passed to all CLI commands,
containing configuration, the entity store and the configuration service.
"""

from dataclasses import dataclass, field
from pathlib import Path

from connector_bridge.config import BridgeConfig, load_config_from_yaml
from connector_bridge.configuration.service import ConfigurationService
from connector_bridge.store.mappers import EntityStore
from connector_bridge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BridgeContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file; defaults and environment
            variables are used when absent
        log_level: Logging level
        log_file: Optional log file path
        database: Database path or URL overriding the configured store
    """

    config_path: Path | None = None
    log_level: str = "WARNING"
    log_file: Path | None = None
    database: str | None = None

    # Lazy-loaded attributes
    _config: BridgeConfig | None = field(default=None, init=False, repr=False)
    _store: EntityStore | None = field(default=None, init=False, repr=False)
    _service: ConfigurationService | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> BridgeConfig:
        """Get or load the configuration."""
        if self._config is None:
            if self.config_path is not None:
                logger.debug("loading_configuration", config_path=str(self.config_path))
                self._config = load_config_from_yaml(self.config_path)
            else:
                self._config = BridgeConfig()

            if self.database:
                self._config.store.db_path = self.database

        return self._config

    @property
    def store(self) -> EntityStore:
        """Get or open the entity store."""
        if self._store is None:
            self._store = EntityStore(self.config.store.database_url)
        return self._store

    @property
    def service(self) -> ConfigurationService:
        """Get or create the configuration service."""
        if self._service is None:
            self._service = ConfigurationService(self.store, self.config)
        return self._service
