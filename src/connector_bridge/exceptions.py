"""Custom exceptions for Connector Bridge.

This module defines exception classes for the error conditions that can
occur while exporting, importing and storing configuration entities.
"""


class BridgeError(Exception):
    """Base exception for all Connector Bridge errors."""

    pass


class ConfigurationError(BridgeError):
    """Raised when configuration is invalid or missing."""

    pass


class StoreError(BridgeError):
    """Raised when an entity store operation fails."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        entity_id: int | str | None = None,
    ):
        """Initialize store error.

        Args:
            message: Error message
            entity_type: Entity type the operation targeted
            entity_id: Identifier of the entity, when known
        """
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with entity type and identifier."""
        msg = self.message
        if self.entity_type:
            target = self.entity_type
            if self.entity_id is not None:
                target = f"{target} {self.entity_id}"
            msg = f"[{target}] {msg}"
        return msg


class NotFoundError(StoreError):
    """Raised when an entity does not exist in the store."""

    pass


class ValidationError(StoreError):
    """Raised when entity data is missing required fields."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        entity_id: int | str | None = None,
        missing_fields: list[str] | None = None,
    ):
        """Initialize validation error.

        Args:
            message: Error message
            entity_type: Entity type the operation targeted
            entity_id: Identifier of the entity, when known
            missing_fields: Required fields that were absent
        """
        self.missing_fields = missing_fields or []
        super().__init__(message, entity_type, entity_id)


class TypeMismatchError(BridgeError, TypeError):
    """Raised when an entity is passed to a handler for a different type."""

    def __init__(self, expected: str, actual: str):
        """Initialize type mismatch error.

        Args:
            expected: Entity type the handler is responsible for
            actual: Class name of the entity that was received
        """
        self.expected = expected
        self.actual = actual
        super().__init__(f"Entity must be an instance of {expected}, got {actual}")


class DocumentError(BridgeError):
    """Raised when an export document cannot be parsed or validated."""

    pass


class SlugError(BridgeError):
    """Raised when a slug cannot be generated for an entity."""

    pass
