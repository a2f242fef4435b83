"""Slug generation utilities.

Slugs are the stable, URL-safe handles that replace environment-local
numeric identifiers in export documents. They are unique within an entity
type.
"""

import re
import uuid
from collections.abc import Iterable

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(name: str | None) -> str:
    """Convert a human-readable name into a slug.

    Lowercases the name and collapses every run of characters outside
    ``[a-z0-9]`` into a single hyphen. Leading and trailing hyphens are
    removed.

    Examples:
        >>> slugify("Petstore API (v2)")
        'petstore-api-v2'
        >>> slugify("  ")
        ''
    """
    if not name:
        return ""
    return _NON_SLUG_CHARS.sub("-", name.strip().lower()).strip("-")


def fallback_slug(entity_id: int | str | None) -> str:
    """Slug used when an entity has no usable name."""
    return f"item-{entity_id}"


def unique_slug(base: str, taken: set[str]) -> str:
    """Return ``base`` or the first ``base-N`` not present in ``taken``.

    The returned slug is added to ``taken``.
    """
    candidate = base
    counter = 1
    while candidate in taken:
        candidate = f"{base}-{counter}"
        counter += 1
    taken.add(candidate)
    return candidate


def is_uuid(value: object) -> bool:
    """Check whether a value is a valid UUID string."""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def is_numeric(value: object) -> bool:
    """Check whether a value is an integer or a string of digits."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def dedupe(values: Iterable) -> list:
    """Remove duplicates while keeping first-seen order."""
    return list(dict.fromkeys(values))
