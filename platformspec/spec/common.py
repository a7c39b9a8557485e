"""Field rules shared by the type-specific validators."""

from __future__ import annotations

import logging
import re

from platformspec.errors import StructuralError
from platformspec.models.specification import (
    ControlSpecification,
    PluginSpecification,
    QuerySpecification,
    TaskSpecification,
)

logger = logging.getLogger(__name__)

# Lowercase alphanumerics; single '-' or '_' between alphanumerics
ID_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9]|[_-][a-z0-9])*$")

IMAGE_DIGEST_PATTERN = re.compile(r"^.+@sha256:[a-fA-F0-9]{64}$")


def is_non_empty(value: str | None) -> bool:
    """True when the value has content other than whitespace."""
    return bool(value and value.strip())


def validate_optional_tags_map(tags: dict[str, list[str]] | None, context: str) -> None:
    """Validate an optional tag map.

    Absent tags are valid and an empty map only warns. Otherwise every key
    must be non-empty and map to a non-empty list of non-empty values.
    """
    if tags is None:
        return
    if not tags:
        logger.warning("%s: tags field exists but is empty.", context)
        return
    for key, values in tags.items():
        if not is_non_empty(key):
            raise StructuralError(f"{context}: tags keys cannot be empty")
        if not values:
            raise StructuralError(f"{context}: tags value list for key '{key}' cannot be empty")
        for j, value in enumerate(values):
            if not is_non_empty(value):
                raise StructuralError(
                    f"{context}: tags value entry {j} for key '{key}' cannot be empty"
                )


def validate_optional_classification(classification: list[list[str]] | None, context: str) -> None:
    """Validate an optional list of classification paths."""
    if classification is None:
        return
    if not classification:
        logger.warning("%s: classification field exists but is empty.", context)
        return
    for i, path in enumerate(classification):
        if not path:
            raise StructuralError(f"{context}: classification entry {i}: inner list cannot be empty")
        for j, item in enumerate(path):
            if not is_non_empty(item):
                raise StructuralError(f"{context}: classification entry {i}, item {j} cannot be empty")


def flatten_tags_map(tags: dict[str, list[str]] | None) -> list[str]:
    """Flatten a tag map into ``key:value`` strings, sorted by key then value."""
    if not tags:
        return []
    flattened = []
    for key in sorted(tags):
        for value in sorted(tags[key]):
            flattened.append(f"{key}:{value}")
    return flattened


def get_flattened_tags(spec) -> list[str]:
    """Return the tags of a validated specification as sorted ``key:value`` strings.

    Controls carry no tags and yield an empty list, as does anything that is
    not a specification.
    """
    if spec is None:
        return []
    if isinstance(spec, (QuerySpecification, PluginSpecification, TaskSpecification)):
        return flatten_tags_map(spec.tags)
    if isinstance(spec, ControlSpecification):
        return []
    logger.warning("get_flattened_tags called with an unsupported specification type: %s", type(spec).__name__)
    return []
