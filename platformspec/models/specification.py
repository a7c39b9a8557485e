"""Core data models for platform specifications.

Covers the envelope read before dispatch, the four specification types
(plugin, task, query, control), their shared building blocks (metadata,
artifact components, scaling and scheduling), and the derived records
returned by the projection helpers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class SpecType(Enum):
    """The closed set of specification types."""

    PLUGIN = "plugin"
    TASK = "task"
    QUERY = "query"
    CONTROL = "control"


class ArtifactScope(Enum):
    """Which plugin artifacts to verify."""

    DISCOVERY = "discovery"  # Embedded discovery task image
    PLATFORM_BINARY = "platform-binary"
    CLOUDQL_BINARY = "cloudql-binary"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | None) -> "ArtifactScope":
        """Parse a scope selector; blank means ALL. Raises ValueError otherwise."""
        normalized = (value or "").strip().lower()
        if not normalized:
            return cls.ALL
        for scope in cls:
            if scope.value == normalized:
                return scope
        allowed = ", ".join(f"'{s.value}'" for s in cls)
        raise ValueError(f"invalid artifact scope '{value}'. Must be one of: {allowed} (or empty)")


# --- Envelope ---


@dataclass
class Envelope:
    """The minimal fields read before full parsing."""

    type: str
    api_version: str = ""
    id: str = ""


# --- Shared building blocks ---


@dataclass
class Metadata:
    """Descriptive information carried by plugins and standalone tasks."""

    author: str = ""
    published_date: str = ""  # YYYY-MM-DD
    contact: str = ""
    license: str = ""  # SPDX identifier or expression
    description: str = ""
    website: str = ""


@dataclass
class Component:
    """A downloadable artifact reference."""

    uri: str = ""
    image_uri: str = ""  # Deprecated; tasks carry image_url instead
    path_in_archive: str = ""
    checksum: str = ""  # "sha256:<hex>"

    def is_empty(self) -> bool:
        return not (self.uri or self.image_uri or self.path_in_archive or self.checksum)


# --- Task ---


@dataclass
class ScaleConfig:
    """Scaling parameters for a task."""

    lag_threshold: str = ""  # Positive integer, as a string
    min_replica: int = 0
    max_replica: int = 0


@dataclass
class RunScheduleEntry:
    """A single scheduled run of a task."""

    id: str = ""
    params: dict[str, str] | None = None
    frequency: str = ""


@dataclass
class TaskSpecification:
    """A task, either standalone or embedded in a plugin's discovery component.

    ``None`` marks a field that was absent from the document, which the
    validators distinguish from an explicitly empty value.
    """

    # Standalone only; must be absent when embedded
    api_version: str = ""
    metadata: Metadata | None = None
    supported_platform_versions: list[str] | None = None

    id: str = ""
    name: str = ""
    description: str = ""
    is_enabled: bool = False
    type: str = ""
    image_url: str = ""
    command: list[str] | None = None
    timeout: str = ""
    scale_config: ScaleConfig = field(default_factory=ScaleConfig)
    params: list[str] | None = None
    configs: list[Any] | None = None
    run_schedule: list[RunScheduleEntry] | None = None

    tags: dict[str, list[str]] | None = None
    classification: list[list[str]] | None = None


@dataclass
class TaskReference:
    """Discovery by reference to a standalone task id."""

    task_id: str


Discovery = Union[TaskReference, TaskSpecification]


# --- Plugin ---


@dataclass
class PluginComponents:
    """The functional parts of a plugin."""

    discovery: Discovery | None = None
    platform_binary: Component = field(default_factory=Component)
    cloudql_binary: Component = field(default_factory=Component)


@dataclass
class PluginSpecification:
    """A 'plugin' specification."""

    api_version: str = ""
    type: str = ""
    name: str = ""
    version: str = ""
    supported_platform_versions: list[str] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata)
    components: PluginComponents | None = None
    sample_data: Component | None = None
    tags: dict[str, list[str]] | None = None
    classification: list[list[str]] | None = None

    @property
    def embedded_task(self) -> TaskSpecification | None:
        """The embedded discovery task, or None when discovery is a reference."""
        if self.components and isinstance(self.components.discovery, TaskSpecification):
            return self.components.discovery
        return None


# --- Query ---


@dataclass
class QueryParameter:
    """A named query template parameter with its default value."""

    key: str = ""
    value: str = ""


@dataclass
class QuerySpecification:
    """A 'query' specification."""

    api_version: str = ""
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    integration_type: list[str] = field(default_factory=list)
    query: str = ""
    primary_table: str = ""
    metadata: dict[str, str] | None = None
    is_view: bool = False
    parameters: list[QueryParameter] | None = None
    tags: dict[str, list[str]] | None = None
    classification: list[list[str]] | None = None

    # Derived from {{.Name}} placeholders in query; never read from the document
    detected_params: list[str] = field(default_factory=list)


# --- Control ---


@dataclass
class ControlSpecification:
    """A 'control' specification."""

    api_version: str = ""
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    severity: str = ""
    frameworks: list[str] = field(default_factory=list)
    logic_source: Component = field(default_factory=Component)
    parameters: dict[str, Any] | None = None


Specification = Union[
    PluginSpecification, TaskSpecification, QuerySpecification, ControlSpecification
]


# --- Derived records ---


@dataclass
class TaskDetails:
    """Flattened view of a plugin's discovery task plus inherited plugin fields.

    When the plugin references its task by id, only the inherited fields are
    populated and ``is_reference`` is set.
    """

    plugin_name: str
    api_version: str
    supported_platform_versions: list[str] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata)
    tags: dict[str, list[str]] | None = None

    task_id: str = ""
    task_name: str = ""
    task_description: str = ""
    validated_image_uri: str = ""
    command: list[str] = field(default_factory=list)
    timeout: str = ""
    scale_config: ScaleConfig = field(default_factory=ScaleConfig)
    params: list[str] = field(default_factory=list)
    configs: list[Any] = field(default_factory=list)
    run_schedule: list[RunScheduleEntry] = field(default_factory=list)

    is_reference: bool = False
    referenced_task_id: str = ""


@dataclass
class SpecificationTypeInfo:
    """Result of a cheap type pre-scan."""

    primary_type: str
    embedded_types: dict[str, int] = field(default_factory=dict)
