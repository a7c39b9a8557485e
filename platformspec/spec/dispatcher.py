"""Type dispatch: the public entry point for specification processing.

``SpecificationValidator`` reads a document's envelope, applies API
version defaulting, and hands the document to the validator for its type.
Network collaborators (HTTP client, registry, fetcher, license list) are
injected so tests can substitute fakes; ``get_default_validator`` builds a
process-wide instance from the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

import httpx

from platformspec.artifacts.fetcher import ArtifactFetcher, RetryPolicy, create_http_client
from platformspec.artifacts.registry import RegistryClient
from platformspec.artifacts.verifier import ArtifactVerifier
from platformspec.config import ValidatorSettings, get_settings
from platformspec.errors import (
    MissingTypeError,
    SpecificationParseError,
    StructuralError,
    UnsupportedTypeError,
)
from platformspec.models.specification import (
    ArtifactScope,
    PluginSpecification,
    SpecificationTypeInfo,
    SpecType,
    TaskDetails,
    TaskSpecification,
)
from platformspec.spec import API_VERSION_V1, FORMAT_YAML, SPEC_TYPE_TASK
from platformspec.spec.common import get_flattened_tags, is_non_empty
from platformspec.spec.control_validator import process_control_specification
from platformspec.spec.licenses import SPDXLicenseList
from platformspec.spec.parser import load_document, parse_envelope
from platformspec.spec.plugin_validator import process_plugin_specification
from platformspec.spec.projection import render_embedded_task_specification, task_details_from_plugin
from platformspec.spec.query_validator import process_query_specification
from platformspec.spec.semantic_validator import check_platform_support
from platformspec.spec.task_validator import process_task_specification

logger = logging.getLogger(__name__)

__all__ = ["SpecificationValidator", "get_default_validator", "get_flattened_tags"]


class SpecificationValidator:
    """Loads, validates and verifies specification documents."""

    def __init__(
        self,
        settings: ValidatorSettings | None = None,
        client: httpx.Client | None = None,
        licenses: SPDXLicenseList | None = None,
        retry: RetryPolicy | None = None,
        registry: RegistryClient | None = None,
        fetcher: ArtifactFetcher | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or create_http_client(self.settings)
        self.licenses = licenses or SPDXLicenseList(settings=self.settings, client=self.client)
        retry = retry or RetryPolicy.from_settings(self.settings)
        self.registry = registry or RegistryClient(self.client, self.settings, retry)
        self.fetcher = fetcher or ArtifactFetcher(self.client, self.settings, retry)
        self.verifier = ArtifactVerifier(self.fetcher, self.registry, self.settings)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SpecificationValidator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Processing ---

    def process_specification(
        self,
        file_path: str | Path,
        platform_version: str = "",
        artifact_scope: str | ArtifactScope = ArtifactScope.ALL,
        skip_artifacts: bool = False,
    ):
        """Read and fully process the specification at *file_path*.

        Returns a PluginSpecification, TaskSpecification,
        QuerySpecification or ControlSpecification.
        """
        path = str(file_path)
        return self.process_specification_data(
            _read_file(path),
            path,
            platform_version=platform_version,
            artifact_scope=artifact_scope,
            skip_artifacts=skip_artifacts,
        )

    def process_specification_data(
        self,
        data: bytes | str,
        file_path: str = "<memory>",
        platform_version: str = "",
        artifact_scope: str | ArtifactScope = ArtifactScope.ALL,
        skip_artifacts: bool = False,
    ):
        """Process an in-memory document; *file_path* is only used in messages."""
        document = load_document(data, file_path)
        envelope = parse_envelope(document)

        if not is_non_empty(envelope.type):
            raise MissingTypeError(file_path=file_path)
        spec_type = envelope.type.strip().lower()

        if not is_non_empty(envelope.api_version):
            if spec_type == SpecType.PLUGIN.value:
                raise StructuralError(
                    f"plugin specification '{file_path}' missing required 'api-version'",
                    file_path=file_path,
                )
            logger.debug("Specification '%s' (type: %s) has no api-version, defaulting to '%s'.", file_path, spec_type, API_VERSION_V1)

        try:
            kind = SpecType(spec_type)
        except ValueError:
            raise UnsupportedTypeError(envelope.type, file_path=file_path) from None

        logger.debug("Dispatching '%s' as a %s specification", file_path, kind.value)
        if kind is SpecType.PLUGIN:
            return process_plugin_specification(
                document,
                file_path,
                licenses=self.licenses,
                verifier=self.verifier,
                platform_version=platform_version,
                artifact_scope=artifact_scope,
                skip_artifacts=skip_artifacts,
            )
        if kind is SpecType.TASK:
            return process_task_specification(
                document,
                file_path,
                licenses=self.licenses,
                registry=self.registry,
                skip_artifacts=skip_artifacts,
            )
        if kind is SpecType.QUERY:
            return process_query_specification(document, file_path)
        return process_control_specification(document, file_path)

    # --- Inspection ---

    def identify_specification_types(self, file_path: str | Path) -> SpecificationTypeInfo:
        """Report the primary type and any embedded types without validating."""
        path = str(file_path)
        document = load_document(_read_file(path), path)
        envelope = parse_envelope(document)
        if not is_non_empty(envelope.type):
            raise MissingTypeError(file_path=path)

        info = SpecificationTypeInfo(primary_type=envelope.type.strip().lower())
        if info.primary_type == SpecType.PLUGIN.value:
            components = document.get("components")
            discovery = components.get("discovery") if isinstance(components, dict) else None
            if isinstance(discovery, dict) and discovery.get("task-spec") is not None:
                info.embedded_types[SPEC_TYPE_TASK] = 1
        return info

    def get_task_definition(self, file_path: str | Path) -> TaskSpecification:
        """Load a file that must hold a standalone task, skipping artifact checks."""
        path = str(file_path)
        logger.info("Loading standalone task definition from: %s", path)
        spec = self.process_specification(path, skip_artifacts=True)
        if not isinstance(spec, TaskSpecification):
            found = getattr(spec, "type", "") or type(spec).__name__
            raise StructuralError(
                f"expected type '{SPEC_TYPE_TASK}' but found type '{found}' in file '{path}'",
                file_path=path,
            )
        return spec

    def check_platform_support(self, spec: PluginSpecification, platform_version: str) -> bool:
        return check_platform_support(spec, platform_version)

    # --- Projections ---

    def get_task_details_from_plugin_specification(
        self, spec: PluginSpecification, allow_reference: bool = False
    ) -> TaskDetails:
        return task_details_from_plugin(spec, self.registry, allow_reference=allow_reference)

    def get_embedded_task_specification(self, spec: PluginSpecification, fmt: str = FORMAT_YAML) -> str:
        return render_embedded_task_specification(spec, fmt)


def _read_file(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise SpecificationParseError(f"failed to read file '{path}': {e}", file_path=path) from e


@lru_cache
def get_default_validator() -> SpecificationValidator:
    """Process-wide validator built from environment settings."""
    return SpecificationValidator(get_settings())
