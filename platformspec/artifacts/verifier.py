"""Plugin artifact verification.

Checks the embedded discovery image, then downloads the platform and
CloudQL binaries concurrently. Each independent check records its own
failure; all failures are reported together once every check finished.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from platformspec.artifacts.archive import validate_archive_path_exists, verify_checksum
from platformspec.artifacts.fetcher import ArtifactFetcher
from platformspec.artifacts.registry import RegistryClient
from platformspec.config import ValidatorSettings, get_settings
from platformspec.errors import (
    ArtifactError,
    ArtifactValidationError,
    SpecificationError,
)
from platformspec.models.specification import ArtifactScope, Component, PluginSpecification
from platformspec.spec.common import is_non_empty

logger = logging.getLogger(__name__)


class ArtifactVerifier:
    """Downloads and inspects the artifacts a plugin references."""

    def __init__(
        self,
        fetcher: ArtifactFetcher,
        registry: RegistryClient,
        settings: ValidatorSettings | None = None,
    ):
        self.fetcher = fetcher
        self.registry = registry
        self.settings = settings or get_settings()

    def validate_single_downloadable_component(self, component: Component, name: str) -> bytes:
        """Download a component, verify its checksum and declared archive path.

        Returns the downloaded bytes so a shared archive can be inspected
        again without a second download.
        """
        if not is_non_empty(component.uri):
            raise ArtifactError(f"{name} validation failed: component URI is missing")

        logger.info("Validating %s artifact from %s", name, component.uri)
        try:
            data = self.fetcher.download_with_retry(component.uri)
        except SpecificationError as e:
            raise e.wrap(f"{name} download failed from URI '{component.uri}'") from e
        if not data:
            raise ArtifactError(
                f"{name} validation failed: downloaded file from '{component.uri}' is unexpectedly empty"
            )

        try:
            verify_checksum(data, component.checksum, required=self.settings.require_checksum)
        except SpecificationError as e:
            raise e.wrap(f"{name} checksum verification failed for URI '{component.uri}'") from e

        if is_non_empty(component.path_in_archive):
            try:
                validate_archive_path_exists(data, component.path_in_archive, component.uri)
            except SpecificationError as e:
                raise e.wrap(f"{name} archive path check failed for URI '{component.uri}'") from e
        return data

    def validate_plugin_artifacts(self, spec: PluginSpecification, scope: str | ArtifactScope = ArtifactScope.ALL) -> None:
        """Verify the plugin's artifacts within *scope*.

        Raises ArtifactValidationError listing every failing component.
        """
        if spec is None or spec.components is None:
            raise ArtifactError("plugin specification with components is required for artifact validation")
        if not isinstance(scope, ArtifactScope):
            try:
                scope = ArtifactScope.parse(scope)
            except ValueError as e:
                raise ArtifactError(str(e)) from e

        embedded = spec.embedded_task
        check_discovery = embedded is not None and scope in (ArtifactScope.ALL, ArtifactScope.DISCOVERY)
        check_platform = scope in (ArtifactScope.ALL, ArtifactScope.PLATFORM_BINARY)
        check_cloudql = scope in (ArtifactScope.ALL, ArtifactScope.CLOUDQL_BINARY)
        if scope is ArtifactScope.DISCOVERY and embedded is None:
            logger.info("Scope: Skipping discovery image validation (discovery is referenced).")
        logger.info(
            "Starting plugin artifact validation (plugin: %s, scope: %s)", spec.name, scope.value
        )

        platform = spec.components.platform_binary
        cloudql = spec.components.cloudql_binary
        shared_uri = platform.uri == cloudql.uri
        failures: list[Exception] = []

        if check_discovery:
            try:
                self.registry.validate_manifest_exists(embedded.image_url)
            except SpecificationError as e:
                logger.error("Discovery image '%s' failed validation: %s", embedded.image_url, e)
                failures.append(e.wrap(f"discovery image validation failed for '{embedded.image_url}'"))

        platform_future: Future | None = None
        cloudql_future: Future | None = None
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="artifact") as executor:
            if check_platform:
                platform_future = executor.submit(
                    self.validate_single_downloadable_component, platform, ArtifactScope.PLATFORM_BINARY.value
                )
            if check_cloudql and not shared_uri:
                cloudql_future = executor.submit(
                    self.validate_single_downloadable_component, cloudql, ArtifactScope.CLOUDQL_BINARY.value
                )

        platform_data = None
        if platform_future is not None:
            platform_data = _collect(
                platform_future, f"platform-binary artifact validation failed for URI '{platform.uri}'", failures
            )
        if cloudql_future is not None:
            _collect(cloudql_future, f"cloudql-binary artifact validation failed for URI '{cloudql.uri}'", failures)

        if check_cloudql and shared_uri:
            failure = self._check_shared_cloudql_path(platform, cloudql, check_platform, platform_data)
            if failure is not None:
                failures.append(failure)

        if failures:
            for failure in failures:
                logger.error("%s", failure)
            raise ArtifactValidationError(spec.name, failures)
        logger.info("Plugin artifact validation completed successfully for '%s'.", spec.name)

    def _check_shared_cloudql_path(
        self,
        platform: Component,
        cloudql: Component,
        platform_checked: bool,
        platform_data: bytes | None,
    ) -> SpecificationError | None:
        """Check the CloudQL path inside the archive both binaries share.

        Reuses the platform download when there is one. A failed platform
        download was already reported, so the path check is skipped.
        """
        if platform_checked:
            if platform_data is None:
                logger.warning(
                    "Skipping cloudql-binary path check for '%s': shared archive download/validation failed for URI '%s'",
                    cloudql.path_in_archive,
                    cloudql.uri,
                )
                return None
            data = platform_data
        else:
            logger.warning(
                "CloudQL validation requested for shared URI '%s', but platform-binary validation was skipped. "
                "Downloading artifact again for path check.",
                platform.uri,
            )
            try:
                data = self.validate_single_downloadable_component(platform, "shared archive for CloudQL path check")
            except SpecificationError as e:
                return e.wrap(f"failed to download shared archive '{platform.uri}' for cloudql-binary path check")

        try:
            validate_archive_path_exists(data, cloudql.path_in_archive, cloudql.uri)
        except SpecificationError as e:
            return e.wrap(f"cloudql-binary path validation failed within shared archive '{cloudql.uri}'")
        logger.info("CloudQL binary path '%s' found in shared archive.", cloudql.path_in_archive)
        return None


def _collect(future: Future, context: str, failures: list[Exception]) -> bytes | None:
    """Return the future's result, or record its failure under *context*."""
    try:
        return future.result()
    except SpecificationError as e:
        failures.append(e.wrap(context))
    except Exception as e:
        logger.exception("Unexpected error during artifact check: %s", context)
        failures.append(ArtifactError(f"{context}: unexpected error: {e}"))
    return None
