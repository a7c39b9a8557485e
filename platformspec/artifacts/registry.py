"""Container image references and manifest existence checks.

Manifests are probed with ``HEAD /v2/<repository>/manifests/<digest>`` as
defined by the OCI distribution API. Registries that answer 401 with a
``Bearer`` challenge get one anonymous token request before the probe is
repeated.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from platformspec.artifacts.fetcher import RetriesExhausted, RetryableError, RetryPolicy
from platformspec.config import ValidatorSettings, get_settings
from platformspec.errors import ArtifactError, RegistryResolutionError
from platformspec.spec.common import IMAGE_DIGEST_PATTERN, is_non_empty

logger = logging.getLogger(__name__)

DOCKER_HUB = "docker.io"
DOCKER_HUB_REGISTRY = "registry-1.docker.io"

MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
)

_REPOSITORY_COMPONENT = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_DIGEST = re.compile(r"^sha256:[a-fA-F0-9]{64}$")
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class ImageReference:
    """A digest-pinned image: ``registry/repository@sha256:<hex>``."""

    registry: str
    repository: str
    digest: str

    @classmethod
    def parse(cls, image: str) -> "ImageReference":
        """Split a reference into registry, repository and digest.

        The first path segment is a registry host when it contains a dot or
        a port, or is ``localhost``; otherwise Docker Hub is assumed and
        single-segment names live under ``library/``. A tag in front of the
        digest is dropped.
        """
        name, sep, digest = image.strip().partition("@")
        if not sep or not _DIGEST.match(digest):
            raise ValueError(f"image reference '{image}' is not pinned to a sha256 digest")

        last_slash = name.rfind("/")
        colon = name.rfind(":")
        if colon > last_slash:
            name = name[:colon]

        first, slash, rest = name.partition("/")
        if slash and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        else:
            registry, repository = DOCKER_HUB, name
        if registry in (DOCKER_HUB, "index.docker.io"):
            registry = DOCKER_HUB_REGISTRY
            if "/" not in repository:
                repository = f"library/{repository}"

        if not repository or not all(_REPOSITORY_COMPONENT.match(c) for c in repository.split("/")):
            raise ValueError(f"invalid repository name '{repository}' in image reference '{image}'")
        return cls(registry=registry, repository=repository, digest=digest.lower())

    @property
    def manifest_url(self) -> str:
        return f"https://{self.registry}/v2/{self.repository}/manifests/{self.digest}"


class RegistryClient:
    """Confirms that digest-pinned images exist in their registries."""

    def __init__(
        self,
        client: httpx.Client,
        settings: ValidatorSettings | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.retry = retry or RetryPolicy.from_settings(self.settings)

    def validate_manifest_exists(self, image_uri: str) -> None:
        if not is_non_empty(image_uri):
            raise ArtifactError("image URI cannot be empty for existence check")
        if not IMAGE_DIGEST_PATTERN.match(image_uri):
            raise ArtifactError(
                f"image URI ('{image_uri}') must be in digest format "
                "(e.g., repo/image@sha256:...) for existence check"
            )
        try:
            ref = ImageReference.parse(image_uri)
        except ValueError as e:
            raise RegistryResolutionError(f"failed to parse image reference '{image_uri}': {e}") from e

        logger.info("Checking image manifest existence: %s", image_uri)
        try:
            self.retry.call(lambda attempt: self._probe(ref, image_uri, attempt), label=f"Image resolve of '{image_uri}'")
        except RetriesExhausted as e:
            raise RegistryResolutionError(
                f"failed to resolve image manifest '{image_uri}' after {e.attempts} attempts: {e.last_error}"
            ) from e.last_error
        logger.info("Resolved image manifest for '%s'.", image_uri)

    def _probe(self, ref: ImageReference, image_uri: str, attempt: int) -> None:
        headers = {"Accept": ", ".join(MANIFEST_MEDIA_TYPES)}
        try:
            response = self.client.head(ref.manifest_url, headers=headers)
            if response.status_code == 401:
                token = self._anonymous_token(response, ref)
                if token:
                    headers["Authorization"] = f"Bearer {token}"
                    response = self.client.head(ref.manifest_url, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise RegistryResolutionError(
                f"attempt {attempt}: invalid registry URL for '{image_uri}': {e}"
            ) from e
        except httpx.TimeoutException as e:
            raise RetryableError(
                f"attempt {attempt}: timed out resolving image manifest for '{image_uri}': {e}"
            ) from e
        except httpx.RequestError as e:
            raise RetryableError(
                f"attempt {attempt}: failed to resolve image manifest for '{image_uri}': {e}"
            ) from e

        if response.is_success:
            return
        message = (
            f"attempt {attempt}: failed to resolve image manifest for '{image_uri}': "
            f"registry returned HTTP status {response.status_code} ({response.reason_phrase})"
        )
        if 400 <= response.status_code < 500:
            logger.warning("Attempt %d: Received client error %d. Aborting retries.", attempt, response.status_code)
            raise RegistryResolutionError(message)
        raise RetryableError(message)

    def _anonymous_token(self, challenge: httpx.Response, ref: ImageReference) -> str:
        """Answer a ``Bearer`` challenge with an anonymous pull token, or return ''."""
        header = challenge.headers.get("WWW-Authenticate", "")
        scheme, _, params = header.partition(" ")
        if scheme.lower() != "bearer":
            return ""
        values = dict(_CHALLENGE_PARAM.findall(params))
        realm = values.get("realm")
        if not realm:
            return ""
        query = {"scope": values.get("scope") or f"repository:{ref.repository}:pull"}
        if values.get("service"):
            query["service"] = values["service"]

        response = self.client.get(realm, params=query)
        if not response.is_success:
            logger.debug("Token request to %s returned HTTP %d", realm, response.status_code)
            return ""
        try:
            body = response.json()
        except ValueError:
            return ""
        if not isinstance(body, dict):
            return ""
        return body.get("token") or body.get("access_token") or ""
