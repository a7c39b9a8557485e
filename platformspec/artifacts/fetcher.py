"""HTTP downloads with bounded retries.

Every attempt is limited by the settings' timeouts: connect and read
timeouts are enforced by httpx, and the overall per-attempt deadline is
checked while the body streams in. Failures are classified as terminal
(raised immediately) or retryable (retried with exponential backoff and
jitter until the attempt budget runs out).
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import httpx

from platformspec.config import ValidatorSettings, get_settings
from platformspec.errors import DownloadError, DownloadSizeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Client errors that are still worth retrying
RETRYABLE_CLIENT_STATUSES = {408, 429}

_CHUNK_SIZE = 64 * 1024
_PREVIEW_BYTES = 512


class RetryableError(Exception):
    """An attempt failed in a way another attempt might not."""


class RetriesExhausted(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter.

    The wait before attempt ``n + 1`` is ``backoff + uniform(0, backoff / 2)``
    where ``backoff`` starts at ``initial_backoff`` and doubles after each
    wait. ``sleep`` and ``jitter`` are injectable for tests.
    """

    max_attempts: int = 4
    initial_backoff: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    jitter: Callable[[float, float], float] = field(default=random.uniform, repr=False)

    @classmethod
    def from_settings(cls, settings: ValidatorSettings, **overrides) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            initial_backoff=settings.initial_backoff,
            **overrides,
        )

    def call(self, operation: Callable[[int], T], *, label: str) -> T:
        """Run ``operation(attempt)`` until it succeeds or the budget is spent.

        Only RetryableError triggers another attempt; any other exception
        propagates immediately. Raises RetriesExhausted when all attempts
        fail.
        """
        backoff = self.initial_backoff
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                wait = backoff + self.jitter(0, backoff / 2)
                logger.info("%s attempt %d failed. Retrying in %.2fs...", label, attempt - 1, wait)
                self.sleep(wait)
                backoff *= 2

            logger.debug("%s attempt %d/%d...", label, attempt, self.max_attempts)
            try:
                return operation(attempt)
            except RetryableError as e:
                last_error = e
                logger.warning("%s attempt %d/%d failed: %s", label, attempt, self.max_attempts, e)
        raise RetriesExhausted(self.max_attempts, last_error)


def create_http_client(
    settings: ValidatorSettings | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Build the shared client: layered timeouts, pooled connections, proxies from the environment."""
    settings = settings or get_settings()
    return httpx.Client(
        timeout=httpx.Timeout(
            settings.request_timeout,
            connect=settings.connect_timeout,
            read=settings.read_timeout,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            keepalive_expiry=settings.keepalive_expiry,
        ),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
        trust_env=True,
        transport=transport,
    )


class ArtifactFetcher:
    """Downloads artifacts into memory, enforcing the size ceiling."""

    def __init__(
        self,
        client: httpx.Client,
        settings: ValidatorSettings | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.retry = retry or RetryPolicy.from_settings(self.settings)
        self._clock = clock

    def download_with_retry(self, url: str) -> bytes:
        """Download *url* and return its body.

        Raises DownloadSizeError when the body is over the ceiling and
        DownloadError for any other terminal or exhausted failure.
        """
        try:
            return self.retry.call(lambda attempt: self._attempt(url, attempt), label=f"Download of '{url}'")
        except RetriesExhausted as e:
            raise DownloadError(
                f"download failed for '{url}' after {e.attempts} attempts: {e.last_error}"
            ) from e.last_error

    def _attempt(self, url: str, attempt: int) -> bytes:
        limit = self.settings.max_download_bytes
        deadline = self._clock() + self.settings.request_timeout
        try:
            with self.client.stream("GET", url, headers={"Accept-Encoding": "identity"}) as response:
                if not response.is_success:
                    self._raise_for_status(response, url, attempt)

                expected = _content_length(response)
                if expected is not None and expected > limit:
                    raise DownloadSizeError(
                        f"attempt {attempt}: declared content length {expected} bytes exceeds "
                        f"maximum allowed {limit} bytes for '{url}'"
                    )
                if expected is None:
                    logger.debug("Attempt %d: Content-Length missing for '%s'. Proceeding with download limit.", attempt, url)

                body = bytearray()
                for chunk in response.iter_bytes(chunk_size=_CHUNK_SIZE):
                    body.extend(chunk)
                    if len(body) > limit:
                        raise DownloadSizeError(
                            f"attempt {attempt}: downloaded file from '{url}' exceeds maximum "
                            f"allowed size of {limit} bytes"
                        )
                    if self._clock() > deadline:
                        raise RetryableError(
                            f"attempt {attempt}: download of '{url}' exceeded the "
                            f"{self.settings.request_timeout:g}s deadline"
                        )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise DownloadError(f"attempt {attempt}: invalid download URL '{url}': {e}") from e
        except httpx.TimeoutException as e:
            raise RetryableError(f"attempt {attempt}: request timed out for '{url}': {e}") from e
        except httpx.RequestError as e:
            raise RetryableError(f"attempt {attempt}: HTTP request failed for '{url}': {e}") from e

        if expected is not None and len(body) != expected:
            raise RetryableError(
                f"attempt {attempt}: downloaded size {len(body)} bytes does not match "
                f"Content-Length header {expected} bytes for '{url}'"
            )
        logger.info("Download successful for '%s' (%d bytes) on attempt %d.", url, len(body), attempt)
        return bytes(body)

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str, attempt: int) -> None:
        preview = ""
        for chunk in response.iter_bytes(chunk_size=_PREVIEW_BYTES):
            preview = chunk[:_PREVIEW_BYTES].decode("utf-8", errors="replace")
            break
        message = (
            f"attempt {attempt}: received non-success HTTP status {response.status_code} "
            f"({response.reason_phrase}) for '{url}'. Body preview: {preview}"
        )
        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_CLIENT_STATUSES:
            logger.warning("Attempt %d: Received client error %d. Aborting retries for '%s'.", attempt, response.status_code, url)
            raise DownloadError(message)
        raise RetryableError(message)


def _content_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Could not parse Content-Length header '%s'", raw)
        return None
    return value if value >= 0 else None
