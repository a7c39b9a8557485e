"""Runtime configuration for the validator.

Values come from ``PLATFORMSPEC_*`` environment variables and fall back to
the defaults below. Network timeouts are layered: connect (including the TLS
handshake) and read (including waiting for response headers) sit under the
overall per-attempt deadline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

SPDX_LICENSES_URL = "https://spdx.org/licenses/licenses.json"
SPDX_EXCEPTIONS_URL = "https://spdx.org/licenses/exceptions.json"

MAX_DOWNLOAD_SIZE_BYTES = 1 * 1024 * 1024 * 1024  # 1 GiB

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ValidatorSettings:
    """Tunables for network access, retries, and checksum policy."""

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    read_timeout: float = 15.0
    request_timeout: float = 60.0  # Overall deadline for one attempt

    # Connection pool
    max_connections: int = 100
    max_keepalive_connections: int = 10
    keepalive_expiry: float = 90.0

    # Retry policy shared by registry lookups and downloads
    max_attempts: int = 4
    initial_backoff: float = 1.0

    max_download_bytes: int = MAX_DOWNLOAD_SIZE_BYTES

    # When true, a downloadable component without a checksum fails verification
    require_checksum: bool = False

    # SPDX license list source; a local file wins over the URLs
    spdx_license_file: str = ""
    spdx_license_url: str = SPDX_LICENSES_URL
    spdx_exceptions_url: str = SPDX_EXCEPTIONS_URL

    user_agent: str = "platformspec-validator/0.1"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ValidatorSettings":
        """Build settings from ``PLATFORMSPEC_*`` environment variables."""
        env = os.environ if environ is None else environ

        def _float(name: str, default: float) -> float:
            raw = env.get(f"PLATFORMSPEC_{name}", "").strip()
            return float(raw) if raw else default

        def _int(name: str, default: int) -> int:
            raw = env.get(f"PLATFORMSPEC_{name}", "").strip()
            return int(raw) if raw else default

        def _str(name: str, default: str) -> str:
            return env.get(f"PLATFORMSPEC_{name}", "").strip() or default

        defaults = cls()
        return cls(
            connect_timeout=_float("CONNECT_TIMEOUT", defaults.connect_timeout),
            read_timeout=_float("READ_TIMEOUT", defaults.read_timeout),
            request_timeout=_float("REQUEST_TIMEOUT", defaults.request_timeout),
            max_attempts=max(1, _int("MAX_ATTEMPTS", defaults.max_attempts)),
            initial_backoff=_float("INITIAL_BACKOFF", defaults.initial_backoff),
            max_download_bytes=_int("MAX_DOWNLOAD_BYTES", defaults.max_download_bytes),
            require_checksum=env.get("PLATFORMSPEC_REQUIRE_CHECKSUM", "").strip().lower()
            in _TRUE_VALUES,
            spdx_license_file=_str("SPDX_LICENSE_FILE", defaults.spdx_license_file),
            spdx_license_url=_str("SPDX_LICENSE_URL", defaults.spdx_license_url),
            spdx_exceptions_url=_str("SPDX_EXCEPTIONS_URL", defaults.spdx_exceptions_url),
        )


@lru_cache
def get_settings() -> ValidatorSettings:
    """Get cached settings instance."""
    return ValidatorSettings.from_env()
