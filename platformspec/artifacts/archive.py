"""Checksum verification and archive path lookup on downloaded bytes."""

from __future__ import annotations

import hashlib
import io
import logging
import posixpath
import re
import tarfile
import zipfile
from urllib.parse import urlparse

from platformspec.errors import ArchiveError, ChecksumError

logger = logging.getLogger(__name__)

_HEX64 = re.compile(r"^[0-9a-f]{64}$")

# Suffix -> archive type, checked in order
ARCHIVE_SUFFIXES = (
    (".tar.gz", "tar.gz"),
    (".tgz", "tar.gz"),
    (".tar.bz2", "tar.bz2"),
    (".tbz2", "tar.bz2"),
    (".zip", "zip"),
)

_TAR_MODES = {"tar.gz": "r:gz", "tar.bz2": "r:bz2"}


def verify_checksum(data: bytes, expected: str, *, required: bool = False) -> None:
    """Compare the SHA-256 of *data* against an ``algorithm:hash`` checksum.

    A missing checksum is logged and accepted unless *required* is set.
    """
    if not expected or not expected.strip():
        if required:
            raise ChecksumError("checksum is required but none was provided in the specification")
        logger.warning("Checksum verification skipped: No checksum provided in the specification.")
        return

    algorithm, sep, digest = expected.partition(":")
    if not sep or not algorithm.strip() or not digest.strip():
        raise ChecksumError(
            f"invalid checksum format '{expected}', expected format 'algorithm:hash' (e.g., 'sha256:...')"
        )
    algorithm, digest = algorithm.lower(), digest.lower()
    if algorithm != "sha256":
        raise ChecksumError(f"unsupported checksum algorithm '{algorithm}', only 'sha256' is supported")
    if not _HEX64.match(digest):
        raise ChecksumError(
            f"invalid expected sha256 hash format '{digest}', must be 64 hexadecimal characters"
        )

    actual = hashlib.sha256(data).hexdigest()
    if actual != digest:
        raise ChecksumError(f"checksum mismatch: expected sha256:{digest}, but calculated sha256:{actual}")
    logger.info("Checksum verified successfully (sha256: %s)", actual)


def detect_archive_type(uri: str) -> str:
    """Archive type implied by the URI's suffix; raises ArchiveError if unknown."""
    path = (urlparse(uri).path or uri).lower()
    for suffix, archive_type in ARCHIVE_SUFFIXES:
        if path.endswith(suffix):
            return archive_type
    raise ArchiveError(
        f"unsupported or unrecognized archive extension for URI '{uri}'. "
        "Supported: .zip, .tar.gz, .tgz, .tar.bz2, .tbz2"
    )


def clean_archive_path(path: str) -> str:
    return posixpath.normpath(path.strip("/")) if path.strip("/") else ""


def validate_archive_path_exists(data: bytes, path_in_archive: str, uri: str) -> None:
    """Confirm *path_in_archive* is a readable regular file inside the archive.

    The matched entry is read in full so a truncated or corrupt member is
    reported rather than silently accepted.
    """
    if not data:
        raise ArchiveError("cannot check path in empty archive data")
    if not path_in_archive or not path_in_archive.strip():
        raise ArchiveError("path-in-archive cannot be empty when checking archive")
    cleaned = clean_archive_path(path_in_archive)
    if not cleaned.strip() or cleaned == ".":
        raise ArchiveError(f"invalid path-in-archive specified: '{path_in_archive}'")

    archive_type = detect_archive_type(uri)
    logger.debug("Detected archive type: %s. Searching for path: '%s'", archive_type, cleaned)

    if archive_type == "zip":
        found = _check_zip(data, cleaned, uri)
    else:
        found = _check_tar(data, cleaned, uri, archive_type)

    if not found:
        raise ArchiveError(
            f"path '{cleaned}' was not found as a file within the {archive_type} archive '{uri}'"
        )


def _check_zip(data: bytes, cleaned: str, uri: str) -> bool:
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"failed to create zip reader for '{uri}': {e}") from e

    with archive:
        for info in archive.infolist():
            if clean_archive_path(info.filename) != cleaned:
                continue
            if info.is_dir():
                raise ArchiveError(f"path '{cleaned}' in zip archive '{uri}' is a directory, not a file")
            try:
                with archive.open(info) as member:
                    while member.read(64 * 1024):
                        pass
            except (zipfile.BadZipFile, OSError, EOFError) as e:
                raise ArchiveError(
                    f"found path '{cleaned}' in zip '{uri}', but failed to read from it (corrupt?): {e}"
                ) from e
            logger.info("Found file path '%s' in zip archive.", cleaned)
            return True
    return False


def _check_tar(data: bytes, cleaned: str, uri: str, archive_type: str) -> bool:
    files_checked = 0
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode=_TAR_MODES[archive_type]) as archive:
            for member in archive:
                files_checked += 1
                if clean_archive_path(member.name) != cleaned:
                    continue
                if member.isdir():
                    raise ArchiveError(
                        f"path '{cleaned}' in {archive_type} archive '{uri}' is a directory, not a file"
                    )
                if not member.isfile():
                    raise ArchiveError(
                        f"path '{cleaned}' in {archive_type} archive '{uri}' exists but is not a regular file"
                    )
                _read_tar_member(archive, member, cleaned, uri, archive_type)
                logger.info("Found file path '%s' in %s archive.", cleaned, archive_type)
                return True
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArchiveError(
            f"failed to read {archive_type} archive '{uri}' (checked {files_checked} files): {e}"
        ) from e
    return False


def _read_tar_member(archive: tarfile.TarFile, member: tarfile.TarInfo, cleaned: str, uri: str, archive_type: str):
    try:
        extracted = archive.extractfile(member)
        written = 0
        for chunk in iter(lambda: extracted.read(64 * 1024), b""):
            written += len(chunk)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArchiveError(
            f"found path '{cleaned}' in {archive_type} archive '{uri}', but failed to read its content (corrupt?): {e}"
        ) from e
    if written != member.size:
        raise ArchiveError(
            f"found path '{cleaned}' in {archive_type} archive '{uri}', but read {written} bytes "
            f"instead of expected header size {member.size} (corrupt?)"
        )
