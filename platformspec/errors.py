"""Exception hierarchy for specification validation and artifact verification.

Structural and semantic errors abort validation on the first violation.
Artifact errors from independent checks are collected and raised together
as a single ArtifactValidationError.
"""

from __future__ import annotations


class SpecificationError(Exception):
    """Base class for every error raised while processing a specification."""

    def __init__(self, message: str, *, file_path: str = "", spec_id: str = ""):
        super().__init__(message)
        self.message = message
        self.file_path = file_path
        self.spec_id = spec_id

    def wrap(self, prefix: str, *, file_path: str = "", spec_id: str = "") -> "SpecificationError":
        """Return a copy of this error, same class, with *prefix* prepended.

        Used to add file-path and spec-id context as an error travels up
        from a field rule to the dispatcher without losing its type.
        """
        wrapped = self.__class__.__new__(self.__class__)
        SpecificationError.__init__(
            wrapped,
            f"{prefix}: {self.message}",
            file_path=file_path or self.file_path,
            spec_id=spec_id or self.spec_id,
        )
        wrapped.__dict__.update(
            {k: v for k, v in self.__dict__.items() if k not in ("message", "file_path", "spec_id")}
        )
        return wrapped


# --- Envelope errors ---


class SpecificationParseError(SpecificationError):
    """The document could not be read or decoded into the expected shape."""


class MissingTypeError(SpecificationError):
    """The document has no top-level 'type' field."""

    def __init__(self, message: str = "", *, file_path: str = "", spec_id: str = ""):
        if not message:
            message = "specification file is missing required top-level 'type' field"
            if file_path:
                message += f" ('{file_path}')"
        super().__init__(message, file_path=file_path, spec_id=spec_id)


class UnsupportedTypeError(SpecificationError):
    """The document declares a type this validator does not know."""

    def __init__(self, spec_type: str, *, file_path: str = ""):
        super().__init__(
            f"unknown specification type '{spec_type}' in file '{file_path}'",
            file_path=file_path,
        )
        self.spec_type = spec_type


# --- Structural / semantic errors ---


class StructuralError(SpecificationError):
    """A field rule or cross-field rule was violated."""


class SemanticError(SpecificationError):
    """A version, constraint, date, duration, or license value is invalid."""


class InternalValidationError(SpecificationError):
    """A value that already passed validation failed unexpectedly later on."""


class TaskReferenceError(SpecificationError):
    """A plugin references its discovery task by id where an embedded task is required."""


# --- Artifact errors ---


class ArtifactError(SpecificationError):
    """A single artifact failed verification."""


class DownloadError(ArtifactError):
    """Downloading an artifact failed (after retries, or terminally)."""


class DownloadSizeError(DownloadError):
    """An artifact exceeds the maximum allowed download size."""


class ChecksumError(ArtifactError):
    """A checksum is malformed, unsupported, missing under policy, or mismatched."""


class ArchiveError(ArtifactError):
    """An archive could not be read or does not contain the declared path."""


class RegistryResolutionError(ArtifactError):
    """An image manifest could not be resolved in its registry."""


class ArtifactValidationError(ArtifactError):
    """One or more independent artifact checks failed.

    ``failures`` holds every collected error, in the order they were
    gathered, so callers can report each failing component.
    """

    def __init__(self, spec_name: str, failures: list[Exception]):
        joined = "; ".join(str(f) for f in failures)
        super().__init__(
            f"one or more artifact validations failed for plugin '{spec_name}': {joined}",
            spec_id=spec_name,
        )
        self.failures = list(failures)
