"""Exception hierarchy for the extractor.

Expected validation failures do not raise at the lowest level: validators
return a ValidationResult and the calling operation converts it into one
of these errors at its own boundary.

Hierarchy:
    ExtractorError
        InvalidInputError: input document or config is malformed (never retried)
        UpstreamError: upstream service failed after retries or with a fatal status
        DomainError
            BoundaryGateError: features outside the resort boundary (overridable)
            GeometryError: generated geometry is invalid
            PackSchemaError: generated pack failed its own schema (never overridable)
        LayerPreconditionError: a layer sync ran before its boundary was ready
        FleetRunError: a fleet run stopped on a failed resort
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skiresort_extractor.model.pack import BoundaryGateIssue
    from skiresort_extractor.validators import ValidationIssue


class ExtractorError(Exception):
    """Base class for all extractor errors."""


class InvalidInputError(ExtractorError):
    """Input document or configuration is invalid.

    Attributes:
        issues: Structured (path, message) issues, empty for single-message errors
    """

    def __init__(self, message: str, issues: list[ValidationIssue] | None = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


class UpstreamError(ExtractorError):
    """Upstream HTTP service failed.

    Attributes:
        status: Last HTTP status seen, None for transport failures
        attempts: Number of attempts made before giving up
    """

    def __init__(self, message: str, status: int | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class DomainError(ExtractorError):
    """A domain invariant was violated by otherwise well-formed input."""


class BoundaryGateError(DomainError):
    """Runs or lift towers fall outside the resort boundary."""

    def __init__(self, message: str, issues: list[BoundaryGateIssue]) -> None:
        super().__init__(message)
        self.issues = list(issues)


class GeometryError(DomainError):
    """Generated geometry is invalid."""


class PackSchemaError(DomainError):
    """Generated pack does not satisfy the pack schema."""

    def __init__(self, message: str, issues: list[ValidationIssue]) -> None:
        super().__init__(message)
        self.issues = list(issues)


class LayerPreconditionError(ExtractorError):
    """A layer operation ran before its prerequisites were complete."""


class FleetRunError(ExtractorError):
    """A fleet run stopped because a resort failed.

    Attributes:
        resort_id: Id of the first failed resort
        manifest_path: Path of the manifest written before raising
    """

    def __init__(self, resort_id: str, manifest_path: str) -> None:
        super().__init__(f"Fleet extraction failed for resort '{resort_id}'. See manifest at {manifest_path}.")
        self.resort_id = resort_id
        self.manifest_path = manifest_path
