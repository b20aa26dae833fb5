"""Exception hierarchy for erasure, snapshot and restore operations.

Caller-recoverable errors (precondition, credential, artifact) are raised before
any mutation. PartialExecutionFailure is the only error that leaves the store in
a state requiring operator intervention.
"""

from __future__ import annotations

from typing import Any, Optional


class SafeguardError(Exception):
    """Base class for all safeguard errors."""


class PreconditionViolation(SafeguardError, ValueError):
    """Wrong status, wrong principal or exhausted counter. Nothing was changed."""


class RequestNotFoundError(PreconditionViolation):
    """No clear-data request exists with the given ID."""

    def __init__(self, request_id: int) -> None:
        super().__init__(f"Clear-data request {request_id} not found")
        self.request_id = request_id


class CapabilityError(PreconditionViolation):
    """Principal lacks the capability required by the operation."""


class CredentialVerificationFailure(SafeguardError):
    """Credential re-verification failed at a final confirmation step."""


class ArtifactGenerationFailure(SafeguardError):
    """Snapshot or content report could not be produced."""


class PartialExecutionFailure(SafeguardError):
    """A destructive sequence stopped part way and was not rolled back.

    Attributes:
        result: Typed result listing which units succeeded
    """

    def __init__(self, message: str, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result


class RestoreError(PartialExecutionFailure):
    """Restore failed after the live store was touched."""


class AuditWriteFailure(SafeguardError):
    """An audit sink could not persist an entry."""


class StoreUnavailableError(SafeguardError):
    """The store connection is closed (for example during a restore swap)."""


class SnapshotError(SafeguardError):
    """Snapshot file could not be created, listed or removed."""


class InvalidSnapshotReference(SnapshotError, ValueError):
    """Snapshot identifier failed validation or escapes the snapshot directory."""


class SnapshotNotFoundError(SnapshotError):
    """Snapshot identifier is valid but no such file exists."""
