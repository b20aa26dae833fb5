"""Clear-data request model.

Durable record of one system-wide erasure request and its two confirmation
sequences.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

REQUIRED_CONFIRMATIONS = 5


class RequestStatus(Enum):
    """Request lifecycle status."""

    PENDING = "pending"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


@dataclass
class ClearDataRequest:
    """Clear-data request entity.

    State transitions:
        pending(i<5) → confirm ... → pending(i=5, visible to authorizers)
        pending(i=5) → confirm ... → [execute] → completed
        pending(any) → cancelled (initiator)
        pending(i=5) → rejected (authorizer)

    Attributes:
        id: Ledger row ID
        initiator_id: Principal who created the request
        status: Current lifecycle status
        initiator_confirmations: Confirmations given by the initiator (0..5)
        authorizer_confirmations: Confirmations given by an authorizer (0..5)
        snapshot_ref: Path of the pre-clear snapshot
        report_ref: Path of the content report
        created_at: Creation time (UTC)
        updated_at: Last mutation time (UTC)
        completed_at: Time the erasure finished (completed requests only)
    """

    id: int
    initiator_id: int
    status: RequestStatus
    snapshot_ref: str
    report_ref: str
    created_at: datetime
    updated_at: datetime
    initiator_confirmations: int = 0
    authorizer_confirmations: int = 0
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def awaiting_authorizer(self) -> bool:
        """True once the initiator sequence is complete and the request is still open."""
        return self.status == RequestStatus.PENDING and self.initiator_confirmations == REQUIRED_CONFIRMATIONS

    @property
    def authorized_but_incomplete(self) -> bool:
        """Both sequences finished but the erasure never completed.

        This is the condition left behind when the executor fails after the
        final authorizer confirmation. It needs an operator.
        """
        return (
            self.status == RequestStatus.PENDING
            and self.initiator_confirmations == REQUIRED_CONFIRMATIONS
            and self.authorizer_confirmations == REQUIRED_CONFIRMATIONS
        )

    def validate(self) -> bool:
        """Validate request invariants.

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        for name in ("initiator_confirmations", "authorizer_confirmations"):
            value = getattr(self, name)
            if not 0 <= value <= REQUIRED_CONFIRMATIONS:
                raise ValueError(f"{name} out of range: {value}")

        if self.authorizer_confirmations > 0 and self.initiator_confirmations != REQUIRED_CONFIRMATIONS:
            raise ValueError("Authorizer confirmations require a completed initiator sequence")

        if not self.snapshot_ref or not self.report_ref:
            raise ValueError("Request must reference both a snapshot and a report")

        if self.status == RequestStatus.COMPLETED and self.completed_at is None:
            raise ValueError("Completed request requires completed_at")

        if self.completed_at and self.completed_at < self.created_at:
            raise ValueError("Completion time before creation time")

        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "initiator_id": self.initiator_id,
            "status": self.status.value,
            "initiator_confirmations": self.initiator_confirmations,
            "authorizer_confirmations": self.authorizer_confirmations,
            "snapshot_ref": self.snapshot_ref,
            "report_ref": self.report_ref,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ClearDataRequest":
        """Build a request from a `clear_data_requests` row."""
        completed_at = row["completed_at"]
        return cls(
            id=row["id"],
            initiator_id=row["initiator_id"],
            status=RequestStatus(row["status"]),
            initiator_confirmations=row["initiator_confirmations"],
            authorizer_confirmations=row["authorizer_confirmations"],
            snapshot_ref=row["snapshot_ref"],
            report_ref=row["report_ref"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )
