"""Typed outcomes for destructive sequences.

Neither the table erasure nor the restore swap is transactional across steps.
These results record which units finished so an operator can pick up from the
retained snapshot or safety copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ExecutionStatus(Enum):
    """Overall outcome of a multi-unit destructive sequence."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class TableOutcome:
    """Result of clearing one table.

    Validation rules:
        - succeeded: no error
        - failed: requires error
    """

    table: str
    succeeded: bool
    rows_deleted: int = 0
    error: Optional[str] = None

    def validate(self) -> bool:
        if self.succeeded and self.error:
            raise ValueError("Succeeded outcome cannot carry an error")
        if not self.succeeded and not self.error:
            raise ValueError("Failed outcome requires an error")
        return True


@dataclass
class ExecutionResult:
    """Outcome of a full erasure run, one entry per table in execution order."""

    outcomes: list[TableOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def status(self) -> ExecutionStatus:
        failed = len(self.failed_tables)
        if failed == 0:
            return ExecutionStatus.COMPLETED
        if failed < len(self.outcomes):
            return ExecutionStatus.PARTIAL
        return ExecutionStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    @property
    def succeeded_tables(self) -> list[str]:
        return [o.table for o in self.outcomes if o.succeeded]

    @property
    def failed_tables(self) -> list[str]:
        return [o.table for o in self.outcomes if not o.succeeded]

    @property
    def rows_deleted(self) -> int:
        return sum(o.rows_deleted for o in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "rows_deleted": self.rows_deleted,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "outcomes": [
                {"table": o.table, "succeeded": o.succeeded, "rows_deleted": o.rows_deleted, "error": o.error}
                for o in self.outcomes
            ],
        }


class RestoreStep(Enum):
    """Ordered restore steps."""

    VALIDATE = "validate"
    SAFETY_COPY = "safety_copy"
    CLOSE = "close"
    SWAP = "swap"
    REOPEN = "reopen"


@dataclass
class RestoreStepOutcome:
    step: RestoreStep
    succeeded: bool
    error: Optional[str] = None


@dataclass
class RestoreResult:
    """Outcome of a restore attempt.

    Attributes:
        snapshot_id: Snapshot file name that was requested
        safety_copy: Path of the pre-restore copy of the live store (if taken)
        steps: Step outcomes in the order they ran
        reconnected: Whether the store connection is open after the attempt
        restored_at: Time the swap finished
    """

    snapshot_id: str
    safety_copy: Optional[Path] = None
    steps: list[RestoreStepOutcome] = field(default_factory=list)
    reconnected: bool = False
    restored_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return bool(self.steps) and all(s.succeeded for s in self.steps) and self.reconnected

    @property
    def completed_steps(self) -> list[RestoreStep]:
        return [s.step for s in self.steps if s.succeeded]

    def record(self, step: RestoreStep, error: Optional[BaseException] = None) -> None:
        self.steps.append(RestoreStepOutcome(step=step, succeeded=error is None, error=str(error) if error else None))

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "safety_copy": str(self.safety_copy) if self.safety_copy else None,
            "reconnected": self.reconnected,
            "restored_at": self.restored_at.isoformat() if self.restored_at else None,
            "steps": [{"step": s.step.value, "succeeded": s.succeeded, "error": s.error} for s in self.steps],
        }
