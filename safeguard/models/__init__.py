"""Data models for requests, principals, audit entries, snapshots and results."""

from __future__ import annotations

from safeguard.models.audit_entry import AuditAction, AuditLogEntry
from safeguard.models.clear_data_request import REQUIRED_CONFIRMATIONS, ClearDataRequest, RequestStatus
from safeguard.models.execution_result import (
    ExecutionResult,
    ExecutionStatus,
    RestoreResult,
    RestoreStep,
    RestoreStepOutcome,
    TableOutcome,
)
from safeguard.models.principal import Capability, Principal, Role
from safeguard.models.snapshot import SnapshotInfo, SnapshotKind

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "Capability",
    "ClearDataRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "Principal",
    "REQUIRED_CONFIRMATIONS",
    "RequestStatus",
    "RestoreResult",
    "RestoreStep",
    "RestoreStepOutcome",
    "Role",
    "SnapshotInfo",
    "SnapshotKind",
    "TableOutcome",
]
