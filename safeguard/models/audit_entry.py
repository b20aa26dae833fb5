"""Audit log entry model."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class AuditAction(Enum):
    """Action tags written to the audit log."""

    CLEAR_DATA_INITIATED = "CLEAR_DATA_INITIATED"
    CLEAR_DATA_INITIATOR_CONFIRMED = "CLEAR_DATA_INITIATOR_CONFIRMED"
    CLEAR_DATA_CANCELLED = "CLEAR_DATA_CANCELLED"
    CLEAR_DATA_AUTHORIZER_CONFIRMED = "CLEAR_DATA_AUTHORIZER_CONFIRMED"
    CLEAR_DATA_REJECTED = "CLEAR_DATA_REJECTED"
    CLEAR_DATA_COMPLETED = "CLEAR_DATA_COMPLETED"
    CLEAR_DATA_EXECUTION_FAILED = "CLEAR_DATA_EXECUTION_FAILED"
    CLEAR_DATA_CREDENTIAL_REJECTED = "CLEAR_DATA_CREDENTIAL_REJECTED"
    BACKUP_CREATED = "BACKUP_CREATED"
    BACKUP_DELETED = "BACKUP_DELETED"
    RESTORE_STARTED = "RESTORE_STARTED"
    RESTORE_SAFETY_COPY = "RESTORE_SAFETY_COPY"
    RESTORE_COMPLETED = "RESTORE_COMPLETED"
    RESTORE_FAILED = "RESTORE_FAILED"


@dataclass
class AuditLogEntry:
    """Append-only audit record.

    Attributes:
        action: Action tag
        created_at: When the action happened (UTC)
        principal_id: Acting principal, None for system actions
        resource_type: Kind of resource acted on (e.g. clear_data_request)
        resource_id: Resource identifier
        source_address: Caller address if known
        detail: Free-form JSON-encodable detail
        id: Row ID once persisted
    """

    action: AuditAction
    created_at: datetime
    principal_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    source_address: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.value,
            "created_at": self.created_at.isoformat(),
            "principal_id": self.principal_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "source_address": self.source_address,
            "detail": self.detail,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AuditLogEntry":
        """Build an entry from an `audit_logs` row."""
        details = row["details"]
        return cls(
            id=row["id"],
            action=AuditAction(row["action"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            principal_id=row["user_id"],
            resource_type=row["resource_type"],
            resource_id=row["resource_id"],
            source_address=row["ip_address"],
            detail=json.loads(details) if details else {},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditLogEntry":
        """Build an entry from its `to_dict()` form (journal documents)."""
        return cls(
            id=data.get("id"),
            action=AuditAction(data["action"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            principal_id=data.get("principal_id"),
            resource_type=data.get("resource_type"),
            resource_id=data.get("resource_id"),
            source_address=data.get("source_address"),
            detail=data.get("detail") or {},
        )
