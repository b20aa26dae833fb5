"""Snapshot metadata model for point-in-time copies of the store file."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class SnapshotKind(Enum):
    """Why a snapshot was taken. The value is the file name prefix."""

    PRE_CLEAR = "backup-before-clear"
    MANUAL = "ims_backup"
    PRE_RESTORE = "pre-restore"

    @classmethod
    def from_filename(cls, filename: str) -> "SnapshotKind":
        for kind in cls:
            if filename.startswith(kind.value):
                return kind
        return cls.MANUAL


@dataclass(frozen=True)
class SnapshotInfo:
    """Immutable description of one snapshot file.

    Attributes:
        snapshot_id: File name, used as the public identifier
        path: Absolute path inside the snapshot directory
        size: File size in bytes
        created_at: Modification time of the file (UTC)
        kind: Reason the snapshot exists
    """

    snapshot_id: str
    path: Path
    size: int
    created_at: datetime
    kind: SnapshotKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "path": str(self.path),
            "size": self.size,
            "created_at": self.created_at.isoformat(),
            "kind": self.kind.name.lower(),
        }
