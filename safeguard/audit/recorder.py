"""Best-effort audit recorder.

Audit sits outside the consistency boundary: a failed write is logged and the
triggering operation carries on.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from safeguard.audit.journal import AuditJournal
from safeguard.errors import AuditWriteFailure, StoreUnavailableError
from safeguard.models.audit_entry import AuditAction, AuditLogEntry
from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Appends audit entries to the store and, optionally, to a YAML journal.

    Attributes:
        store: Store handle holding the `audit_logs` table
        journal: Optional journal that survives store restores
    """

    def __init__(self, store: StoreHandle, journal: Optional[AuditJournal] = None) -> None:
        self.store = store
        self.journal = journal

    def record(
        self,
        action: AuditAction,
        principal_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        source_address: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """Record one audit entry. Never raises on sink failure.

        Returns:
            The entry, with `id` set if the store write succeeded
        """
        entry = AuditLogEntry(
            action=action,
            created_at=datetime.now(timezone.utc),
            principal_id=principal_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            source_address=source_address,
            detail=detail or {},
        )

        try:
            entry.id = self._write_row(entry)
        except AuditWriteFailure as e:
            logger.error(f"Audit write failed for {action.value}: {e}")

        if self.journal is not None:
            try:
                self.journal.append(entry)
            except AuditWriteFailure as e:
                logger.error(f"Audit journal write failed for {action.value}: {e}")

        return entry

    def list_entries(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Read recorded entries back, newest first.

        Only rows carrying one of this subsystem's action tags are returned;
        the surrounding application shares the table.
        """
        actions = [a.value for a in AuditAction]
        query = f"SELECT * FROM audit_logs WHERE action IN ({','.join('?' * len(actions))})"
        params: list[Any] = list(actions)

        if resource_type is not None:
            query += " AND resource_type = ?"
            params.append(resource_type)
        if resource_id is not None:
            query += " AND resource_id = ?"
            params.append(str(resource_id))

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self.store.connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [AuditLogEntry.from_row(row) for row in rows]

    def _write_row(self, entry: AuditLogEntry) -> int:
        try:
            with self.store.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO audit_logs "
                    "(user_id, action, resource_type, resource_id, ip_address, details, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.principal_id,
                        entry.action.value,
                        entry.resource_type,
                        entry.resource_id,
                        entry.source_address,
                        json.dumps(entry.detail, default=str) if entry.detail else None,
                        entry.created_at.isoformat(),
                    ),
                )
                return cursor.lastrowid
        except (sqlite3.Error, StoreUnavailableError, TypeError, ValueError) as e:
            raise AuditWriteFailure(str(e)) from e
