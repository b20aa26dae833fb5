"""Restore the live store from a snapshot file.

Sequence: validate reference, take a pre-restore safety copy, close the live
connection, swap the file, reopen. Reconnection is always attempted once the
connection has been closed, whatever happened in between.
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from safeguard.audit.recorder import AuditRecorder
from safeguard.errors import CapabilityError, RestoreError, SnapshotError
from safeguard.models.audit_entry import AuditAction
from safeguard.models.execution_result import RestoreResult, RestoreStep
from safeguard.models.principal import Capability, Principal
from safeguard.models.snapshot import SnapshotInfo, SnapshotKind
from safeguard.snapshot.service import SnapshotService
from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "backup"


class RestoreCoordinator:
    """Replaces the live store with a snapshot.

    Audit entries for a restore are written once the store is reopened, so
    they land in the restored store rather than in the file being replaced.

    Attributes:
        store: Live store handle
        snapshots: Snapshot service used to resolve references and take safety copies
        audit: Audit recorder
    """

    def __init__(self, store: StoreHandle, snapshots: SnapshotService, audit: AuditRecorder) -> None:
        self.store = store
        self.snapshots = snapshots
        self.audit = audit

    def list_snapshots(self, principal: Principal) -> list[SnapshotInfo]:
        """Snapshots available for restore, newest first."""
        self._require(principal)
        return self.snapshots.list_snapshots()

    def restore(
        self,
        snapshot_id: str,
        principal: Principal,
        source_address: Optional[str] = None,
    ) -> RestoreResult:
        """Restore the store from `snapshot_id`.

        Args:
            snapshot_id: Snapshot file name inside the snapshot directory
            principal: Principal performing the restore
            source_address: Caller address for the audit trail

        Returns:
            RestoreResult with every step succeeded and the store reconnected

        Raises:
            CapabilityError: If the principal cannot restore the store
            InvalidSnapshotReference: If the reference fails validation (nothing touched)
            SnapshotNotFoundError: If the snapshot does not exist (nothing touched)
            SnapshotError: If the safety copy could not be taken (nothing touched)
            RestoreError: If closing, swapping or reopening failed. Carries the result.
        """
        self._require(principal)
        result = RestoreResult(snapshot_id=snapshot_id)

        try:
            snapshot = self.snapshots.resolve(snapshot_id)
        except SnapshotError as e:
            logger.warning(f"Rejected restore reference {snapshot_id!r} from {principal.username}: {e}")
            result.record(RestoreStep.VALIDATE, e)
            self._audit(AuditAction.RESTORE_FAILED, principal, source_address, snapshot_id, result.to_dict())
            raise
        result.record(RestoreStep.VALIDATE)

        logger.warning(f"Restoring store from {snapshot.snapshot_id} requested by {principal.username}")

        try:
            safety = self.snapshots.create_snapshot(SnapshotKind.PRE_RESTORE)
        except SnapshotError as e:
            logger.error(f"Pre-restore safety copy failed, restore aborted: {e}")
            result.record(RestoreStep.SAFETY_COPY, e)
            result.reconnected = self.store.is_open
            self._audit(AuditAction.RESTORE_FAILED, principal, source_address, snapshot_id, result.to_dict())
            raise
        result.safety_copy = safety.path
        result.record(RestoreStep.SAFETY_COPY)

        started = {"snapshot": snapshot.snapshot_id, "started_at": datetime.now(timezone.utc).isoformat()}
        failed = False

        try:
            self.store.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to close store before restore: {e}")
            result.record(RestoreStep.CLOSE, e)
            failed = True
        else:
            result.record(RestoreStep.CLOSE)

        if not failed:
            try:
                self._swap(snapshot.path)
            except OSError as e:
                logger.error(f"Failed to copy {snapshot.snapshot_id} over the store: {e}")
                result.record(RestoreStep.SWAP, e)
                failed = True
            else:
                result.record(RestoreStep.SWAP)
                result.restored_at = datetime.now(timezone.utc)

        try:
            self.store.open()
        except sqlite3.Error as e:
            logger.critical(f"Failed to reopen store {self.store.path} after restore: {e}")
            result.record(RestoreStep.REOPEN, e)
            failed = True
        else:
            result.record(RestoreStep.REOPEN)
        result.reconnected = self.store.is_open

        self._audit(AuditAction.RESTORE_STARTED, principal, source_address, snapshot_id, started)
        self._audit(
            AuditAction.RESTORE_SAFETY_COPY,
            principal,
            source_address,
            snapshot_id,
            {"safety_copy": safety.snapshot_id, "size": safety.size},
        )

        if failed:
            logger.critical(
                f"Restore from {snapshot.snapshot_id} failed "
                f"(reconnected={result.reconnected}); safety copy kept at {safety.path}"
            )
            self._audit(AuditAction.RESTORE_FAILED, principal, source_address, snapshot_id, result.to_dict())
            raise RestoreError(f"Restore from {snapshot.snapshot_id} failed; safety copy: {safety.snapshot_id}", result)

        logger.warning(f"Store restored from {snapshot.snapshot_id}; safety copy {safety.snapshot_id}")
        self._audit(AuditAction.RESTORE_COMPLETED, principal, source_address, snapshot_id, result.to_dict())
        return result

    def _swap(self, source: Path) -> None:
        """Copy the snapshot next to the store, then rename it into place."""
        staging = self.store.path.with_name(self.store.path.name + ".restoring")
        try:
            shutil.copyfile(source, staging)
            os.replace(staging, self.store.path)
        finally:
            if staging.exists():
                staging.unlink()

    def _audit(
        self,
        action: AuditAction,
        principal: Principal,
        source_address: Optional[str],
        snapshot_id: str,
        detail: dict[str, Any],
    ) -> None:
        self.audit.record(
            action,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=snapshot_id,
            source_address=source_address,
            detail=detail,
        )

    @staticmethod
    def _require(principal: Principal) -> None:
        if not principal.has_capability(Capability.RESTORE_STORE):
            raise CapabilityError(f"{principal.username} ({principal.role.value}) lacks {Capability.RESTORE_STORE.value}")
