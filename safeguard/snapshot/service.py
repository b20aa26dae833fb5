"""Snapshot file management for the store.

Snapshots are whole-file copies of the live store. They are named by a
canonical UTC timestamp and kept in a fixed directory outside any served path.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from safeguard.errors import InvalidSnapshotReference, SnapshotError, SnapshotNotFoundError
from safeguard.models.snapshot import SnapshotInfo, SnapshotKind
from safeguard.snapshot.report import ContentReporter
from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)

SNAPSHOT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+\.db$")


def canonical_timestamp(moment: Optional[datetime] = None) -> str:
    """Timestamp safe for file names, e.g. 2025-11-11T15-30-00-123456Z."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


class SnapshotService:
    """Create, list, resolve and prune store snapshots and content reports.

    Correctness of a snapshot assumes no structural write is in flight while
    the file is copied. This is acceptable for an administrative tool with
    low concurrency.

    Attributes:
        store: Handle of the live store
        snapshot_dir: Directory holding snapshot files
        report_dir: Directory holding content reports
        reporter: Content report renderer
    """

    def __init__(
        self,
        store: StoreHandle,
        snapshot_dir: Union[str, Path],
        report_dir: Union[str, Path],
        reporter: Optional[ContentReporter] = None,
    ) -> None:
        self.store = store
        self.snapshot_dir = Path(snapshot_dir)
        self.report_dir = Path(report_dir)
        self.reporter = reporter or ContentReporter(store)

    def create_snapshot(self, kind: SnapshotKind = SnapshotKind.PRE_CLEAR) -> SnapshotInfo:
        """Copy the live store file into the snapshot directory.

        Raises:
            SnapshotError: If the store file is missing or unreadable, or the copy fails
        """
        source = self.store.path
        if not source.is_file():
            raise SnapshotError(f"Store file not found: {source}")
        if not os.access(source, os.R_OK):
            raise SnapshotError(f"Store file is not readable: {source}")

        target = self.snapshot_dir / f"{kind.value}-{canonical_timestamp()}.db"

        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            if target.exists():
                target.unlink()
            raise SnapshotError(f"Failed to copy store to {target}: {e}") from e

        info = self._info(target)
        logger.info(f"Snapshot created: {info.snapshot_id} ({info.size / 1024 / 1024:.2f} MB)")
        return info

    def create_backup(self) -> SnapshotInfo:
        """Take a manual backup."""
        return self.create_snapshot(kind=SnapshotKind.MANUAL)

    def create_content_report(self) -> Path:
        """Write a human-readable report of the store contents.

        Raises:
            SnapshotError: If the report file cannot be written
        """
        target = self.report_dir / f"system-report-{canonical_timestamp()}.txt"
        try:
            path = self.reporter.write(target)
        except OSError as e:
            raise SnapshotError(f"Failed to write content report {target}: {e}") from e

        logger.info(f"Content report written: {path.name}")
        return path

    def list_snapshots(self) -> list[SnapshotInfo]:
        """List snapshot files, newest first."""
        if not self.snapshot_dir.exists():
            return []

        snapshots = [
            self._info(path)
            for path in self.snapshot_dir.glob("*.db")
            if path.is_file() and SNAPSHOT_ID_PATTERN.match(path.name)
        ]
        return sorted(snapshots, key=lambda s: s.created_at, reverse=True)

    def resolve(self, snapshot_id: str) -> SnapshotInfo:
        """Resolve a snapshot identifier strictly inside the snapshot directory.

        Raises:
            InvalidSnapshotReference: If the identifier fails the filename pattern
                or would resolve outside the snapshot directory
            SnapshotNotFoundError: If no such snapshot exists
        """
        if not isinstance(snapshot_id, str) or not SNAPSHOT_ID_PATTERN.match(snapshot_id):
            raise InvalidSnapshotReference(f"Invalid snapshot identifier: {snapshot_id!r}")

        base = self.snapshot_dir.resolve()
        candidate = (base / os.path.basename(snapshot_id)).resolve()
        if candidate.parent != base:
            raise InvalidSnapshotReference(f"Snapshot identifier escapes snapshot directory: {snapshot_id!r}")

        if not candidate.is_file():
            raise SnapshotNotFoundError(f"Snapshot not found: {snapshot_id}")

        return self._info(candidate)

    def delete_snapshot(self, snapshot_id: str) -> SnapshotInfo:
        """Delete a manual backup.

        Pre-clear snapshots and pre-restore safety copies are the recovery
        path for destructive operations and cannot be deleted here.

        Raises:
            SnapshotError: If the snapshot is not a manual backup or cannot be removed
        """
        info = self.resolve(snapshot_id)
        if info.kind != SnapshotKind.MANUAL:
            raise SnapshotError(f"Only manual backups can be deleted, {snapshot_id} is {info.kind.name.lower()}")

        try:
            info.path.unlink()
        except OSError as e:
            raise SnapshotError(f"Failed to delete {snapshot_id}: {e}") from e

        logger.info(f"Deleted backup {snapshot_id}")
        return info

    def prune_backups(self, retention_days: int) -> dict:
        """Delete manual backups older than the retention window.

        Returns:
            Dictionary with deleted_count, freed_space (bytes) and total_backups left
        """
        if retention_days < 0:
            raise ValueError("retention_days must be >= 0")

        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        backups = [s for s in self.list_snapshots() if s.kind == SnapshotKind.MANUAL]

        deleted_count = 0
        freed_space = 0
        for backup in backups:
            if backup.created_at >= cutoff:
                continue
            try:
                backup.path.unlink()
            except OSError as e:
                logger.error(f"Error deleting backup {backup.snapshot_id}: {e}")
                continue
            deleted_count += 1
            freed_space += backup.size
            logger.info(f"Deleted old backup: {backup.snapshot_id}")

        if deleted_count:
            logger.info(f"Backup cleanup: deleted {deleted_count} old backups, freed {freed_space / 1024 / 1024:.2f} MB")

        return {
            "deleted_count": deleted_count,
            "freed_space": freed_space,
            "total_backups": len(backups) - deleted_count,
        }

    @staticmethod
    def _info(path: Path) -> SnapshotInfo:
        stats = path.stat()
        return SnapshotInfo(
            snapshot_id=path.name,
            path=path.resolve(),
            size=stats.st_size,
            created_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            kind=SnapshotKind.from_filename(path.name),
        )
