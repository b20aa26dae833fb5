"""Unit tests for SnapshotService."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from safeguard.errors import InvalidSnapshotReference, SnapshotError, SnapshotNotFoundError
from safeguard.models.snapshot import SnapshotKind
from safeguard.snapshot.service import SNAPSHOT_ID_PATTERN, SnapshotService, canonical_timestamp
from safeguard.store.handle import StoreHandle
from tests.fixtures.store import create_store, seed_business_data


class TestSnapshotService:
    """Test suite for SnapshotService."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> StoreHandle:
        handle = create_store(tmp_path / "data" / "inventory.db")
        seed_business_data(handle)
        yield handle
        handle.close()

    @pytest.fixture
    def service(self, store: StoreHandle, tmp_path: Path) -> SnapshotService:
        return SnapshotService(store, tmp_path / "backups", tmp_path / "reports")

    def _age(self, path: Path, days: int) -> None:
        old = time.time() - days * 86400
        os.utime(path, (old, old))

    def test_canonical_timestamp_is_valid_identifier(self) -> None:
        """Test generated names always pass the identifier pattern."""
        name = f"{SnapshotKind.PRE_CLEAR.value}-{canonical_timestamp()}.db"

        assert SNAPSHOT_ID_PATTERN.match(name)
        assert ":" not in name

    def test_create_snapshot_copies_store(self, service: SnapshotService, store: StoreHandle) -> None:
        """Test a snapshot is a byte copy of the store file."""
        info = service.create_snapshot()

        assert info.kind == SnapshotKind.PRE_CLEAR
        assert info.snapshot_id.startswith("backup-before-clear-")
        assert info.path.read_bytes() == store.path.read_bytes()
        assert info.size == store.path.stat().st_size

    def test_create_snapshot_missing_store(self, tmp_path: Path) -> None:
        """Test snapshot fails fast when the store file does not exist."""
        service = SnapshotService(StoreHandle(tmp_path / "absent.db"), tmp_path / "backups", tmp_path / "reports")

        with pytest.raises(SnapshotError, match="not found"):
            service.create_snapshot()

        assert not (tmp_path / "backups").exists() or not any((tmp_path / "backups").iterdir())

    def test_create_backup_kind(self, service: SnapshotService) -> None:
        """Test manual backups use their own prefix."""
        info = service.create_backup()

        assert info.kind == SnapshotKind.MANUAL
        assert info.snapshot_id.startswith("ims_backup-")

    def test_list_snapshots_newest_first(self, service: SnapshotService) -> None:
        """Test listing order and kinds."""
        older = service.create_backup()
        self._age(older.path, 2)
        newer = service.create_snapshot(SnapshotKind.PRE_RESTORE)

        listed = service.list_snapshots()

        assert [s.snapshot_id for s in listed] == [newer.snapshot_id, older.snapshot_id]

    def test_list_snapshots_empty_dir(self, tmp_path: Path, store: StoreHandle) -> None:
        """Test listing a missing directory returns nothing."""
        service = SnapshotService(store, tmp_path / "nowhere", tmp_path / "reports")

        assert service.list_snapshots() == []

    @pytest.mark.parametrize(
        "reference",
        ["../inventory.db", "../../etc/passwd", "/etc/passwd", "backups/x.db", "x.txt", "", "a b.db", "..\\x.db"],
    )
    def test_resolve_rejects_bad_references(self, service: SnapshotService, reference: str) -> None:
        """Test traversal and malformed identifiers are rejected."""
        with pytest.raises(InvalidSnapshotReference):
            service.resolve(reference)

    def test_resolve_rejects_symlink_escape(self, service: SnapshotService, tmp_path: Path) -> None:
        """Test a link inside the directory pointing outside is rejected."""
        service.snapshot_dir.mkdir(parents=True, exist_ok=True)
        outside = tmp_path / "outside.db"
        outside.write_bytes(b"x")
        (service.snapshot_dir / "link.db").symlink_to(outside)

        with pytest.raises(InvalidSnapshotReference):
            service.resolve("link.db")

    def test_resolve_missing(self, service: SnapshotService) -> None:
        """Test a valid but absent identifier."""
        with pytest.raises(SnapshotNotFoundError):
            service.resolve("ims_backup-2020-01-01T00-00-00-000000Z.db")

    def test_resolve_existing(self, service: SnapshotService) -> None:
        """Test resolving returns the snapshot inside the directory."""
        info = service.create_backup()

        resolved = service.resolve(info.snapshot_id)

        assert resolved.path == info.path
        assert resolved.path.parent == service.snapshot_dir.resolve()

    def test_delete_manual_backup(self, service: SnapshotService) -> None:
        """Test manual backups can be deleted."""
        info = service.create_backup()

        service.delete_snapshot(info.snapshot_id)

        assert not info.path.exists()

    def test_delete_refuses_pre_clear_snapshot(self, service: SnapshotService) -> None:
        """Test recovery snapshots are protected from deletion."""
        info = service.create_snapshot(SnapshotKind.PRE_CLEAR)

        with pytest.raises(SnapshotError, match="Only manual backups"):
            service.delete_snapshot(info.snapshot_id)

        assert info.path.exists()

    def test_prune_only_old_manual_backups(self, service: SnapshotService) -> None:
        """Test retention applies to manual backups and nothing else."""
        old_backup = service.create_backup()
        self._age(old_backup.path, 40)
        old_pre_clear = service.create_snapshot(SnapshotKind.PRE_CLEAR)
        self._age(old_pre_clear.path, 40)
        old_safety = service.create_snapshot(SnapshotKind.PRE_RESTORE)
        self._age(old_safety.path, 40)
        fresh_backup = service.create_backup()

        summary = service.prune_backups(30)

        assert summary["deleted_count"] == 1
        assert summary["freed_space"] == old_backup.size
        assert summary["total_backups"] == 1
        assert not old_backup.path.exists()
        assert old_pre_clear.path.exists()
        assert old_safety.path.exists()
        assert fresh_backup.path.exists()

    def test_prune_rejects_negative_retention(self, service: SnapshotService) -> None:
        """Test retention must be non-negative."""
        with pytest.raises(ValueError):
            service.prune_backups(-1)

    def test_create_content_report(self, service: SnapshotService) -> None:
        """Test a report file is written into the report directory."""
        path = service.create_content_report()

        assert path.parent == service.report_dir
        assert path.name.startswith("system-report-")
        assert "Acme Supply" in path.read_text()
