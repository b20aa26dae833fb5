"""Integration tests for backup and restore cycles."""

from __future__ import annotations

from pathlib import Path

import pytest

from safeguard.audit.recorder import AuditRecorder
from safeguard.models.snapshot import SnapshotKind
from safeguard.restore.coordinator import RestoreCoordinator
from safeguard.snapshot.service import SnapshotService
from safeguard.store.handle import StoreHandle
from safeguard.store.schema import table_row_count
from tests.fixtures.store import create_principals, create_store, seed_business_data


class TestRestoreCycleIntegration:
    """Integration tests for restoring and undoing a restore."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> StoreHandle:
        handle = create_store(tmp_path / "data" / "inventory.db")
        yield handle
        handle.close()

    @pytest.fixture
    def admin(self, store: StoreHandle):
        principals = create_principals(store)
        seed_business_data(store)
        return principals["admin"]

    @pytest.fixture
    def snapshots(self, store: StoreHandle, tmp_path: Path) -> SnapshotService:
        return SnapshotService(store, tmp_path / "backups", tmp_path / "reports")

    def test_safety_copy_undoes_restore(self, store: StoreHandle, admin, snapshots: SnapshotService) -> None:
        """Test restoring the safety copy returns the store to its pre-restore state."""
        coordinator = RestoreCoordinator(store, snapshots, AuditRecorder(store))
        backup = snapshots.create_backup()

        with store.transaction() as conn:
            conn.execute("INSERT INTO categories (name) VALUES ('Added after backup')")
        assert table_row_count(store, "categories") == 3

        first = coordinator.restore(backup.snapshot_id, admin)
        assert table_row_count(store, "categories") == 2

        second = coordinator.restore(first.safety_copy.name, admin)

        assert second.succeeded
        assert table_row_count(store, "categories") == 3
        kinds = [s.kind for s in snapshots.list_snapshots()]
        assert kinds.count(SnapshotKind.PRE_RESTORE) == 2
        assert kinds.count(SnapshotKind.MANUAL) == 1

    def test_operations_resume_after_restore(self, store: StoreHandle, admin, snapshots: SnapshotService) -> None:
        """Test components sharing the handle keep working after the swap."""
        recorder = AuditRecorder(store)
        coordinator = RestoreCoordinator(store, snapshots, recorder)
        backup = snapshots.create_backup()

        coordinator.restore(backup.snapshot_id, admin)

        with store.transaction() as conn:
            conn.execute("INSERT INTO suppliers (name) VALUES ('Post-restore supplier')")
        assert table_row_count(store, "suppliers") == 2
        assert snapshots.create_content_report().exists()
