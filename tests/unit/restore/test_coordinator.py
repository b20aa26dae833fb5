"""Unit tests for RestoreCoordinator."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest

from safeguard.audit.recorder import AuditRecorder
from safeguard.errors import (
    CapabilityError,
    InvalidSnapshotReference,
    RestoreError,
    SnapshotError,
    SnapshotNotFoundError,
    StoreUnavailableError,
)
from safeguard.models.audit_entry import AuditAction
from safeguard.models.execution_result import RestoreStep
from safeguard.models.principal import Principal
from safeguard.models.snapshot import SnapshotKind
from safeguard.restore.coordinator import RestoreCoordinator
from safeguard.snapshot.service import SnapshotService
from safeguard.store.handle import StoreHandle
from safeguard.store.schema import table_row_count
from tests.fixtures.store import create_principals, create_store, seed_business_data


class TestRestoreCoordinator:
    """Test suite for RestoreCoordinator."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> StoreHandle:
        handle = create_store(tmp_path / "data" / "inventory.db")
        yield handle
        handle.close()

    @pytest.fixture
    def principals(self, store: StoreHandle) -> dict[str, Principal]:
        principals = create_principals(store)
        seed_business_data(store)
        return principals

    @pytest.fixture
    def snapshots(self, store: StoreHandle, tmp_path: Path) -> SnapshotService:
        return SnapshotService(store, tmp_path / "backups", tmp_path / "reports")

    @pytest.fixture
    def coordinator(self, store: StoreHandle, snapshots: SnapshotService) -> RestoreCoordinator:
        return RestoreCoordinator(store, snapshots, AuditRecorder(store))

    def _wipe_items(self, store: StoreHandle) -> None:
        with store.transaction() as conn:
            conn.execute("DELETE FROM sales_items")
            conn.execute("DELETE FROM purchase_items")
            conn.execute("DELETE FROM stock_adjustments")
            conn.execute("DELETE FROM items")

    def test_restore_replaces_store_contents(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test a full restore brings back snapshot data and reconnects."""
        backup = snapshots.create_backup()
        self._wipe_items(store)
        assert table_row_count(store, "items") == 0

        result = coordinator.restore(backup.snapshot_id, principals["admin"], source_address="127.0.0.1")

        assert result.succeeded
        assert result.reconnected
        assert result.completed_steps == list(RestoreStep)
        assert store.is_open
        assert table_row_count(store, "items") == 2
        assert result.safety_copy.name.startswith("pre-restore-")
        assert result.safety_copy.exists()

    def test_safety_copy_holds_pre_restore_state(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test the safety copy captures the store as it was just before the swap."""
        backup = snapshots.create_backup()
        self._wipe_items(store)

        result = coordinator.restore(backup.snapshot_id, principals["admin"])

        conn = sqlite3.connect(result.safety_copy)
        try:
            assert conn.execute("SELECT COUNT(*) FROM items").fetchone()[0] == 0
        finally:
            conn.close()

    def test_restore_audit_entries_survive_swap(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test restore audit trail is written into the restored store."""
        backup = snapshots.create_backup()

        coordinator.restore(backup.snapshot_id, principals["admin"])

        actions = [e.action for e in reversed(coordinator.audit.list_entries("backup", backup.snapshot_id))]
        assert actions == [
            AuditAction.RESTORE_STARTED,
            AuditAction.RESTORE_SAFETY_COPY,
            AuditAction.RESTORE_COMPLETED,
        ]

    def test_traversal_rejected_before_any_file_operation(
        self, coordinator: RestoreCoordinator, store: StoreHandle, principals: dict[str, Principal]
    ) -> None:
        """Test parent-directory references never reach the file system."""
        with patch.object(coordinator.snapshots, "create_snapshot") as create_snapshot:
            with patch.object(coordinator, "_swap") as swap:
                with pytest.raises(InvalidSnapshotReference):
                    coordinator.restore("../data/inventory.db", principals["admin"])

        create_snapshot.assert_not_called()
        swap.assert_not_called()
        assert store.is_open
        assert coordinator.snapshots.list_snapshots() == []

    def test_missing_snapshot(self, coordinator: RestoreCoordinator, principals: dict[str, Principal]) -> None:
        """Test a well-formed but absent snapshot is reported as not found."""
        with pytest.raises(SnapshotNotFoundError):
            coordinator.restore("ims_backup-2020-01-01T00-00-00-000000Z.db", principals["admin"])

    def test_requires_capability(self, coordinator: RestoreCoordinator, principals: dict[str, Principal]) -> None:
        """Test only restore-capable principals may restore."""
        with pytest.raises(CapabilityError):
            coordinator.restore("ims_backup-x.db", principals["manager"])
        with pytest.raises(CapabilityError):
            coordinator.list_snapshots(principals["clerk"])

    def test_safety_copy_failure_aborts_untouched(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test no swap happens without a safety copy."""
        backup = snapshots.create_backup()

        with patch.object(snapshots, "create_snapshot", side_effect=SnapshotError("disk full")):
            with patch.object(coordinator, "_swap") as swap:
                with pytest.raises(SnapshotError):
                    coordinator.restore(backup.snapshot_id, principals["admin"])

        swap.assert_not_called()
        assert store.is_open

    def test_swap_failure_reconnects_and_keeps_safety_copy(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test a failed swap still reconnects and reports which steps ran."""
        backup = snapshots.create_backup()

        with patch.object(coordinator, "_swap", side_effect=OSError("No space left on device")):
            with pytest.raises(RestoreError) as exc_info:
                coordinator.restore(backup.snapshot_id, principals["admin"])

        result = exc_info.value.result
        assert result.reconnected
        assert store.is_open
        assert result.safety_copy.exists()
        assert result.completed_steps == [
            RestoreStep.VALIDATE,
            RestoreStep.SAFETY_COPY,
            RestoreStep.CLOSE,
            RestoreStep.REOPEN,
        ]
        assert table_row_count(store, "items") == 2
        assert coordinator.audit.list_entries("backup", backup.snapshot_id)[0].action == AuditAction.RESTORE_FAILED

    def test_close_failure_skips_swap_and_reconnects(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test a failed close never swaps the file and still reopens before raising."""
        backup = snapshots.create_backup()
        self._wipe_items(store)

        with patch.object(store, "close", side_effect=sqlite3.OperationalError("database is locked")):
            with patch.object(coordinator, "_swap") as swap:
                with pytest.raises(RestoreError) as exc_info:
                    coordinator.restore(backup.snapshot_id, principals["admin"])

        swap.assert_not_called()
        result = exc_info.value.result
        assert RestoreStep.SWAP not in [s.step for s in result.steps]
        assert [s.step for s in result.steps if not s.succeeded] == [RestoreStep.CLOSE]
        assert result.reconnected
        assert store.is_open
        assert result.safety_copy.exists()
        assert table_row_count(store, "items") == 0

    def test_reopen_failure_reports_disconnected(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test a failed reopen surfaces as RestoreError with reconnected False."""
        backup = snapshots.create_backup()

        with patch.object(store, "open", side_effect=sqlite3.OperationalError("unable to open database file")):
            with pytest.raises(RestoreError) as exc_info:
                coordinator.restore(backup.snapshot_id, principals["admin"])

        assert not exc_info.value.result.reconnected
        with pytest.raises(StoreUnavailableError):
            with store.connection():
                pass

    def test_store_unavailable_during_swap(
        self,
        coordinator: RestoreCoordinator,
        snapshots: SnapshotService,
        store: StoreHandle,
        principals: dict[str, Principal],
    ) -> None:
        """Test other callers see StoreUnavailableError inside the restore window."""
        backup = snapshots.create_backup()
        seen = []

        def observe(source: Path) -> None:
            try:
                with store.connection():
                    seen.append("open")
            except StoreUnavailableError:
                seen.append("unavailable")
            Path(store.path).write_bytes(source.read_bytes())

        with patch.object(coordinator, "_swap", side_effect=observe):
            coordinator.restore(backup.snapshot_id, principals["admin"])

        assert seen == ["unavailable"]

    def test_list_snapshots(
        self, coordinator: RestoreCoordinator, snapshots: SnapshotService, principals: dict[str, Principal]
    ) -> None:
        """Test restorable snapshots include every kind."""
        snapshots.create_snapshot(SnapshotKind.PRE_CLEAR)
        snapshots.create_backup()

        kinds = {s.kind for s in coordinator.list_snapshots(principals["admin"])}

        assert kinds == {SnapshotKind.PRE_CLEAR, SnapshotKind.MANUAL}
