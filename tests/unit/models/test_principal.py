"""Unit tests for Principal capabilities."""

from __future__ import annotations

from safeguard.models.principal import Capability, Principal, Role
from safeguard.models.snapshot import SnapshotKind


class TestPrincipal:
    """Test suite for role to capability mapping."""

    def test_admin_initiates_but_cannot_authorize(self) -> None:
        """Test admin is initiator class only."""
        admin = Principal(1, "admin", Role.ADMIN)

        assert admin.has_capability(Capability.INITIATE_ERASURE)
        assert admin.has_capability(Capability.RESTORE_STORE)
        assert not admin.has_capability(Capability.AUTHORIZE_ERASURE)

    def test_manager_authorizes_only(self) -> None:
        """Test manager is authorizer class only."""
        manager = Principal(2, "manager", Role.MANAGER)

        assert manager.has_capability(Capability.AUTHORIZE_ERASURE)
        assert not manager.has_capability(Capability.INITIATE_ERASURE)
        assert not manager.has_capability(Capability.RESTORE_STORE)

    def test_superadmin_has_everything(self) -> None:
        """Test superadmin holds every capability."""
        root = Principal(3, "root", Role.SUPERADMIN)

        assert all(root.has_capability(c) for c in Capability)

    def test_storekeeper_has_nothing(self) -> None:
        """Test ordinary roles hold no safeguard capability."""
        clerk = Principal(4, "clerk", Role.STOREKEEPER)

        assert not any(clerk.has_capability(c) for c in Capability)


class TestSnapshotKind:
    """Test suite for snapshot kind detection."""

    def test_from_filename(self) -> None:
        """Test kind is derived from the file name prefix."""
        assert SnapshotKind.from_filename("backup-before-clear-2025.db") == SnapshotKind.PRE_CLEAR
        assert SnapshotKind.from_filename("pre-restore-2025.db") == SnapshotKind.PRE_RESTORE
        assert SnapshotKind.from_filename("ims_backup-2025.db") == SnapshotKind.MANUAL
        assert SnapshotKind.from_filename("uploaded.db") == SnapshotKind.MANUAL
