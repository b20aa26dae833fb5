"""Principal and capability model consumed from the surrounding service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Capability(Enum):
    """Capabilities checked by the safeguard operations."""

    INITIATE_ERASURE = "initiate_erasure"
    AUTHORIZE_ERASURE = "authorize_erasure"
    RESTORE_STORE = "restore_store"
    MANAGE_BACKUPS = "manage_backups"


class Role(Enum):
    """Account roles known to the store."""

    ADMIN = "admin"
    MANAGER = "manager"
    SUPERADMIN = "superadmin"
    STOREKEEPER = "storekeeper"
    SALES = "sales"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset({Capability.INITIATE_ERASURE, Capability.RESTORE_STORE, Capability.MANAGE_BACKUPS}),
    Role.MANAGER: frozenset({Capability.AUTHORIZE_ERASURE}),
    Role.SUPERADMIN: frozenset(Capability),
    Role.STOREKEEPER: frozenset(),
    Role.SALES: frozenset(),
}


@dataclass(frozen=True)
class Principal:
    """Authenticated identity carrying a role.

    Attributes:
        principal_id: `users.id` of the account
        username: Login name
        role: Account role
    """

    principal_id: int
    username: str
    role: Role

    def has_capability(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())
