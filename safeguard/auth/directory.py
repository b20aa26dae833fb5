"""Principal lookup and credential re-verification against the `users` table.

Password hashes use PBKDF2-HMAC-SHA256 in the form
``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from safeguard.models.principal import Principal, Role
from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)

HASH_SCHEME = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 390000


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    """Hash a password for storage in `users.password_hash`."""
    salt = secrets.token_bytes(16)
    digest = _kdf(salt, iterations).derive(password.encode())
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def check_password(password: str, encoded: str) -> bool:
    """Check a password against an encoded hash in constant time."""
    try:
        scheme, iterations, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        logger.warning("Malformed password hash")
        return False

    if scheme != HASH_SCHEME:
        logger.warning(f"Unsupported password hash scheme: {scheme}")
        return False

    try:
        _kdf(bytes.fromhex(salt_hex), int(iterations)).verify(password.encode(), bytes.fromhex(digest_hex))
    except InvalidKey:
        return False
    return True


class PrincipalDirectory:
    """Resolves principals and re-verifies their current credential.

    Attributes:
        store: Store handle holding the `users` table
        iterations: PBKDF2 iterations for newly hashed passwords
    """

    def __init__(self, store: StoreHandle, iterations: int = DEFAULT_ITERATIONS) -> None:
        self.store = store
        self.iterations = iterations

    def get(self, principal_id: int) -> Optional[Principal]:
        """Look up an active principal by ID."""
        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT id, username, role FROM users WHERE id = ? AND is_active = 1",
                (principal_id,),
            ).fetchone()
        return self._to_principal(row) if row else None

    def find_by_username(self, username: str) -> Optional[Principal]:
        """Look up an active principal by username."""
        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT id, username, role FROM users WHERE username = ? AND is_active = 1",
                (username,),
            ).fetchone()
        return self._to_principal(row) if row else None

    def verify_credential(self, principal: Principal, password: Optional[str]) -> bool:
        """Re-verify the principal's current password.

        Reads the stored hash at call time so a password changed after login
        is the one that counts.
        """
        if not password:
            return False

        with self.store.connection() as conn:
            row = conn.execute(
                "SELECT password_hash FROM users WHERE id = ? AND is_active = 1",
                (principal.principal_id,),
            ).fetchone()

        if row is None:
            logger.warning(f"Credential check for unknown or inactive principal {principal.principal_id}")
            return False

        return check_password(password, row["password_hash"])

    def add_user(self, username: str, password: str, role: Role, email: Optional[str] = None) -> Principal:
        """Create an account. Used to seed stores and by tests."""
        with self.store.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO users (username, email, password_hash, role) VALUES (?, ?, ?, ?)",
                (username, email, hash_password(password, self.iterations), role.value),
            )
            principal_id = cursor.lastrowid

        logger.info(f"Created {role.value} account {username} (id={principal_id})")
        return Principal(principal_id=principal_id, username=username, role=role)

    @staticmethod
    def _to_principal(row) -> Principal:
        return Principal(principal_id=row["id"], username=row["username"], role=Role(row["role"]))
