"""Principal directory and credential checks."""

from __future__ import annotations

from safeguard.auth.directory import PrincipalDirectory, check_password, hash_password

__all__ = [
    "PrincipalDirectory",
    "check_password",
    "hash_password",
]
