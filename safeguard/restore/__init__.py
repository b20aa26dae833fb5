"""Erasure execution and store restore."""

from __future__ import annotations

from safeguard.restore.coordinator import RestoreCoordinator
from safeguard.restore.executor import DestructiveActionExecutor

__all__ = [
    "DestructiveActionExecutor",
    "RestoreCoordinator",
]
