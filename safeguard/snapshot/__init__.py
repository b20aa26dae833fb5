"""Snapshot files and content reports."""

from __future__ import annotations

from safeguard.snapshot.report import ContentReporter
from safeguard.snapshot.service import SnapshotService

__all__ = [
    "ContentReporter",
    "SnapshotService",
]
