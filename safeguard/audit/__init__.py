"""Audit trail for erasure requests, backups and restores."""

from __future__ import annotations

from safeguard.audit.journal import AuditJournal
from safeguard.audit.recorder import AuditRecorder

__all__ = [
    "AuditJournal",
    "AuditRecorder",
]
