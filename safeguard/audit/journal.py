"""YAML audit journal kept outside the store file.

Audit rows inside the store are rolled back whenever the store is restored
from an older snapshot. The journal keeps a copy of every entry on disk next to
the snapshots so the history of erasures and restores survives that.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import yaml

from safeguard.errors import AuditWriteFailure
from safeguard.models.audit_entry import AuditLogEntry


class AuditJournal:
    """Append-only YAML journal organised by year/month.

    Storage structure:
        <journal_dir>/
            2025/
                11/
                    audit-2025-11-11.yaml   (one YAML document per entry)

    Attributes:
        journal_dir: Base directory for journal files
    """

    def __init__(self, journal_dir: Union[str, Path]) -> None:
        self.journal_dir = Path(journal_dir)
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    def append(self, entry: AuditLogEntry) -> Path:
        """Append one entry to the day's journal file.

        Raises:
            AuditWriteFailure: If the file cannot be written
        """
        ts = entry.created_at
        month_dir = self.journal_dir / str(ts.year) / f"{ts.month:02d}"
        journal_file = month_dir / f"audit-{ts.strftime('%Y-%m-%d')}.yaml"

        try:
            month_dir.mkdir(parents=True, exist_ok=True)
            with open(journal_file, "a") as f:
                yaml.safe_dump(entry.to_dict(), f, default_flow_style=False, sort_keys=False, explicit_start=True)
        except (OSError, yaml.YAMLError) as e:
            raise AuditWriteFailure(f"Failed to append to audit journal {journal_file}: {e}") from e

        return journal_file

    def query(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Union[int, str]] = None,
    ) -> list[dict]:
        """Read journal entries within a date range, oldest first.

        Naive `since`/`until` values are taken as UTC.

        Args:
            since: Start time (inclusive), None for all
            until: End time (inclusive), None for all
            resource_type: Only entries for this resource type
            resource_id: Only entries for this resource

        Returns:
            List of entry dictionaries
        """
        since = _as_utc(since)
        until = _as_utc(until)
        results = []

        for year_dir in sorted(self.journal_dir.glob("*")):
            if not year_dir.is_dir():
                continue

            for month_dir in sorted(year_dir.glob("*")):
                if not month_dir.is_dir():
                    continue

                for journal_file in sorted(month_dir.glob("audit-*.yaml")):
                    with open(journal_file, "r") as f:
                        documents = [doc for doc in yaml.safe_load_all(f) if doc]

                    for doc in documents:
                        timestamp = _as_utc(datetime.fromisoformat(doc["created_at"]))
                        if since and timestamp < since:
                            continue
                        if until and timestamp > until:
                            continue
                        if resource_type and doc.get("resource_type") != resource_type:
                            continue
                        if resource_id is not None and str(doc.get("resource_id")) != str(resource_id):
                            continue
                        results.append(doc)

        return results


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
