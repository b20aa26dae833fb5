"""Configuration loading for the safeguard CLI.

Precedence: environment variables, then the YAML config file, then defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".safeguard"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.yaml"

ENV_PREFIX = "SAFEGUARD_"


@dataclass
class Config:
    """Runtime configuration.

    Attributes:
        store_path: SQLite store file
        snapshot_dir: Directory for snapshots, backups and safety copies
        report_dir: Directory for content reports
        audit_journal_dir: Directory for the YAML audit journal (None disables it)
        log_level: Default log level
        backup_retention_days: Age after which manual backups are pruned
    """

    store_path: str = str(DEFAULT_HOME / "inventory.db")
    snapshot_dir: str = str(DEFAULT_HOME / "backups")
    report_dir: str = str(DEFAULT_HOME / "reports")
    audit_journal_dir: Optional[str] = str(DEFAULT_HOME / "audit")
    log_level: str = "INFO"
    backup_retention_days: int = 30

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load configuration from file and environment.

        Args:
            config_path: YAML file to read (default: $SAFEGUARD_CONFIG or ~/.safeguard/config.yaml)

        Returns:
            Config instance

        Raises:
            ValueError: If a value cannot be converted to its field type
        """
        values: dict[str, Any] = {}

        path = Path(config_path or os.environ.get(f"{ENV_PREFIX}CONFIG") or DEFAULT_CONFIG_PATH).expanduser()
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            logger.debug(f"Loaded config from {path}")
            values.update(data)

        for field_ in fields(cls):
            env_value = os.environ.get(f"{ENV_PREFIX}{field_.name.upper()}")
            if env_value is not None:
                values[field_.name] = env_value

        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        config = cls(**{k: v for k, v in values.items() if k in known})
        config.backup_retention_days = int(config.backup_retention_days)
        if config.backup_retention_days < 0:
            raise ValueError("backup_retention_days must be >= 0")
        if config.audit_journal_dir == "":
            config.audit_journal_dir = None
        config.log_level = str(config.log_level).upper()
        return config
