"""Store Safeguard - guarded erasure, snapshots and restore for the inventory store."""

__version__ = "0.3.0"
