"""Store access: the owned connection handle and the schema it serves."""

from __future__ import annotations

from safeguard.store.handle import StoreHandle
from safeguard.store.schema import init_schema

__all__ = [
    "StoreHandle",
    "init_schema",
]
