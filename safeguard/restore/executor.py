"""Destructive erasure of business data tables.

Each table is cleared in its own transaction. A failing table is recorded and
the run moves on; tables already cleared stay cleared.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Sequence

from safeguard.errors import StoreUnavailableError
from safeguard.models.execution_result import ExecutionResult, TableOutcome
from safeguard.store.handle import StoreHandle
from safeguard.store.schema import CLEARABLE_TABLES, PRESERVED_TABLES

logger = logging.getLogger(__name__)


class DestructiveActionExecutor:
    """Clears all clearable entity tables in dependency order.

    Attributes:
        store: Store handle
        tables: Tables to clear, children before parents
    """

    def __init__(self, store: StoreHandle, tables: Sequence[str] = CLEARABLE_TABLES) -> None:
        preserved = set(tables) & set(PRESERVED_TABLES)
        if preserved:
            raise ValueError(f"Refusing to clear preserved tables: {', '.join(sorted(preserved))}")

        self.store = store
        self.tables = tuple(tables)

    def execute(self) -> ExecutionResult:
        """Delete every row of every clearable table.

        Returns:
            ExecutionResult with one outcome per table in execution order
        """
        result = ExecutionResult(started_at=datetime.now(timezone.utc))
        logger.warning(f"Clearing {len(self.tables)} tables: {', '.join(self.tables)}")

        for table in self.tables:
            try:
                with self.store.transaction() as conn:
                    rows_deleted = conn.execute(f"DELETE FROM {table}").rowcount
            except (sqlite3.Error, StoreUnavailableError) as e:
                logger.error(f"Failed to clear {table}: {e}")
                result.outcomes.append(TableOutcome(table=table, succeeded=False, error=str(e)))
                continue

            logger.info(f"Cleared {table} ({rows_deleted} rows)")
            result.outcomes.append(TableOutcome(table=table, succeeded=True, rows_deleted=rows_deleted))

        result.completed_at = datetime.now(timezone.utc)
        logger.info(f"Erasure finished: {result.status.value}, {result.rows_deleted} rows deleted")
        return result
