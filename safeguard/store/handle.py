"""Owned handle around the single live connection to the store file.

Every component reaches the database through a StoreHandle instead of holding
a sqlite3.Connection. A restore can then close the connection, replace the
file and reopen it without anything keeping a stale reference.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from safeguard.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class StoreHandle:
    """Indirection point for the live store connection.

    While the handle is closed (for example inside a restore window) every
    call to `connection()` raises StoreUnavailableError.

    Attributes:
        path: Path of the SQLite store file
        timeout: Seconds sqlite waits on a locked database
    """

    def __init__(self, path: Union[str, Path], timeout: float = 5.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Open the connection. No-op if already open."""
        with self._lock:
            if self._conn is not None:
                return

            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=self.timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
            logger.debug(f"Opened store {self.path}")

    def close(self) -> None:
        """Close the connection.

        The handle is considered closed afterwards even if sqlite reports an
        error, so a later `open()` starts from a clean state.
        """
        with self._lock:
            conn, self._conn = self._conn, None
            if conn is None:
                return
            conn.close()
            logger.debug(f"Closed store {self.path}")

    def reopen(self) -> None:
        """Close (ignoring close errors) and open again."""
        with self._lock:
            try:
                self.close()
            except sqlite3.Error as e:
                logger.warning(f"Ignoring error while closing store before reopen: {e}")
            self.open()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow the live connection for the duration of the block.

        Raises:
            StoreUnavailableError: If the handle is closed
        """
        with self._lock:
            if self._conn is None:
                raise StoreUnavailableError(f"Store {self.path} is not open")
            yield self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Borrow the connection and commit on success, roll back on error."""
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def __enter__(self) -> "StoreHandle":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
