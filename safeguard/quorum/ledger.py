"""Durable store of clear-data requests.

Counters and statuses only change through conditional UPDATE statements that
pin the expected current value, so two concurrent confirmations can never
both land on the same step.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from safeguard.errors import PreconditionViolation, RequestNotFoundError
from safeguard.models.clear_data_request import REQUIRED_CONFIRMATIONS, ClearDataRequest, RequestStatus
from safeguard.store.handle import StoreHandle

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("initiator_confirmations", "authorizer_confirmations")


class RequestLedger:
    """Reads and atomically mutates rows of `clear_data_requests`.

    Attributes:
        store: Store handle
    """

    def __init__(self, store: StoreHandle) -> None:
        self.store = store

    def create(self, initiator_id: int, snapshot_ref: str, report_ref: str) -> ClearDataRequest:
        """Persist a new pending request with both counters at zero."""
        now = datetime.now(timezone.utc).isoformat()
        with self.store.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO clear_data_requests "
                "(initiator_id, status, snapshot_ref, report_ref, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (initiator_id, RequestStatus.PENDING.value, snapshot_ref, report_ref, now, now),
            )
            request_id = cursor.lastrowid

        logger.debug(f"Created clear-data request {request_id} for principal {initiator_id}")
        return self.get(request_id)

    def get(self, request_id: int) -> ClearDataRequest:
        """Load one request.

        Raises:
            RequestNotFoundError: If no such request exists
        """
        with self.store.connection() as conn:
            row = conn.execute("SELECT * FROM clear_data_requests WHERE id = ?", (request_id,)).fetchone()

        if row is None:
            raise RequestNotFoundError(request_id)
        return self._load(row)

    def list_for_initiator(self, initiator_id: int, limit: int = 50) -> list[ClearDataRequest]:
        with self.store.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM clear_data_requests WHERE initiator_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (initiator_id, limit),
            ).fetchall()
        return [self._load(row) for row in rows]

    def list_awaiting_authorizer(self) -> list[ClearDataRequest]:
        """Pending requests with a complete initiator sequence and an open authorizer sequence, newest first."""
        with self.store.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM clear_data_requests WHERE status = ? AND initiator_confirmations = ? "
                "AND authorizer_confirmations < ? ORDER BY created_at DESC, id DESC",
                (RequestStatus.PENDING.value, REQUIRED_CONFIRMATIONS, REQUIRED_CONFIRMATIONS),
            ).fetchall()
        return [self._load(row) for row in rows]

    def compare_and_increment(self, request_id: int, field: str, expected: int) -> ClearDataRequest:
        """Advance one confirmation counter from `expected` to `expected + 1`.

        The update only applies while the request is pending and the counter
        still holds `expected`. Authorizer increments additionally require a
        completed initiator sequence.

        Args:
            request_id: Request to update
            field: `initiator_confirmations` or `authorizer_confirmations`
            expected: Counter value the caller observed

        Returns:
            The request after the increment

        Raises:
            ValueError: If `field` is not a counter column
            PreconditionViolation: If the row changed since it was read
        """
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter field: {field}")
        if not 0 <= expected < REQUIRED_CONFIRMATIONS:
            raise PreconditionViolation(f"{field} already at {expected}")

        query = (
            f"UPDATE clear_data_requests SET {field} = {field} + 1, updated_at = ? "
            f"WHERE id = ? AND status = ? AND {field} = ?"
        )
        params: list = [datetime.now(timezone.utc).isoformat(), request_id, RequestStatus.PENDING.value, expected]
        if field == "authorizer_confirmations":
            query += " AND initiator_confirmations = ?"
            params.append(REQUIRED_CONFIRMATIONS)

        with self.store.transaction() as conn:
            updated = conn.execute(query, params).rowcount

        if updated != 1:
            self.get(request_id)
            raise PreconditionViolation(
                f"Request {request_id} changed concurrently; {field} is no longer {expected}"
            )

        return self.get(request_id)

    def transition(
        self,
        request_id: int,
        from_status: RequestStatus,
        to_status: RequestStatus,
        completed_at: Optional[datetime] = None,
    ) -> ClearDataRequest:
        """Move a request between statuses if it is still in `from_status`.

        Raises:
            PreconditionViolation: If the request is no longer in `from_status`
        """
        now = datetime.now(timezone.utc)
        with self.store.transaction() as conn:
            updated = conn.execute(
                "UPDATE clear_data_requests SET status = ?, updated_at = ?, completed_at = ? "
                "WHERE id = ? AND status = ?",
                (
                    to_status.value,
                    now.isoformat(),
                    completed_at.isoformat() if completed_at else None,
                    request_id,
                    from_status.value,
                ),
            ).rowcount

        if updated != 1:
            current = self.get(request_id)
            raise PreconditionViolation(
                f"Request {request_id} is {current.status.value}, expected {from_status.value}"
            )

        logger.debug(f"Request {request_id}: {from_status.value} -> {to_status.value}")
        return self.get(request_id)

    @staticmethod
    def _load(row) -> ClearDataRequest:
        request = ClearDataRequest.from_row(row)
        try:
            request.validate()
        except ValueError as e:
            logger.error(f"Clear-data request {request.id} violates ledger invariants: {e}")
            raise
        return request
