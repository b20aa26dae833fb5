"""Unit tests for ClearDataRequest model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from safeguard.models.clear_data_request import REQUIRED_CONFIRMATIONS, ClearDataRequest, RequestStatus


def make_request(**overrides) -> ClearDataRequest:
    now = datetime(2025, 11, 11, 15, 30, tzinfo=timezone.utc)
    values = {
        "id": 1,
        "initiator_id": 7,
        "status": RequestStatus.PENDING,
        "snapshot_ref": "/backups/backup-before-clear-2025-11-11T15-30-00-000000Z.db",
        "report_ref": "/reports/system-report-2025-11-11T15-30-00-000000Z.txt",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return ClearDataRequest(**values)


class TestRequestStatus:
    """Test suite for RequestStatus enum."""

    def test_only_pending_is_open(self) -> None:
        """Test every status other than pending is terminal."""
        assert not RequestStatus.PENDING.is_terminal
        assert RequestStatus.CANCELLED.is_terminal
        assert RequestStatus.REJECTED.is_terminal
        assert RequestStatus.COMPLETED.is_terminal


class TestClearDataRequest:
    """Test suite for ClearDataRequest."""

    def test_new_request_defaults(self) -> None:
        """Test a new request starts with zero confirmations."""
        request = make_request()

        assert request.initiator_confirmations == 0
        assert request.authorizer_confirmations == 0
        assert request.completed_at is None
        assert not request.awaiting_authorizer
        assert request.validate() is True

    def test_awaiting_authorizer_after_initiator_sequence(self) -> None:
        """Test request becomes visible to authorizers at five initiator confirmations."""
        assert not make_request(initiator_confirmations=4).awaiting_authorizer
        assert make_request(initiator_confirmations=REQUIRED_CONFIRMATIONS).awaiting_authorizer

    def test_terminal_request_is_not_awaiting_authorizer(self) -> None:
        """Test a rejected request drops out of the authorizer queue."""
        request = make_request(status=RequestStatus.REJECTED, initiator_confirmations=5)

        assert request.is_terminal
        assert not request.awaiting_authorizer

    def test_authorized_but_incomplete(self) -> None:
        """Test the flag for a fully confirmed request that never completed."""
        stuck = make_request(initiator_confirmations=5, authorizer_confirmations=5)
        done = make_request(
            status=RequestStatus.COMPLETED,
            initiator_confirmations=5,
            authorizer_confirmations=5,
            completed_at=stuck.created_at + timedelta(minutes=5),
        )

        assert stuck.authorized_but_incomplete
        assert not done.authorized_but_incomplete

    def test_validate_rejects_authorizer_before_initiator_complete(self) -> None:
        """Test authorizer confirmations require a finished initiator sequence."""
        request = make_request(initiator_confirmations=3, authorizer_confirmations=1)

        with pytest.raises(ValueError, match="completed initiator sequence"):
            request.validate()

    def test_validate_rejects_out_of_range_counter(self) -> None:
        """Test counters are bounded to 0..5."""
        with pytest.raises(ValueError, match="out of range"):
            make_request(initiator_confirmations=6).validate()

        with pytest.raises(ValueError, match="out of range"):
            make_request(authorizer_confirmations=-1).validate()

    def test_validate_requires_artifacts(self) -> None:
        """Test snapshot and report references are mandatory."""
        with pytest.raises(ValueError, match="snapshot and a report"):
            make_request(report_ref="").validate()

    def test_validate_completed_requires_timestamp(self) -> None:
        """Test completed requests carry completed_at."""
        request = make_request(status=RequestStatus.COMPLETED, initiator_confirmations=5, authorizer_confirmations=5)

        with pytest.raises(ValueError, match="completed_at"):
            request.validate()

    def test_from_row_and_to_dict(self) -> None:
        """Test building a request from a ledger row."""
        row = {
            "id": 3,
            "initiator_id": 2,
            "status": "completed",
            "initiator_confirmations": 5,
            "authorizer_confirmations": 5,
            "snapshot_ref": "/b/s.db",
            "report_ref": "/r/r.txt",
            "created_at": "2025-11-11T15:30:00+00:00",
            "updated_at": "2025-11-11T15:40:00+00:00",
            "completed_at": "2025-11-11T15:40:00+00:00",
        }

        request = ClearDataRequest.from_row(row)

        assert request.status == RequestStatus.COMPLETED
        assert request.completed_at == datetime(2025, 11, 11, 15, 40, tzinfo=timezone.utc)
        data = request.to_dict()
        assert data["status"] == "completed"
        assert data["completed_at"] == "2025-11-11T15:40:00+00:00"
