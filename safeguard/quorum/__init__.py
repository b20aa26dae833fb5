"""Clear-data request ledger and two-party confirmation state machine."""

from __future__ import annotations

from safeguard.quorum.ledger import RequestLedger
from safeguard.quorum.machine import ConfirmationOutcome, QuorumStateMachine

__all__ = [
    "ConfirmationOutcome",
    "QuorumStateMachine",
    "RequestLedger",
]
