"""Two-party quorum for system-wide data erasure.

The initiator confirms five times, then a separate authorizer confirms five
times. The fifth confirmation of each sequence re-verifies the confirming
principal's credential. The fifth authorizer confirmation runs the erasure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from safeguard.audit.recorder import AuditRecorder
from safeguard.auth.directory import PrincipalDirectory
from safeguard.errors import (
    ArtifactGenerationFailure,
    CapabilityError,
    CredentialVerificationFailure,
    PartialExecutionFailure,
    PreconditionViolation,
    SnapshotError,
    StoreUnavailableError,
)
from safeguard.models.audit_entry import AuditAction
from safeguard.models.clear_data_request import REQUIRED_CONFIRMATIONS, ClearDataRequest, RequestStatus
from safeguard.models.execution_result import ExecutionResult
from safeguard.models.principal import Capability, Principal
from safeguard.models.snapshot import SnapshotKind
from safeguard.quorum.ledger import RequestLedger
from safeguard.restore.executor import DestructiveActionExecutor
from safeguard.snapshot.service import SnapshotService

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "clear_data_request"


@dataclass
class ConfirmationOutcome:
    """Result of one accepted confirmation.

    Attributes:
        request: Request state after the confirmation
        confirmations: Counter value for the confirming sequence
        remaining: Confirmations still needed in that sequence
        requires_password_next: Whether the next confirmation is the fifth
        awaiting_authorizer: Whether the request now waits for an authorizer
        completed: Whether the erasure ran and the request completed
        execution: Erasure result (final authorizer confirmation only)
    """

    request: ClearDataRequest
    confirmations: int
    remaining: int
    requires_password_next: bool
    awaiting_authorizer: bool
    completed: bool = False
    execution: Optional[ExecutionResult] = None


class QuorumStateMachine:
    """Drives clear-data requests through initiator and authorizer confirmations.

    Attributes:
        ledger: Request persistence
        snapshots: Snapshot and report producer
        audit: Audit recorder
        executor: Erasure executor
        directory: Principal credential verifier
    """

    def __init__(
        self,
        ledger: RequestLedger,
        snapshots: SnapshotService,
        audit: AuditRecorder,
        executor: DestructiveActionExecutor,
        directory: PrincipalDirectory,
    ) -> None:
        self.ledger = ledger
        self.snapshots = snapshots
        self.audit = audit
        self.executor = executor
        self.directory = directory

    def initiate(self, principal: Principal, source_address: Optional[str] = None) -> ClearDataRequest:
        """Create a request after producing its snapshot and content report.

        Raises:
            CapabilityError: If the principal cannot initiate erasure
            ArtifactGenerationFailure: If the snapshot or report could not be produced.
                No request is created.
        """
        self._require(principal, Capability.INITIATE_ERASURE)

        try:
            snapshot = self.snapshots.create_snapshot(SnapshotKind.PRE_CLEAR)
        except SnapshotError as e:
            logger.error(f"Pre-clear snapshot failed for {principal.username}: {e}")
            raise ArtifactGenerationFailure(f"Failed to create backup: {e}") from e

        try:
            report = self.snapshots.create_content_report()
        except (SnapshotError, StoreUnavailableError) as e:
            logger.error(
                f"Content report failed for {principal.username}: {e}. "
                f"Snapshot {snapshot.path} was kept but no request references it"
            )
            raise ArtifactGenerationFailure(
                f"Failed to generate system report: {e} (unreferenced snapshot kept at {snapshot.path})"
            ) from e

        request = self.ledger.create(principal.principal_id, str(snapshot.path), str(report))
        logger.warning(f"Clear-data request {request.id} initiated by {principal.username}")

        self.audit.record(
            AuditAction.CLEAR_DATA_INITIATED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail={"status": request.status.value, "snapshot": snapshot.snapshot_id, "report": report.name},
        )
        return request

    def confirm_as_initiator(
        self,
        request_id: int,
        principal: Principal,
        password: Optional[str] = None,
        source_address: Optional[str] = None,
    ) -> ConfirmationOutcome:
        """Add one initiator confirmation.

        Raises:
            PreconditionViolation: If the request is not pending, the principal is
                not the initiator or the initiator sequence is already complete
            CredentialVerificationFailure: If this is the fifth confirmation and the
                password does not verify
        """
        request = self.ledger.get(request_id)
        self._require_pending(request)
        if principal.principal_id != request.initiator_id:
            raise PreconditionViolation("Only the initiator can confirm this request")
        if request.initiator_confirmations >= REQUIRED_CONFIRMATIONS:
            raise PreconditionViolation("Initiator confirmations already complete")

        before = request.initiator_confirmations
        if before + 1 == REQUIRED_CONFIRMATIONS:
            self._verify_credential(request, principal, password, source_address, "initiator")

        updated = self.ledger.compare_and_increment(request.id, "initiator_confirmations", before)
        after = updated.initiator_confirmations

        self.audit.record(
            AuditAction.CLEAR_DATA_INITIATOR_CONFIRMED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail=self._transition_detail(request, updated),
        )

        if updated.awaiting_authorizer:
            logger.warning(f"Clear-data request {request.id} now awaits an authorizer")

        return ConfirmationOutcome(
            request=updated,
            confirmations=after,
            remaining=REQUIRED_CONFIRMATIONS - after,
            requires_password_next=after == REQUIRED_CONFIRMATIONS - 1,
            awaiting_authorizer=updated.awaiting_authorizer,
        )

    def cancel_by_initiator(
        self,
        request_id: int,
        principal: Principal,
        source_address: Optional[str] = None,
    ) -> ClearDataRequest:
        """Cancel a pending request. Allowed while it awaits the authorizer."""
        request = self.ledger.get(request_id)
        self._require_pending(request)
        self._require_not_executed(request)
        if principal.principal_id != request.initiator_id:
            raise PreconditionViolation("Only the initiator can cancel this request")

        updated = self.ledger.transition(request.id, RequestStatus.PENDING, RequestStatus.CANCELLED)
        logger.info(f"Clear-data request {request.id} cancelled by {principal.username}")

        self.audit.record(
            AuditAction.CLEAR_DATA_CANCELLED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail=self._transition_detail(request, updated),
        )
        return updated

    def confirm_as_authorizer(
        self,
        request_id: int,
        principal: Principal,
        password: Optional[str] = None,
        source_address: Optional[str] = None,
    ) -> ConfirmationOutcome:
        """Add one authorizer confirmation; the fifth runs the erasure.

        Raises:
            CapabilityError: If the principal cannot authorize erasure
            PreconditionViolation: If the request is not awaiting this authorizer
            CredentialVerificationFailure: If this is the fifth confirmation and the
                password does not verify
            PartialExecutionFailure: If the erasure did not clear every table. The
                request stays pending with both sequences complete.
        """
        self._require(principal, Capability.AUTHORIZE_ERASURE)

        request = self.ledger.get(request_id)
        self._require_pending(request)
        if request.initiator_confirmations != REQUIRED_CONFIRMATIONS:
            raise PreconditionViolation("Initiator has not completed all confirmations")
        if principal.principal_id == request.initiator_id:
            raise PreconditionViolation("The initiator cannot authorize their own request")
        if request.authorizer_confirmations >= REQUIRED_CONFIRMATIONS:
            raise PreconditionViolation("Authorizer confirmations already complete")

        before = request.authorizer_confirmations
        final = before + 1 == REQUIRED_CONFIRMATIONS
        if final:
            self._verify_credential(request, principal, password, source_address, "authorizer")

        updated = self.ledger.compare_and_increment(request.id, "authorizer_confirmations", before)
        after = updated.authorizer_confirmations

        self.audit.record(
            AuditAction.CLEAR_DATA_AUTHORIZER_CONFIRMED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail=self._transition_detail(request, updated),
        )

        if not final:
            return ConfirmationOutcome(
                request=updated,
                confirmations=after,
                remaining=REQUIRED_CONFIRMATIONS - after,
                requires_password_next=after == REQUIRED_CONFIRMATIONS - 1,
                awaiting_authorizer=True,
            )

        return self._execute(updated, principal, source_address)

    def reject_by_authorizer(
        self,
        request_id: int,
        principal: Principal,
        source_address: Optional[str] = None,
    ) -> ClearDataRequest:
        """Reject a request that is awaiting an authorizer."""
        self._require(principal, Capability.AUTHORIZE_ERASURE)

        request = self.ledger.get(request_id)
        self._require_pending(request)
        self._require_not_executed(request)
        if request.initiator_confirmations != REQUIRED_CONFIRMATIONS:
            raise PreconditionViolation("Request is not awaiting an authorizer")

        updated = self.ledger.transition(request.id, RequestStatus.PENDING, RequestStatus.REJECTED)
        logger.info(f"Clear-data request {request.id} rejected by {principal.username}")

        self.audit.record(
            AuditAction.CLEAR_DATA_REJECTED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail=self._transition_detail(request, updated),
        )
        return updated

    def get_request(self, request_id: int, principal: Principal) -> ClearDataRequest:
        request = self.ledger.get(request_id)
        self._require_visible(request, principal)
        return request

    def list_requests(self, principal: Principal) -> list[ClearDataRequest]:
        """Requests created by the principal, newest first."""
        self._require(principal, Capability.INITIATE_ERASURE)
        return self.ledger.list_for_initiator(principal.principal_id)

    def list_awaiting_authorizer(self, principal: Principal) -> list[ClearDataRequest]:
        """Requests waiting for an authorizer, newest first."""
        self._require(principal, Capability.AUTHORIZE_ERASURE)
        return self.ledger.list_awaiting_authorizer()

    def artifact_paths(self, request_id: int, principal: Principal) -> dict[str, Path]:
        """Snapshot and report paths for a request."""
        request = self.get_request(request_id, principal)
        return {"snapshot": Path(request.snapshot_ref), "report": Path(request.report_ref)}

    def _execute(
        self,
        request: ClearDataRequest,
        principal: Principal,
        source_address: Optional[str],
    ) -> ConfirmationOutcome:
        logger.warning(f"Executing clear-data request {request.id} authorized by {principal.username}")
        result = self.executor.execute()

        if not result.succeeded:
            logger.critical(
                f"Clear-data request {request.id} {result.status.value}: "
                f"failed tables {', '.join(result.failed_tables)}; "
                f"cleared tables {', '.join(result.succeeded_tables) or 'none'}. "
                f"Snapshot {request.snapshot_ref} holds the pre-clear state"
            )
            self.audit.record(
                AuditAction.CLEAR_DATA_EXECUTION_FAILED,
                principal_id=principal.principal_id,
                resource_type=RESOURCE_TYPE,
                resource_id=request.id,
                source_address=source_address,
                detail={"snapshot": request.snapshot_ref, **result.to_dict()},
            )
            raise PartialExecutionFailure(
                f"Erasure for request {request.id} did not complete ({result.status.value}); "
                f"request remains authorized but incomplete",
                result=result,
            )

        completed = self.ledger.transition(
            request.id,
            RequestStatus.PENDING,
            RequestStatus.COMPLETED,
            completed_at=result.completed_at or datetime.now(timezone.utc),
        )
        logger.warning(f"Clear-data request {request.id} completed: {result.rows_deleted} rows deleted")

        self.audit.record(
            AuditAction.CLEAR_DATA_COMPLETED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail={"snapshot": request.snapshot_ref, "report": request.report_ref, **result.to_dict()},
        )

        return ConfirmationOutcome(
            request=completed,
            confirmations=completed.authorizer_confirmations,
            remaining=0,
            requires_password_next=False,
            awaiting_authorizer=False,
            completed=True,
            execution=result,
        )

    def _verify_credential(
        self,
        request: ClearDataRequest,
        principal: Principal,
        password: Optional[str],
        source_address: Optional[str],
        stage: str,
    ) -> None:
        if self.directory.verify_credential(principal, password):
            return

        logger.warning(f"Credential re-verification failed for {principal.username} on request {request.id}")
        self.audit.record(
            AuditAction.CLEAR_DATA_CREDENTIAL_REJECTED,
            principal_id=principal.principal_id,
            resource_type=RESOURCE_TYPE,
            resource_id=request.id,
            source_address=source_address,
            detail={"stage": stage, "password_supplied": bool(password)},
        )
        if not password:
            raise CredentialVerificationFailure("Password is required for the final confirmation")
        raise CredentialVerificationFailure("Invalid password")

    @staticmethod
    def _require(principal: Principal, capability: Capability) -> None:
        if not principal.has_capability(capability):
            raise CapabilityError(f"{principal.username} ({principal.role.value}) lacks {capability.value}")

    @staticmethod
    def _require_pending(request: ClearDataRequest) -> None:
        if request.status != RequestStatus.PENDING:
            raise PreconditionViolation(f"Request {request.id} is {request.status.value}")

    @staticmethod
    def _require_not_executed(request: ClearDataRequest) -> None:
        # Erasure already ran (partially); the request must not be closed as if it never did.
        if request.authorized_but_incomplete:
            raise PreconditionViolation(
                f"Request {request.id} was authorized and its erasure did not complete; "
                f"restore from {request.snapshot_ref} or intervene manually"
            )

    @staticmethod
    def _require_visible(request: ClearDataRequest, principal: Principal) -> None:
        if principal.principal_id == request.initiator_id:
            return
        if principal.has_capability(Capability.AUTHORIZE_ERASURE):
            return
        raise CapabilityError(f"{principal.username} cannot view request {request.id}")

    @staticmethod
    def _transition_detail(before: ClearDataRequest, after: ClearDataRequest) -> dict[str, Any]:
        return {
            "status_before": before.status.value,
            "status_after": after.status.value,
            "initiator_confirmations_before": before.initiator_confirmations,
            "initiator_confirmations_after": after.initiator_confirmations,
            "authorizer_confirmations_before": before.authorizer_confirmations,
            "authorizer_confirmations_after": after.authorizer_confirmations,
        }
