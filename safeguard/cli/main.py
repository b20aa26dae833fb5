"""Main CLI entry point using Typer."""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..audit.journal import AuditJournal
from ..audit.recorder import AuditRecorder
from ..auth.directory import PrincipalDirectory
from ..errors import (
    ArtifactGenerationFailure,
    CapabilityError,
    CredentialVerificationFailure,
    PartialExecutionFailure,
    PreconditionViolation,
    RestoreError,
    SnapshotError,
    StoreUnavailableError,
)
from ..models.audit_entry import AuditAction, AuditLogEntry
from ..models.clear_data_request import REQUIRED_CONFIRMATIONS, ClearDataRequest
from ..models.execution_result import ExecutionResult, RestoreResult
from ..models.principal import Capability, Principal, Role
from ..quorum.ledger import RequestLedger
from ..quorum.machine import ConfirmationOutcome, QuorumStateMachine
from ..restore.coordinator import RestoreCoordinator
from ..restore.executor import DestructiveActionExecutor
from ..snapshot.service import SnapshotService
from ..store.handle import StoreHandle
from ..store.schema import init_schema
from ..utils.logging import setup_logging
from .config import Config

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="safeguard",
    help="Store Safeguard - guarded data erasure, backups and restore",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None


@dataclass
class Services:
    """Components wired against one open store handle."""

    store: StoreHandle
    directory: PrincipalDirectory
    audit: AuditRecorder
    snapshots: SnapshotService
    quorum: QuorumStateMachine
    restorer: RestoreCoordinator


@contextmanager
def open_services() -> Iterator[Services]:
    """Open the configured store and wire every component against it."""
    store = StoreHandle(config.store_path)
    store.open()
    try:
        journal = AuditJournal(config.audit_journal_dir) if config.audit_journal_dir else None
        audit = AuditRecorder(store, journal=journal)
        directory = PrincipalDirectory(store)
        snapshots = SnapshotService(store, config.snapshot_dir, config.report_dir)
        quorum = QuorumStateMachine(
            ledger=RequestLedger(store),
            snapshots=snapshots,
            audit=audit,
            executor=DestructiveActionExecutor(store),
            directory=directory,
        )
        restorer = RestoreCoordinator(store, snapshots, audit)
        yield Services(store, directory, audit, snapshots, quorum, restorer)
    finally:
        store.close()


@contextmanager
def handle_errors(action: str) -> Iterator[None]:
    """Map safeguard errors to console messages and exit codes."""
    try:
        yield
    except typer.Exit:
        raise
    except RestoreError as e:
        console.print(f"✗ {e}", style="bold red")
        if e.result is not None:
            show_restore_result(e.result)
        console.print("  Operator intervention required: the safety copy above holds the previous store", style="yellow")
        raise typer.Exit(code=3)
    except PartialExecutionFailure as e:
        console.print(f"✗ {e}", style="bold red")
        if e.result is not None:
            show_execution_result(e.result)
        console.print("  Operator intervention required: restore from the pre-clear snapshot", style="yellow")
        raise typer.Exit(code=3)
    except CredentialVerificationFailure as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)
    except (PreconditionViolation, ArtifactGenerationFailure, SnapshotError, StoreUnavailableError) as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"✗ Error {action}: {e}", style="bold red")
        logger.exception(f"Error {action}")
        raise typer.Exit(code=2)


def resolve_principal(services: Services, username: str) -> Principal:
    principal = services.directory.find_by_username(username)
    if principal is None:
        console.print(f"✗ Unknown or inactive user: {username}", style="bold red")
        raise typer.Exit(code=1)
    return principal


def require_capability(principal: Principal, capability: Capability) -> None:
    if not principal.has_capability(capability):
        raise CapabilityError(f"{principal.username} ({principal.role.value}) lacks {capability.value}")


def prompt_password(username: str) -> str:
    return typer.prompt(f"Password for {username} (final confirmation)", hide_input=True)


def show_request(request: ClearDataRequest) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Request", str(request.id))
    table.add_row("Status", request.status.value)
    table.add_row("Initiator", str(request.initiator_id))
    table.add_row("Initiator confirmations", f"{request.initiator_confirmations}/{REQUIRED_CONFIRMATIONS}")
    table.add_row("Authorizer confirmations", f"{request.authorizer_confirmations}/{REQUIRED_CONFIRMATIONS}")
    table.add_row("Created", request.created_at.strftime("%Y-%m-%d %H:%M:%S"))
    if request.completed_at:
        table.add_row("Completed", request.completed_at.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)

    if request.authorized_but_incomplete:
        console.print(
            "⚠ Authorized but not completed: erasure failed part way. Restore from the snapshot below.",
            style="bold red",
        )


def show_artifacts(artifacts: dict[str, Path]) -> None:
    table = Table(title="Artifacts")
    table.add_column("Artifact", style="cyan")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    for name, path in artifacts.items():
        size = f"{path.stat().st_size / 1024:.1f} KB" if path.is_file() else "[red]missing[/red]"
        table.add_row(name, str(path), size)
    console.print(table)


def show_requests(requests: list[ClearDataRequest], title: str) -> None:
    if not requests:
        console.print("No requests found", style="yellow")
        return

    table = Table(title=title)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Status", no_wrap=True)
    table.add_column("Initiated by", justify="right")
    table.add_column("Initiator", justify="center")
    table.add_column("Authorizer", justify="center")
    table.add_column("Created")

    for request in requests:
        status = request.status.value
        if request.authorized_but_incomplete:
            status = "[bold red]authorized, incomplete[/bold red]"
        table.add_row(
            str(request.id),
            status,
            str(request.initiator_id),
            f"{request.initiator_confirmations}/{REQUIRED_CONFIRMATIONS}",
            f"{request.authorizer_confirmations}/{REQUIRED_CONFIRMATIONS}",
            request.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def show_confirmation(outcome: ConfirmationOutcome) -> None:
    if outcome.completed:
        console.print(f"✓ Request {outcome.request.id} completed: all business data cleared", style="bold green")
        if outcome.execution is not None:
            show_execution_result(outcome.execution)
        return

    console.print(
        f"✓ Confirmation {outcome.confirmations}/{REQUIRED_CONFIRMATIONS} recorded for request {outcome.request.id}",
        style="green",
    )
    if outcome.awaiting_authorizer and outcome.request.authorizer_confirmations == 0:
        console.print("  Request is now waiting for an authorizer", style="cyan")
    elif outcome.requires_password_next:
        console.print("  Next confirmation is the final one and requires your password", style="yellow")


def show_execution_result(result: ExecutionResult) -> None:
    table = Table(title=f"Erasure result: {result.status.value}")
    table.add_column("Table", style="cyan")
    table.add_column("Result")
    table.add_column("Rows", justify="right")
    table.add_column("Error")
    for outcome in result.outcomes:
        table.add_row(
            outcome.table,
            "[green]cleared[/green]" if outcome.succeeded else "[red]failed[/red]",
            str(outcome.rows_deleted),
            outcome.error or "",
        )
    console.print(table)


def show_restore_result(result: RestoreResult) -> None:
    table = Table(title=f"Restore from {result.snapshot_id}")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_column("Error")
    for step in result.steps:
        table.add_row(step.step.value, "[green]ok[/green]" if step.succeeded else "[red]failed[/red]", step.error or "")
    console.print(table)
    if result.safety_copy:
        console.print(f"  Safety copy: {result.safety_copy}")
    console.print(f"  Store reconnected: {'yes' if result.reconnected else 'NO'}")


@app.callback()
def main(
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Config file (default: $SAFEGUARD_CONFIG or ~/.safeguard/config.yaml)"
    ),
    store_path: Optional[str] = typer.Option(None, "--store", help="SQLite store file (overrides config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """Store Safeguard - guarded data erasure, backups and restore."""
    global config

    # Load configuration
    try:
        config = Config.load(config_file)
    except (ValueError, OSError, yaml.YAMLError) as e:
        console.print(f"✗ Invalid configuration: {e}", style="bold red")
        raise typer.Exit(code=1)

    # Override with CLI options
    if store_path:
        config.store_path = store_path

    # Setup logging
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose)

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"safeguard version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"typer {typer.__version__}")


@app.command("init-db")
def init_db():
    """Create any missing store tables."""
    with handle_errors("initializing store"):
        with open_services() as services:
            init_schema(services.store)
        console.print(f"✓ Store ready at {config.store_path}", style="green")


# User commands group
user_app = typer.Typer(help="Account commands")
app.add_typer(user_app, name="user")


@user_app.command("add")
def user_add(
    username: str = typer.Argument(..., help="Login name"),
    role: str = typer.Option(..., "--role", "-r", help="Account role (superadmin, admin, manager, storekeeper, sales)"),
    email: Optional[str] = typer.Option(None, "--email", help="Email address"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create an account in the store."""
    with handle_errors("adding user"):
        try:
            account_role = Role(role.lower())
        except ValueError:
            console.print(f"✗ Unknown role: {role}", style="bold red")
            raise typer.Exit(code=1)

        with open_services() as services:
            init_schema(services.store)
            if services.directory.find_by_username(username) is not None:
                console.print(f"✗ User '{username}' already exists", style="bold red")
                raise typer.Exit(code=1)
            principal = services.directory.add_user(username, password, account_role, email=email)
        console.print(f"✓ Created {principal.role.value} '{principal.username}' (id {principal.principal_id})", style="green")


# Clear-data commands group
clear_app = typer.Typer(help="Two-party guarded erasure of all business data")
app.add_typer(clear_app, name="clear")


@clear_app.command("initiate")
def clear_initiate(
    user: str = typer.Option(..., "--user", "-u", help="Initiating user"),
):
    """Snapshot the store, write a content report and open a clear-data request."""
    with handle_errors("initiating clear-data request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.initiate(principal)

        console.print(
            Panel(
                f"Request [bold]{request.id}[/bold] created.\n"
                f"Snapshot: {request.snapshot_ref}\n"
                f"Report:   {request.report_ref}\n\n"
                f"Confirm {REQUIRED_CONFIRMATIONS} times with: safeguard clear confirm {request.id} --user {user}",
                title="Clear-data request",
                border_style="yellow",
            )
        )


@clear_app.command("confirm")
def clear_confirm(
    request_id: int = typer.Argument(..., help="Request ID"),
    user: str = typer.Option(..., "--user", "-u", help="Initiating user"),
    password: Optional[str] = typer.Option(None, "--password", help="Password (prompted when required)"),
):
    """Add one initiator confirmation."""
    with handle_errors("confirming request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.get_request(request_id, principal)
            if password is None and request.initiator_confirmations == REQUIRED_CONFIRMATIONS - 1:
                password = prompt_password(user)
            outcome = services.quorum.confirm_as_initiator(request_id, principal, password=password)
        show_confirmation(outcome)


@clear_app.command("cancel")
def clear_cancel(
    request_id: int = typer.Argument(..., help="Request ID"),
    user: str = typer.Option(..., "--user", "-u", help="Initiating user"),
):
    """Cancel a pending request."""
    with handle_errors("cancelling request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.cancel_by_initiator(request_id, principal)
        console.print(f"✓ Request {request.id} cancelled", style="green")


@clear_app.command("pending")
def clear_pending(
    user: str = typer.Option(..., "--user", "-u", help="Authorizing user"),
):
    """List requests waiting for an authorizer."""
    with handle_errors("listing pending requests"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            requests = services.quorum.list_awaiting_authorizer(principal)
        show_requests(requests, "Awaiting authorizer")


@clear_app.command("approve")
def clear_approve(
    request_id: int = typer.Argument(..., help="Request ID"),
    user: str = typer.Option(..., "--user", "-u", help="Authorizing user"),
    password: Optional[str] = typer.Option(None, "--password", help="Password (prompted when required)"),
):
    """Add one authorizer confirmation. The final one clears all business data."""
    with handle_errors("approving request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.get_request(request_id, principal)
            if password is None and request.authorizer_confirmations == REQUIRED_CONFIRMATIONS - 1:
                password = prompt_password(user)
            outcome = services.quorum.confirm_as_authorizer(request_id, principal, password=password)
        show_confirmation(outcome)


@clear_app.command("reject")
def clear_reject(
    request_id: int = typer.Argument(..., help="Request ID"),
    user: str = typer.Option(..., "--user", "-u", help="Authorizing user"),
):
    """Reject a request waiting for an authorizer."""
    with handle_errors("rejecting request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.reject_by_authorizer(request_id, principal)
        console.print(f"✓ Request {request.id} rejected", style="green")


@clear_app.command("status")
def clear_status(
    request_id: int = typer.Argument(..., help="Request ID"),
    user: str = typer.Option(..., "--user", "-u", help="Requesting user"),
):
    """Show one request."""
    with handle_errors("reading request"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            request = services.quorum.get_request(request_id, principal)
            artifacts = services.quorum.artifact_paths(request_id, principal)
        show_request(request)
        show_artifacts(artifacts)


@clear_app.command("list")
def clear_list(
    user: str = typer.Option(..., "--user", "-u", help="Initiating user"),
):
    """List requests created by the user."""
    with handle_errors("listing requests"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            requests = services.quorum.list_requests(principal)
        show_requests(requests, f"Clear-data requests by {user}")


# Backup commands group
backup_app = typer.Typer(help="Manual backup management")
app.add_typer(backup_app, name="backup")


@backup_app.command("create")
def backup_create(
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
):
    """Take a manual backup of the store."""
    with handle_errors("creating backup"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            require_capability(principal, Capability.MANAGE_BACKUPS)
            info = services.snapshots.create_backup()
            services.audit.record(
                AuditAction.BACKUP_CREATED,
                principal_id=principal.principal_id,
                resource_type="backup",
                resource_id=info.snapshot_id,
                detail={"size": info.size},
            )
        console.print(f"✓ Backup created: {info.snapshot_id} ({info.size / 1024 / 1024:.2f} MB)", style="green")


@backup_app.command("list")
def backup_list(
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
):
    """List snapshots, backups and safety copies."""
    with handle_errors("listing backups"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            snapshots = services.restorer.list_snapshots(principal)

        if not snapshots:
            console.print("No backups found", style="yellow")
            return

        table = Table(title="Backups")
        table.add_column("ID", style="cyan")
        table.add_column("Kind", no_wrap=True)
        table.add_column("Size (MB)", justify="right")
        table.add_column("Created")
        for info in snapshots:
            table.add_row(
                info.snapshot_id,
                info.kind.name.lower().replace("_", "-"),
                f"{info.size / 1024 / 1024:.2f}",
                info.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        console.print(table)


@backup_app.command("delete")
def backup_delete(
    snapshot_id: str = typer.Argument(..., help="Backup ID"),
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Delete a manual backup."""
    with handle_errors("deleting backup"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            require_capability(principal, Capability.MANAGE_BACKUPS)
            services.snapshots.resolve(snapshot_id)

            if not force and not typer.confirm(f"Delete backup '{snapshot_id}'?", default=False):
                console.print("Cancelled", style="yellow")
                raise typer.Exit(code=0)

            info = services.snapshots.delete_snapshot(snapshot_id)
            services.audit.record(
                AuditAction.BACKUP_DELETED,
                principal_id=principal.principal_id,
                resource_type="backup",
                resource_id=info.snapshot_id,
                detail={"size": info.size},
            )
        console.print(f"✓ Deleted backup {info.snapshot_id}", style="green")


@backup_app.command("prune")
def backup_prune(
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
    days: Optional[int] = typer.Option(None, "--days", min=0, help="Retention in days (default: from config)"),
):
    """Delete manual backups older than the retention window."""
    with handle_errors("pruning backups"):
        retention = days if days is not None else config.backup_retention_days
        with open_services() as services:
            principal = resolve_principal(services, user)
            require_capability(principal, Capability.MANAGE_BACKUPS)
            summary = services.snapshots.prune_backups(retention)
            if summary["deleted_count"]:
                services.audit.record(
                    AuditAction.BACKUP_DELETED,
                    principal_id=principal.principal_id,
                    resource_type="backup",
                    detail={"retention_days": retention, **summary},
                )

        console.print(
            f"✓ Deleted {summary['deleted_count']} backups older than {retention} days, "
            f"freed {summary['freed_space'] / 1024 / 1024:.2f} MB ({summary['total_backups']} kept)",
            style="green",
        )


@app.command()
def restore(
    snapshot_id: str = typer.Argument(..., help="Snapshot or backup ID to restore"),
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Replace the live store with a snapshot. A safety copy is taken first."""
    with handle_errors("restoring store"):
        with open_services() as services:
            principal = resolve_principal(services, user)

            if not force and not typer.confirm(
                f"Replace the live store with '{snapshot_id}'? Current data will be overwritten", default=False
            ):
                console.print("Cancelled", style="yellow")
                raise typer.Exit(code=0)

            result = services.restorer.restore(snapshot_id, principal)

        console.print(f"✓ Store restored from {snapshot_id}", style="bold green")
        console.print(f"  Safety copy: {result.safety_copy}")


@app.command()
def audit(
    user: str = typer.Option(..., "--user", "-u", help="Acting user"),
    request_id: Optional[int] = typer.Option(None, "--request", help="Only entries for this clear-data request"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries to show"),
    journal: bool = typer.Option(
        False, "--journal", help="Read the on-disk journal, which keeps entries from before any restore"
    ),
    since: Optional[datetime] = typer.Option(None, "--since", help="Journal entries at or after this time (UTC)"),
    until: Optional[datetime] = typer.Option(None, "--until", help="Journal entries at or before this time (UTC)"),
):
    """Show recent safeguard audit entries."""
    if (since or until) and not journal:
        console.print("✗ --since and --until require --journal", style="bold red")
        raise typer.Exit(code=1)

    with handle_errors("reading audit log"):
        with open_services() as services:
            principal = resolve_principal(services, user)
            if not any(principal.has_capability(c) for c in Capability):
                raise CapabilityError(f"{principal.username} ({principal.role.value}) cannot read the audit log")

            if journal:
                if services.audit.journal is None:
                    console.print("✗ Audit journal is disabled (audit_journal_dir is empty)", style="bold red")
                    raise typer.Exit(code=1)
                docs = services.audit.journal.query(
                    since=since,
                    until=until,
                    resource_type="clear_data_request" if request_id is not None else None,
                    resource_id=request_id,
                )
                entries = [AuditLogEntry.from_dict(doc) for doc in reversed(docs[-limit:])] if limit else []
            elif request_id is not None:
                entries = services.audit.list_entries("clear_data_request", request_id, limit=limit)
            else:
                entries = services.audit.list_entries(limit=limit)

        if not entries:
            console.print("No audit entries found", style="yellow")
            return

        table = Table(title="Audit journal" if journal else "Audit log")
        table.add_column("Time", no_wrap=True)
        table.add_column("Action", style="cyan", no_wrap=True)
        table.add_column("User", justify="right")
        table.add_column("Resource")
        table.add_column("Detail")
        for entry in entries:
            table.add_row(
                entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                entry.action.value,
                str(entry.principal_id) if entry.principal_id is not None else "",
                f"{entry.resource_type or ''} {entry.resource_id or ''}".strip(),
                ", ".join(f"{k}={v}" for k, v in entry.detail.items() if not isinstance(v, (list, dict))),
            )
        console.print(table)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
