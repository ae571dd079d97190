"""
moodstore CLI - operator commands for the document store and ledger.

Commands:
- moodstore init → Scaffold the data directory and the ledger repository
- moodstore status → Show ledger branch, last commit and pending changes
- moodstore commit "message" → Snapshot pending changes
- moodstore stats → Tenant, check-in and panic event counts
- moodstore tenants → List tenants
- moodstore checkins TENANT_ID → List a tenant's check-ins
- moodstore panic-events → Show the panic event log
"""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from moodstore.core.config import setup_logging
from moodstore.core.errors import StoreError, VersionControlError
from moodstore.storage.documents import DocumentStore
from moodstore.storage.ledger import VersionLedger

app = typer.Typer(
    name="moodstore",
    help="moodstore - mood tracker document store and audit ledger",
    no_args_is_help=True,
)
console = Console()

DataDirOption = typer.Option(None, "--data-dir", help="Data directory (default: MOODSTORE_DATA_DIR)")
RepoRootOption = typer.Option(None, "--repo-root", help="Ledger repository root (default: MOODSTORE_REPO_ROOT)")


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


@app.command()
def init(
    data_dir: Optional[Path] = DataDirOption,
    repo_root: Optional[Path] = RepoRootOption,
):
    """Create the data directory tree and the ledger repository."""
    setup_logging()

    store = DocumentStore(data_dir)
    try:
        store.ensure_structure()
        created = VersionLedger(repo_root, store.data_dir).init_repository_if_needed()
    except StoreError as e:
        _fail(str(e))

    state = "initialised" if created else "already present"
    console.print(Panel(
        f"[green]✓ Data directory ready[/green] at {store.data_dir}\n"
        f"Ledger repository {state}",
        title="moodstore",
    ))


@app.command()
def status(
    data_dir: Optional[Path] = DataDirOption,
    repo_root: Optional[Path] = RepoRootOption,
):
    """Show the ledger status."""
    setup_logging()

    try:
        ledger_status = VersionLedger(repo_root, data_dir).status()
    except VersionControlError as e:
        _fail(str(e))

    console.print(f"Branch: [cyan]{ledger_status.branch}[/cyan]")
    if ledger_status.last_commit:
        commit = ledger_status.last_commit
        console.print(f"Last commit: {commit.hash[:10]} {commit.message}")
        console.print(f"  [dim]{commit.timestamp:%Y-%m-%d %H:%M} UTC[/dim]")
    else:
        console.print("[dim]No commits yet[/dim]")

    if ledger_status.pending_changes:
        console.print("Pending changes: [yellow]yes[/yellow]")
    else:
        console.print("Pending changes: [green]none[/green]")


@app.command()
def commit(
    message: str = typer.Argument(..., help="Commit message"),
    data_dir: Optional[Path] = DataDirOption,
    repo_root: Optional[Path] = RepoRootOption,
):
    """Snapshot pending changes of the data directory."""
    setup_logging()

    try:
        commit_hash = VersionLedger(repo_root, data_dir).commit_pending_changes(message)
    except VersionControlError as e:
        _fail(str(e))

    if commit_hash:
        console.print(f"[green]✓ Committed {commit_hash[:10]}[/green]")
    else:
        console.print("[dim]Nothing to commit[/dim]")


@app.command()
def stats(data_dir: Optional[Path] = DataDirOption):
    """Show document counts."""
    setup_logging()

    store = DocumentStore(data_dir)
    try:
        tenant_ids = store.list_tenant_ids()
        total_checkins = store.count_all_checkins()
        panic_events = len(store.list_panic_events())
    except StoreError as e:
        _fail(str(e))

    console.print("\nDocument counts:")
    console.print(f"  tenants: {len(tenant_ids)}")
    console.print(f"  check-ins: {total_checkins}")
    console.print(f"  panic events: {panic_events}")


@app.command()
def tenants(data_dir: Optional[Path] = DataDirOption):
    """List tenants with their check-in and panic event counts."""
    setup_logging()

    store = DocumentStore(data_dir)
    try:
        tenant_ids = store.list_tenant_ids()
    except StoreError as e:
        _fail(str(e))

    if not tenant_ids:
        console.print("[dim]No tenants found[/dim]")
        return

    table = Table(title="Tenants")
    table.add_column("Tenant", style="dim")
    table.add_column("Display Name", style="cyan")
    table.add_column("Check-ins", style="green")
    table.add_column("Panic Events", style="red")

    for tenant_id in tenant_ids:
        try:
            display_name = store.load_tenant_config(tenant_id).display_name
        except StoreError:
            display_name = "-"
        try:
            checkin_count = store.count_tenant_checkins(tenant_id)
            panic_count = store.count_tenant_panic_events(tenant_id)
        except StoreError as e:
            _fail(str(e))
        table.add_row(tenant_id, display_name, str(checkin_count), str(panic_count))

    console.print(table)


@app.command()
def checkins(
    tenant_id: str = typer.Argument(..., help="Tenant id"),
    limit: int = typer.Option(20, help="Number of check-ins to show"),
    data_dir: Optional[Path] = DataDirOption,
):
    """List a tenant's check-ins, newest first."""
    setup_logging()

    try:
        items = DocumentStore(data_dir).list_checkins(tenant_id)
    except StoreError as e:
        _fail(str(e))

    if not items:
        console.print("[dim]No check-ins[/dim]")
        return

    table = Table(title=f"Check-ins of {tenant_id}")
    table.add_column("When", style="dim")
    table.add_column("Mood", style="cyan")
    table.add_column("Intensity", style="magenta")
    table.add_column("Safe", style="green")
    table.add_column("Notified", style="yellow")

    for item in items[:limit]:
        table.add_row(
            f"{item.timestamp:%Y-%m-%d %H:%M}",
            str(item.mood),
            f"{item.intensity}/10",
            "yes" if item.feels_safe else "[red]no[/red]",
            ", ".join(item.auto_notifications.notified_contacts) or "-",
        )

    console.print(table)

    if len(items) > limit:
        console.print(f"[dim]...and {len(items) - limit} more[/dim]")


@app.command("panic-events")
def panic_events(
    limit: int = typer.Option(20, help="Number of events to show"),
    data_dir: Optional[Path] = DataDirOption,
):
    """Show the panic event log, newest first."""
    setup_logging()

    try:
        events = DocumentStore(data_dir).list_panic_events()
    except StoreError as e:
        _fail(str(e))

    if not events:
        console.print("[dim]No panic events[/dim]")
        return

    table = Table(title="Panic Events")
    table.add_column("When", style="dim")
    table.add_column("Tenant", style="cyan")
    table.add_column("Mood", style="magenta")
    table.add_column("Notified", style="yellow")

    for event in events[:limit]:
        table.add_row(
            f"{event.timestamp:%Y-%m-%d %H:%M}",
            event.tenant_id,
            str(event.mood_at_panic) if event.mood_at_panic is not None else "-",
            ", ".join(event.notified_contacts) or "-",
        )

    console.print(table)


if __name__ == "__main__":
    app()
