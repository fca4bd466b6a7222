"""Typer CLI for the household cloud transfer service."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from home_cloud_transfer.api.app import create_app
from home_cloud_transfer.config.settings import AppSettings, load_settings
from home_cloud_transfer.models.state import SessionStatus
from home_cloud_transfer.models.types import AuthenticateRequest, CategoryResult, ResultsReport
from home_cloud_transfer.source.reader import SnapshotEntitySource
from home_cloud_transfer.storage.ledger import TransferLedger
from home_cloud_transfer.transfer.errors import TransferError
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator
from home_cloud_transfer.utils.logging import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Resumable transfer of a self-hosted household data set into the cloud service.",
)

_POLL_INTERVAL_S = 0.5


def load_app_settings(*, env_file: Path | None) -> AppSettings:
    """Load settings, exiting with code 2 on invalid configuration.

    Args:
        env_file: Optional path to a .env file to load in addition to environment variables.

    Returns:
        Validated application settings.
    """
    try:
        return load_settings(env_file=env_file)
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from None


def open_ledger(settings: AppSettings) -> TransferLedger:
    """Open the ledger database, creating the storage directory if needed."""
    settings.storage.root_dir.mkdir(parents=True, exist_ok=True)
    ledger = TransferLedger(sqlite_path=settings.storage.sqlite_path)
    ledger.init_schema()
    return ledger


def build_orchestrator(settings: AppSettings, ledger: TransferLedger) -> TransferOrchestrator:
    source = SnapshotEntitySource(path=settings.storage.snapshot_path)
    return TransferOrchestrator.from_settings(settings, ledger=ledger, source=source)


def results_table(results: list[CategoryResult]) -> Table:
    """Render per-category results as a rich table."""
    table = Table(title="Transfer results")
    table.add_column("Category")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Sub-resource failures", justify="right")
    for result in results:
        table.add_row(
            result.category,
            str(result.created_count),
            str(result.skipped_count),
            str(result.failed_count),
            str(result.subresource_failed_count),
        )
    return table


async def _run_transfer(
    *,
    settings: AppSettings,
    auth: AuthenticateRequest | None,
    include_history: bool,
    resume: bool,
    console: Console,
) -> SessionStatus | None:
    """Authenticate, start the background run and render its progress until it ends."""
    ledger = open_ledger(settings)
    orchestrator = build_orchestrator(settings, ledger)
    try:
        if auth is not None:
            with console.status("[bold green]Authenticating with the cloud...[/bold green]"):
                response = await orchestrator.authenticate(auth)
            if not response.success:
                console.print(f"[red]✘[/red] Authentication failed: {response.error_message}")
                return None
            console.print(f"[green]✔[/green] Authenticated as {response.cloud_user_email}")

        session_id = await orchestrator.start_transfer(
            include_history=include_history,
            resume=resume,
        )
        console.print(f"[bold blue]Transfer session[/bold blue] {session_id}")

        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            expand=True,
        )
        with progress:
            overall_task = progress.add_task("[bold magenta]Overall Progress", total=100)
            while orchestrator.is_running:
                snapshot = orchestrator.get_current_progress()
                if snapshot is not None:
                    label = snapshot.current_category or "Starting"
                    if snapshot.current_item_name:
                        label = f"{label}: {snapshot.current_item_name}"
                    progress.update(
                        overall_task,
                        completed=snapshot.overall_progress_percent,
                        description=f"[cyan]{label}",
                    )
                await asyncio.sleep(_POLL_INTERVAL_S)
            await orchestrator.wait()
            final = orchestrator.get_current_progress()
            if final is not None:
                progress.update(overall_task, completed=final.overall_progress_percent)

        console.print(results_table(orchestrator.get_results(session_id)))
        return final.session_status if final is not None else None
    finally:
        await orchestrator.aclose()
        ledger.close()


@app.command("transfer")
def transfer_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
    email: str | None = typer.Option(
        default=None,
        help="Cloud account email. Optional with --resume when a credential is stored.",
    ),
    password: str | None = typer.Option(
        default=None,
        envvar="HOME_CLOUD_PASSWORD",
        help="Cloud account password (prompted for when omitted).",
    ),
    register: bool = typer.Option(default=False, help="Create the cloud account first."),
    first_name: str | None = typer.Option(default=None, help="First name (with --register)."),
    last_name: str | None = typer.Option(default=None, help="Last name (with --register)."),
    include_history: bool = typer.Option(
        default=False,
        help="Also transfer history-only categories (chore logs, maintenance and usage logs).",
    ),
    resume: bool = typer.Option(
        default=False,
        help="Continue the most recent incomplete session instead of starting a new one.",
    ),
) -> None:
    """Transfer the local household data set into the cloud service.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        email: Cloud account email.
        password: Cloud account password.
        register: Whether to register a new account instead of logging in.
        first_name: First name used for registration.
        last_name: Last name used for registration.
        include_history: Whether history-only categories are transferred.
        resume: Whether to resume the most recent incomplete session.
    """
    settings = load_app_settings(env_file=env_file)
    configure_logging(settings=settings.logging)

    if email is None and not resume:
        typer.echo("--email is required unless resuming a session.", err=True)
        raise typer.Exit(code=2)

    auth: AuthenticateRequest | None = None
    if email is not None:
        if password is None:
            password = typer.prompt("Cloud password", hide_input=True)
        try:
            auth = AuthenticateRequest(
                email=email,
                password=password,
                is_registration=register,
                first_name=first_name,
                last_name=last_name,
            )
        except ValidationError as exc:
            typer.echo(f"Invalid credentials:\n{exc}", err=True)
            raise typer.Exit(code=2) from None

    console = Console()
    try:
        status = asyncio.run(
            _run_transfer(
                settings=settings,
                auth=auth,
                include_history=include_history,
                resume=resume,
                console=console,
            ),
        )
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None
    except TransferError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from None

    if status == SessionStatus.completed:
        console.print("[bold green]Transfer completed.[/bold green]")
        return
    console.print(f"[bold red]Transfer ended with status {status or 'unknown'}.[/bold red]")
    raise typer.Exit(code=1)


@app.command("summary")
def summary_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
) -> None:
    """Print per-category counts of the local household data set.

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    source = SnapshotEntitySource(path=settings.storage.snapshot_path)
    summary = asyncio.run(source.summary())
    for name, count in summary.model_dump(by_alias=True).items():
        typer.echo(f"{name}: {count}")


@app.command("session")
def session_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
) -> None:
    """Show whether an incomplete session can be resumed.

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    ledger = open_ledger(settings)
    try:
        info = build_orchestrator(settings, ledger).get_session_info()
    finally:
        ledger.close()

    if not info.has_incomplete_session:
        typer.echo("No incomplete session.")
        return
    typer.echo(f"Session: {info.session_id}")
    typer.echo(f"Started: {info.started_at.isoformat() if info.started_at else '-'}")
    typer.echo(f"Current category: {info.current_category or '-'}")


@app.command("report")
def report_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
    session_id: UUID | None = typer.Option(
        default=None,
        help="Session to report (defaults to the most recent session).",
    ),
) -> None:
    """Export a per-category results report (JSON) from the ledger.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        session_id: Session to report.
    """
    settings = load_app_settings(env_file=env_file)
    ledger = open_ledger(settings)
    try:
        orchestrator = build_orchestrator(settings, ledger)
        session = orchestrator.resolve_session(session_id)
        categories = orchestrator.get_results(session.id) if session is not None else []
    finally:
        ledger.close()

    if session_id is not None and session is None:
        typer.echo(f"Unknown session: {session_id}", err=True)
        raise typer.Exit(code=1)

    report = ResultsReport(
        created_at=datetime.now(tz=UTC),
        sqlite_path=str(settings.storage.sqlite_path),
        session_id=session.id if session is not None else None,
        session_status=session.status if session is not None else None,
        categories=categories,
    )

    settings.storage.reports_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.created_at.strftime("%Y%m%dT%H%M%SZ")
    out_path = settings.storage.reports_dir / f"transfer-{stamp}.json"
    out_path.write_text(report.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
    typer.echo(f"Wrote {out_path}")


@app.command("serve")
def serve_cmd(
    *,
    env_file: Path | None = typer.Option(
        default=None,
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
) -> None:
    """Serve the transfer HTTP API.

    Args:
        env_file: Optional path to a .env file to load configuration from.
    """
    settings = load_app_settings(env_file=env_file)
    configure_logging(settings=settings.logging)
    if settings.server.admin_api_key is None:
        logger.warning("HCT_SERVER__ADMIN_API_KEY is not set; the API is unauthenticated")

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )
