"""B2 upload CLI - Main commands."""
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

app = typer.Typer(
    name="b2py",
    help="Resumable large-file uploads to Backblaze B2",
    add_completion=False
)
console = Console()


def run_async(coro):
    """Run async function."""
    return asyncio.run(coro)


def make_client():
    """Client configured from B2_* environment variables."""
    from b2py import B2Client
    from b2py.core.api import APIConfig

    config = APIConfig.from_env()
    missing = config.b2.missing()
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        raise typer.Exit(1)
    return B2Client(config)


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for every command."""
    from b2py import setup_logging

    logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s")
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def upload(
    file_path: Path = typer.Argument(..., help="Local file to upload", exists=True, dir_okay=False),
    name: str = typer.Option(None, "--name", "-n", help="Destination object name"),
    retries: int = typer.Option(3, "--retries", "-r", help="Whole-file attempts"),
    resume_from: Path = typer.Option(None, "--resume-from", help="Resume state JSON from an earlier run"),
    state_file: Path = typer.Option(None, "--state-file", help="Where to save resume state on failure"),
):
    """Upload a file, resuming on failure."""
    from b2py.core.exceptions import B2Exception
    from b2py.core.upload.models import ProgressSnapshot, ResumeState

    resume_state = None
    if resume_from:
        resume_state = ResumeState.from_json(resume_from.read_text())
        console.print(
            f"[cyan]Resuming session {resume_state.session_id} "
            f"({len(resume_state.completed_parts)} parts done)[/cyan]"
        )

    async def do_upload():
        async with make_client() as b2:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[speed]}"),
                console=console
            ) as progress:
                task = progress.add_task(f"Uploading {file_path.name}", total=100, speed="")

                def on_progress(snapshot: ProgressSnapshot):
                    event = snapshot.to_event()
                    progress.update(task, completed=snapshot.percent, speed=event['uploadSpeed'])

                try:
                    result = await b2.upload_file_with_retry(
                        file_path,
                        name or (resume_state.destination_name if resume_state else file_path.name),
                        max_retries=retries,
                        progress_callback=on_progress,
                        resume_state=resume_state,
                        keep_session=state_file is not None,
                    )
                except B2Exception as e:
                    console.print(f"[red]Upload failed: {e}[/red]")
                    state = getattr(e, 'resume_state', None)
                    if state is not None and state_file:
                        state_file.write_text(state.to_json())
                        console.print(f"Resume state saved to: {state_file}")
                    raise typer.Exit(1)

            console.print(f"[green]Uploaded:[/green] {result.destination_name}")
            console.print(f"File ID: {result.file_id}")
            console.print(f"URL: {result.url}")
            console.print(f"Size: {result.file_size:,} bytes in {result.elapsed:.1f}s")

    run_async(do_upload())


def _sessions_table(sessions) -> Table:
    from b2py.core.logging import format_duration, format_size

    table = Table()
    table.add_column("#", justify="right", style="dim")
    table.add_column("Session ID", style="cyan")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Started")
    table.add_column("Age", justify="right")

    for index, session in enumerate(sessions, 1):
        started = datetime.fromtimestamp(session.started_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(
            str(index),
            session.session_id,
            session.destination_name or "Unknown",
            format_size(session.file_size),
            started,
            format_duration(session.age_hours),
        )
    return table


@app.command(name="list")
def list_unfinished():
    """List unfinished large-file uploads."""
    from b2py.core.logging import format_size

    async def do_list():
        async with make_client() as b2:
            sessions = await b2.list_unfinished()

        if not sessions:
            console.print("[green]No unfinished uploads found[/green]")
            return

        console.print(_sessions_table(sessions))
        total = sum(s.file_size or 0 for s in sessions)
        console.print(f"Total: {len(sessions)} uploads, estimated {format_size(total)} storage usage")

    run_async(do_list())


@app.command()
def cleanup(
    older_than: float = typer.Option(24, "--older-than", "-o", help="Cancel uploads older than this many hours"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be canceled"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
):
    """Cancel unfinished uploads older than a cutoff."""

    def confirm(candidates: List) -> bool:
        console.print(_sessions_table(candidates))
        return typer.confirm(f"Cancel {len(candidates)} unfinished uploads?")

    async def do_cleanup():
        async with make_client() as b2:
            report = await b2.cleanup_older_than(older_than, dry_run=dry_run, force=force, confirm=confirm)

        if not report.candidates:
            console.print(f"[green]No uploads older than {older_than:g} hours[/green]")
            return

        if report.dry_run:
            console.print(_sessions_table(report.candidates))
            console.print(f"[yellow]Dry run: {len(report.candidates)} uploads would be canceled[/yellow]")
            return

        if report.aborted:
            console.print("[yellow]Cleanup cancelled[/yellow]")
            return

        console.print(f"[green]Canceled {len(report.succeeded)} uploads[/green]")
        for session_id, error in report.failed.items():
            console.print(f"[red]Failed {session_id}: {error}[/red]")
        if report.failed:
            raise typer.Exit(1)

    run_async(do_cleanup())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
