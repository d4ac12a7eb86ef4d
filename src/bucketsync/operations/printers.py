"""
Human-readable output formatting.

Centralizes all CLI output formatting (listings, plans, session summaries,
live progress) so CLI commands stay thin and focused.
"""
from __future__ import annotations

from typing import List, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from ..runtime_types import RemoteObject, SessionProgress, SyncPlan

_console = Console()
_err_console = Console(stderr=True)


def print_listing(objects: List[RemoteObject], verbose: bool = False) -> None:
    """
    Print a one-level listing, folders first.

    Args:
        objects: Entries returned by ``list_children`` or ``list_buckets``
        verbose: Show digests and modification times
    """
    if not objects:
        _console.print("[dim]No objects found[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    if verbose:
        table.add_column("Modified")
        table.add_column("Digest", style="dim")

    for obj in objects:
        name = obj.display_name
        size = "" if obj.is_container else _format_bytes(obj.size)
        row = [name, size]
        if verbose:
            modified = obj.last_modified.isoformat(timespec="seconds") if obj.last_modified else ""
            row += [modified, obj.digest]
        table.add_row(*row)

    _console.print(table)


def print_plan(plan: SyncPlan, verbose: bool = False) -> None:
    """
    Print a sync plan (dry run).

    Args:
        plan: Plan computed by the sync planner
        verbose: Also list unchanged keys
    """
    _console.print(
        f"[bold]To download:[/] {len(plan.to_download)} files "
        f"({_format_bytes(plan.total_bytes)})"
    )
    _console.print(f"[bold]Unchanged:[/] {len(plan.unchanged)} files")

    if plan.to_download:
        table = Table(title="Would download")
        table.add_column("Key", style="cyan")
        table.add_column("Size", justify="right")
        for obj in plan.to_download:
            table.add_row(obj.key, _format_bytes(obj.size))
        _console.print(table)

    if verbose and plan.unchanged:
        for obj in plan.unchanged:
            _console.print(f"[dim]unchanged: {obj.key}[/]")


def print_session_summary(progress: SessionProgress, dest: str) -> None:
    """
    Print the outcome of a finished download session.

    Args:
        progress: Final session snapshot
        dest: Destination shown to the user
    """
    if progress.total_files == 0:
        _console.print(f"Everything up to date in {dest}")
        return
    _console.print(
        f"Downloaded {progress.completed_files} of {progress.total_files} files "
        f"({_format_bytes(progress.transferred_bytes)}) to {dest}"
    )


def print_failures(progress: Optional[SessionProgress], max_display: int = 20) -> None:
    """
    Print the files that failed in a session.

    Args:
        progress: Final session snapshot (None prints nothing)
        max_display: Maximum number of failures to display
    """
    if progress is None:
        return
    failed = progress.failed
    if not failed:
        return

    table = Table(title=f"Failed ({len(failed)})")
    table.add_column("Key", style="red")
    table.add_column("Error", style="yellow")
    for fp in failed[:max_display]:
        table.add_row(fp.key, fp.error or "")
    _err_console.print(table)
    if len(failed) > max_display:
        _err_console.print(f"[dim]… and {len(failed) - max_display} more[/]")


def print_error(exc: BaseException) -> None:
    """Print an error message to stderr."""
    _err_console.print(f"[bold red]Error:[/] {exc}", highlight=False)


class SessionProgressBar:
    """
    Live progress bar fed from session snapshots.

    Used as a context manager; ``update`` is passed to the orchestrator as
    the snapshot subscriber and may be called from worker threads. In CI mode
    nothing is drawn.
    """

    def __init__(self, description: str, ci: bool = False):
        self.description = description
        self.ci = ci
        self._progress: Optional[Progress] = None
        self._task = None

    def __enter__(self) -> SessionProgressBar:
        if not self.ci:
            self._progress = Progress(
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                TimeRemainingColumn(),
                TextColumn("{task.fields[files]}"),
                console=_err_console,
                transient=True,
            )
            self._progress.start()
            self._task = self._progress.add_task(self.description, total=None, files="")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._progress is not None:
            self._progress.stop()

    def update(self, snapshot: SessionProgress) -> None:
        if self._progress is None:
            return
        settled = snapshot.completed_files + snapshot.failed_files + snapshot.cancelled_files
        self._progress.update(
            self._task,
            total=snapshot.total_bytes or None,
            completed=snapshot.transferred_bytes,
            files=f"{settled}/{snapshot.total_files} files",
        )


def _format_bytes(size_bytes: int) -> str:
    """
    Format byte count as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "42 KB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
