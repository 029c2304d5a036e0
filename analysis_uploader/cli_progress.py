"""Console rendering and progress helpers for the analysis-upload CLI."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .errors import FetchError, ProcessingError, describe_exception
from .models import AnalysisResult, OrchestratorSnapshot, OrchestratorState

console = Console()

PROCESSING_LABELS = {
    "queued": "Queued for processing",
    "processing": "Analyzing video",
    "complete": "Fetching analysis",
}


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]analysis-upload[/bold green]",
        subtitle="[dim]exercise video analysis[/dim]",
        border_style="blue",
    )
    console.print(panel)


class JobProgressDisplay:
    """
    Snapshot observer: transfer bar while uploading, spinner while processing.

    Processing has no real progress, so it only shows the remote state and
    the elapsed time.
    """

    def __init__(self):
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=console,
        )
        self._spinner = Progress(
            SpinnerColumn(),
            TextColumn("[bold magenta]{task.fields[label]}", justify="left"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._upload_task: Optional[TaskID] = None
        self._spinner_task: Optional[TaskID] = None
        self._state: Optional[OrchestratorState] = None

    def __call__(self, snapshot: OrchestratorSnapshot) -> None:
        self.update(snapshot)

    def update(self, snapshot: OrchestratorSnapshot) -> None:
        state = snapshot.state
        if state is not self._state:
            self._leave(self._state)
            self._enter(state, snapshot)
            self._state = state

        if state is OrchestratorState.UPLOADING and snapshot.progress and self._upload_task is not None:
            self._progress.update(
                self._upload_task,
                completed=snapshot.progress.bytes_sent,
                total=snapshot.progress.total_bytes,
            )
        elif state is OrchestratorState.PROCESSING and snapshot.status and self._spinner_task is not None:
            label = PROCESSING_LABELS.get(snapshot.status.state.value, "Analyzing video")
            self._spinner.update(self._spinner_task, label=label)

    def _enter(self, state: OrchestratorState, snapshot: OrchestratorSnapshot) -> None:
        if state is OrchestratorState.SELECTING and snapshot.local_file_ref:
            console.print(f"[cyan]Selected:[/cyan] {snapshot.local_file_ref.name}")
        elif state is OrchestratorState.UPLOADING:
            total = snapshot.progress.total_bytes if snapshot.progress else 0
            console.print(f"[cyan]Uploading:[/cyan] job {snapshot.job_id} ({_human_size(total)})")
            self._progress.start()
            self._upload_task = self._progress.add_task("upload", label="Uploading", total=total)
        elif state is OrchestratorState.PROCESSING:
            self._spinner.start()
            self._spinner_task = self._spinner.add_task("processing", label="Waiting for processing")

    def _leave(self, state: Optional[OrchestratorState]) -> None:
        if state is OrchestratorState.UPLOADING:
            self._progress.stop()
            self._upload_task = None
        elif state is OrchestratorState.PROCESSING:
            self._spinner.stop()
            self._spinner_task = None

    def close(self) -> None:
        self._leave(self._state)
        self._state = None


def _metrics_table(payload: Dict[str, Any]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    metrics = payload.get("metrics")
    if isinstance(metrics, dict):
        for key, value in metrics.items():
            rendered = f"{value:.2f}" if isinstance(value, float) else str(value)
            table.add_row(key.replace("_", " "), rendered)

    windows = payload.get("tension_windows")
    if isinstance(windows, list):
        table.add_row("reps", str(len(windows)))
    return table


def render_result(snapshot: OrchestratorSnapshot, as_json: bool = False) -> None:
    """Terminal success view or terminal error view with a readable reason."""
    result: Optional[AnalysisResult] = snapshot.result

    if as_json:
        body: Dict[str, Any] = {"state": snapshot.state.value, "job_id": snapshot.job_id}
        if result is not None:
            body["result"] = {"status": result.status, **result.payload}
        if snapshot.error is not None:
            body["error"] = describe_exception(snapshot.error)
        console.print_json(json.dumps(body, default=str))
        return

    if snapshot.record_error is not None:
        console.print(f"[yellow]Warning:[/yellow] video info not saved - {snapshot.record_error}")

    if snapshot.state is OrchestratorState.COMPLETE and result is not None:
        console.print(
            Panel(
                _metrics_table(result.payload),
                title=f"[bold green]Analysis {snapshot.job_id}[/bold green]",
                border_style="green",
            )
        )
        return

    error = snapshot.error
    reason = describe_exception(error) if error is not None else "Unknown error"
    hint = ""
    if isinstance(error, FetchError):
        hint = "\n[dim]The video was processed; retrying the fetch may succeed.[/dim]"
    elif not isinstance(error, ProcessingError):
        hint = "\n[dim]Select the video again to restart the upload.[/dim]"
    console.print(
        Panel(
            f"[red]{reason}[/red]{hint}",
            title=f"[bold red]Failed ({type(error).__name__ if error else 'error'})[/bold red]",
            border_style="red",
        )
    )
