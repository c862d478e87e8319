from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table


class ProgressObserver(Protocol):
    """
    Advisory progress callback. Implementations must not raise or alter the
    order of work.
    """

    def on_progress(self, section: str, current: int, total: int) -> None: ...


class NullProgress:
    def on_progress(self, section: str, current: int, total: int) -> None:
        return None


class RunProgress:
    """
    rich progress bar with one task per report section. Disabled instances are
    silent no-ops so callers never branch on --progress.
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console()
        self._progress: Optional[Progress] = None
        self._tasks: Dict[str, TaskID] = {}
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def on_progress(self, section: str, current: int, total: int) -> None:
        if not self._progress:
            return
        task = self._tasks.get(section)
        if task is None:
            task = self._progress.add_task(section, total=total or None)
            self._tasks[section] = task
        self._progress.update(task, completed=current, total=total or None)


def render_run_summary_table(
    *,
    enabled: bool,
    status: str,
    metrics: Dict[str, Any],
    sections: Sequence[str],
    output: str,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Subscription", str(metrics.get("subscription", "")))
    table.add_row("Sections", str(len(sections)))
    table.add_row("Tables rendered", str(metrics.get("tables", 0)))
    table.add_row("Empty parts", str(metrics.get("empty_parts", 0)))
    table.add_row("Degraded fetches", str(metrics.get("fetch_errors", 0)))
    table.add_row("Elapsed", f"{metrics.get('elapsed_s', 0):.1f}s")
    table.add_row("Report", output)
    (console or Console()).print(table)
