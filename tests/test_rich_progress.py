from __future__ import annotations

import io

from rich.console import Console

from azure_inventory.util.rich_progress import NullProgress, RunProgress, render_run_summary_table


def _console() -> tuple[Console, io.StringIO]:
    buf = io.StringIO()
    return Console(file=buf, width=120, force_terminal=False), buf


def test_disabled_progress_is_silent() -> None:
    console, buf = _console()
    with RunProgress(enabled=False, console=console) as progress:
        progress.on_progress("Virtual Machines", 1, 2)
    assert progress.enabled is False
    assert buf.getvalue() == ""
    assert NullProgress().on_progress("x", 1, 1) is None


def test_enabled_progress_tracks_one_task_per_section() -> None:
    console, _ = _console()
    with RunProgress(enabled=True, console=console) as progress:
        progress.on_progress("Virtual Machines", 1, 2)
        progress.on_progress("Virtual Machines", 2, 2)
        progress.on_progress("Disks", 1, 0)
        tasks = {t.description: t for t in progress._progress.tasks}
    assert set(tasks) == {"Virtual Machines", "Disks"}
    assert tasks["Virtual Machines"].completed == 2


def test_run_summary_table_renders_metrics() -> None:
    console, buf = _console()
    render_run_summary_table(
        enabled=True,
        status="OK",
        metrics={"subscription": "prod", "tables": 12, "empty_parts": 3, "fetch_errors": 1, "elapsed_s": 4.25},
        sections=["Virtual Machines", "Disks"],
        output="out/Contoso-Azure.docx",
        console=console,
    )
    text = buf.getvalue()
    assert "Run Summary" in text
    assert "Degraded fetches" in text
    assert "out/Contoso-Azure.docx" in text


def test_run_summary_table_disabled() -> None:
    console, buf = _console()
    render_run_summary_table(enabled=False, status="OK", metrics={}, sections=[], output="x", console=console)
    assert buf.getvalue() == ""
