from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ch_archiver.pipeline.abstract import PlanEntry, RunReport


def _human_bytes(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    size = float(value)
    if size < 1024:
        return f"{int(size):,} B"
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024:
            return f"{size:,.2f} {unit}"
    return f"{size / 1024:,.2f} TB"


def print_plan(entries: List[PlanEntry], console: Optional[Console] = None) -> None:
    """
    Render per-(host, table) slot plans as a rich table.
    """
    console = console or Console()

    if not entries:
        console.print("[yellow]No tables configured.[/yellow]")
        return

    table = Table(title="Export Plan", box=box.ROUNDED, caption="Estimated sizes are best-effort")
    table.add_column("Host", style="cyan", no_wrap=True)
    table.add_column("Table", style="cyan", no_wrap=True)
    table.add_column("Rows in range", justify="right", style="magenta")
    table.add_column("Bytes/row", justify="right")
    table.add_column("Row budget", justify="right")
    table.add_column("Granularity", justify="center", style="green")
    table.add_column("Slots", justify="right", style="bold green")
    table.add_column("Est. size", justify="right", style="yellow")

    for entry in sorted(entries, key=lambda e: (e.get("table", ""), e.get("host", ""))):
        budget = entry.get("row_budget")
        table.add_row(
            entry.get("host", "?"),
            entry.get("table", "?"),
            f"{entry.get('rows_in_range', 0):,}",
            f"{entry.get('bytes_per_row', 0.0):,.2f}",
            f"{budget:,}" if budget is not None else "unbounded",
            entry.get("granularity") or "-",
            f"{entry.get('slots', 0):,}",
            _human_bytes(entry.get("estimated_bytes", 0)),
        )

    console.print(table)


def print_run_report(report: RunReport, console: Optional[Console] = None) -> None:
    """
    Render the outcome of an export run.
    """
    console = console or Console()

    succeeded = report.get("succeeded", False)
    status = "[bold green]SUCCEEDED[/bold green]" if succeeded else "[bold red]FAILED[/bold red]"
    table = Table(title=f"Export Run {status}", box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    table.add_row("Destination", report.get("run_root", "?"))
    table.add_row("Units submitted", f"{report.get('units_submitted', 0):,}")
    table.add_row("Failed units", f"{report.get('failed_units', 0):,}")
    if succeeded:
        table.add_row("Estimated bytes", _human_bytes(report.get("estimated_bytes", 0)))
        throughput = report.get("throughput_bytes_per_sec")
        table.add_row(
            "Throughput",
            f"{_human_bytes(throughput)}/s" if throughput is not None else "N/A",
        )
    table.add_row("Duration (s)", f"{report.get('duration_seconds', 0.0):.1f}")
    peak = report.get("peak_rss_bytes")
    table.add_row("Peak memory", _human_bytes(peak) if peak else "N/A")

    console.print(table)


__all__ = ["print_plan", "print_run_report"]
