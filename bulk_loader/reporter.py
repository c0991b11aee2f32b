from __future__ import annotations

from typing import Any, Dict

from rich import box
from rich.console import Console
from rich.table import Table


def _format_bytes(value: Any) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f} MB"


def print_summary(result: Dict[str, Any], console: Console | None = None) -> None:
    """
    Render a load result as a rich table.

    Failed or partial runs get a highlighted status row so the operator can
    tell them apart from a clean load at a glance.
    """
    console = console or Console()

    if not result:
        console.print("[yellow]No result to display.[/yellow]")
        return

    if result.get("error"):
        status = f"[bold red]FAILED[/bold red]: {result['error']}"
    elif result.get("source_error") or result.get("dead_lettered"):
        status = "[bold yellow]PARTIAL[/bold yellow]"
    else:
        status = "[bold green]OK[/bold green]"

    table = Table(
        title=f"Bulk Load Summary: {result.get('table', 'unknown')}",
        box=box.ROUNDED,
        show_header=False,
    )
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    table.add_row("Status", status)
    if result.get("data_path"):
        table.add_row("Data path", str(result["data_path"]))
    table.add_row("Workers", str(result.get("workers", 0)))
    table.add_row("Records dispatched", f"{result.get('rows', 0):,}")
    table.add_row("Inserted", f"[green]{result.get('inserted', 0):,}[/green]")
    table.add_row("Dead-lettered", f"{result.get('dead_lettered', 0):,}")
    table.add_row("Retried attempts", f"{result.get('retries', 0):,}")
    table.add_row("Duration (s)", f"{result.get('duration_seconds', 0.0):.2f}")
    table.add_row("Throughput (rows/s)", f"{result.get('throughput_rows_per_sec', 0.0):,.2f}")
    table.add_row("Peak memory", _format_bytes(result.get("peak_rss_bytes")))
    cpu = result.get("cpu_percent")
    table.add_row("CPU %", f"{cpu:.1f}" if cpu is not None else "N/A")
    if result.get("source_error"):
        table.add_row("Source error", f"[yellow]{result['source_error']}[/yellow]")
    if result.get("dead_letter_path"):
        table.add_row("Dead-letter file", str(result["dead_letter_path"]))

    console.print(table)


__all__ = ["print_summary"]
