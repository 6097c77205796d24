"""Rich-based display functions for Gmail Subscription Scanner."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import PriceChange, ScanResult, SubscriptionRecord

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through the shared Rich console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # googleapiclient logs every discovery lookup at INFO
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _change_color(change: PriceChange) -> str:
    """Red for increases, green for decreases."""
    return "red" if change.change > 0 else "green"


def _format_price(record: SubscriptionRecord) -> str:
    if record.price is None:
        return "[dim]unknown[/dim]"
    return f"{record.price:.2f}"


def display_subscriptions(subscriptions: list[SubscriptionRecord], title: str = "Subscriptions") -> None:
    """Display subscriptions sorted by provider."""
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Provider")
    table.add_column("Price", justify="right")
    table.add_column("Frequency")
    table.add_column("Type")
    table.add_column("Last detected")

    for idx, record in enumerate(sorted(subscriptions, key=lambda r: r.provider), start=1):
        table.add_row(
            str(idx),
            f"[bold]{record.provider}[/bold]",
            _format_price(record),
            record.frequency,
            record.type or "",
            record.last_detected_date[:10] if record.last_detected_date else "",
        )

    console.print(table)


def display_price_changes(price_changes: list[PriceChange]) -> None:
    if not price_changes:
        return

    table = Table(title="Price Changes")
    table.add_column("Provider")
    table.add_column("Old", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Next renewal")

    for change in price_changes:
        color = _change_color(change)
        percentage = f"{change.percentage_change:+.2f}%" if change.percentage_change is not None else "n/a"
        table.add_row(
            change.provider,
            f"{change.old_price:.2f}",
            f"{change.new_price:.2f}",
            f"[{color}]{change.change:+.2f}[/{color}]",
            f"[{color}]{percentage}[/{color}]",
            change.next_renewal_date[:10],
        )

    console.print(table)


def display_scan_results(scan_result: ScanResult) -> None:
    """Display the subscriptions and price changes found by a scan."""
    display_subscriptions(scan_result.subscriptions, title="Detected Subscriptions")
    display_price_changes(scan_result.price_changes)
    console.print(
        Panel(
            f"Messages scanned: {scan_result.messages_scanned}  |  "
            f"Skipped: {scan_result.messages_failed}  |  "
            f"Subscriptions stored: {scan_result.count}  |  "
            f"Price changes: {len(scan_result.price_changes)}",
            title="Summary",
        )
    )


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )
