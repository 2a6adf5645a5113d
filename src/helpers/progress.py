"""Shared progress bar utilities for Rich console displays."""

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


def create_batch_progress(
    console: Console | None = None, *, expand: bool = False
) -> Progress:
    """Create a progress bar for sequential batch submission.

    No time-remaining column: confirmation latency depends on the ledger, so
    an estimate would be noise.

    Args:
        console: Rich console instance (optional)
        expand: Whether to expand the progress bar to full width

    Returns:
        Configured Progress instance with:
        - Spinner
        - Task description
        - Progress bar
        - M of N counter
        - Time elapsed

    Example:
        ```python
        from rich.console import Console
        from src.helpers.progress import create_batch_progress

        console = Console()
        progress = create_batch_progress(console)

        with progress:
            task_id = progress.add_task("Vault CABC...", total=23)
            # ... submit a batch ...
            progress.update(task_id, advance=10)
        ```
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("•"),
        TimeElapsedColumn(),
        console=console,
        expand=expand,
    )


def track_batches(
    progress: Progress,
    task_id: TaskID,
    batch_num: int,
    total_batches: int,
    items_processed: int,
    base_description: str,
    *,
    failed: bool = False,
) -> None:
    """Update progress display after a batch reached a terminal state.

    Args:
        progress: Progress instance
        task_id: Task ID to update
        batch_num: Current batch number (1-indexed)
        total_batches: Total number of batches
        items_processed: Number of recipients in this batch
        base_description: Base description for the task
        failed: Whether the batch failed
    """
    marker = "[red]✗[/red]" if failed else "[green]✓[/green]"
    description = f"{base_description} [batch {batch_num}/{total_batches}] {marker}"
    progress.update(task_id, advance=items_processed, description=description)


__all__ = [
    "TaskID",
    "create_batch_progress",
    "track_batches",
]
