"""Shared progress bar utilities for Rich console displays."""

from __future__ import annotations

from contextlib import contextmanager

from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)


if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console


def create_standard_progress(
    console: Console | None = None, *, expand: bool = False
) -> Progress:
    """Create a progress bar with time remaining estimation.

    Args:
        console: Rich console instance (optional)
        expand: Whether to expand the progress bar to full width

    Returns:
        Configured Progress instance
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("•"),
        TimeElapsedColumn(),
        TextColumn("•"),
        TimeRemainingColumn(),
        console=console,
        expand=expand,
    )


@contextmanager
def track_progress(
    description: str,
    total: int,
    console: Console | None = None,
    *,
    enabled: bool = True,
) -> Iterator[tuple[Progress | None, TaskID | None]]:
    """Context manager for tracking progress with automatic cleanup.

    When ``enabled`` is false nothing is rendered and ``(None, None)`` is
    yielded, so callers can guard updates with a single ``if progress``.

    Example:
        ```python
        with track_progress("Scanning blocks", total=len(chunks)) as (progress, task):
            for chunk in chunks:
                ...
                if progress is not None:
                    progress.update(task, advance=1)
        ```
    """
    if not enabled:
        yield None, None
        return

    progress = create_standard_progress(console)
    with progress:
        task_id = progress.add_task(description, total=total)
        yield progress, task_id


__all__ = [
    "TaskID",
    "create_standard_progress",
    "track_progress",
]
