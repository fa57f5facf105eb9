"""Tests for progress bar helpers."""

from io import StringIO

from rich.console import Console
from rich.progress import Progress

from fee_sweeper.helpers.progress import create_standard_progress, track_progress


class TestTrackProgress:
    """Tests for track_progress."""

    def test_disabled_yields_nothing(self) -> None:
        """Test a disabled tracker yields no progress or task."""
        with track_progress("Indexing", total=3, enabled=False) as (progress, task_id):
            assert progress is None
            assert task_id is None

    def test_enabled_tracks_task(self) -> None:
        """Test an enabled tracker registers a task with the total."""
        console = Console(file=StringIO(), force_terminal=False)

        with track_progress("Indexing", total=3, console=console) as (progress, task_id):
            assert isinstance(progress, Progress)
            assert task_id is not None
            progress.update(task_id, advance=2)
            assert progress.tasks[0].completed == 2
            assert progress.tasks[0].total == 3

    def test_create_standard_progress(self) -> None:
        progress = create_standard_progress(expand=True)

        assert isinstance(progress, Progress)
        assert progress.expand is True
