"""Progress reporting for test runs — rich progress bar."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn

from answereval.models import ResultStatus, TestRunResult


class ProgressReporter:
    """Advances a rich progress bar as case results arrive."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console
        self._total = 0
        self._completed = 0
        self._failed = 0
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def failed(self) -> int:
        return self._failed

    def start(self, total: int) -> None:
        self._total = total
        self._completed = 0
        self._failed = 0
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=self._console,
        )
        self._task = self._progress.add_task("Evaluating", total=total)
        self._progress.start()

    def update(self, result: TestRunResult) -> None:
        self._completed += 1
        if result.status is ResultStatus.FAILED:
            self._failed += 1
        if self._progress is not None and self._task is not None:
            mark = "[red]✗[/red]" if result.status is ResultStatus.FAILED else "[green]✓[/green]"
            self._progress.update(
                self._task, advance=1, description=f"{mark} {result.case_id}",
            )

    def finish(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
