"""Live terminal view of a running batch."""

import logging
from datetime import datetime
from typing import Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import Job, JobStatus, JobUpdate
from .orchestrator import BatchOrchestrator

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    JobStatus.PENDING: ("⏳ pending", "yellow"),
    JobStatus.DONE: ("✓ done", "green"),
    JobStatus.FAILED: ("✗ failed", "red"),
}


class BatchMonitor:
    """Renders job snapshots in a rich table and refreshes on every transition."""

    def __init__(self, orchestrator: BatchOrchestrator, console: Optional[Console] = None):
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.live: Optional[Live] = None
        self.update_count = 0

    def render(self, jobs: Optional[Dict[str, Job]] = None) -> Panel:
        jobs = self.orchestrator.snapshot() if jobs is None else jobs

        table = Table(expand=True)
        table.add_column("Period", style="cyan")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Detail", style="dim")

        for key, job in jobs.items():
            label, style = STATUS_STYLES[job.status]
            if job.status is JobStatus.FAILED:
                detail = job.error or ""
            elif job.status is JobStatus.DONE:
                detail = _describe_result(job.result)
            elif self.orchestrator.is_in_flight(key):
                detail = "generating"
            else:
                detail = "queued"
            table.add_row(key, Text(label, style=style), str(job.attempts), detail)

        stats = self.orchestrator.stats()
        footer = (
            f"{stats['done']}/{stats['total']} done | {stats['failed']} failed | "
            f"{stats['in_flight']} generating | {datetime.now().strftime('%H:%M:%S')}"
        )
        return Panel(table, title="Past Forward", subtitle=footer, border_style="bright_blue")

    def _on_update(self, update: JobUpdate):
        self.update_count += 1
        if self.live is not None:
            self.live.update(self.render())

    def __enter__(self) -> "BatchMonitor":
        self.orchestrator.subscribe(self._on_update)
        self.live = Live(self.render(), console=self.console, refresh_per_second=4)
        self.live.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.orchestrator.unsubscribe(self._on_update)
        live, self.live = self.live, None
        if live is not None:
            live.update(self.render())
            live.__exit__(exc_type, exc, tb)
        return False


def _describe_result(result) -> str:
    if isinstance(result, (bytes, bytearray)):
        return f"{len(result) / 1024:.1f} KB"
    if result is None:
        return ""
    return str(result)[:60]
