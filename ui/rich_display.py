from __future__ import annotations

import asyncio
import time

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from config import settings
from core.llm_interface import llm_service
from jobs.events import JobStream
from models.job_models import JobEvent, JobEventType


class RichDisplayManager:
    """Handles Rich-based display updates."""

    def __init__(self, title: str = "Chronicle Progress") -> None:
        self.live: Live | None = None
        self.group: Group | None = None
        self.status_text_project: Text = Text("Project: N/A")
        self.status_text_current_unit: Text = Text("Current Unit: N/A")
        self.status_text_current_step: Text = Text("Current Step: Initializing...")
        self.status_text_progress: Text = Text("Progress: -")
        self.status_text_tokens: Text = Text("Tokens (project total): 0")
        self.status_text_elapsed_time: Text = Text("Elapsed Time: 0s")
        self.status_text_requests_per_minute: Text = Text("Requests/Min: 0.0")
        self.run_start_time: float = 0.0
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task | None = None

        if settings.ENABLE_RICH_PROGRESS:
            self.group = Group(
                self.status_text_project,
                self.status_text_current_unit,
                self.status_text_current_step,
                self.status_text_progress,
                self.status_text_tokens,
                self.status_text_requests_per_minute,
                self.status_text_elapsed_time,
            )
            self.live = Live(
                Panel(self.group, title=title, border_style="blue", expand=True),
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def start(self) -> None:
        self.run_start_time = time.time()
        if self.live:
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            await asyncio.sleep(1)

    def update(
        self,
        project: str | None = None,
        unit: str | None = None,
        step: str | None = None,
        progress: tuple[int, int] | None = None,
        total_tokens: int | None = None,
    ) -> None:
        if project is not None:
            self.status_text_project.plain = f"Project: {project}"
        if unit is not None:
            self.status_text_current_unit.plain = f"Current Unit: {unit}"
        if step is not None:
            self.status_text_current_step.plain = f"Current Step: {step}"
        if progress is not None:
            current, total = progress
            self.status_text_progress.plain = f"Progress: {current}/{total}"
        if total_tokens is not None:
            self.status_text_tokens.plain = f"Tokens (project total): {total_tokens:,}"
        elapsed_seconds = time.time() - self.run_start_time if self.run_start_time else 0.0
        requests_per_minute = (
            llm_service.request_count / (elapsed_seconds / 60)
            if elapsed_seconds > 0
            else 0.0
        )
        self.status_text_requests_per_minute.plain = (
            f"Requests/Min: {requests_per_minute:.2f}"
        )
        self.status_text_elapsed_time.plain = (
            f"Elapsed Time: {time.strftime('%H:%M:%S', time.gmtime(elapsed_seconds))}"
        )

    def on_job_event(self, event: JobEvent) -> None:
        data = event.data
        if event.type == JobEventType.START:
            done = data.get("already_translated", 0)
            self.update(
                step="Resuming" if data.get("resumed") else "Starting",
                progress=(done, data.get("total", 0)),
            )
        elif event.type == JobEventType.PROGRESS:
            self.update(
                unit=data.get("label"),
                step="Translating",
                progress=(data.get("current", 0), data.get("total", 0)),
            )
        elif event.type == JobEventType.CHAPTER_ERROR:
            self.update(unit=data.get("label"), step=f"Skipped: {data.get('error')}")
        elif event.type == JobEventType.COMPLETE:
            skipped = data.get("skipped_units") or []
            self.update(step=f"Completed ({len(skipped)} skipped)")
        elif event.type == JobEventType.ERROR:
            self.update(step=f"Failed: {data.get('error')}")

    async def follow(self, stream: JobStream) -> JobEvent | None:
        """Render a job's events until it ends; returns the last event seen."""
        last: JobEvent | None = None
        async for event in stream:
            self.on_job_event(event)
            last = event
        return last
