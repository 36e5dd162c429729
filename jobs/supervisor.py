# jobs/supervisor.py
"""Lifecycle of long-running, resumable jobs.

A job runs in a background ``asyncio.Task`` owned by the supervisor, never
by the client that started it. State is persisted after every unit: the
unit's output first, then progress and heartbeat, so a job interrupted at
any point can be resumed from what is stored.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from config import settings
from core.errors import ChronicleError, JobNotResumableError
from data_access.repositories import Repositories
from jobs.events import EventBroadcaster, JobStream
from jobs.translation_runner import TranslationRunner
from models.job_models import (
    Job,
    JobEvent,
    JobEventType,
    JobSpec,
    JobStatus,
    JobStatusView,
    utcnow,
)
from models.unit_models import unit_label

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


class JobSupervisor:
    def __init__(
        self,
        repos: Repositories,
        runner: TranslationRunner,
        *,
        clock: Clock = utcnow,
        stale_after_seconds: float | None = None,
        events: EventBroadcaster | None = None,
    ) -> None:
        self.repos = repos
        self.runner = runner
        self.clock = clock
        self.stale_after_seconds = (
            stale_after_seconds
            if stale_after_seconds is not None
            else settings.JOB_HEARTBEAT_STALE_SECONDS
        )
        self.events = events or EventBroadcaster()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cancelled: set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, spec: JobSpec) -> str:
        project = await self.repos.projects.get(spec.project_id)
        job = Job(
            project_id=project.id,
            kind=spec.kind,
            params={
                "target_language": spec.target_language,
                "source_language": spec.source_language or project.locale,
            },
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        await self.repos.jobs.create(job)
        logger.info(
            "Job created.",
            job_id=job.id,
            project_id=project.id,
            target_language=spec.target_language,
        )
        self._spawn(job.id, resumed=False)
        return job.id

    async def status(self, job_id: str) -> JobStatusView:
        job = await self.repos.jobs.get(job_id)
        return JobStatusView(job=job, frozen=job.is_frozen(self.clock(), self.stale_after_seconds))

    def is_live(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    async def attach(self, job_id: str) -> JobStream:
        """Observe a job without changing it; finished jobs replay their outcome."""
        job = await self.repos.jobs.get(job_id)
        stream = self.events.subscribe(job_id)
        if job.status in (JobStatus.COMPLETED, JobStatus.ERROR):
            stream.push(self._replay(job))
        elif not self.is_live(job_id):
            stream.close()
        return stream

    async def resume(self, job_id: str) -> JobStream:
        job = await self.repos.jobs.get(job_id)
        if job.status == JobStatus.COMPLETED:
            return await self.attach(job_id)
        if job.status == JobStatus.ERROR:
            raise JobNotResumableError(f"Job {job_id} failed: {job.error}")
        if self.is_live(job_id):
            logger.info("Re-attaching to live job.", job_id=job_id)
            return self.events.subscribe(job_id)

        frozen = job.is_frozen(self.clock(), self.stale_after_seconds)
        if job.status == JobStatus.RUNNING and not frozen and job_id not in self._cancelled:
            raise JobNotResumableError(
                f"Job {job_id} is running elsewhere (heartbeat within "
                f"{self.stale_after_seconds:g}s)."
            )
        logger.info(
            "Resuming job.",
            job_id=job_id,
            status=job.status.value,
            frozen=frozen,
            progress=f"{job.progress.current}/{job.progress.total}",
        )
        stream = self.events.subscribe(job_id)
        self._cancelled.discard(job_id)
        self._spawn(job_id, resumed=True)
        return stream

    async def cancel(self, job_id: str) -> bool:
        """Cancel the local task; stored progress stays resumable."""
        await self.repos.jobs.get(job_id)
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        self._cancelled.add(job_id)
        task.cancel()
        await asyncio.wait({task})
        return True

    async def shutdown(self) -> None:
        for job_id in list(self._tasks):
            await self.cancel(job_id)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _spawn(self, job_id: str, *, resumed: bool) -> asyncio.Task[None]:
        task = asyncio.create_task(self._run(job_id, resumed=resumed), name=f"job-{job_id}")
        self._tasks[job_id] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._tasks.get(job_id) is done:
                del self._tasks[job_id]

        task.add_done_callback(_forget)
        return task

    def _replay(self, job: Job) -> JobEvent:
        if job.status == JobStatus.COMPLETED:
            return self.events.make_event(
                job.id,
                JobEventType.COMPLETE,
                result_ref=job.result_ref,
                total=job.progress.total,
                translated=job.progress.current,
                skipped_units=job.skipped_units,
                replayed=True,
            )
        return self.events.make_event(
            job.id, JobEventType.ERROR, error=job.error, replayed=True
        )

    async def _run(self, job_id: str, *, resumed: bool) -> None:
        job = await self.repos.jobs.get(job_id)
        try:
            units = await self.runner.source_units(job)
            done = await self.runner.completed_numbers(job)
            remaining = [u for u in units if u.number not in done]
            translated = len(units) - len(remaining)
            accountant = await self.runner.accountant_for(job)

            job.mark_started(self.clock(), total=len(units))
            job.progress.current = translated
            job.skipped_units = []
            await self.repos.jobs.save(job)
            self.events.emit(
                job_id,
                JobEventType.START,
                total=len(units),
                already_translated=translated,
                remaining=len(remaining),
                resumed=resumed,
            )

            for unit in remaining:
                try:
                    await self.runner.translate(job, unit, accountant)
                except ChronicleError as exc:
                    logger.warning(
                        f"Skipping {unit.label}: {exc}", job_id=job_id, unit=unit.number
                    )
                    job.skipped_units.append(unit.number)
                    job.update_progress(translated, self.clock())
                    await self.repos.jobs.save(job)
                    self.events.emit(
                        job_id,
                        JobEventType.CHAPTER_ERROR,
                        unit=unit.number,
                        label=unit.label,
                        error=str(exc),
                    )
                    continue
                translated += 1
                job.update_progress(translated, self.clock())
                await self.repos.jobs.save(job)
                self.events.emit(
                    job_id,
                    JobEventType.PROGRESS,
                    current=translated,
                    total=len(units),
                    unit=unit.number,
                    label=unit.label,
                )

            result_ref = await self.runner.finalize(job)
            job.mark_completed(self.clock(), result_ref)
            await self.repos.jobs.save(job)
            if job.skipped_units:
                logger.warning(
                    "Job completed with skipped units.",
                    job_id=job_id,
                    skipped=[unit_label(n) for n in job.skipped_units],
                )
            else:
                logger.info("Job completed.", job_id=job_id, translated=translated)
            self.events.emit(
                job_id,
                JobEventType.COMPLETE,
                result_ref=result_ref,
                total=len(units),
                translated=translated,
                skipped_units=job.skipped_units,
            )
        except asyncio.CancelledError:
            logger.info(
                "Job task cancelled; stored progress kept for resume.",
                job_id=job_id,
                progress=f"{job.progress.current}/{job.progress.total}",
            )
            self.events.close(job_id)
            raise
        except Exception as exc:
            logger.error("Job failed.", job_id=job_id, error=str(exc), exc_info=True)
            job.mark_failed(self.clock(), str(exc))
            await self.repos.jobs.save(job)
            self.events.emit(job_id, JobEventType.ERROR, error=str(exc))
