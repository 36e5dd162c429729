# models/job_models.py
"""Long-running job records and the events they stream."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .unit_models import normalize_unit_number


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Job status states"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class JobProgress(BaseModel):
    current: int = 0
    total: int = 0


class Job(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    project_id: str
    kind: str = "translation"
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = Field(default_factory=JobProgress)
    heartbeat_at: datetime | None = None
    result_ref: str | None = None
    error: str | None = None
    skipped_units: list[int] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def mark_started(self, now: datetime, total: int) -> None:
        self.status = JobStatus.RUNNING
        self.progress.total = total
        self.heartbeat_at = now
        self.error = None
        self.updated_at = now

    def update_progress(self, current: int, now: datetime) -> None:
        """Advance progress and beat the heart."""
        self.progress.current = current
        self.heartbeat_at = now
        self.updated_at = now

    def mark_completed(self, now: datetime, result_ref: str | None) -> None:
        self.status = JobStatus.COMPLETED
        self.result_ref = result_ref
        self.heartbeat_at = now
        self.updated_at = now

    def mark_failed(self, now: datetime, error: str) -> None:
        self.status = JobStatus.ERROR
        self.error = error
        self.updated_at = now

    def is_frozen(self, now: datetime, stale_after_seconds: float) -> bool:
        """A running job without a recent heartbeat is frozen, not failed."""
        if self.status is not JobStatus.RUNNING:
            return False
        if self.heartbeat_at is None:
            return True
        return (now - self.heartbeat_at).total_seconds() > stale_after_seconds


class JobSpec(BaseModel):
    """What a client submits to start a translation job."""

    project_id: str
    target_language: str
    source_language: str | None = None
    kind: str = "translation"


class JobStatusView(BaseModel):
    """``status()`` payload: the job record plus derived liveness."""

    job: Job
    frozen: bool

    @property
    def id(self) -> str:
        return self.job.id


class JobEventType(str, Enum):
    START = "start"
    PROGRESS = "progress"
    CHAPTER_ERROR = "chapterError"
    COMPLETE = "complete"
    ERROR = "error"


class JobEvent(BaseModel):
    type: JobEventType
    job_id: str
    seq: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in (JobEventType.COMPLETE, JobEventType.ERROR)

    def to_sse(self) -> bytes:
        return f"event: {self.type.value}\ndata: {self.model_dump_json()}\n\n".encode()


class TranslatedUnit(BaseModel):
    """Stored partial output of a translation job."""

    job_id: str
    project_id: str
    unit_number: int
    title: str = ""
    text: str
    source_language: str = ""
    target_language: str = ""
    notes: str = ""

    @property
    def record_id(self) -> str:
        return f"{self.job_id}:{normalize_unit_number(self.unit_number)}"
