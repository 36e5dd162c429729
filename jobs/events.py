# jobs/events.py
"""Fan-out of job events to attached observers.

Observers are held weakly: a client that goes away simply stops receiving
events, the job itself keeps running.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Any

import structlog

from models.job_models import JobEvent, JobEventType, utcnow

logger = structlog.get_logger(__name__)

_CLOSED = None


class JobStream:
    """Async iterator over one observer's events for one job.

    Iteration ends after a terminal event or when the stream is closed.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._queue: asyncio.Queue[JobEvent | None] = asyncio.Queue()
        self._finished = False

    def push(self, event: JobEvent | None) -> None:
        if not self._finished:
            self._queue.put_nowait(event)

    def close(self) -> None:
        self.push(_CLOSED)

    def __aiter__(self) -> JobStream:
        return self

    async def __anext__(self) -> JobEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if event.is_terminal:
            self._finished = True
        return event

    async def collect(self) -> list[JobEvent]:
        return [event async for event in self]


class EventBroadcaster:
    def __init__(self) -> None:
        self._observers: dict[str, weakref.WeakSet[JobStream]] = {}
        self._seq: dict[str, int] = {}

    def subscribe(self, job_id: str) -> JobStream:
        stream = JobStream(job_id)
        self._observers.setdefault(job_id, weakref.WeakSet()).add(stream)
        return stream

    def observer_count(self, job_id: str) -> int:
        return len(self._observers.get(job_id, ()))

    def make_event(self, job_id: str, event_type: JobEventType, **data: Any) -> JobEvent:
        seq = self._seq.get(job_id, 0) + 1
        self._seq[job_id] = seq
        return JobEvent(type=event_type, job_id=job_id, seq=seq, timestamp=utcnow(), data=data)

    def emit(self, job_id: str, event_type: JobEventType, **data: Any) -> JobEvent:
        event = self.make_event(job_id, event_type, **data)
        for stream in list(self._observers.get(job_id, ())):
            stream.push(event)
        logger.debug(
            f"Job event {event_type.value} #{event.seq}",
            job_id=job_id,
            observers=self.observer_count(job_id),
        )
        return event

    def close(self, job_id: str) -> None:
        """End every attached stream without a terminal event."""
        for stream in list(self._observers.pop(job_id, ())):
            stream.close()
