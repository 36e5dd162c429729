# api/app.py
"""HTTP surface for translation jobs.

Run with::

    uvicorn api.app:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from config import settings
from core.errors import JobNotResumableError, RecordNotFoundError
from data_access.record_store import build_record_store
from data_access.repositories import Repositories
from jobs.events import JobStream
from jobs.supervisor import JobSupervisor
from jobs.translation_runner import TranslationRunner
from models.job_models import JobSpec, JobStatusView
from storage.file_manager import FileManager

logger = structlog.get_logger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


class TranslationRequest(BaseModel):
    target_language: str
    source_language: str | None = None


class JobCreated(BaseModel):
    job_id: str


class CancelResult(BaseModel):
    job_id: str
    cancelled: bool


def build_supervisor() -> JobSupervisor:
    repos = Repositories(build_record_store(settings.STORE_BACKEND))
    return JobSupervisor(repos, TranslationRunner(repos, file_manager=FileManager()))


def _status_frame(view: JobStatusView) -> bytes:
    return f"event: status\ndata: {view.model_dump_json()}\n\n".encode()


async def _event_source(stream: JobStream, first: bytes | None = None) -> AsyncIterator[bytes]:
    if first is not None:
        yield first
    async for event in stream:
        yield event.to_sse()


def create_app(supervisor: JobSupervisor | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "supervisor", None) is None:
            app.state.supervisor = build_supervisor()
        yield
        await app.state.supervisor.shutdown()

    app = FastAPI(title="Chronicle", lifespan=lifespan)
    app.state.supervisor = supervisor

    def _supervisor() -> JobSupervisor:
        if app.state.supervisor is None:
            app.state.supervisor = build_supervisor()
        return app.state.supervisor

    @app.post("/projects/{project_id}/translations", response_model=JobCreated, status_code=201)
    async def start_translation(project_id: str, request: TranslationRequest) -> JobCreated:
        spec = JobSpec(
            project_id=project_id,
            target_language=request.target_language,
            source_language=request.source_language,
        )
        try:
            job_id = await _supervisor().start(spec)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JobCreated(job_id=job_id)

    @app.get("/jobs/{job_id}", response_model=JobStatusView)
    async def job_status(job_id: str) -> JobStatusView:
        try:
            return await _supervisor().status(job_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/jobs/{job_id}/events")
    async def job_events(job_id: str) -> StreamingResponse:
        sup = _supervisor()
        try:
            view = await sup.status(job_id)
            stream = await sup.attach(job_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return StreamingResponse(
            _event_source(stream, _status_frame(view)),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/jobs/{job_id}/resume")
    async def resume_job(job_id: str) -> StreamingResponse:
        try:
            stream = await _supervisor().resume(job_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except JobNotResumableError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return StreamingResponse(
            _event_source(stream), media_type="text/event-stream", headers=SSE_HEADERS
        )

    @app.post("/jobs/{job_id}/cancel", response_model=CancelResult)
    async def cancel_job(job_id: str) -> CancelResult:
        try:
            cancelled = await _supervisor().cancel(job_id)
        except RecordNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return CancelResult(job_id=job_id, cancelled=cancelled)

    return app


app = create_app()
