# orchestration/cli_runner.py
"""Command-line runner for Chronicle."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import structlog
import uvicorn
import yaml
from pydantic import ValidationError
from rich.console import Console

from config import settings
from core.db_manager import neo4j_manager
from core.errors import ChronicleError, ProjectConfigError
from core.llm_interface import llm_service
from data_access.record_store import build_record_store
from data_access.repositories import Repositories
from jobs.supervisor import JobSupervisor
from jobs.translation_runner import TranslationRunner
from models.job_models import JobSpec
from models.project_models import ProjectDefinition
from orchestration.revision_orchestrator import RevisionOrchestrator
from storage.file_manager import FileManager
from ui.rich_display import RichDisplayManager
from utils.logging import setup_logging

logger = structlog.get_logger(__name__)
console = Console()


def load_project_definition(path: str | Path) -> ProjectDefinition:
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ProjectConfigError(f"Cannot read project file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ProjectConfigError(f"Project file {path} must contain a YAML mapping.")
    try:
        return ProjectDefinition.model_validate(data)
    except ValidationError as exc:
        raise ProjectConfigError(f"Invalid project file {path}: {exc}") from exc


async def _generate(repos: Repositories, path: str) -> None:
    definition = load_project_definition(path)
    project = await repos.projects.save(definition.to_project())
    console.print(f"Project [bold]{project.title}[/bold] created with id {project.id}")
    display = RichDisplayManager(title="Chronicle Generation")
    orchestrator = RevisionOrchestrator(repos, file_manager=FileManager(), display=display)
    display.start()
    try:
        verdict = await orchestrator.run(project.id, definition.world_notes)
    finally:
        await display.stop()
    console.print(
        f"Final verdict: [bold]{verdict.verdict.value}[/bold] (score {verdict.score:g}, "
        f"{len(verdict.issues)} open issue(s))"
    )


async def _follow(supervisor: JobSupervisor, job_id: str, resume: bool) -> None:
    display = RichDisplayManager(title=f"Job {job_id}")
    stream = await (supervisor.resume(job_id) if resume else supervisor.attach(job_id))
    display.start()
    try:
        last = await display.follow(stream)
    finally:
        await display.stop()
    view = await supervisor.status(job_id)
    console.print(
        f"Job {job_id}: {view.job.status.value} "
        f"({view.job.progress.current}/{view.job.progress.total})"
        + (f", skipped units {view.job.skipped_units}" if view.job.skipped_units else "")
        + (f", output {view.job.result_ref}" if view.job.result_ref else "")
    )
    if last is None:
        logger.warning("Job stream ended without events.", job_id=job_id)


async def _run(args: argparse.Namespace) -> None:
    repos = Repositories(build_record_store(settings.STORE_BACKEND))
    if settings.STORE_BACKEND == "neo4j":
        await neo4j_manager.create_db_schema()
    try:
        if args.command == "generate":
            await _generate(repos, args.project_file)
            return
        supervisor = JobSupervisor(repos, TranslationRunner(repos, file_manager=FileManager()))
        if args.command == "translate":
            job_id = await supervisor.start(
                JobSpec(
                    project_id=args.project_id,
                    target_language=args.to,
                    source_language=args.source,
                )
            )
            console.print(f"Translation job {job_id} started.")
            await _follow(supervisor, job_id, resume=False)
        elif args.command == "resume":
            await _follow(supervisor, args.job_id, resume=True)
        elif args.command == "status":
            view = await supervisor.status(args.job_id)
            console.print_json(view.model_dump_json())
    finally:
        await llm_service.aclose()
        await neo4j_manager.close()


def run(args: argparse.Namespace) -> int:
    """Run the requested command; returns the process exit code."""
    setup_logging()
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Chronicle shutting down due to KeyboardInterrupt...")
        return 130
    except ChronicleError as err:
        logger.error("Chronicle command failed: %s", err)
        console.print(f"[red]Error:[/red] {err}")
        return 1
    return 0


def serve(host: str, port: int) -> None:
    setup_logging()
    uvicorn.run("api.app:app", host=host, port=port)
