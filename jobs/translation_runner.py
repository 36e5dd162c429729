# jobs/translation_runner.py
"""Per-unit work of a translation job."""

from __future__ import annotations

import structlog

from agents.translator_agent import TranslatorAgent
from core.usage import TokenUsage
from data_access.repositories import Repositories
from models.job_models import Job, TranslatedUnit
from models.unit_models import Unit, UnitStatus
from orchestration.token_accountant import Stage, TokenAccountant
from storage.file_manager import FileManager

logger = structlog.get_logger(__name__)


class TranslationRunner:
    def __init__(
        self,
        repos: Repositories,
        translator: TranslatorAgent | None = None,
        file_manager: FileManager | None = None,
    ) -> None:
        self.repos = repos
        self.translator = translator or TranslatorAgent()
        self.file_manager = file_manager

    async def source_units(self, job: Job) -> list[Unit]:
        """Completed units of the job's project, in canonical order."""
        units = await self.repos.units.list_for_project(job.project_id)
        return [u for u in units if u.status == UnitStatus.COMPLETED and u.content.strip()]

    async def completed_numbers(self, job: Job) -> set[int]:
        return {t.unit_number for t in await self.repos.translations.list_for_job(job.id)}

    async def accountant_for(self, job: Job) -> TokenAccountant:
        project = await self.repos.projects.get(job.project_id)
        return TokenAccountant(
            project.id,
            sink=self.repos.projects.save_token_usage,
            initial=TokenUsage(**project.token_usage.model_dump()),
        )

    async def translate(
        self, job: Job, unit: Unit, accountant: TokenAccountant | None = None
    ) -> TranslatedUnit:
        """Translate and persist one unit. Raises ``CompletionError`` on failure."""
        source = job.params.get("source_language", "")
        target = job.params["target_language"]
        result, usage = await self.translator.translate_unit(unit, source, target)
        if accountant is not None:
            await accountant.record(Stage.TRANSLATION, usage)
        translated = TranslatedUnit(
            job_id=job.id,
            project_id=job.project_id,
            unit_number=unit.number,
            title=unit.title,
            text=result.translated_text,
            source_language=source,
            target_language=target,
            notes=result.notes,
        )
        await self.repos.translations.save(translated)
        return translated

    async def finalize(self, job: Job) -> str | None:
        """Assemble stored translations; returns the output path if written."""
        if self.file_manager is None:
            return None
        project = await self.repos.projects.get(job.project_id)
        translations = await self.repos.translations.list_for_job(job.id)
        path = await self.file_manager.save_translation(
            job.id, project.title, job.params["target_language"], translations
        )
        logger.info(f"Translation written to {path}.", job_id=job.id, units=len(translations))
        return path
