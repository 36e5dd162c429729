# data_access/repositories.py
"""Typed repositories over a ``RecordStore``."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from core.errors import JobNotFoundError, RecordNotFoundError
from core.usage import TokenUsage
from models.job_models import Job, TranslatedUnit
from models.project_models import Project, ProjectStatus, TokenTotals
from models.unit_models import Unit, normalize_unit_number, sort_units, unit_sort_key
from models.world_models import Relationship, WorldEntity, WorldRule

from . import record_store as kinds
from .record_store import RecordStore

__all__ = [
    "BaseRepository",
    "JobRepository",
    "ProjectRepository",
    "Repositories",
    "TranslationRepository",
    "UnitRepository",
    "WorldRepository",
]

M = TypeVar("M", bound=BaseModel)


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


class BaseRepository(Generic[M]):
    """Base repository providing simple typed helpers."""

    kind: str
    model: type[M]

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def _get(self, record_id: str) -> M | None:
        data = await self.store.get(self.kind, record_id)
        return self.model.model_validate(data) if data is not None else None

    async def _list(self, **filters: Any) -> list[M]:
        rows = await self.store.list(self.kind, **filters)
        return [self.model.model_validate(r) for r in rows]

    async def _save(self, record_id: str, record: M) -> M:
        data = _dump(record)
        if await self.store.get(self.kind, record_id) is None:
            await self.store.create(self.kind, record_id, data)
        else:
            await self.store.update(self.kind, record_id, data)
        return record


class ProjectRepository(BaseRepository[Project]):
    kind = kinds.PROJECT
    model = Project

    async def get(self, project_id: str) -> Project:
        project = await self._get(project_id)
        if project is None:
            raise RecordNotFoundError(self.kind, project_id)
        return project

    async def save(self, project: Project) -> Project:
        return await self._save(project.id, project)

    async def set_status(
        self, project_id: str, status: ProjectStatus, error: str | None = None
    ) -> None:
        await self.store.update(
            self.kind, project_id, {"status": status.value, "error": error}
        )

    async def save_token_usage(self, project_id: str, usage: TokenUsage) -> None:
        totals = TokenTotals.from_usage(usage)
        await self.store.update(self.kind, project_id, {"token_usage": _dump(totals)})


class UnitRepository(BaseRepository[Unit]):
    kind = kinds.UNIT
    model = Unit

    async def get(self, project_id: str, number: int) -> Unit | None:
        return await self._get(f"{project_id}:{normalize_unit_number(number)}")

    async def list_for_project(self, project_id: str) -> list[Unit]:
        return sort_units(await self._list(project_id=project_id))

    async def save(self, unit: Unit) -> Unit:
        return await self._save(unit.record_id, unit)

    async def save_many(self, units: Sequence[Unit]) -> None:
        for unit in units:
            await self.save(unit)


class WorldRepository:
    """Entities, rules and relationships of a project's ledger."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def entities(self, project_id: str) -> list[WorldEntity]:
        rows = await self.store.list(kinds.WORLD_ENTITY, project_id=project_id)
        return [WorldEntity.model_validate(r) for r in rows]

    async def rules(self, project_id: str) -> list[WorldRule]:
        rows = await self.store.list(kinds.WORLD_RULE, project_id=project_id)
        return [WorldRule.model_validate(r) for r in rows]

    async def relationships(self, project_id: str) -> list[Relationship]:
        rows = await self.store.list(kinds.RELATIONSHIP, project_id=project_id)
        return [Relationship.model_validate(r) for r in rows]

    async def create_entity(self, entity: WorldEntity) -> WorldEntity:
        await self.store.create(kinds.WORLD_ENTITY, entity.id, _dump(entity))
        return entity

    async def update_entity(self, entity: WorldEntity) -> WorldEntity:
        await self.store.update(kinds.WORLD_ENTITY, entity.id, _dump(entity))
        return entity

    async def create_rule(self, rule: WorldRule) -> WorldRule:
        await self.store.create(kinds.WORLD_RULE, rule.id, _dump(rule))
        return rule

    async def set_rule_active(self, rule_id: str, active: bool) -> None:
        await self.store.update(kinds.WORLD_RULE, rule_id, {"is_active": active})

    async def create_relationship(self, rel: Relationship) -> Relationship:
        await self.store.create(kinds.RELATIONSHIP, rel.id, _dump(rel))
        return rel

    async def update_relationship(self, rel: Relationship) -> Relationship:
        await self.store.update(kinds.RELATIONSHIP, rel.id, _dump(rel))
        return rel


class JobRepository(BaseRepository[Job]):
    kind = kinds.JOB
    model = Job

    async def get(self, job_id: str) -> Job:
        job = await self._get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def create(self, job: Job) -> Job:
        await self.store.create(self.kind, job.id, _dump(job))
        return job

    async def save(self, job: Job) -> Job:
        await self.store.update(self.kind, job.id, _dump(job))
        return job


class TranslationRepository(BaseRepository[TranslatedUnit]):
    kind = kinds.TRANSLATED_UNIT
    model = TranslatedUnit

    async def list_for_job(self, job_id: str) -> list[TranslatedUnit]:
        rows = await self._list(job_id=job_id)
        return sorted(rows, key=lambda r: unit_sort_key(r.unit_number))

    async def save(self, unit: TranslatedUnit) -> TranslatedUnit:
        return await self._save(unit.record_id, unit)


class Repositories:
    """Bundle of repositories sharing one store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.projects = ProjectRepository(store)
        self.units = UnitRepository(store)
        self.world = WorldRepository(store)
        self.jobs = JobRepository(store)
        self.translations = TranslationRepository(store)
