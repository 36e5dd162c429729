# data_access/__init__.py
"""Persistence layer: record stores and the typed repositories over them."""

from .record_store import (
    InMemoryRecordStore,
    Neo4jRecordStore,
    RecordStore,
    build_record_store,
)
from .repositories import (
    JobRepository,
    ProjectRepository,
    Repositories,
    TranslationRepository,
    UnitRepository,
    WorldRepository,
)

__all__ = [
    "InMemoryRecordStore",
    "Neo4jRecordStore",
    "RecordStore",
    "build_record_store",
    "JobRepository",
    "ProjectRepository",
    "Repositories",
    "TranslationRepository",
    "UnitRepository",
    "WorldRepository",
]
