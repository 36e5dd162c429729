# data_access/record_store.py
"""Record-oriented persistence used by every Chronicle component.

Stores offer plain get/list/create/update over JSON-compatible dicts and
promise no transactions; invariants live in the callers.
"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Protocol

import structlog

from core.db_manager import RECORD_LABELS, Neo4jManagerSingleton, neo4j_manager
from core.errors import RecordNotFoundError

logger = structlog.get_logger(__name__)

PROJECT = "Project"
UNIT = "Unit"
WORLD_ENTITY = "WorldEntity"
WORLD_RULE = "WorldRule"
RELATIONSHIP = "Relationship"
JOB = "Job"
TRANSLATED_UNIT = "TranslatedUnit"


class RecordStore(Protocol):
    async def get(self, kind: str, record_id: str) -> dict[str, Any] | None: ...

    async def list(self, kind: str, **filters: Any) -> list[dict[str, Any]]: ...

    async def create(
        self, kind: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def update(
        self, kind: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]: ...


def _check_kind(kind: str) -> str:
    if kind not in RECORD_LABELS:
        raise ValueError(f"Unknown record kind '{kind}'.")
    return kind


def _matches(data: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(data.get(key) == value for key, value in filters.items())


class InMemoryRecordStore:
    """Process-local store; records are deep-copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, kind: str, record_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        data = self._records.get(_check_kind(kind), {}).get(record_id)
        return copy.deepcopy(data) if data is not None else None

    async def list(self, kind: str, **filters: Any) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        return [
            copy.deepcopy(data)
            for data in self._records.get(_check_kind(kind), {}).values()
            if _matches(data, filters)
        ]

    async def create(
        self, kind: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        bucket = self._records.setdefault(_check_kind(kind), {})
        if record_id in bucket:
            raise ValueError(f"{kind} '{record_id}' already exists")
        bucket[record_id] = copy.deepcopy(data)
        return copy.deepcopy(data)

    async def update(
        self, kind: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        bucket = self._records.get(_check_kind(kind), {})
        if record_id not in bucket:
            raise RecordNotFoundError(kind, record_id)
        bucket[record_id].update(copy.deepcopy(changes))
        return copy.deepcopy(bucket[record_id])


class Neo4jRecordStore:
    """Stores each record as one node labelled by kind, payload as JSON."""

    def __init__(self, db: Neo4jManagerSingleton | None = None) -> None:
        self.db = db or neo4j_manager

    async def get(self, kind: str, record_id: str) -> dict[str, Any] | None:
        query = f"MATCH (n:{_check_kind(kind)} {{id: $id}}) RETURN n.data AS data"
        rows = await self.db.execute_read_query(query, {"id": record_id})
        if not rows or rows[0].get("data") is None:
            return None
        return json.loads(rows[0]["data"])

    async def list(self, kind: str, **filters: Any) -> list[dict[str, Any]]:
        label = _check_kind(kind)
        params: dict[str, Any] = {}
        where = ""
        if "project_id" in filters:
            where = "WHERE n.project_id = $project_id"
            params["project_id"] = filters["project_id"]
        query = f"MATCH (n:{label}) {where} RETURN n.data AS data"
        rows = await self.db.execute_read_query(query, params)
        records = [json.loads(r["data"]) for r in rows if r.get("data")]
        return [r for r in records if _matches(r, filters)]

    async def create(
        self, kind: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        query = (
            f"CREATE (n:{_check_kind(kind)} "
            "{id: $id, project_id: $project_id, data: $data})"
        )
        await self.db.execute_write_query(
            query,
            {
                "id": record_id,
                "project_id": data.get("project_id"),
                "data": json.dumps(data),
            },
        )
        return data

    async def update(
        self, kind: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        current = await self.get(kind, record_id)
        if current is None:
            raise RecordNotFoundError(kind, record_id)
        current.update(changes)
        query = f"MATCH (n:{_check_kind(kind)} {{id: $id}}) SET n.data = $data"
        await self.db.execute_write_query(
            query, {"id": record_id, "data": json.dumps(current)}
        )
        return current


def build_record_store(backend: str) -> RecordStore:
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "neo4j":
        return Neo4jRecordStore()
    raise ValueError(f"Unknown STORE_BACKEND '{backend}' (expected 'memory' or 'neo4j').")
