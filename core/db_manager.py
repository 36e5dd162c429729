# core/db_manager.py
from typing import Any

import structlog
from neo4j import (  # type: ignore
    AsyncDriver,
    AsyncGraphDatabase,
    AsyncManagedTransaction,
)
from neo4j.exceptions import Neo4jError, ServiceUnavailable  # type: ignore

from config import settings

logger = structlog.get_logger(__name__)

RECORD_LABELS = (
    "Project",
    "Unit",
    "WorldEntity",
    "WorldRule",
    "Relationship",
    "Job",
    "TranslatedUnit",
)


class Neo4jManagerSingleton:
    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super().__new__(cls)
            cls._instance._initialized_flag = False
        return cls._instance

    def __init__(self):
        if self._initialized_flag:
            return

        self.logger = structlog.get_logger(__name__)
        self.driver: AsyncDriver | None = None
        self._initialized_flag = True

    async def __aenter__(self) -> "Neo4jManagerSingleton":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self):
        if self.driver:
            await self.close()

        try:
            self.driver = AsyncGraphDatabase.driver(
                settings.NEO4J_URI, auth=(settings.NEO4J_USER, settings.NEO4J_PASSWORD)
            )
            await self.driver.verify_connectivity()
            self.logger.info(f"Successfully connected to Neo4j at {settings.NEO4J_URI}")
        except ServiceUnavailable as e:
            self.logger.critical(
                f"Neo4j connection failed: {e}. Ensure the Neo4j database is running and accessible."
            )
            self.driver = None
            raise

    async def close(self):
        if self.driver:
            try:
                await self.driver.close()
                self.logger.info("Neo4j driver closed.")
            except Neo4jError as e:
                self.logger.error(f"Error while closing Neo4j driver: {e}", exc_info=True)
            finally:
                self.driver = None

    async def _ensure_connected(self):
        if self.driver is None:
            self.logger.info("Driver is None, attempting to connect.")
            await self.connect()

        if self.driver is None:
            raise ConnectionError("Neo4j driver not initialized or connection failed.")

    async def _execute_query_tx(
        self,
        tx: AsyncManagedTransaction,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        self.logger.debug(f"Executing Cypher query: {query} with params: {parameters}")
        result_cursor = await tx.run(query, parameters)
        return await result_cursor.data()

    async def execute_read_query(
        self, query: str, parameters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        await self._ensure_connected()
        async with self.driver.session(database=settings.NEO4J_DATABASE) as session:  # type: ignore
            return await session.execute_read(self._execute_query_tx, query, parameters)

    async def execute_write_query(
        self, query: str, parameters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        await self._ensure_connected()
        async with self.driver.session(database=settings.NEO4J_DATABASE) as session:  # type: ignore
            return await session.execute_write(
                self._execute_query_tx, query, parameters
            )

    async def create_db_schema(self) -> None:
        """Create one uniqueness constraint per record label."""
        await self._ensure_connected()
        for label in RECORD_LABELS:
            query = (
                f"CREATE CONSTRAINT {label.lower()}_id_unique IF NOT EXISTS "
                f"FOR (n:{label}) REQUIRE n.id IS UNIQUE"
            )
            try:
                await self.execute_write_query(query)
            except Neo4jError as e:
                self.logger.warning(
                    f"Schema operation failed for label {label}: {e}", exc_info=True
                )
        self.logger.info("Neo4j record constraints ensured.", labels=len(RECORD_LABELS))


neo4j_manager = Neo4jManagerSingleton()
