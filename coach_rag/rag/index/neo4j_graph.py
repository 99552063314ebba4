"""Neo4j-backed graph store for entity expansion."""

from __future__ import annotations

from loguru import logger
from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from coach_rag.config.settings import settings
from coach_rag.rag.errors import StoreUnavailable
from coach_rag.rag.types import RelatedEntity

RELATED_ENTITIES_CYPHER = """
MATCH (e {name: $entityName})-[r]-(related)
RETURN related.name AS name, type(r) AS relationship
LIMIT $limit
"""


class Neo4jGraphStore:
    """Graph store answering one-hop related-entity lookups."""

    def __init__(self, driver: AsyncDriver | None = None):
        self._driver = driver

    def _get_driver(self) -> AsyncDriver:
        if self._driver is None:
            if not settings.neo4j_password:
                raise StoreUnavailable("graph", "NEO4J_PASSWORD not set")
            logger.info("Initializing Neo4j driver", uri=settings.neo4j_uri, user=settings.neo4j_user)
            try:
                self._driver = AsyncGraphDatabase.driver(
                    settings.neo4j_uri,
                    auth=(settings.neo4j_user, settings.neo4j_password),
                    max_connection_lifetime=3600,
                    connection_timeout=1.5,
                )
            except (DriverError, ValueError) as e:
                raise StoreUnavailable("graph", f"Invalid Neo4j configuration: {e}") from e
        return self._driver

    async def related_entities(self, entity_name: str, limit: int) -> list[RelatedEntity]:
        """Entities one hop away from ``entity_name``.

        Raises:
            StoreUnavailable: If the graph database cannot be queried
        """
        driver = self._get_driver()
        try:
            async with driver.session() as session:
                result = await session.run(RELATED_ENTITIES_CYPHER, entityName=entity_name, limit=limit)
                records = [record async for record in result]
        except (Neo4jError, DriverError, OSError) as e:
            raise StoreUnavailable("graph", f"Graph lookup failed for '{entity_name}': {e}") from e

        return [RelatedEntity(name=r["name"], relation_type=r["relationship"]) for r in records if r["name"]]

    async def close(self) -> None:
        if self._driver is not None:
            logger.info("Closing Neo4j driver")
            await self._driver.close()
            self._driver = None
