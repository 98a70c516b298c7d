"""
Neo4j execution adapter: runs parameterized Cypher and normalizes results.
"""

import logging
from typing import Dict, Any, List, Optional

from neo4j import AsyncGraphDatabase, READ_ACCESS, WRITE_ACCESS
from neo4j.graph import Node, Relationship, Path

from ..models.llm_manager import resolve_env_vars

logger = logging.getLogger(__name__)


def coerce_parameters(parameters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Send integer-valued numbers as Cypher INTEGER rather than FLOAT."""
    coerced = {}
    for key, value in (parameters or {}).items():
        if isinstance(value, bool):
            coerced[key] = value
        elif isinstance(value, float) and value.is_integer():
            coerced[key] = int(value)
        else:
            coerced[key] = value
    return coerced


def serialize_value(value: Any) -> Any:
    """Convert driver values into plain JSON-compatible structures."""
    if isinstance(value, Node):
        return {
            "_type": "node",
            "id": value.get("id") or value.element_id,
            "labels": sorted(value.labels),
            "properties": {k: serialize_value(v) for k, v in value.items()},
        }
    if isinstance(value, Relationship):
        return {
            "_type": "relationship",
            "type": value.type,
            "properties": {k: serialize_value(v) for k, v in value.items()},
        }
    if isinstance(value, Path):
        return [serialize_value(node) for node in value.nodes]
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if hasattr(value, "iso_format"):
        # neo4j.time Date/DateTime/Time/Duration
        return value.iso_format()
    return value


def serialize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: serialize_value(value) for key, value in row.items()}


class GraphClient:
    """Async Neo4j client used for both read-only and read-write Cypher."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.uri = resolve_env_vars(config.get("uri", "bolt://localhost:7687"))
        self.username = resolve_env_vars(config.get("username", "neo4j"))
        self.password = resolve_env_vars(config.get("password", ""))
        self.database = config.get("database") or None

        self.driver = AsyncGraphDatabase.driver(
            self.uri,
            auth=(self.username, self.password)
        )
        logger.info(f"Neo4j driver created for {self.uri}")

    async def run_query(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
        read_only: bool = False
    ) -> List[Dict[str, Any]]:
        """
        Run a Cypher query and return its rows as plain dictionaries.

        Args:
            query: Cypher text
            parameters: Flat key -> scalar map of bind parameters
            read_only: Execute inside a managed read transaction

        Returns:
            List of result rows in column order
        """
        params = coerce_parameters(parameters)
        access_mode = READ_ACCESS if read_only else WRITE_ACCESS

        async with self.driver.session(database=self.database, default_access_mode=access_mode) as session:
            if read_only:
                return await session.execute_read(self._collect_rows, query, params)
            result = await session.run(query, params)
            return [serialize_row(dict(record)) async for record in result]

    async def run_read_query(self, query: str, parameters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a query in strict read-only mode."""
        return await self.run_query(query, parameters, read_only=True)

    @staticmethod
    async def _collect_rows(tx, query: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = await tx.run(query, params)
        return [serialize_row(dict(record)) async for record in result]

    async def verify_connectivity(self):
        await self.driver.verify_connectivity()

    async def get_stats(self) -> Dict[str, Any]:
        """Get graph statistics."""
        try:
            node_rows = await self.run_read_query("MATCH (n) RETURN count(n) AS node_count")
            rel_rows = await self.run_read_query("MATCH ()-[r]->() RETURN count(r) AS rel_count")
            label_rows = await self.run_read_query(
                "CALL db.labels() YIELD label RETURN collect(label) AS labels"
            )
            type_rows = await self.run_read_query(
                "CALL db.relationshipTypes() YIELD relationshipType "
                "RETURN collect(relationshipType) AS types"
            )

            return {
                "total_nodes": node_rows[0]["node_count"],
                "total_relationships": rel_rows[0]["rel_count"],
                "labels": label_rows[0]["labels"],
                "relationship_types": type_rows[0]["types"],
                "neo4j_uri": self.uri
            }

        except Exception as e:
            logger.error(f"Failed to get Neo4j stats: {e}")
            return {
                "total_nodes": 0,
                "total_relationships": 0,
                "labels": [],
                "relationship_types": [],
                "neo4j_uri": self.uri,
                "error": str(e)
            }

    async def close(self):
        """Close the Neo4j driver connection."""
        if self.driver:
            await self.driver.close()
