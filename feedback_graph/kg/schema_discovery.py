"""
Schema discovery and process-lifetime schema cache.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple

from ..errors import SchemaUnavailable
from .models import (
    NodeType,
    PropertyInfo,
    RelationshipType,
    SchemaDescriptor,
    StructuralEdge,
)
from .schema_renderer import render_schema_description

logger = logging.getLogger(__name__)

NODE_PROPERTIES_QUERY = """
CALL db.schema.nodeTypeProperties()
YIELD nodeType, nodeLabels, propertyName, propertyTypes
RETURN nodeType, nodeLabels, collect({property: propertyName, types: propertyTypes}) AS properties
"""

RELATIONSHIP_PROPERTIES_QUERY = """
CALL db.schema.relTypeProperties()
YIELD relType, propertyName, propertyTypes
RETURN relType, collect({property: propertyName, types: propertyTypes}) AS properties
"""

STRUCTURAL_EDGES_QUERY = """
MATCH (a)-[r:{rel_type}]->(b)
WITH a, b LIMIT $limit
UNWIND labels(a) AS from_label
UNWIND labels(b) AS to_label
RETURN DISTINCT from_label, $rel_type AS rel_type, to_label
"""

DEFAULT_ENUMERATED_PROPERTIES = [
    "Issue.type",
    "Issue.severity",
    "Report.platform",
    "Report.product",
    "Solution.type",
    "User.expertise_level",
    "Source.platform",
    "Product.name",
    "MENTIONS.certainty_level",
    "CONFIRMS.post_fix_outcome",
]

# Lists longer than this in sample records are assumed to be embeddings
MAX_SAMPLE_LIST_LENGTH = 20

_QUOTED_NAME_PATTERN = re.compile(r"`((?:[^`]|``)+)`")


def clean_type_name(raw: str) -> str:
    """Strip the `:`/backtick decoration from db.schema type names."""
    return re.sub(r"[`:\s]", "", raw or "")


def split_type_names(raw: str) -> List[str]:
    """Split a db.schema node type such as :`User`:`Admin` into its labels."""
    names = [name.replace("``", "`") for name in _QUOTED_NAME_PATTERN.findall(raw or "")]
    if names:
        return names
    return [part.strip() for part in (raw or "").split(":") if part.strip()]


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _parse_properties(raw_properties: List[Dict[str, Any]]) -> List[PropertyInfo]:
    properties = []
    for item in raw_properties or []:
        name = item.get("property")
        if not name:
            continue
        properties.append(PropertyInfo(name=name, types=list(item.get("types") or [])))
    return properties


def _trim_sample(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.items()
        if not (isinstance(value, list) and len(value) > MAX_SAMPLE_LIST_LENGTH)
    }


class SchemaCache:
    """Discovers the graph schema once and shares it for the process lifetime."""

    def __init__(self, graph_client, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.graph_client = graph_client
        self.sample_size = config.get("sample_size", 3)
        self.value_limit = config.get("value_limit", 50)
        self.edge_sample_limit = config.get("edge_sample_limit", 1000)
        self.enumerated_properties = config.get("enumerated_properties", DEFAULT_ENUMERATED_PROPERTIES)

        self._schema: Optional[SchemaDescriptor] = None
        self._inflight: Optional[asyncio.Future] = None
        self.discovery_count = 0

    @property
    def is_ready(self) -> bool:
        return self._schema is not None

    async def get_schema(self) -> SchemaDescriptor:
        """Return the cached schema, discovering it on first use."""
        if self._schema is not None:
            return self._schema

        # Concurrent first callers all wait on the same discovery
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._discover_and_store())
        return await asyncio.shield(self._inflight)

    async def _discover_and_store(self) -> SchemaDescriptor:
        try:
            schema = await self.discover_schema()
            self._schema = schema
            return schema
        finally:
            self._inflight = None

    async def initialize(self) -> SchemaDescriptor:
        """Eagerly load the schema at startup."""
        logger.info("Loading Neo4j schema metadata...")
        schema = await self.get_schema()
        logger.info(
            f"Schema loaded: {len(schema.node_types)} node types, "
            f"{len(schema.relationship_types)} relationship types, "
            f"{len(schema.structural_edges)} structural edges"
        )
        return schema

    async def discover_schema(self) -> SchemaDescriptor:
        """
        Introspect the graph store.

        Returns:
            A fully rendered SchemaDescriptor

        Raises:
            SchemaUnavailable: if the introspection queries cannot run
        """
        self.discovery_count += 1
        run = self.graph_client.run_read_query

        try:
            node_rows, rel_rows = await asyncio.gather(
                run(NODE_PROPERTIES_QUERY),
                run(RELATIONSHIP_PROPERTIES_QUERY),
            )
        except Exception as e:
            logger.error(f"Schema introspection failed: {e}")
            raise SchemaUnavailable("Schema introspection failed", details=str(e)) from e

        node_types = self._merge_node_types(node_rows)
        relationship_types = [
            RelationshipType(type=clean_type_name(row["relType"]), properties=_parse_properties(row["properties"]))
            for row in rel_rows
            if clean_type_name(row["relType"])
        ]
        structural_edges = await self._discover_edges([rel.type for rel in relationship_types])

        schema = SchemaDescriptor(
            node_types=node_types,
            relationship_types=relationship_types,
            structural_edges=structural_edges,
            discovered_at=datetime.now(timezone.utc),
        )

        values, samples = await self._collect_samples(schema)
        schema.sample_values_by_label = values
        schema.sample_records = samples
        schema.rendered_description = render_schema_description(schema)
        return schema

    async def _discover_edges(self, rel_types: List[str]) -> List[StructuralEdge]:
        """Sample each relationship type separately so rare types are not crowded out."""
        run = self.graph_client.run_read_query
        try:
            results = await asyncio.gather(*(
                run(
                    STRUCTURAL_EDGES_QUERY.format(rel_type=quote_identifier(rel_type)),
                    {"limit": self.edge_sample_limit, "rel_type": rel_type},
                )
                for rel_type in rel_types
            ))
        except Exception as e:
            logger.error(f"Structural edge discovery failed: {e}")
            raise SchemaUnavailable("Schema introspection failed", details=str(e)) from e

        edges = {
            (row["rel_type"], row["from_label"], row["to_label"])
            for rows in results
            for row in rows
        }
        return [
            StructuralEdge(from_label=from_label, rel_type=rel_type, to_label=to_label)
            for rel_type, from_label, to_label in sorted(edges)
        ]

    def _merge_node_types(self, rows: List[Dict[str, Any]]) -> List[NodeType]:
        # A multi-label combination is one row; its properties belong to every label in it
        by_label: Dict[str, NodeType] = {}
        for row in rows:
            labels = row.get("nodeLabels") or split_type_names(row["nodeType"])
            properties = _parse_properties(row["properties"])
            for label in labels:
                node = by_label.setdefault(label, NodeType(label=label))
                known = set(node.property_names())
                for prop in properties:
                    if prop.name not in known:
                        node.properties.append(PropertyInfo(name=prop.name, types=list(prop.types)))
                        known.add(prop.name)
        return list(by_label.values())

    def _value_targets(self, schema: SchemaDescriptor) -> List[Tuple[str, str, str]]:
        targets = []
        for entry in self.enumerated_properties:
            owner, _, prop = entry.partition(".")
            if not prop:
                continue
            if schema.has_label(owner) and schema.has_property(owner, prop):
                query = (
                    f"MATCH (n:{quote_identifier(owner)}) WHERE n.{quote_identifier(prop)} IS NOT NULL "
                    f"RETURN DISTINCT n.{quote_identifier(prop)} AS value ORDER BY value LIMIT $limit"
                )
            elif schema.has_relationship(owner) and schema.has_property(owner, prop):
                query = (
                    f"MATCH ()-[r:{quote_identifier(owner)}]->() WHERE r.{quote_identifier(prop)} IS NOT NULL "
                    f"RETURN DISTINCT r.{quote_identifier(prop)} AS value ORDER BY value LIMIT $limit"
                )
            else:
                logger.debug(f"Skipping enumerated property {entry}: not in schema")
                continue
            targets.append((owner, prop, query))
        return targets

    async def _collect_samples(
        self, schema: SchemaDescriptor
    ) -> Tuple[Dict[str, Dict[str, List[Any]]], Dict[str, List[Dict[str, Any]]]]:
        """Fetch enumerated values and sample records; failures are skipped."""
        run = self.graph_client.run_read_query
        value_targets = self._value_targets(schema)
        sample_labels = sorted(schema.labels) if self.sample_size > 0 else []

        value_results = await asyncio.gather(
            *(run(query, {"limit": self.value_limit}) for _, _, query in value_targets),
            return_exceptions=True,
        )
        sample_results = await asyncio.gather(
            *(
                run(
                    f"MATCH (n:{quote_identifier(label)}) RETURN properties(n) AS props LIMIT $limit",
                    {"limit": self.sample_size},
                )
                for label in sample_labels
            ),
            return_exceptions=True,
        )

        values: Dict[str, Dict[str, List[Any]]] = {}
        for (owner, prop, _), result in zip(value_targets, value_results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch values for {owner}.{prop}: {result}")
                continue
            found = [row["value"] for row in result if row.get("value") is not None]
            if found:
                values.setdefault(owner, {})[prop] = found

        samples: Dict[str, List[Dict[str, Any]]] = {}
        for label, result in zip(sample_labels, sample_results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch sample records for {label}: {result}")
                continue
            records = [_trim_sample(row["props"]) for row in result if row.get("props")]
            if records:
                samples[label] = records

        return values, samples
