"""
Shared fixtures: an in-memory graph client and a mocked LLM manager.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from feedback_graph.kg.models import (
    NodeType,
    PropertyInfo,
    RelationshipType,
    SchemaDescriptor,
    StructuralEdge,
)
from feedback_graph.kg.schema_renderer import render_schema_description
from feedback_graph.models.llm_manager import LLMManager

NODE_PROPERTIES = {
    "User": ["user_id", "username", "platform", "expertise_level"],
    "Report": ["report_id", "text", "product", "platform", "created_at", "extraction_confidence"],
    "Issue": ["issue_id", "type", "description", "severity"],
    "Solution": ["solution_id", "type", "description"],
    "Source": ["source_id", "name", "platform"],
    "Product": ["product_id", "name"],
}

RELATIONSHIP_PROPERTIES = {
    "AUTHORED": [],
    "MENTIONS": ["evidence_strength", "certainty_level"],
    "SUGGESTS": ["suggestion_confidence", "is_experimental"],
    "CONFIRMS": ["confirmation_strength", "post_fix_outcome", "confirmed_at"],
    "PUBLISHED_VIA": ["source_reliability_score"],
    "ABOUT_PRODUCT": ["issue_count"],
    "AFFECTS": [],
}

EDGES = [
    ("User", "AUTHORED", "Report"),
    ("Report", "MENTIONS", "Issue"),
    ("Report", "SUGGESTS", "Solution"),
    ("Report", "CONFIRMS", "Solution"),
    ("Report", "PUBLISHED_VIA", "Source"),
    ("Report", "ABOUT_PRODUCT", "Product"),
    ("Issue", "AFFECTS", "Product"),
]

KNOWN_VALUES = {
    ("Issue", "severity"): ["Critical", "High", "Low", "Medium"],
    ("Issue", "type"): ["battery", "connectivity", "display"],
    ("Report", "product"): ["Pixel 8", "iPhone 15"],
    ("Solution", "type"): ["partial", "permanent", "workaround"],
}


def node_property_rows():
    return [
        {
            "nodeType": f":`{label}`",
            "nodeLabels": [label],
            "properties": [{"property": name, "types": ["String"]} for name in props],
        }
        for label, props in NODE_PROPERTIES.items()
    ]


def relationship_property_rows():
    rows = []
    for rel_type, props in RELATIONSHIP_PROPERTIES.items():
        if props:
            properties = [{"property": name, "types": ["String"]} for name in props]
        else:
            properties = [{"property": None, "types": None}]
        rows.append({"relType": f":`{rel_type}`", "properties": properties})
    return rows


def edge_rows(rel_type=None):
    return [
        {"from_label": a, "rel_type": r, "to_label": b}
        for a, r, b in EDGES
        if rel_type is None or r == rel_type
    ]


def introspection_handler(query, parameters):
    """Answers the schema discovery queries with the fixed feedback schema."""
    if "db.schema.nodeTypeProperties" in query:
        return node_property_rows()
    if "db.schema.relTypeProperties" in query:
        return relationship_property_rows()
    if "MATCH (a)-[r:" in query:
        return edge_rows(parameters["rel_type"])
    if "RETURN DISTINCT" in query:
        for (label, prop), values in KNOWN_VALUES.items():
            if f"`{label}`" in query and f"`{prop}`" in query:
                return [{"value": value} for value in values]
        return []
    if "properties(n) AS props" in query:
        return [{"props": {"id": "sample-1", "name": "example"}}]
    return []


class FakeGraphClient:
    """In-memory stand-in for GraphClient that records every call."""

    def __init__(self, handler=None):
        self.handler = handler or introspection_handler
        self.calls = []

    async def run_query(self, query, parameters=None, read_only=False):
        self.calls.append({"query": query, "parameters": dict(parameters or {}), "read_only": read_only})
        return self.handler(query, dict(parameters or {}))

    async def run_read_query(self, query, parameters=None):
        return await self.run_query(query, parameters, read_only=True)

    async def close(self):
        pass


def build_schema() -> SchemaDescriptor:
    schema = SchemaDescriptor(
        node_types=[
            NodeType(label=label, properties=[PropertyInfo(name=name, types=["String"]) for name in props])
            for label, props in NODE_PROPERTIES.items()
        ],
        relationship_types=[
            RelationshipType(type=rel_type, properties=[PropertyInfo(name=name, types=["String"]) for name in props])
            for rel_type, props in RELATIONSHIP_PROPERTIES.items()
        ],
        structural_edges=[StructuralEdge(from_label=a, rel_type=r, to_label=b) for a, r, b in EDGES],
        sample_values_by_label={"Issue": {"severity": ["Critical", "High", "Low", "Medium"]}},
    )
    schema.rendered_description = render_schema_description(schema)
    return schema


@pytest.fixture
def schema():
    return build_schema()


@pytest.fixture
def fake_graph():
    return FakeGraphClient()


@pytest.fixture
def llm_manager():
    manager = Mock(spec=LLMManager)
    manager.complete = AsyncMock(return_value="")
    manager.embed = AsyncMock(return_value=[0.0, 0.0, 0.0])
    return manager
