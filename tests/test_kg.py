"""
Tests for schema discovery, rendering and the graph client helpers.
"""

import asyncio
import random

import pytest

from conftest import FakeGraphClient, build_schema, introspection_handler
from feedback_graph.errors import SchemaUnavailable
from feedback_graph.kg.graph_client import coerce_parameters, serialize_row
from feedback_graph.kg.schema_discovery import SchemaCache, clean_type_name, split_type_names
from feedback_graph.kg.schema_renderer import render_schema_description


class TestSchemaCache:
    """Test schema discovery and caching."""

    @pytest.fixture
    def cache(self, fake_graph):
        return SchemaCache(fake_graph, {"sample_size": 2})

    @pytest.mark.asyncio
    async def test_discover_schema(self, cache):
        """Discovery collects labels, relationships, edges and known values."""
        schema = await cache.get_schema()

        assert set(schema.labels) == {"User", "Report", "Issue", "Solution", "Source", "Product"}
        assert "MENTIONS" in schema.relationship_names
        assert schema.has_property("MENTIONS", "certainty_level")
        assert not schema.has_property("AUTHORED", "certainty_level")
        assert any(edge.pattern() == "(User)-[:AUTHORED]->(Report)" for edge in schema.structural_edges)
        assert schema.sample_values_by_label["Issue"]["severity"] == ["Critical", "High", "Low", "Medium"]
        assert "=== NODE TYPES ===" in schema.rendered_description
        assert schema.discovered_at is not None

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_discovery(self, cache, fake_graph):
        """N concurrent first calls run discovery exactly once."""
        results = await asyncio.gather(*(cache.get_schema() for _ in range(10)))

        assert cache.discovery_count == 1
        assert all(result is results[0] for result in results)
        node_queries = [call for call in fake_graph.calls if "nodeTypeProperties" in call["query"]]
        assert len(node_queries) == 1

    @pytest.mark.asyncio
    async def test_cached_after_first_call(self, cache):
        first = await cache.get_schema()
        second = await cache.get_schema()

        assert first is second
        assert cache.discovery_count == 1
        assert cache.is_ready

    @pytest.mark.asyncio
    async def test_introspection_failure_raises(self):
        """A failing introspection query makes the schema unavailable."""
        def handler(query, parameters):
            raise ConnectionError("connection refused")

        cache = SchemaCache(FakeGraphClient(handler))

        with pytest.raises(SchemaUnavailable) as exc_info:
            await cache.get_schema()

        assert "connection refused" in exc_info.value.details
        assert not cache.is_ready

    @pytest.mark.asyncio
    async def test_retry_after_failure(self):
        """A failed discovery is not cached; the next call tries again."""
        state = {"fail": True}

        def handler(query, parameters):
            if state["fail"]:
                raise ConnectionError("down")
            return introspection_handler(query, parameters)

        cache = SchemaCache(FakeGraphClient(handler))
        with pytest.raises(SchemaUnavailable):
            await cache.get_schema()

        state["fail"] = False
        schema = await cache.get_schema()

        assert "Issue" in schema.labels
        assert cache.discovery_count == 2

    @pytest.mark.asyncio
    async def test_sample_failures_are_skipped(self):
        """Value and sample lookups that fail do not fail discovery."""
        def handler(query, parameters):
            if "AS value" in query or "properties(n)" in query:
                raise RuntimeError("timeout")
            return introspection_handler(query, parameters)

        cache = SchemaCache(FakeGraphClient(handler))
        schema = await cache.get_schema()

        assert schema.sample_values_by_label == {}
        assert schema.sample_records == {}
        assert "=== KNOWN VALUES ===" not in schema.rendered_description

    @pytest.mark.asyncio
    async def test_edges_sampled_per_relationship_type(self, cache, fake_graph):
        """A rare type keeps its edges even when common types dominate the graph."""
        def handler(query, parameters):
            if "MATCH (a)-[r:" in query and parameters["rel_type"] == "MENTIONS":
                return [{"from_label": "Report", "rel_type": "MENTIONS", "to_label": "Issue"}] * 5000
            return introspection_handler(query, parameters)

        fake_graph.handler = handler
        schema = await cache.get_schema()

        edge_queries = [call for call in fake_graph.calls if "MATCH (a)-[r:" in call["query"]]
        assert sorted(call["parameters"]["rel_type"] for call in edge_queries) == sorted(schema.relationship_names)
        assert all(call["parameters"]["limit"] == 1000 for call in edge_queries)
        assert "MATCH (a)-[r:`AFFECTS`]->(b)" in "\n".join(call["query"] for call in edge_queries)

        patterns = [edge.pattern() for edge in schema.structural_edges]
        assert "(Issue)-[:AFFECTS]->(Product)" in patterns
        assert patterns.count("(Report)-[:MENTIONS]->(Issue)") == 1
        rel_types = [edge.rel_type for edge in schema.structural_edges]
        assert rel_types == sorted(rel_types)

    @pytest.mark.asyncio
    async def test_multi_label_node_types_are_split(self, fake_graph):
        def handler(query, parameters):
            if "db.schema.nodeTypeProperties" in query:
                return [
                    {
                        "nodeType": ":`User`:`Admin`",
                        "nodeLabels": ["User", "Admin"],
                        "properties": [{"property": "permissions", "types": ["StringArray"]}],
                    },
                    {
                        "nodeType": ":`User`",
                        "nodeLabels": ["User"],
                        "properties": [{"property": "username", "types": ["String"]}],
                    },
                ]
            return introspection_handler(query, parameters)

        fake_graph.handler = handler
        schema = await SchemaCache(fake_graph).get_schema()

        assert sorted(schema.labels) == ["Admin", "User"]
        assert "UserAdmin" not in schema.labels
        assert schema.get_node_type("User").property_names() == ["permissions", "username"]
        assert schema.get_node_type("Admin").property_names() == ["permissions"]

    def test_clean_type_name(self):
        assert clean_type_name(":`User`") == "User"
        assert clean_type_name(":`MENTIONS`") == "MENTIONS"

    def test_split_type_names(self):
        assert split_type_names(":`User`:`Admin`") == ["User", "Admin"]
        assert split_type_names(":`Odd``Name`") == ["Odd`Name"]
        assert split_type_names(":User:Admin") == ["User", "Admin"]
        assert split_type_names("") == []


class TestSchemaRenderer:
    """Test the schema description document."""

    def test_render_is_deterministic(self):
        schema = build_schema()
        first = render_schema_description(schema)

        random.Random(7).shuffle(schema.node_types)
        random.Random(7).shuffle(schema.relationship_types)
        schema.structural_edges.reverse()

        assert render_schema_description(schema) == first

    def test_render_contents(self):
        text = render_schema_description(build_schema())

        assert "- Issue: description (String), issue_id (String), severity (String), type (String)" in text
        assert "(Report)-[:MENTIONS]->(Issue)" in text
        assert 'Issue.severity: "Critical", "High", "Low", "Medium"' in text
        assert "=== EXAMPLE QUERIES ===" in text
        assert "HAVING" in text
        assert text.index("=== NODE TYPES ===") < text.index("=== CYPHER RULES ===")


class TestGraphClientHelpers:
    """Test parameter coercion and row serialization."""

    def test_coerce_parameters(self):
        coerced = coerce_parameters({"limit": 5.0, "score": 1.5, "flag": True, "name": "x"})

        assert coerced["limit"] == 5
        assert isinstance(coerced["limit"], int)
        assert coerced["score"] == 1.5
        assert coerced["flag"] is True
        assert coerced["name"] == "x"

    def test_serialize_temporal_values(self):
        class FakeDate:
            def iso_format(self):
                return "2024-05-01"

        row = serialize_row({"created_at": FakeDate(), "tags": [FakeDate()], "count": 3})

        assert row == {"created_at": "2024-05-01", "tags": ["2024-05-01"], "count": 3}
