"""
Neo4j access and schema discovery for the feedback knowledge graph.
"""

from .graph_client import GraphClient
from .models import SchemaDescriptor, NodeType, RelationshipType, StructuralEdge, PropertyInfo
from .schema_discovery import SchemaCache
from .schema_renderer import render_schema_description

__all__ = [
    "GraphClient",
    "SchemaCache",
    "SchemaDescriptor",
    "NodeType",
    "RelationshipType",
    "StructuralEdge",
    "PropertyInfo",
    "render_schema_description",
]
