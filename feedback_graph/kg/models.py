"""
Data models for the discovered graph schema.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional


@dataclass
class PropertyInfo:
    """A property observed on a node label or relationship type."""
    name: str
    types: List[str] = field(default_factory=list)


@dataclass
class NodeType:
    """A node label with its observed properties."""
    label: str
    properties: List[PropertyInfo] = field(default_factory=list)

    def property_names(self) -> List[str]:
        return [prop.name for prop in self.properties]


@dataclass
class RelationshipType:
    """A relationship type with its observed properties."""
    type: str
    properties: List[PropertyInfo] = field(default_factory=list)

    def property_names(self) -> List[str]:
        return [prop.name for prop in self.properties]


@dataclass
class StructuralEdge:
    """An observed (fromLabel)-[relType]->(toLabel) connection."""
    from_label: str
    rel_type: str
    to_label: str

    def pattern(self) -> str:
        return f"({self.from_label})-[:{self.rel_type}]->({self.to_label})"


@dataclass
class SchemaDescriptor:
    """Graph schema discovered once per process and shared read-only."""
    node_types: List[NodeType]
    relationship_types: List[RelationshipType]
    structural_edges: List[StructuralEdge]
    sample_values_by_label: Dict[str, Dict[str, List[Any]]] = field(default_factory=dict)
    sample_records: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    rendered_description: str = ""
    discovered_at: Optional[datetime] = None

    @property
    def labels(self) -> List[str]:
        return [node.label for node in self.node_types]

    @property
    def relationship_names(self) -> List[str]:
        return [rel.type for rel in self.relationship_types]

    def get_node_type(self, label: str) -> Optional[NodeType]:
        for node in self.node_types:
            if node.label == label:
                return node
        return None

    def get_relationship_type(self, rel_type: str) -> Optional[RelationshipType]:
        for rel in self.relationship_types:
            if rel.type == rel_type:
                return rel
        return None

    def has_label(self, label: str) -> bool:
        return self.get_node_type(label) is not None

    def has_relationship(self, rel_type: str) -> bool:
        return self.get_relationship_type(rel_type) is not None

    def has_property(self, owner: str, name: str) -> bool:
        """Check a property on a node label or relationship type."""
        node = self.get_node_type(owner)
        if node is not None:
            return name in node.property_names()
        rel = self.get_relationship_type(owner)
        if rel is not None:
            return name in rel.property_names()
        return False

    def all_property_names(self) -> List[str]:
        names = set()
        for node in self.node_types:
            names.update(node.property_names())
        for rel in self.relationship_types:
            names.update(rel.property_names())
        return sorted(names)
