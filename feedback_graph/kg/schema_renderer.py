"""
Renders a SchemaDescriptor into the natural-language document handed to the
query translator.

The output is a pure function of the descriptor: labels, relationship types,
properties and values are emitted in sorted order so the same schema always
renders to the same text.
"""

import json
from typing import Any, Dict, List

from .models import SchemaDescriptor, PropertyInfo

MAX_VALUES_PER_PROPERTY = 25
MAX_SAMPLE_CHARS = 300

EXAMPLE_QUERIES = [
    (
        "Which users reported the most issues?",
        "MATCH (u:User)-[:AUTHORED]->(r:Report)-[:MENTIONS]->(i:Issue) "
        "WITH u, count(DISTINCT i) AS issue_count "
        "RETURN u.username AS username, u.platform AS platform, issue_count "
        "ORDER BY issue_count DESC LIMIT 10",
    ),
    (
        "What solutions actually worked for battery issues?",
        "MATCH (r:Report)-[c:CONFIRMS]->(s:Solution) "
        "MATCH (r)-[:MENTIONS]->(i:Issue) "
        "WHERE toLower(i.description) CONTAINS toLower($issue) "
        "WITH s, count(DISTINCT r) AS confirmations "
        "RETURN s.solution_id AS solution_id, s.type AS type, s.description AS description, confirmations "
        "ORDER BY confirmations DESC LIMIT 20",
    ),
    (
        "Which products have the most issues?",
        "MATCH (r:Report)-[:MENTIONS]->(i:Issue) WHERE r.product IS NOT NULL "
        "WITH r.product AS product, count(DISTINCT i) AS issue_count "
        "RETURN product, issue_count ORDER BY issue_count DESC LIMIT 15",
    ),
    (
        "Show me solutions suggested more than once",
        "MATCH (r:Report)-[:SUGGESTS]->(s:Solution) "
        "WITH s, count(r) AS suggestion_count WHERE suggestion_count > 1 "
        "RETURN s.solution_id AS solution_id, s.description AS description, suggestion_count "
        "ORDER BY suggestion_count DESC LIMIT 20",
    ),
    (
        "Find issues with no confirmed solutions",
        "MATCH (i:Issue)<-[:MENTIONS]-(r:Report) "
        "WHERE NOT EXISTS { MATCH (r2:Report)-[:CONFIRMS]->(:Solution) WHERE (r2)-[:MENTIONS]->(i) } "
        "RETURN DISTINCT i.issue_id AS issue_id, i.type AS type, i.description AS description "
        "LIMIT 20",
    ),
]

DIALECT_RULES = [
    "Every query MUST end with a LIMIT clause no larger than 100.",
    "Cypher has no HAVING keyword. To filter after grouping, aggregate with WITH and then filter "
    "with WHERE: WITH x, count(y) AS cnt WHERE cnt > 1.",
    "When aggregating with WITH, carry forward every variable that later clauses need; "
    "variables not listed in WITH are no longer in scope.",
    "Every computed expression in WITH must have an AS alias.",
    "Use count(DISTINCT n) when counting nodes reached through relationships.",
    "Compare user-supplied text case-insensitively by substring: "
    "toLower(n.prop) CONTAINS toLower($value). Never use exact equality on free text.",
    "Only use labels, relationship types and properties listed in this document. "
    "Property names are case-sensitive.",
    "Respect relationship direction exactly as listed under GRAPH STRUCTURE.",
    "Return named scalar columns (n.prop AS name) rather than whole nodes.",
    "The database is read-only: never use CREATE, MERGE, SET, DELETE, REMOVE or DROP.",
]


def _format_property(prop: PropertyInfo) -> str:
    if prop.types:
        return f"{prop.name} ({', '.join(prop.types)})"
    return prop.name


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return json.dumps(value, default=str)


def _format_sample(record: Dict[str, Any]) -> str:
    text = json.dumps(record, default=str, sort_keys=True)
    if len(text) > MAX_SAMPLE_CHARS:
        text = text[:MAX_SAMPLE_CHARS] + "...}"
    return text


def render_schema_description(schema: SchemaDescriptor) -> str:
    """Build the deterministic schema document for a descriptor."""
    lines: List[str] = []

    lines.append("=== NODE TYPES ===")
    if not schema.node_types:
        lines.append("(no node labels discovered)")
    for node in sorted(schema.node_types, key=lambda n: n.label):
        props = sorted(node.properties, key=lambda p: p.name)
        prop_text = ", ".join(_format_property(p) for p in props) if props else "(no properties)"
        lines.append(f"- {node.label}: {prop_text}")

    lines.append("")
    lines.append("=== RELATIONSHIP TYPES ===")
    if not schema.relationship_types:
        lines.append("(no relationship types discovered)")
    for rel in sorted(schema.relationship_types, key=lambda r: r.type):
        props = sorted(rel.properties, key=lambda p: p.name)
        prop_text = ", ".join(_format_property(p) for p in props) if props else "(no properties)"
        lines.append(f"- {rel.type}: {prop_text}")

    lines.append("")
    lines.append("=== GRAPH STRUCTURE ===")
    edges = sorted(
        {edge.pattern() for edge in schema.structural_edges}
    )
    if edges:
        lines.extend(f"- {pattern}" for pattern in edges)
    else:
        lines.append("(no connections observed)")

    if schema.sample_values_by_label:
        lines.append("")
        lines.append("=== KNOWN VALUES ===")
        for label in sorted(schema.sample_values_by_label):
            for prop in sorted(schema.sample_values_by_label[label]):
                values = schema.sample_values_by_label[label][prop]
                if not values:
                    continue
                shown = [_format_value(v) for v in values[:MAX_VALUES_PER_PROPERTY]]
                suffix = ", ..." if len(values) > MAX_VALUES_PER_PROPERTY else ""
                lines.append(f"- {label}.{prop}: {', '.join(shown)}{suffix}")

    if schema.sample_records:
        lines.append("")
        lines.append("=== SAMPLE RECORDS ===")
        for label in sorted(schema.sample_records):
            for record in schema.sample_records[label]:
                lines.append(f"- {label}: {_format_sample(record)}")

    lines.append("")
    lines.append("=== EXAMPLE QUERIES ===")
    for question, cypher in EXAMPLE_QUERIES:
        lines.append(f"Q: {question}")
        lines.append(f"A: {cypher}")

    lines.append("")
    lines.append("=== CYPHER RULES ===")
    for index, rule in enumerate(DIALECT_RULES, start=1):
        lines.append(f"{index}. {rule}")

    return "\n".join(lines)
