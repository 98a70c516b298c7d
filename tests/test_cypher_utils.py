"""
Tests for Cypher cleaning, bounding and scoring helpers.
"""

from feedback_graph.router.cypher_utils import (
    contains_write_clause,
    enforce_limit,
    extract_query_from_text,
    fill_template,
    find_unknown_identifiers,
    looks_like_read_query,
    strip_markdown_fence,
)
from feedback_graph.router.scoring import (
    EXPERTISE_WEIGHTS,
    OUTCOME_WEIGHTS,
    case_expression,
    describe_weights,
    expertise_weight,
    outcome_weight,
    severity_rank,
)


class TestEnforceLimit:
    """Every query leaves with a bounded result size."""

    def test_missing_limit_is_added(self):
        query, _ = enforce_limit("MATCH (n:Issue) RETURN n.issue_id AS id")
        assert query.endswith("LIMIT 100")

    def test_oversized_limit_is_rewritten(self):
        query, _ = enforce_limit("MATCH (n:Issue) RETURN n.issue_id AS id LIMIT 500")
        assert query.endswith("LIMIT 100")
        assert "500" not in query
        assert query.count("LIMIT") == 1

    def test_small_limit_is_kept(self):
        query, _ = enforce_limit("MATCH (n:Issue) RETURN n.issue_id AS id LIMIT 20")
        assert query.endswith("LIMIT 20")

    def test_parameter_limit_is_clamped(self):
        query, params = enforce_limit("MATCH (n) RETURN n LIMIT $limit", {"limit": 1000, "name": "x"})

        assert query == "MATCH (n) RETURN n LIMIT $limit"
        assert params == {"limit": 100, "name": "x"}

    def test_parameters_are_copied(self):
        original = {"limit": 1000}
        enforce_limit("MATCH (n) RETURN n LIMIT $limit", original)
        assert original == {"limit": 1000}

    def test_inner_limit_does_not_bound_final_return(self):
        query, _ = enforce_limit("MATCH (n) WITH n LIMIT 5 MATCH (n)--(m) RETURN m")
        assert query.endswith("LIMIT 100")
        assert "WITH n LIMIT 5" in query

    def test_limit_inside_string_literal_is_untouched(self):
        query, _ = enforce_limit(
            "MATCH (r:Report) WHERE r.text CONTAINS 'LIMIT 500' OR r.text CONTAINS \"limit 900\" "
            "RETURN r.report_id AS id LIMIT 500"
        )

        assert "CONTAINS 'LIMIT 500'" in query
        assert 'CONTAINS "limit 900"' in query
        assert query.endswith("RETURN r.report_id AS id LIMIT 100")

    def test_trailing_semicolon_removed(self):
        query, _ = enforce_limit("MATCH (n) RETURN n;")
        assert query == "MATCH (n) RETURN n\nLIMIT 100"


class TestCypherText:
    """Test fence stripping, write detection and extraction."""

    def test_strip_markdown_fence(self):
        assert strip_markdown_fence("```cypher\nMATCH (n) RETURN n\n```") == "MATCH (n) RETURN n"
        assert strip_markdown_fence("  MATCH (n) RETURN n  ") == "MATCH (n) RETURN n"

    def test_write_clauses_detected(self):
        assert contains_write_clause("MATCH (n) DETACH DELETE n")
        assert contains_write_clause("MATCH (n) SET n.flag = true RETURN n")
        assert contains_write_clause("MERGE (u:User {id: 1})")
        assert contains_write_clause("LOAD CSV FROM 'file:///x.csv' AS row RETURN row")

    def test_write_words_inside_strings_ignored(self):
        assert not contains_write_clause("MATCH (s:Solution) WHERE s.description CONTAINS 'set up' RETURN s")
        assert not contains_write_clause("MATCH (r:Report) WHERE r.text CONTAINS 'delete' RETURN r")

    def test_looks_like_read_query(self):
        assert looks_like_read_query("MATCH (n) RETURN n")
        assert looks_like_read_query("OPTIONAL MATCH (n) RETURN count(n)")
        assert not looks_like_read_query("I cannot answer that")
        assert not looks_like_read_query("MATCH (n) DELETE n RETURN 1")
        assert not looks_like_read_query("MATCH (n)")
        assert not looks_like_read_query(None)

    def test_extract_query_from_fenced_text(self):
        text = "Here is the query:\n```cypher\nMATCH (u:User) RETURN u.username LIMIT 5\n```\nDone."
        assert extract_query_from_text(text) == "MATCH (u:User) RETURN u.username LIMIT 5"

    def test_extract_query_from_plain_text(self):
        text = "Sure.\nMATCH (u:User) RETURN u.username LIMIT 5\n\nThis lists users."
        assert extract_query_from_text(text) == "MATCH (u:User) RETURN u.username LIMIT 5"

    def test_extract_query_none(self):
        assert extract_query_from_text("Sorry, I can't help with that.") is None

    def test_fill_template(self):
        query, params = fill_template(
            "MATCH (r:Report) WHERE r.product = $product RETURN r LIMIT {{limit}}",
            {"limit": 5, "product": "Pixel 8"}
        )

        assert query.endswith("LIMIT 5")
        assert "{{" not in query
        assert params == {"product": "Pixel 8"}

    def test_find_unknown_identifiers(self):
        unknown = find_unknown_identifiers(
            "MATCH (u:User)-[:WROTE]->(r:Review) WHERE r.text CONTAINS ':Fake' RETURN u",
            labels=["User", "Report"],
            relationship_types=["AUTHORED"],
        )
        assert unknown == ["Review", "WROTE"]

    def test_known_identifiers_pass(self):
        unknown = find_unknown_identifiers(
            "MATCH (u:User)-[:AUTHORED]->(r:Report)-[m:MENTIONS|SUGGESTS]->(i) RETURN count(DISTINCT i)",
            labels=["User", "Report"],
            relationship_types=["AUTHORED", "MENTIONS", "SUGGESTS"],
        )
        assert unknown == []


class TestScoring:
    """Weight tables rendered into Cypher."""

    def test_case_expression(self):
        expression = case_expression("u.expertise_level", EXPERTISE_WEIGHTS, 0.8)

        assert expression.startswith("CASE toLower(coalesce(toString(u.expertise_level), ''))")
        assert "WHEN 'expert' THEN 2.0" in expression
        assert "WHEN 'novice' THEN 1.0" in expression
        assert expression.endswith("ELSE 0.8 END")

    def test_weight_helpers(self):
        assert "WHEN 'worse' THEN 0.0" in outcome_weight()
        assert "WHEN 'resolved' THEN 1.0" in outcome_weight("c.post_fix_outcome")
        assert "u.expertise_level" in expertise_weight()
        assert OUTCOME_WEIGHTS["improved"] == 0.7

    def test_severity_rank(self):
        expression = severity_rank("i.severity")
        assert "WHEN 'critical' THEN 4" in expression
        assert expression.endswith("ELSE 0 END")

    def test_describe_weights_mentions_every_table(self):
        text = "\n".join(describe_weights())
        for key in ("expert=2.0", "high=2.0", "no_change=0.3", "permanent=1.2"):
            assert key in text
