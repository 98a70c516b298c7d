"""
Weighting constants for composite scores.

The tables are the single source for both the intent queries and the
generative prompt, rendered into Cypher CASE expressions.
"""

from typing import Dict, List

EXPERTISE_WEIGHTS = {
    "expert": 2.0,
    "intermediate": 1.5,
    "novice": 1.0,
    "unknown": 0.8,
}

CERTAINTY_WEIGHTS = {
    "high": 2.0,
    "medium": 1.5,
    "low": 1.0,
}

OUTCOME_WEIGHTS = {
    "resolved": 1.0,
    "improved": 0.7,
    "no_change": 0.3,
    "worse": 0.0,
}

SOLUTION_TYPE_WEIGHTS = {
    "permanent": 1.2,
    "workaround": 0.8,
    "partial": 0.6,
}

# Fallbacks for missing or unrecognized values
DEFAULT_EXPERTISE_WEIGHT = EXPERTISE_WEIGHTS["unknown"]
DEFAULT_CERTAINTY_WEIGHT = CERTAINTY_WEIGHTS["low"]
DEFAULT_OUTCOME_WEIGHT = OUTCOME_WEIGHTS["no_change"]
DEFAULT_SOLUTION_TYPE_WEIGHT = 1.0

RECENCY_DECAY_EXPRESSION = "1.0 / (1.0 + {days})"


def _format_weight(value: float) -> str:
    return f"{float(value):.1f}"


def case_expression(expression: str, weights: Dict[str, float], default: float) -> str:
    """
    Render a weight table as a Cypher CASE over a lower-cased property.

    Example:
        case_expression("u.expertise_level", EXPERTISE_WEIGHTS, 0.8)
        -> CASE toLower(coalesce(u.expertise_level, '')) WHEN 'expert' THEN 2.0 ... ELSE 0.8 END
    """
    branches = " ".join(
        f"WHEN '{key}' THEN {_format_weight(value)}" for key, value in weights.items()
    )
    return (
        f"CASE toLower(coalesce(toString({expression}), '')) {branches} "
        f"ELSE {_format_weight(default)} END"
    )


def expertise_weight(expression: str = "u.expertise_level") -> str:
    return case_expression(expression, EXPERTISE_WEIGHTS, DEFAULT_EXPERTISE_WEIGHT)


def certainty_weight(expression: str = "m.certainty_level") -> str:
    return case_expression(expression, CERTAINTY_WEIGHTS, DEFAULT_CERTAINTY_WEIGHT)


def outcome_weight(expression: str = "c.post_fix_outcome") -> str:
    return case_expression(expression, OUTCOME_WEIGHTS, DEFAULT_OUTCOME_WEIGHT)


def solution_type_weight(expression: str = "s.type") -> str:
    return case_expression(expression, SOLUTION_TYPE_WEIGHTS, DEFAULT_SOLUTION_TYPE_WEIGHT)


def recency_decay(days_expression: str) -> str:
    return RECENCY_DECAY_EXPRESSION.format(days=days_expression)


def describe_weights() -> List[str]:
    """Plain-text weight rules for the translation prompt."""
    def table(weights: Dict[str, float]) -> str:
        return ", ".join(f"{key}={_format_weight(value)}" for key, value in weights.items())

    return [
        f"User expertise weight (User.expertise_level): {table(EXPERTISE_WEIGHTS)}; "
        f"missing values count as {_format_weight(DEFAULT_EXPERTISE_WEIGHT)}.",
        f"Evidence certainty weight (MENTIONS.certainty_level): {table(CERTAINTY_WEIGHTS)}.",
        f"Post-fix outcome weight (CONFIRMS.post_fix_outcome): {table(OUTCOME_WEIGHTS)}.",
        f"Solution type weight (Solution.type): {table(SOLUTION_TYPE_WEIGHTS)}.",
        "Issue severity score = frequency * avg extraction_confidence * avg evidence_strength "
        "* certainty weight * expertise weight.",
        "Recency decay = 1 / (1 + days since the issue was last reported).",
        "Example CASE: " + expertise_weight(),
    ]


SEVERITY_RANKS = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
}


def severity_rank(expression: str = "i.severity") -> str:
    """Severity labels as sortable integers (unknown values sort last)."""
    branches = " ".join(f"WHEN '{key}' THEN {value}" for key, value in SEVERITY_RANKS.items())
    return f"CASE toLower(coalesce(toString({expression}), '')) {branches} ELSE 0 END"
