"""
Intent Classifier mapping questions onto weighted, ranked graph queries.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from ..kg.models import SchemaDescriptor
from .cypher_utils import clamp_limit, enforce_limit
from .data_terms import find_untracked_terms
from .models import IntentDefinition, TranslationMethod, TranslationResult
from .scoring import (
    certainty_weight,
    expertise_weight,
    outcome_weight,
    recency_decay,
    solution_type_weight,
)

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "issue_overview"
DEFAULT_LIMIT = 10

TOP_N_PATTERN = re.compile(
    r"\b(?:top|show|first)\s+(\d+)|\b(\d+)\s+(?:most|best|worst|users|issues|products|solutions|sources)\b",
    re.IGNORECASE,
)
PRODUCT_PATTERN = re.compile(
    r"\b(?:for|about|on|with)\s+(?:the\s+|my\s+)?([A-Z][\w\-\.]*(?:\s+[A-Z0-9][\w\-\.]*)*)"
)
ISSUE_PATTERNS = [
    re.compile(r"\bfor\s+(?:the\s+)?([a-z][\w\s\-]*?)\s+(?:issues?|problems?|errors?)\b", re.IGNORECASE),
    re.compile(
        r"\b(?:fix|fixes|solve|solves|solutions?|workarounds?|remed(?:y|ies))\s+(?:for|to|of)\s+"
        r"(?:the\s+|my\s+)?([a-z][\w\s\-]*?)\s*(?:[?.!,]|$)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:fix|solve)\s+(?:the\s+|my\s+)?([a-z][\w\s\-]*?)\s*(?:[?.!,]|$)", re.IGNORECASE),
]

_PRODUCT_FILTER = "($product IS NULL OR toLower(coalesce(toString(r.product), '')) CONTAINS toLower($product))"


def ranked_query(body: str, columns: List[Tuple[str, str]], order_by: str) -> str:
    """Append ordering and an explicit 1-based rank column to a scoring query."""
    row_map = ", ".join(f"{alias}: {expression}" for alias, expression in columns)
    returns = ", ".join(f"row.{alias} AS {alias}" for alias, _ in columns)
    return (
        f"{body.strip()}\n"
        f"ORDER BY {order_by}\n"
        f"WITH collect({{{row_map}}}) AS ranked\n"
        f"UNWIND range(0, size(ranked) - 1) AS idx\n"
        f"WITH idx + 1 AS rank, ranked[idx] AS row\n"
        f"RETURN rank, {returns}\n"
        f"LIMIT $limit"
    )


def extract_limit(question: str) -> int:
    match = TOP_N_PATTERN.search(question)
    if match:
        return clamp_limit(match.group(1) or match.group(2))
    return DEFAULT_LIMIT


def extract_product(question: str) -> Optional[str]:
    match = PRODUCT_PATTERN.search(question)
    return match.group(1).strip() if match else None


def extract_issue(question: str) -> Optional[str]:
    for pattern in ISSUE_PATTERNS:
        match = pattern.search(question)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def product_parameters(question: str) -> Dict[str, Any]:
    return {"product": extract_product(question)}


def issue_parameters(question: str) -> Dict[str, Any]:
    return {"issue": extract_issue(question)}


def build_default_intents() -> List[IntentDefinition]:
    """Intent catalog in priority order."""
    return [
        IntentDefinition(
            name="solution_effectiveness",
            description="Solutions ranked by confirmed effectiveness",
            all_of=[
                ["fix", "fixes", "solve", "solves", "solution", "solutions",
                 "workaround", "workarounds", "remedy", "remedies"],
                ["best", "work", "works", "worked", "effective", "proven", "success", "successful"],
            ],
            extract_params=issue_parameters,
            cypher=ranked_query(
                f"""
MATCH (r:Report)-[c:CONFIRMS]->(s:Solution)
OPTIONAL MATCH (r)-[:MENTIONS]->(i:Issue)
WITH s, r, c, collect(DISTINCT i) AS issues
WHERE $issue IS NULL OR any(x IN issues WHERE
    toLower(coalesce(toString(x.description), '')) CONTAINS toLower($issue)
    OR toLower(coalesce(toString(x.type), '')) CONTAINS toLower($issue))
OPTIONAL MATCH (u:User)-[:AUTHORED]->(r)
WITH s, count(DISTINCT r) AS confirmations,
     avg(coalesce(c.confirmation_strength, 0.5) * {outcome_weight("c.post_fix_outcome")}
         * {expertise_weight("u.expertise_level")}) AS avg_effect
WITH s, confirmations, confirmations * avg_effect * {solution_type_weight("s.type")} AS effectiveness_score
""",
                [
                    ("solution_id", "s.solution_id"),
                    ("type", "s.type"),
                    ("description", "s.description"),
                    ("confirmations", "confirmations"),
                    ("effectiveness_score", "round(effectiveness_score, 2)"),
                ],
                "effectiveness_score DESC, confirmations DESC",
            ),
        ),
        IntentDefinition(
            name="issue_severity",
            description="Issues ranked by a weighted severity score",
            any_of=["severe", "worst", "critical", "serious", "dangerous"],
            extract_params=product_parameters,
            cypher=ranked_query(
                f"""
MATCH (r:Report)-[m:MENTIONS]->(i:Issue)
WHERE {_PRODUCT_FILTER}
OPTIONAL MATCH (u:User)-[:AUTHORED]->(r)
WITH i,
     count(DISTINCT r) AS frequency,
     avg(coalesce(r.extraction_confidence, 0.5)) AS avg_confidence,
     avg(coalesce(m.evidence_strength, 0.5)) AS avg_evidence,
     avg({certainty_weight("m.certainty_level")}) AS certainty,
     avg({expertise_weight("u.expertise_level")}) AS expertise
WITH i, frequency, frequency * avg_confidence * avg_evidence * certainty * expertise AS severity_score
""",
                [
                    ("issue_id", "i.issue_id"),
                    ("type", "i.type"),
                    ("severity", "i.severity"),
                    ("description", "i.description"),
                    ("frequency", "frequency"),
                    ("severity_score", "round(severity_score, 2)"),
                ],
                "severity_score DESC, frequency DESC",
            ),
        ),
        IntentDefinition(
            name="emerging_issues",
            description="Issues ranked by frequency with recency decay",
            any_of=["recent", "recently", "trending", "emerging", "lately", "new issues", "this week"],
            extract_params=product_parameters,
            cypher=ranked_query(
                f"""
MATCH (r:Report)-[:MENTIONS]->(i:Issue)
WHERE r.created_at IS NOT NULL AND {_PRODUCT_FILTER}
WITH i,
     count(DISTINCT r) AS frequency,
     max(r.created_at) AS last_seen,
     avg(coalesce(r.extraction_confidence, 0.5)) AS avg_confidence
WITH i, frequency, last_seen,
     duration.inDays(date(datetime(toString(last_seen))), date()).days AS days_since_last_seen,
     avg_confidence
WITH i, frequency, last_seen, days_since_last_seen,
     frequency * avg_confidence * {recency_decay("days_since_last_seen")} AS trend_score
""",
                [
                    ("issue_id", "i.issue_id"),
                    ("type", "i.type"),
                    ("description", "i.description"),
                    ("frequency", "frequency"),
                    ("last_seen", "toString(last_seen)"),
                    ("days_since_last_seen", "days_since_last_seen"),
                    ("trend_score", "round(trend_score, 3)"),
                ],
                "trend_score DESC, frequency DESC",
            ),
        ),
        IntentDefinition(
            name="source_reliability",
            description="Sources ranked by reliability of what they publish",
            any_of=["reliable", "trustworthy", "credible", "source", "sources", "platform", "platforms"],
            cypher=ranked_query(
                """
MATCH (r:Report)-[p:PUBLISHED_VIA]->(src:Source)
OPTIONAL MATCH (r)-[:MENTIONS]->(i:Issue)
WITH src,
     count(DISTINCT r) AS report_count,
     count(DISTINCT i) AS issue_count,
     avg(coalesce(p.source_reliability_score, 0.5)) AS avg_reliability,
     avg(coalesce(r.extraction_confidence, 0.5)) AS avg_confidence
WITH src, report_count, issue_count, avg_reliability,
     avg_reliability * avg_confidence * log(1 + report_count) AS reliability_score
""",
                [
                    ("source", "coalesce(src.name, src.platform, src.source_id)"),
                    ("report_count", "report_count"),
                    ("issue_count", "issue_count"),
                    ("avg_reliability", "round(avg_reliability, 2)"),
                    ("reliability_score", "round(reliability_score, 2)"),
                ],
                "reliability_score DESC, report_count DESC",
            ),
        ),
        IntentDefinition(
            name="top_reporters",
            description="Users ranked by the issues they reported",
            all_of=[
                ["user", "users", "who", "reporter", "reporters", "contributor", "contributors"],
                ["most", "top", "active", "reported"],
            ],
            extract_params=product_parameters,
            cypher=ranked_query(
                f"""
MATCH (u:User)-[:AUTHORED]->(r:Report)-[:MENTIONS]->(i:Issue)
WHERE {_PRODUCT_FILTER}
WITH u,
     count(DISTINCT i) AS issue_count,
     count(DISTINCT r) AS report_count,
     avg(coalesce(r.extraction_confidence, 0.5)) AS avg_confidence
WITH u, issue_count, report_count,
     issue_count * avg_confidence * {expertise_weight("u.expertise_level")} AS contribution_score
""",
                [
                    ("username", "u.username"),
                    ("platform", "u.platform"),
                    ("expertise_level", "u.expertise_level"),
                    ("issue_count", "issue_count"),
                    ("report_count", "report_count"),
                    ("contribution_score", "round(contribution_score, 2)"),
                ],
                "issue_count DESC, contribution_score DESC",
            ),
        ),
        IntentDefinition(
            name="product_issues",
            description="Products ranked by reported issues",
            any_of=["product", "products", "model", "models", "device", "devices"],
            extract_params=product_parameters,
            cypher=ranked_query(
                f"""
MATCH (r:Report)-[m:MENTIONS]->(i:Issue)
WHERE r.product IS NOT NULL AND {_PRODUCT_FILTER}
WITH r.product AS product,
     count(DISTINCT i) AS issue_count,
     count(DISTINCT r) AS report_count,
     avg(coalesce(m.evidence_strength, 0.5)) AS avg_evidence
WITH product, issue_count, report_count, issue_count * avg_evidence AS impact_score
""",
                [
                    ("product", "product"),
                    ("issue_count", "issue_count"),
                    ("report_count", "report_count"),
                    ("impact_score", "round(impact_score, 2)"),
                ],
                "issue_count DESC, impact_score DESC",
            ),
        ),
        IntentDefinition(
            name=DEFAULT_INTENT,
            description="Most reported issues overall",
            cypher=ranked_query(
                """
MATCH (i:Issue)
OPTIONAL MATCH (r:Report)-[m:MENTIONS]->(i)
WITH i, count(DISTINCT r) AS report_count, avg(coalesce(m.evidence_strength, 0.5)) AS avg_evidence
WITH i, report_count, report_count * coalesce(avg_evidence, 0.5) AS overview_score
""",
                [
                    ("issue_id", "i.issue_id"),
                    ("type", "i.type"),
                    ("severity", "i.severity"),
                    ("description", "i.description"),
                    ("report_count", "report_count"),
                    ("overview_score", "round(overview_score, 2)"),
                ],
                "overview_score DESC, report_count DESC",
            ),
        ),
    ]


@dataclass
class IntentAnalysis:
    """Result of intent analysis."""
    primary_intent: str
    confidence: float
    is_default: bool
    matched_keywords: List[str] = field(default_factory=list)
    secondary_intents: List[Tuple[str, float]] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""


class IntentClassifier:
    """Keyword-driven classifier over a fixed, prioritized intent catalog."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, intents: Optional[List[IntentDefinition]] = None):
        config = config or {}
        self.max_limit = config.get("max_limit", 100)
        self.intents = intents if intents is not None else build_default_intents()
        self.intents_by_name = {intent.name: intent for intent in self.intents}
        if DEFAULT_INTENT not in self.intents_by_name:
            raise ValueError(f"Intent catalog must define the default intent '{DEFAULT_INTENT}'")

    @staticmethod
    def _keyword_present(keyword: str, text: str) -> bool:
        # Whole words only; plural forms are listed in the catalog explicitly
        return re.search(r"\b" + re.escape(keyword) + r"\b", text) is not None

    def _intent_parameters(self, intent: IntentDefinition, question: str) -> Dict[str, Any]:
        parameters = {"limit": extract_limit(question)}
        if intent.extract_params:
            parameters.update(intent.extract_params(question))
        return parameters

    def _keyword_groups(self, intent: IntentDefinition) -> List[List[str]]:
        groups = list(intent.all_of)
        if intent.any_of:
            groups.append(intent.any_of)
        return groups

    def _score_intent(self, intent: IntentDefinition, text: str) -> Tuple[float, List[str]]:
        groups = self._keyword_groups(intent)
        if not groups:
            return 0.0, []
        matched_groups = 0
        matched_keywords = []
        for group in groups:
            hits = [keyword for keyword in group if self._keyword_present(keyword, text)]
            if hits:
                matched_groups += 1
                matched_keywords.extend(hits)
        return matched_groups / len(groups), matched_keywords

    def analyze_intent(self, question: str) -> IntentAnalysis:
        """
        Classify a question into exactly one intent.

        Intents are tested in catalog order; the first whose keyword groups all
        match wins. Without any full match the default intent is returned.

        Args:
            question: The user's natural language question

        Returns:
            IntentAnalysis with the chosen intent and extracted parameters
        """
        text = question.lower()

        primary = None
        secondary = []
        for intent in self.intents:
            score, keywords = self._score_intent(intent, text)
            if primary is None and score == 1.0:
                primary = (intent.name, score, keywords)
            elif score > 0:
                secondary.append((intent.name, score))

        if primary is None:
            return IntentAnalysis(
                primary_intent=DEFAULT_INTENT,
                confidence=0.0,
                is_default=True,
                secondary_intents=secondary,
                parameters=self._intent_parameters(self.intents_by_name[DEFAULT_INTENT], question),
                reasoning="No intent keywords matched; using default overview",
            )

        name, score, keywords = primary
        return IntentAnalysis(
            primary_intent=name,
            confidence=score,
            is_default=False,
            matched_keywords=keywords,
            secondary_intents=secondary,
            parameters=self._intent_parameters(self.intents_by_name[name], question),
            reasoning=f"Primary intent: {name} (matched: {', '.join(keywords)})",
        )

    def translate(
        self,
        question: str,
        allow_default: bool = True,
        schema: Optional[SchemaDescriptor] = None
    ) -> Optional[TranslationResult]:
        """
        Translate a question into its intent's query.

        Questions about data the schema does not record are never mapped onto an
        unrelated intent: the classifier declines, or reports the data as not
        tracked when it is the last strategy.

        Args:
            question: The user's natural language question
            allow_default: Whether a question with no keyword hit maps to the default intent
            schema: Discovered graph schema, used to spot untracked data terms

        Returns:
            An INTENT TranslationResult, a NOT_POSSIBLE result, or None when declining
        """
        untracked = find_untracked_terms(question, schema)
        if untracked:
            reason = f"The feedback graph does not record {', '.join(untracked)} data"
            if not allow_default:
                logger.info(f"{reason}, deferring to next strategy")
                return None
            logger.info(reason)
            return TranslationResult.not_possible(reason, expects_results=False, untracked_terms=untracked)

        analysis = self.analyze_intent(question)
        logger.debug(analysis.reasoning)
        if analysis.is_default and not allow_default:
            logger.debug("No intent keyword hit, deferring to next strategy")
            return None

        intent = self.intents_by_name[analysis.primary_intent]
        query, parameters = enforce_limit(intent.cypher, analysis.parameters, self.max_limit)
        logger.info(f"Classified question as intent {intent.name} (confidence {analysis.confidence:.2f})")
        return TranslationResult(
            query=query,
            parameters=parameters,
            method=TranslationMethod.INTENT,
            confidence=analysis.confidence,
            reason=analysis.reasoning,
            metadata={
                "intent": intent.name,
                "is_default": analysis.is_default,
                "secondary_intents": analysis.secondary_intents,
            },
        )

    def get_intent_catalog(self) -> Dict[str, str]:
        """Intent names and descriptions, for debugging."""
        return {intent.name: intent.description for intent in self.intents}
