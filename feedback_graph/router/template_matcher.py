"""
Embedding-similarity matching of questions against a fixed query catalog.
"""

import asyncio
import logging
import re
from typing import Dict, Any, List, Optional, Tuple

import numpy as np

from ..kg.models import SchemaDescriptor
from .cypher_utils import clamp_limit, enforce_limit, fill_template
from .data_terms import find_untracked_terms
from .models import QueryTemplate, TranslationMethod, TranslationResult
from .scoring import severity_rank

logger = logging.getLogger(__name__)

LIMIT_PATTERN = re.compile(r"\b(?:top|show)\s+(\d+)|\b(\d+)\s+(?:most|best|worst)\b", re.IGNORECASE)
PRODUCT_PATTERN = re.compile(r"\b(?:about|for)\s+(?:the\s+)?([\w][\w\s\-\.]*?)\s*(?:[?!,;]|$)", re.IGNORECASE)


def build_default_templates() -> List[QueryTemplate]:
    """The built-in query catalog."""
    return [
        QueryTemplate(
            id="top_users_by_issues",
            examples=[
                "Which users reported the most issues?",
                "Who are the top contributors?",
                "Show me most active users",
                "Users with most reports",
            ],
            cypher="""
                MATCH (u:User)-[:AUTHORED]->(r:Report)-[:MENTIONS]->(i:Issue)
                WITH u, count(DISTINCT i) AS issue_count
                RETURN u.username AS username, u.platform AS platform, issue_count
                ORDER BY issue_count DESC
                LIMIT {{limit}}
            """,
            default_params={"limit": 10},
        ),
        QueryTemplate(
            id="severe_issues",
            examples=[
                "What are the most severe issues?",
                "Show critical problems",
                "Top severity issues",
                "Worst issues reported",
            ],
            cypher=f"""
                MATCH (i:Issue)
                WHERE i.severity IS NOT NULL
                RETURN i.issue_id AS issue_id, i.type AS type, i.severity AS severity,
                       i.description AS description
                ORDER BY {severity_rank("i.severity")} DESC, i.issue_id
                LIMIT {{{{limit}}}}
            """,
            default_params={"limit": 10},
            required_properties=["Issue.severity"],
        ),
        QueryTemplate(
            id="confirmed_solutions",
            examples=[
                "What solutions actually work?",
                "Show proven solutions",
                "Confirmed fixes",
                "Which solutions are verified?",
            ],
            cypher="""
                MATCH (r:Report)-[:CONFIRMS]->(s:Solution)
                WITH s, count(r) AS confirmations
                RETURN s.solution_id AS solution_id, s.type AS type, s.description AS description, confirmations
                ORDER BY confirmations DESC
                LIMIT {{limit}}
            """,
            default_params={"limit": 15},
        ),
        QueryTemplate(
            id="negative_sentiment",
            examples=[
                "Show negative feedback",
                "What are people complaining about?",
                "Negative reviews",
                "Bad reports",
            ],
            cypher="""
                MATCH (r:Report)
                WHERE r.sentiment_score < 0
                RETURN r.report_id AS report_id, r.product AS product, r.text AS text,
                       r.sentiment_score AS sentiment_score
                ORDER BY r.sentiment_score ASC
                LIMIT {{limit}}
            """,
            default_params={"limit": 20},
            required_properties=["Report.sentiment_score"],
        ),
        QueryTemplate(
            id="product_issues",
            examples=[
                "Which products have the most issues?",
                "Products with problems",
                "Issue count by product",
                "Most problematic products",
            ],
            cypher="""
                MATCH (r:Report)-[:MENTIONS]->(i:Issue)
                WHERE r.product IS NOT NULL
                WITH r.product AS product, count(DISTINCT i) AS issue_count
                RETURN product, issue_count
                ORDER BY issue_count DESC
                LIMIT {{limit}}
            """,
            default_params={"limit": 15},
            required_properties=["Report.product"],
        ),
        QueryTemplate(
            id="issues_for_product",
            examples=[
                "What issues are reported for this product?",
                "Problems people have with a specific device",
                "Show issues about a product",
                "Complaints for a model",
            ],
            cypher="""
                MATCH (r:Report)-[:MENTIONS]->(i:Issue)
                WHERE toLower(r.product) CONTAINS toLower($product)
                WITH i, count(DISTINCT r) AS report_count
                RETURN i.issue_id AS issue_id, i.type AS type, i.severity AS severity,
                       i.description AS description, report_count
                ORDER BY report_count DESC
                LIMIT {{limit}}
            """,
            default_params={"limit": 15},
            required_params=["product"],
            required_properties=["Report.product"],
        ),
        QueryTemplate(
            id="platform_activity",
            examples=[
                "Which platforms are most active?",
                "Platform statistics",
                "Reports by platform",
                "Most used platforms",
            ],
            cypher="""
                MATCH (u:User)-[:AUTHORED]->(r:Report)
                WITH u.platform AS platform, count(DISTINCT u) AS user_count, count(r) AS report_count
                RETURN platform, user_count, report_count
                ORDER BY report_count DESC
                LIMIT {{limit}}
            """,
            default_params={"limit": 10},
        ),
    ]


def cosine_similarity(a, b) -> float:
    """Cosine of the angle between two vectors; 0 when either has no magnitude."""
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def extract_parameters(question: str, template: QueryTemplate, max_limit: int = 100) -> Optional[Dict[str, Any]]:
    """
    Pull template parameters out of the question text.

    Returns:
        Parameter map, or None when a required parameter is missing
    """
    params = dict(template.default_params)

    limit_match = LIMIT_PATTERN.search(question)
    if limit_match:
        params["limit"] = clamp_limit(limit_match.group(1) or limit_match.group(2), max_limit)
    elif "limit" in params:
        params["limit"] = clamp_limit(params["limit"], max_limit)

    if "product" in template.required_params or "$product" in template.cypher:
        product_match = PRODUCT_PATTERN.search(question)
        if product_match and product_match.group(1).strip():
            params["product"] = product_match.group(1).strip()

    for name in template.required_params:
        if name not in params:
            return None
    return params


class TemplateMatcher:
    """Matches questions to the template catalog by embedding similarity."""

    def __init__(
        self,
        llm_manager,
        config: Optional[Dict[str, Any]] = None,
        templates: Optional[List[QueryTemplate]] = None
    ):
        config = config or {}
        self.llm_manager = llm_manager
        self.similarity_threshold = config.get("similarity_threshold", 0.75)
        self.max_limit = config.get("max_limit", 100)
        self.cache_size = config.get("embedding_cache_size", 1000)
        self.templates = templates if templates is not None else build_default_templates()

        self._initialized = False
        self._init_task: Optional[asyncio.Future] = None
        self._question_cache: Dict[str, List[float]] = {}

    async def initialize(self):
        """Embed every template once; concurrent callers share one run."""
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._embed_templates())
        await asyncio.shield(self._init_task)

    async def _embed_templates(self):
        try:
            logger.info(f"Generating embeddings for {len(self.templates)} query templates...")
            embeddings = await asyncio.gather(
                *(self.llm_manager.embed(template.embedding_text) for template in self.templates)
            )
            for template, embedding in zip(self.templates, embeddings):
                template.embedding = embedding
            self._initialized = True
            logger.info("Template embeddings generated")
        finally:
            self._init_task = None

    async def _embed_question(self, question: str) -> List[float]:
        key = question.lower().strip()
        if key in self._question_cache:
            return self._question_cache[key]

        embedding = await self.llm_manager.embed(question)
        if len(self._question_cache) >= self.cache_size:
            self._question_cache.pop(next(iter(self._question_cache)))
        self._question_cache[key] = embedding
        return embedding

    def _applicable(self, template: QueryTemplate, schema: Optional[SchemaDescriptor]) -> bool:
        if schema is None:
            return True
        for entry in template.required_properties:
            owner, _, prop = entry.partition(".")
            if not schema.has_property(owner, prop):
                return False
        return True

    def score_templates(
        self,
        question_embedding: List[float],
        schema: Optional[SchemaDescriptor] = None
    ) -> List[Tuple[QueryTemplate, float]]:
        """Similarity of the question to each applicable template, best first."""
        scored = [
            (template, cosine_similarity(question_embedding, template.embedding))
            for template in self.templates
            if template.embedding is not None and self._applicable(template, schema)
        ]
        return sorted(scored, key=lambda item: item[1], reverse=True)

    async def match(self, question: str, schema: Optional[SchemaDescriptor] = None) -> Optional[TranslationResult]:
        """
        Translate a question through the template catalog.

        Returns:
            A TEMPLATE TranslationResult, or None when no template is close enough
        """
        untracked = find_untracked_terms(question, schema)
        if untracked:
            logger.debug(f"Question asks about untracked data ({', '.join(untracked)}), skipping templates")
            return None

        try:
            await self.initialize()
            question_embedding = await self._embed_question(question)
        except Exception as e:
            logger.warning(f"Template matching unavailable, embedding failed: {e}")
            return None

        for template, score in self.score_templates(question_embedding, schema):
            if score < self.similarity_threshold:
                break
            params = extract_parameters(question, template, self.max_limit)
            if params is None:
                logger.debug(f"Template {template.id} matched ({score:.3f}) but parameters are missing")
                continue

            query, bind_params = fill_template(template.cypher, params)
            query, bind_params = enforce_limit(query, bind_params, self.max_limit)
            logger.info(f"Matched template {template.id} (similarity {score:.3f})")
            return TranslationResult(
                query=query,
                parameters=bind_params,
                method=TranslationMethod.TEMPLATE,
                confidence=score,
                metadata={"template_id": template.id},
            )

        return None
