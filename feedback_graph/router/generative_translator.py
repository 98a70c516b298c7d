"""
LLM-backed translation of questions into Cypher, grounded in the discovered schema.
"""

import json
import logging
import re
from typing import Dict, Any, List, Optional

from ..kg.models import SchemaDescriptor
from ..models.llm_manager import LLMManager
from .cypher_utils import (
    contains_write_clause,
    enforce_limit,
    extract_query_from_text,
    find_unknown_identifiers,
    looks_like_read_query,
    strip_markdown_fence,
)
from .models import TranslationMethod, TranslationResult
from .scoring import describe_weights

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

TERMINOLOGY_RULES = [
    "\"problems\", \"bugs\", \"complaints\", \"defects\" -> Issue nodes (Issue.type, Issue.description, Issue.severity)",
    "\"fixes\", \"workarounds\", \"remedies\" -> Solution nodes (Solution.type, Solution.description)",
    "\"posts\", \"reviews\", \"feedback\", \"reports\" -> Report nodes",
    "\"people\", \"customers\", \"reporters\" -> User nodes; users write reports via AUTHORED",
    "\"sites\", \"forums\", \"channels\" -> Source nodes reached via PUBLISHED_VIA",
    "\"devices\", \"models\", \"products\" -> Report.product or Product nodes",
    "\"worked\", \"verified\", \"confirmed\" -> CONFIRMS relationships (post_fix_outcome, confirmation_strength)",
    "\"suggested\", \"recommended\" -> SUGGESTS relationships",
    "\"how sure\", \"evidence\" -> MENTIONS.certainty_level and MENTIONS.evidence_strength",
]

OUTPUT_FORMAT = """Respond with a single JSON object and nothing else:
{
  "reasoning": "one or two sentences on how the question maps to the schema",
  "query": "the Cypher query, or null when the data is not tracked",
  "parameters": {"name": "value"},
  "expects_results": true
}
Put user-supplied text values in "parameters" and reference them as $name in the query."""

MISSING_DATA_RULES = """If the question asks about something the schema does not record (for example sentiment,
ratings, prices, demographics or any property not listed above), do NOT invent labels, relationships
or properties. Return "query": null, "expects_results": false and explain in "reasoning" which
data is not tracked."""


def build_system_prompt(schema: SchemaDescriptor) -> str:
    """System prompt: schema document, terminology, scoring and output rules."""
    sections = [
        "You translate questions about product feedback into read-only Cypher queries for Neo4j.",
        "",
        schema.rendered_description,
        "",
        "=== TERMINOLOGY ===",
        *[f"- {rule}" for rule in TERMINOLOGY_RULES],
        "",
        "=== SCORING ===",
        *[f"- {rule}" for rule in describe_weights()],
        "",
        "=== MISSING DATA ===",
        MISSING_DATA_RULES,
        "",
        "If the user refers to earlier answers (\"that\", \"those\", \"it\"), resolve the reference "
        "using the conversation and the referenced entities.",
        "",
        "=== OUTPUT FORMAT ===",
        OUTPUT_FORMAT,
    ]
    return "\n".join(sections)


def parse_translation_response(content: str) -> Optional[Dict[str, Any]]:
    """Extract the JSON object from a model response, if there is one."""
    match = JSON_OBJECT_PATTERN.search(content or "")
    if not match:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    if "query" not in payload and "expects_results" not in payload:
        return None
    return payload


def _scalar_parameters(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(key): value
        for key, value in raw.items()
        if value is None or isinstance(value, (str, int, float, bool))
    }


class GenerativeTranslator:
    """Generates Cypher with the LLM when no catalog query applies."""

    def __init__(self, llm_manager: LLMManager, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.llm_manager = llm_manager
        self.history_turns = config.get("history_turns", 4)
        self.max_limit = config.get("max_limit", 100)
        self.temperature = config.get("temperature", 0.0)
        self.max_tokens = config.get("max_tokens", 1000)

    def build_messages(
        self,
        question: str,
        schema: SchemaDescriptor,
        history: Optional[List[Dict[str, str]]] = None,
        referenced_entities: Optional[List[Dict[str, Any]]] = None
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": build_system_prompt(schema)}]

        for turn in (history or [])[-self.history_turns:]:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})

        if referenced_entities:
            messages.append({
                "role": "system",
                "content": "Previously referenced entities: "
                + json.dumps(referenced_entities, separators=(",", ":"), default=str),
            })

        messages.append({"role": "user", "content": question})
        return messages

    async def translate(
        self,
        question: str,
        schema: SchemaDescriptor,
        history: Optional[List[Dict[str, str]]] = None,
        referenced_entities: Optional[List[Dict[str, Any]]] = None
    ) -> TranslationResult:
        """
        Ask the LLM for a query.

        Returns:
            A GENERATED result, or NOT_POSSIBLE with a reason

        Raises:
            UpstreamGenerationError: if the backend call fails
        """
        messages = self.build_messages(question, schema, history, referenced_entities)
        content = await self.llm_manager.complete(
            messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )
        logger.debug(f"Translation response: {content}")
        return self.interpret_response(content, schema)

    def interpret_response(self, content: str, schema: SchemaDescriptor) -> TranslationResult:
        """Turn a raw model response into a validated TranslationResult."""
        payload = parse_translation_response(content)

        if payload is not None:
            reasoning = payload.get("reasoning") or None
            expects_results = payload.get("expects_results", True) is not False
            query = payload.get("query")
            query = strip_markdown_fence(query) if isinstance(query, str) else None
            parameters = _scalar_parameters(payload.get("parameters"))

            if not expects_results:
                logger.info(f"Question asks for untracked data: {reasoning}")
                if not query:
                    return TranslationResult.not_possible(
                        reasoning or "The requested data is not tracked", expects_results=False
                    )
                return TranslationResult(
                    query=query,
                    parameters=parameters,
                    method=TranslationMethod.GENERATED,
                    reason=reasoning,
                    expects_results=False,
                )

            if not query:
                return TranslationResult.not_possible(reasoning or "The model returned no query")
            return self._validated(query, parameters, schema, reasoning, parse_fallback=False)

        extracted = extract_query_from_text(content)
        if extracted:
            logger.warning("Translation response was not JSON; using extracted Cypher")
            return self._validated(extracted, {}, schema, None, parse_fallback=True)

        logger.warning("Could not parse a query from the translation response")
        return TranslationResult.not_possible("Could not parse a query from the model response")

    def _validated(
        self,
        query: str,
        parameters: Dict[str, Any],
        schema: SchemaDescriptor,
        reasoning: Optional[str],
        parse_fallback: bool
    ) -> TranslationResult:
        if contains_write_clause(query):
            logger.warning(f"Rejected generated write query: {query}")
            return TranslationResult.not_possible(
                "Generated query would modify the graph", rejected_query=query
            )
        if not looks_like_read_query(query):
            logger.warning(f"Generated text is not a read query: {query}")
            return TranslationResult.not_possible(
                "Generated text is not a valid read query", rejected_query=query
            )

        query, parameters = enforce_limit(query, parameters, self.max_limit)

        metadata: Dict[str, Any] = {"parse_fallback": parse_fallback}
        unknown = find_unknown_identifiers(query, schema.labels, schema.relationship_names)
        if unknown:
            logger.warning(f"Generated query uses identifiers not in the schema: {', '.join(unknown)}")
            metadata["unknown_identifiers"] = unknown

        return TranslationResult(
            query=query,
            parameters=parameters,
            method=TranslationMethod.GENERATED,
            reason=reasoning,
            metadata=metadata,
        )
