"""
Query Router running the configured translation strategies in order.
"""

import logging
from typing import Dict, Any, List, Optional

from ..kg.models import SchemaDescriptor
from ..models.llm_manager import LLMManager
from .generative_translator import GenerativeTranslator
from .intent_classifier import IntentClassifier
from .models import TranslationMethod, TranslationResult
from .template_matcher import TemplateMatcher

logger = logging.getLogger(__name__)

DEFAULT_STRATEGIES = ["template", "intent", "generated"]
KNOWN_STRATEGIES = set(DEFAULT_STRATEGIES)


class QueryRouter:
    """Translates questions into Cypher through a chain of strategies."""

    def __init__(
        self,
        config: Dict[str, Any],
        llm_manager: LLMManager,
        template_matcher: Optional[TemplateMatcher] = None,
        intent_classifier: Optional[IntentClassifier] = None,
        generative_translator: Optional[GenerativeTranslator] = None
    ):
        self.config = config
        self.llm_manager = llm_manager
        self.strategies: List[str] = list(config.get("strategies", DEFAULT_STRATEGIES))

        unknown = [name for name in self.strategies if name not in KNOWN_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown translation strategies: {', '.join(unknown)}")
        if not self.strategies:
            raise ValueError("At least one translation strategy must be configured")

        self.template_matcher = template_matcher or TemplateMatcher(llm_manager, config)
        self.intent_classifier = intent_classifier or IntentClassifier(config)
        self.generative_translator = generative_translator or GenerativeTranslator(llm_manager, config)

    async def route_query(
        self,
        question: str,
        schema: SchemaDescriptor,
        history: Optional[List[Dict[str, str]]] = None,
        referenced_entities: Optional[List[Dict[str, Any]]] = None,
        debug: bool = False
    ) -> TranslationResult:
        """
        Translate a question into a query.

        Args:
            question: The user's natural language question
            schema: Discovered graph schema
            history: Recent conversation turns as {role, content}
            referenced_entities: Entities from the previous answer
            debug: Whether to log each strategy's outcome

        Returns:
            TranslationResult from the first strategy that produced one,
            or NOT_POSSIBLE when every strategy declined
        """
        logger.info(f"Routing query: {question}")
        reason = "No translation strategy produced a query"

        for index, name in enumerate(self.strategies):
            is_last = index == len(self.strategies) - 1

            if name == "template":
                result = await self.template_matcher.match(question, schema)
            elif name == "intent":
                result = self.intent_classifier.translate(question, allow_default=is_last, schema=schema)
            else:
                result = await self.generative_translator.translate(
                    question, schema, history, referenced_entities
                )

            if debug:
                logger.info(f"Strategy {name}: {result}")

            if result is None:
                continue

            # A parse failure lets later strategies try; "not tracked" is final
            if result.method == TranslationMethod.NOT_POSSIBLE and result.expects_results and not is_last:
                reason = result.reason or reason
                logger.info(f"Strategy {name} could not translate ({reason}), trying next")
                continue

            logger.info(f"Translated with {result.method.value} strategy")
            return result

        logger.warning(f"No strategy translated the question: {reason}")
        return TranslationResult.not_possible(reason)

    def get_routing_stats(self) -> Dict[str, Any]:
        """Get routing configuration."""
        return {
            "strategies": self.strategies,
            "similarity_threshold": self.template_matcher.similarity_threshold,
            "templates": [template.id for template in self.template_matcher.templates],
            "intents": self.intent_classifier.get_intent_catalog(),
        }
