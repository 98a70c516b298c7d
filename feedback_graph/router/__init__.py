"""
Question-to-Cypher translation.
"""

from .generative_translator import GenerativeTranslator
from .intent_classifier import IntentClassifier, IntentAnalysis
from .models import TranslationMethod, TranslationResult, QueryTemplate, IntentDefinition
from .query_router import QueryRouter
from .template_matcher import TemplateMatcher

__all__ = [
    "GenerativeTranslator",
    "IntentClassifier",
    "IntentAnalysis",
    "IntentDefinition",
    "QueryRouter",
    "QueryTemplate",
    "TemplateMatcher",
    "TranslationMethod",
    "TranslationResult",
]
