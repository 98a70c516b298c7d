"""
Data models for query translation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Callable


class TranslationMethod(Enum):
    """How a question was turned into a query."""
    TEMPLATE = "template"
    GENERATED = "generated"
    INTENT = "intent"
    NOT_POSSIBLE = "notPossible"


@dataclass
class TranslationResult:
    """Result of translating a question into Cypher."""
    query: Optional[str]
    parameters: Dict[str, Any]
    method: TranslationMethod
    confidence: Optional[float] = None
    reason: Optional[str] = None
    expects_results: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def not_possible(cls, reason: str, expects_results: bool = True, **metadata) -> "TranslationResult":
        return cls(
            query=None,
            parameters={},
            method=TranslationMethod.NOT_POSSIBLE,
            reason=reason,
            expects_results=expects_results,
            metadata=metadata,
        )


@dataclass
class QueryTemplate:
    """A pre-written parameterized query matched by embedding similarity."""
    id: str
    examples: List[str]
    cypher: str
    default_params: Dict[str, Any] = field(default_factory=dict)
    required_params: List[str] = field(default_factory=list)
    # "Label.property" entries that must exist in the schema for the template to apply
    required_properties: List[str] = field(default_factory=list)
    embedding: Optional[List[float]] = None

    @property
    def embedding_text(self) -> str:
        return " | ".join(self.examples)


@dataclass
class IntentDefinition:
    """A question category mapped to exactly one weighted query."""
    name: str
    description: str
    cypher: str
    any_of: List[str] = field(default_factory=list)
    all_of: List[List[str]] = field(default_factory=list)
    extract_params: Optional[Callable[[str], Dict[str, Any]]] = None
