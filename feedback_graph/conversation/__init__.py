"""
Conversation memory.
"""

from .state import (
    ConversationState,
    ConversationTurn,
    ReferencedEntity,
    SessionStore,
    extract_referenced_entities,
)

__all__ = [
    "ConversationState",
    "ConversationTurn",
    "ReferencedEntity",
    "SessionStore",
    "extract_referenced_entities",
]
