"""
Per-session conversation memory for follow-up questions.
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

TYPE_COLUMNS = ("type", "label", "labels", "_type")
MAX_REFERENCED_ENTITIES = 10
# Row values kept with an entity are trimmed to stay prompt-sized
MAX_DATA_TEXT_LENGTH = 200
MAX_DATA_LIST_LENGTH = 20


@dataclass
class ConversationTurn:
    """One message in the conversation."""
    role: str
    content: str
    timestamp: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ReferencedEntity:
    """An entity that appeared in the latest answer's rows."""
    id: Any
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


def _find_id_column(row: Dict[str, Any]) -> Optional[str]:
    if "id" in row:
        return "id"
    for key in row:
        if key.endswith("_id"):
            return key
    return None


def _entity_type(row: Dict[str, Any], id_column: str) -> str:
    for column in TYPE_COLUMNS:
        value = row.get(column)
        if isinstance(value, list) and value:
            return str(value[0])
        if value:
            return str(value)
    if id_column != "id":
        return id_column[:-len("_id")]
    return "entity"


def _entity_data(row: Dict[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in row.items():
        if isinstance(value, str) and len(value) > MAX_DATA_TEXT_LENGTH:
            value = value[:MAX_DATA_TEXT_LENGTH] + "..."
        elif isinstance(value, list) and len(value) > MAX_DATA_LIST_LENGTH:
            continue
        data[key] = value
    return data


def extract_referenced_entities(rows: List[Dict[str, Any]], limit: int = MAX_REFERENCED_ENTITIES) -> List[ReferencedEntity]:
    """Pick out identifiable entities from result rows."""
    entities = []
    seen = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        id_column = _find_id_column(row)
        if id_column is None or row.get(id_column) is None:
            continue
        entity = ReferencedEntity(
            id=row[id_column],
            type=_entity_type(row, id_column),
            data=_entity_data(row),
        )
        key = (str(entity.id), entity.type)
        if key in seen:
            continue
        seen.add(key)
        entities.append(entity)
        if len(entities) >= limit:
            break
    return entities


class ConversationState:
    """History of one conversation plus the entities it last talked about."""

    def __init__(self, max_turns: int = 10):
        self.max_turns = max_turns
        self.history: List[ConversationTurn] = []
        self.last_query_results: List[Dict[str, Any]] = []
        self.last_referenced_entities: List[ReferencedEntity] = []

    def _append(self, role: str, content: str):
        self.history.append(ConversationTurn(
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc).isoformat()
        ))
        if len(self.history) > self.max_turns:
            self.history = self.history[-self.max_turns:]

    def record_question(self, text: str):
        self._append("user", text)

    def record_answer(self, text: str):
        self._append("assistant", text)

    def update_memory(self, rows: List[Dict[str, Any]]):
        """Remember the latest rows and the entities they reference."""
        self.last_query_results = list(rows or [])
        self.last_referenced_entities = extract_referenced_entities(self.last_query_results)

    def recent_history(self, n: Optional[int] = None) -> List[Dict[str, str]]:
        turns = self.history if n is None else self.history[-n:] if n > 0 else []
        return [turn.to_message() for turn in turns]

    def referenced_entities(self) -> List[Dict[str, Any]]:
        return [asdict(entity) for entity in self.last_referenced_entities]

    def get_state(self) -> Dict[str, Any]:
        return {
            "history": [asdict(turn) for turn in self.history],
            "last_query_results": self.last_query_results,
            "last_referenced_entities": self.referenced_entities(),
        }

    def reset(self):
        self.history = []
        self.last_query_results = []
        self.last_referenced_entities = []


class SessionStore:
    """In-memory map of session id to ConversationState."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.max_turns = config.get("max_turns", 10)
        self._sessions: Dict[str, ConversationState] = {}

    def get(self, session_id: str = "default") -> ConversationState:
        if session_id not in self._sessions:
            logger.debug(f"Creating conversation session {session_id}")
            self._sessions[session_id] = ConversationState(max_turns=self.max_turns)
        return self._sessions[session_id]

    def reset(self, session_id: str = "default"):
        if session_id in self._sessions:
            self._sessions[session_id].reset()

    def drop(self, session_id: str):
        self._sessions.pop(session_id, None)

    def session_ids(self) -> List[str]:
        return list(self._sessions.keys())
