"""
Data models for query execution and answers.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional


@dataclass
class ExecutionResult:
    """Rows returned by a query, with how they were obtained."""
    rows: List[Dict[str, Any]]
    query: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1
    repaired: bool = False
    original_error: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class QueryAnswer:
    """Successful response to a user question."""
    answer: str
    query: Optional[str]
    parameters: Dict[str, Any]
    method: str
    confidence: Optional[float]
    row_count: int
    expects_results: bool = True
    repaired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
