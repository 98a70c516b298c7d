"""
Answer synthesis: turns query rows into a grounded natural-language answer.
"""

import json
import logging
import re
from typing import Dict, Any, List, Optional, Set

from ..models.llm_manager import LLMManager

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No results found for your query."
NOT_TRACKED_MESSAGE = (
    "That information is not tracked in the feedback graph, so it can't be answered from the available data."
)

NUMBER_PATTERN = re.compile(r"\d+(?:,\d{3})*(?:\.\d+)?")
NOT_TRACKED_PATTERN = re.compile(r"\bnot\s+tracked\b", re.IGNORECASE)

SYSTEM_PROMPT = """Convert query results into a natural language answer.
Use ONLY the provided data. Never add facts, names or numbers that are not in the data.
Quote names and values exactly as they appear.
Plain text only, no markdown.
If the user refers to previous context, acknowledge it naturally.
{budget}"""

SHORT_BUDGET = "Answer in at most 3 sentences."
LONG_BUDGET = (
    "Answer in at most 8 sentences. When the data is ranked, present it as a numbered ranking "
    "in the order given."
)


def format_scalar(value: Any) -> str:
    """Render a single cell for direct display."""
    if value is None:
        return "n/a"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(round(value, 2))
    if isinstance(value, list):
        return ", ".join(format_scalar(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def humanize_column(name: str) -> str:
    """'u.issue_count' -> 'Issue count'"""
    base = name.split(".")[-1].replace("_", " ").strip()
    return base[:1].upper() + base[1:] if base else name


def format_raw_listing(rows: List[Dict[str, Any]], max_rows: int = 50) -> str:
    """Deterministic plain listing of rows, used when prose can't be trusted."""
    if not rows:
        return NO_RESULTS_MESSAGE

    shown = rows[:max_rows]
    lines = [f"Here are the results ({len(rows)} rows):"]
    for index, row in enumerate(shown, start=1):
        cells = ", ".join(f"{key}: {format_scalar(value)}" for key, value in row.items())
        lines.append(f"{index}. {cells}")
    if len(rows) > len(shown):
        lines.append(f"(Showing {len(shown)} of {len(rows)} results)")
    return "\n".join(lines)


def is_not_tracked_sentinel(rows: List[Dict[str, Any]]) -> bool:
    """A single one-column row whose value says the data is not tracked."""
    if len(rows) != 1 or len(rows[0]) != 1:
        return False
    value = next(iter(rows[0].values()))
    return isinstance(value, str) and bool(NOT_TRACKED_PATTERN.search(value))


def _parse_number(token: str) -> float:
    return float(token.replace(",", ""))


def _decimals(token: str) -> int:
    return len(token.split(".", 1)[1]) if "." in token else 0


def _collect_numbers(value: Any, found: Set[float]):
    if isinstance(value, bool) or value is None:
        return
    if isinstance(value, (int, float)):
        found.add(abs(float(value)))
    elif isinstance(value, str):
        for token in NUMBER_PATTERN.findall(value):
            found.add(_parse_number(token))
    elif isinstance(value, dict):
        for item in value.values():
            _collect_numbers(item, found)
    elif isinstance(value, list):
        for item in value:
            _collect_numbers(item, found)


class AnswerSynthesizer:
    """Verbalizes result rows with the LLM, guarded against invented numbers."""

    def __init__(self, llm_manager: LLMManager, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.llm_manager = llm_manager
        self.max_rows = config.get("max_rows", 50)
        self.max_json_chars = config.get("max_json_chars", 50000)
        self.history_turns = config.get("history_turns", 2)
        self.temperature = config.get("temperature", 0.1)
        self.max_tokens = config.get("max_tokens", 800)
        self.suspicious_number_threshold = config.get("suspicious_number_threshold", 2)

    async def synthesize(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        expects_results: bool = True,
        reason: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None
    ) -> str:
        """
        Produce the answer text for a question and its rows.

        Args:
            question: The user's question
            rows: Result rows from the graph
            expects_results: False when the question asks for untracked data
            reason: Why the data is not tracked, if known
            history: Recent conversation turns

        Returns:
            Plain-text answer
        """
        if not expects_results or is_not_tracked_sentinel(rows):
            return f"{NOT_TRACKED_MESSAGE} {reason}".strip() if reason else NOT_TRACKED_MESSAGE

        if not rows:
            return NO_RESULTS_MESSAGE

        if len(rows) == 1 and 1 <= len(rows[0]) <= 2:
            return self.format_single_row(rows[0])

        shown, note = self.truncate_rows(rows)
        messages = self.build_messages(question, shown, note, len(rows), history)

        try:
            answer = await self.llm_manager.complete(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except Exception as e:
            logger.error(f"Answer generation failed, returning raw listing: {e}")
            return format_raw_listing(rows, self.max_rows)

        if not answer or not answer.strip():
            logger.warning("Answer generation returned no text, returning raw listing")
            return format_raw_listing(rows, self.max_rows)

        suspicious = self.find_unsupported_numbers(answer, shown, question, len(rows))
        if len(suspicious) > self.suspicious_number_threshold:
            logger.warning(
                f"Answer contains {len(suspicious)} numbers not found in the data "
                f"({', '.join(suspicious[:5])}); returning raw listing"
            )
            return format_raw_listing(rows, self.max_rows)

        return answer.strip()

    def format_single_row(self, row: Dict[str, Any]) -> str:
        if len(row) == 1:
            key, value = next(iter(row.items()))
            return f"{humanize_column(key)}: {format_scalar(value)}"
        return ", ".join(f"{humanize_column(key)}: {format_scalar(value)}" for key, value in row.items())

    def truncate_rows(self, rows: List[Dict[str, Any]]):
        """Bound the rows handed to the model by count and serialized size."""
        shown = rows[:self.max_rows]
        while len(shown) > 1 and len(json.dumps(shown, default=str)) > self.max_json_chars:
            shown = shown[:len(shown) // 2]

        note = None
        if len(shown) < len(rows):
            note = f"[Showing {len(shown)} of {len(rows)} results]"
        return shown, note

    def build_messages(
        self,
        question: str,
        rows: List[Dict[str, Any]],
        note: Optional[str],
        total_rows: int,
        history: Optional[List[Dict[str, str]]] = None
    ) -> List[Dict[str, str]]:
        column_count = max(len(row) for row in rows) if rows else 0
        budget = SHORT_BUDGET if total_rows <= 5 and column_count <= 3 else LONG_BUDGET
        messages = [{"role": "system", "content": SYSTEM_PROMPT.format(budget=budget)}]

        if self.history_turns > 0:
            for turn in (history or [])[-self.history_turns:]:
                if turn.get("role") in ("user", "assistant") and turn.get("content"):
                    messages.append({"role": turn["role"], "content": turn["content"]})

        data = json.dumps(rows, default=str, indent=2)
        content = f"Question: {question}\n\nData:\n{data}"
        if note:
            content += f"\n{note}"
        messages.append({"role": "user", "content": content})
        return messages

    def find_unsupported_numbers(
        self,
        answer: str,
        rows: List[Dict[str, Any]],
        question: str,
        total_rows: int
    ) -> List[str]:
        """Numeric tokens in the answer that can't be traced to the data."""
        allowed: Set[float] = set()
        _collect_numbers(rows, allowed)
        _collect_numbers(question, allowed)
        allowed.update({float(total_rows), float(len(rows))})
        allowed.update(float(n) for n in range(1, total_rows + 1))

        suspicious = []
        for token in NUMBER_PATTERN.findall(answer):
            value = _parse_number(token)
            if not self._is_supported(value, _decimals(token), allowed):
                suspicious.append(token)
        return suspicious

    @staticmethod
    def _is_supported(value: float, decimals: int, allowed: Set[float]) -> bool:
        for candidate in allowed:
            if abs(candidate - value) < 1e-9:
                return True
            # Rounded or percentage renderings of a row value
            if abs(round(candidate, decimals) - value) < 1e-9:
                return True
            if abs(round(candidate * 100, decimals) - value) < 1e-9:
                return True
        return False
