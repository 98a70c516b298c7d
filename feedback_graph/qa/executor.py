"""
Read-only query execution with retry and a single LLM repair pass.
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional, Tuple

from neo4j.exceptions import ClientError, CypherSyntaxError, CypherTypeError

from ..errors import QueryExecutionError
from ..router.cypher_utils import (
    enforce_limit,
    extract_query_from_text,
    looks_like_read_query,
    strip_markdown_fence,
)
from .models import ExecutionResult

logger = logging.getLogger(__name__)

MALFORMED_ERROR_MARKERS = (
    "Invalid input",
    "SyntaxError",
    "Unknown function",
    "not defined",
    "Type mismatch",
)

REPAIR_SYSTEM_PROMPT = """You fix Cypher queries for Neo4j.
The query below failed. Return ONLY the corrected, read-only Cypher query with no explanation.
Keep the intent of the original query and keep its $parameters.
Cypher has no HAVING clause; filter aggregates with WITH ... WHERE."""


def is_malformed_query_error(error: Exception) -> bool:
    """True when retrying the same query text cannot succeed."""
    if isinstance(error, (CypherSyntaxError, CypherTypeError, ClientError)):
        return True
    text = str(error)
    return any(marker in text for marker in MALFORMED_ERROR_MARKERS)


class QueryExecutor:
    """Runs translated queries against the graph store."""

    def __init__(self, graph_client, llm_manager, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.graph_client = graph_client
        self.llm_manager = llm_manager
        self.max_attempts = config.get("max_attempts", 3)
        self.retry_delay = config.get("retry_delay", 1.0)
        self.max_limit = config.get("max_limit", 100)
        self.repair_enabled = config.get("repair_enabled", True)
        self.repair_temperature = config.get("repair_temperature", 0.0)

    async def execute(
        self,
        query: str,
        parameters: Optional[Dict[str, Any]] = None,
        question: Optional[str] = None,
        schema_description: Optional[str] = None
    ) -> ExecutionResult:
        """
        Execute a query, retrying transient faults and repairing malformed queries once.

        Args:
            query: Cypher text
            parameters: Bind parameters
            question: Original user question, given to the repair prompt
            schema_description: Rendered schema, given to the repair prompt

        Returns:
            ExecutionResult

        Raises:
            QueryExecutionError: if the query (and any repair) failed
        """
        query, params = enforce_limit(query, parameters, self.max_limit)

        try:
            rows, attempts = await self._run_with_retry(query, params)
            return ExecutionResult(rows=rows, query=query, parameters=params, attempts=attempts)
        except Exception as e:
            if not is_malformed_query_error(e) or not self.repair_enabled:
                raise QueryExecutionError(
                    f"Query execution failed: {e}", query=query, details=str(e)
                ) from e
            original_error = e

        logger.warning(f"Query is malformed, attempting one repair: {original_error}")
        repaired_query = await self._request_repair(query, original_error, question, schema_description)
        if repaired_query is None:
            raise QueryExecutionError(
                f"Query execution failed: {original_error}", query=query, details=str(original_error)
            ) from original_error

        repaired_query, repaired_params = enforce_limit(repaired_query, params, self.max_limit)
        try:
            rows = await self.graph_client.run_query(repaired_query, repaired_params, read_only=True)
        except Exception as e:
            logger.error(f"Repaired query also failed: {e}")
            raise QueryExecutionError(
                f"Query execution failed: {original_error}", query=query, details=str(original_error)
            ) from original_error

        logger.info(f"Repaired query succeeded with {len(rows)} rows")
        return ExecutionResult(
            rows=rows,
            query=repaired_query,
            parameters=repaired_params,
            attempts=1,
            repaired=True,
            original_error=str(original_error),
        )

    async def _run_with_retry(self, query: str, params: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], int]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                rows = await self.graph_client.run_query(query, params, read_only=True)
                return rows, attempt
            except Exception as e:
                if is_malformed_query_error(e):
                    raise
                logger.error(f"Attempt {attempt} failed: {e}")
                if attempt == self.max_attempts:
                    raise
                await asyncio.sleep(attempt * self.retry_delay)

    async def _request_repair(
        self,
        query: str,
        error: Exception,
        question: Optional[str],
        schema_description: Optional[str]
    ) -> Optional[str]:
        system_prompt = REPAIR_SYSTEM_PROMPT
        if schema_description:
            system_prompt = f"{system_prompt}\n\n{schema_description}"

        user_prompt = (
            f"Question: {question or '(not provided)'}\n\n"
            f"Failing query:\n{query}\n\n"
            f"Database error:\n{error}\n\n"
            "Corrected query:"
        )

        try:
            content = await self.llm_manager.complete(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.repair_temperature
            )
        except Exception as e:
            logger.error(f"Query repair request failed: {e}")
            return None

        candidate = strip_markdown_fence(content)
        if not looks_like_read_query(candidate):
            candidate = extract_query_from_text(content)
        if not candidate:
            logger.warning("Repair response did not contain a usable read query")
            return None
        return candidate
