"""
End-to-end question answering over the feedback graph.
"""

import logging
from typing import Dict, Any, List, Optional

from ..conversation.state import SessionStore
from ..errors import FeedbackGraphError, TranslationFailed
from ..router.models import TranslationMethod
from .models import QueryAnswer

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing your question."


class FeedbackQAPipeline:
    """Translate, execute, and verbalize a question in one call."""

    def __init__(
        self,
        config: Dict[str, Any],
        schema_cache,
        query_router,
        executor,
        synthesizer,
        sessions: Optional[SessionStore] = None
    ):
        self.config = config
        self.schema_cache = schema_cache
        self.query_router = query_router
        self.executor = executor
        self.synthesizer = synthesizer
        self.sessions = sessions or SessionStore(config.get("conversation", {}))

        self.max_question_chars = config.get("max_question_chars", 1000)
        self.max_content_chars = config.get("max_content_chars", 500)
        self.max_history_turns = config.get("max_history_turns", 10)
        self.debug = config.get("debug", False)

    def _prepare_history(
        self,
        conversation_history: Optional[List[Dict[str, Any]]],
        session_id: str
    ) -> List[Dict[str, str]]:
        if conversation_history is None:
            source = self.sessions.get(session_id).recent_history()
        else:
            source = conversation_history

        history = []
        for turn in source:
            if not isinstance(turn, dict):
                continue
            role = turn.get("role")
            content = turn.get("content")
            if role not in ("user", "assistant") or not isinstance(content, str):
                continue
            history.append({"role": role, "content": content[:self.max_content_chars]})
        return history[-self.max_history_turns:]

    async def answer_user_query(
        self,
        question: str,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
        session_id: str = "default"
    ) -> Dict[str, Any]:
        """
        Answer a natural-language question.

        Args:
            question: The user's question
            conversation_history: Explicit {role, content} turns; the session's
                own history is used when omitted
            session_id: Conversation session to read and update

        Returns:
            Success payload {answer, query, parameters, method, confidence,
            row_count, expects_results, repaired} or error payload {error, details}
        """
        try:
            return await self._answer(question, conversation_history, session_id)
        except FeedbackGraphError as e:
            logger.error(f"{type(e).__name__}: {e.details}")
            return e.to_payload()
        except Exception as e:
            logger.exception(f"Unexpected error answering question: {e}")
            return {"error": GENERIC_ERROR_MESSAGE, "details": str(e)}

    async def _answer(
        self,
        question: str,
        conversation_history: Optional[List[Dict[str, Any]]],
        session_id: str
    ) -> Dict[str, Any]:
        if not isinstance(question, str) or not question.strip():
            raise TranslationFailed("Empty question", details="The question must be a non-empty string")
        question = question.strip()[:self.max_question_chars]

        state = self.sessions.get(session_id)
        history = self._prepare_history(conversation_history, session_id)

        schema = await self.schema_cache.get_schema()
        translation = await self.query_router.route_query(
            question,
            schema,
            history=history,
            referenced_entities=state.referenced_entities(),
            debug=self.debug
        )

        if translation.method == TranslationMethod.NOT_POSSIBLE:
            if translation.expects_results:
                raise TranslationFailed(
                    "No query could be produced", details=translation.reason or "No query could be produced"
                )
            answer = await self.synthesizer.synthesize(
                question, [], expects_results=False, reason=translation.reason
            )
            result = QueryAnswer(
                answer=answer,
                query=None,
                parameters={},
                method=translation.method.value,
                confidence=translation.confidence,
                row_count=0,
                expects_results=False,
            )
            self._remember(state, question, answer, [])
            return result.to_dict()

        if not translation.expects_results:
            logger.info("Question asks for untracked data; skipping execution")
            answer = await self.synthesizer.synthesize(
                question, [], expects_results=False, reason=translation.reason
            )
            result = QueryAnswer(
                answer=answer,
                query=translation.query,
                parameters=translation.parameters,
                method=translation.method.value,
                confidence=translation.confidence,
                row_count=0,
                expects_results=False,
            )
            self._remember(state, question, answer, [])
            return result.to_dict()

        execution = await self.executor.execute(
            translation.query,
            translation.parameters,
            question=question,
            schema_description=schema.rendered_description
        )
        logger.info(f"Query returned {execution.row_count} rows")

        answer = await self.synthesizer.synthesize(
            question, execution.rows, expects_results=True, history=history
        )
        result = QueryAnswer(
            answer=answer,
            query=execution.query,
            parameters=execution.parameters,
            method=translation.method.value,
            confidence=translation.confidence,
            row_count=execution.row_count,
            expects_results=True,
            repaired=execution.repaired,
        )
        self._remember(state, question, answer, execution.rows)
        return result.to_dict()

    def _remember(self, state, question: str, answer: str, rows: List[Dict[str, Any]]):
        state.record_question(question)
        state.record_answer(answer)
        state.update_memory(rows)

    def reset_session(self, session_id: str = "default"):
        self.sessions.reset(session_id)
