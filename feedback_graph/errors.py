"""
Error taxonomy for the feedback graph query pipeline.
"""

from typing import Optional


class FeedbackGraphError(Exception):
    """Base class for errors surfaced to callers of the pipeline."""

    user_message = "An unexpected error occurred while processing your question."

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else message

    def to_payload(self) -> dict:
        return {"error": self.user_message, "details": self.details}


class SchemaUnavailable(FeedbackGraphError):
    """The graph schema could not be introspected; no query traffic is possible."""

    user_message = "The knowledge graph is not available right now. Please try again shortly."


class TranslationFailed(FeedbackGraphError):
    """The question could not be mapped to any graph query."""

    user_message = "I couldn't turn that question into a graph query. Could you rephrase it?"


class QueryExecutionError(FeedbackGraphError):
    """A query failed after retries and the single repair attempt."""

    user_message = "The database query failed to execute. Please try again or rephrase your question."

    def __init__(self, message: str, query: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.query = query


class UpstreamGenerationError(FeedbackGraphError):
    """The text-generation or embedding backend failed."""

    user_message = "An error occurred while processing your question."
