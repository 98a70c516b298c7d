"""
Query execution, answer synthesis and the end-to-end pipeline.
"""

from .executor import QueryExecutor
from .models import ExecutionResult, QueryAnswer
from .pipeline import FeedbackQAPipeline
from .synthesizer import AnswerSynthesizer, NO_RESULTS_MESSAGE, NOT_TRACKED_MESSAGE, format_raw_listing

__all__ = [
    "AnswerSynthesizer",
    "ExecutionResult",
    "FeedbackQAPipeline",
    "NO_RESULTS_MESSAGE",
    "NOT_TRACKED_MESSAGE",
    "QueryAnswer",
    "QueryExecutor",
    "format_raw_listing",
]
