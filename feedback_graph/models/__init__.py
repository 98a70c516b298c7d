"""
LLM abstraction layer for the feedback graph query system.
"""

from .llm_manager import LLMManager
from .providers import OpenAIProvider, AnthropicProvider, LocalProvider

__all__ = ["LLMManager", "OpenAIProvider", "AnthropicProvider", "LocalProvider"]
