"""
LLM Provider implementations for the feedback graph query system.
"""

from .llm_manager import LLMProvider, OpenAIProvider, AnthropicProvider, LocalProvider

__all__ = ["LLMProvider", "OpenAIProvider", "AnthropicProvider", "LocalProvider"]
