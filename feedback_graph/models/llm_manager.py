"""
LLM Manager for handling different language model providers.
"""

import asyncio
import logging
import os
import re
from typing import Dict, Any, List, Optional, Union
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..errors import UpstreamGenerationError

logger = logging.getLogger(__name__)


def resolve_env_vars(value: str) -> str:
    """Resolve environment variables in string values like ${VAR_NAME}."""
    if isinstance(value, str) and "${" in value:
        # Replace ${VAR_NAME} with environment variable value
        def replace_env_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)
    return value


def format_messages(messages_or_prompt: Union[str, List[Dict[str, str]]]) -> List[Dict[str, str]]:
    """Accept a prompt string or a message list and return a message list."""
    if isinstance(messages_or_prompt, str):
        return [{"role": "user", "content": messages_or_prompt}]
    if isinstance(messages_or_prompt, list):
        return messages_or_prompt
    raise ValueError("Input must be a prompt string or a list of message dictionaries.")


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str
    model: str
    temperature: float = 0.1
    max_tokens: int = 2000
    api_key: Optional[str] = None
    embedding_model: Optional[str] = None

    def __post_init__(self):
        """Resolve environment variables after initialization."""
        if self.api_key:
            self.api_key = resolve_env_vars(self.api_key)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        """Generate a chat completion for the given messages."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate an embedding vector for the text."""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key not found")

        try:
            from openai import AsyncOpenAI
            self.client = AsyncOpenAI(api_key=self.api_key)
        except ImportError:
            raise ImportError("OpenAI package not installed")

    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        """Generate text using OpenAI."""
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=messages,
                max_tokens=kwargs.get("max_tokens") or self.config.max_tokens,
                temperature=kwargs.get("temperature", self.config.temperature)
            )
            return (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

    async def embed(self, text: str) -> List[float]:
        """Generate embeddings using OpenAI."""
        try:
            response = await self.client.embeddings.create(
                model=self.config.embedding_model or "text-embedding-3-small",
                input=text
            )
            return response.data[0].embedding
        except Exception as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise


class AnthropicProvider(LLMProvider):
    """Anthropic provider implementation."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("Anthropic API key not found")

        try:
            import anthropic
            self.client = anthropic.AsyncAnthropic(api_key=self.api_key)
        except ImportError:
            raise ImportError("Anthropic package not installed")

    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        """Generate text using Anthropic."""
        # The messages API takes system prompts separately from the turns
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        turns = [m for m in messages if m.get("role") != "system"]
        request = {
            "model": self.config.model,
            "max_tokens": kwargs.get("max_tokens") or self.config.max_tokens,
            "temperature": kwargs.get("temperature", self.config.temperature),
            "messages": turns,
        }
        if system_parts:
            request["system"] = "\n\n".join(system_parts)

        try:
            response = await self.client.messages.create(**request)
            return "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            ).strip()
        except Exception as e:
            logger.error(f"Anthropic generation error: {e}")
            raise

    async def embed(self, text: str) -> List[float]:
        raise NotImplementedError("Anthropic does not provide an embeddings endpoint")


class LocalProvider(LLMProvider):
    """Local embedding provider backed by sentence-transformers."""

    def __init__(self, config: LLMConfig):
        self.config = config
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError("sentence-transformers package not installed")
        self.model = SentenceTransformer(
            config.embedding_model or "sentence-transformers/all-MiniLM-L6-v2"
        )

    async def complete(self, messages: List[Dict[str, str]], **kwargs) -> str:
        raise NotImplementedError("Local provider only supports embeddings")

    async def embed(self, text: str) -> List[float]:
        vector = await asyncio.to_thread(self.model.encode, [text])
        return [float(x) for x in vector[0]]


PROVIDER_CLASSES = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "local": LocalProvider,
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "local": "sentence-transformers/all-MiniLM-L6-v2",
}


class LLMManager:
    """Manager for handling different LLM providers."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.providers: Dict[str, LLMProvider] = {}
        self._initialize_providers()

        available = list(self.providers.keys())
        self.default_provider = config.get("default_provider", available[0])
        self.embedding_provider = config.get("embedding_provider", self.default_provider)

    def _initialize_providers(self):
        """Initialize available LLM providers."""
        for name, provider_class in PROVIDER_CLASSES.items():
            if name not in self.config:
                continue
            provider_config = self.config[name] or {}
            llm_config = LLMConfig(
                provider=name,
                model=provider_config.get("model", DEFAULT_MODELS[name]),
                temperature=provider_config.get("temperature", 0.1),
                max_tokens=provider_config.get("max_tokens", 2000),
                api_key=provider_config.get("api_key"),
                embedding_model=provider_config.get("embedding_model")
            )
            try:
                self.providers[name] = provider_class(llm_config)
                logger.info(f"{name} provider initialized")
            except Exception as e:
                logger.warning(f"Failed to initialize {name} provider: {e}")

        if not self.providers:
            raise ValueError("No LLM providers could be initialized")

    def _get_provider(self, provider_name: str) -> LLMProvider:
        if provider_name not in self.providers:
            raise ValueError(f"Provider {provider_name} not available")
        return self.providers[provider_name]

    async def complete(
        self,
        messages: List[Dict[str, str]],
        provider: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """Run a chat completion using the specified or default provider."""
        provider_name = provider or self.default_provider
        llm = self._get_provider(provider_name)

        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        try:
            return await llm.complete(messages, **kwargs)
        except Exception as e:
            raise UpstreamGenerationError(
                f"Text generation failed on provider {provider_name}", details=str(e)
            ) from e

    async def generate(self, prompt: str, provider: Optional[str] = None, **kwargs) -> str:
        """Generate text from a single prompt string."""
        return await self.complete(format_messages(prompt), provider=provider, **kwargs)

    async def embed(self, text: str, provider: Optional[str] = None) -> List[float]:
        """Generate embeddings using the specified or configured embedding provider."""
        provider_name = provider or self.embedding_provider
        llm = self._get_provider(provider_name)

        try:
            return await llm.embed(text)
        except Exception as e:
            raise UpstreamGenerationError(
                f"Embedding failed on provider {provider_name}", details=str(e)
            ) from e

    def get_available_providers(self) -> List[str]:
        """Get list of available providers."""
        return list(self.providers.keys())
