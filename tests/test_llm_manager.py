"""
Tests for the LLM manager and its providers.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from feedback_graph.errors import UpstreamGenerationError
from feedback_graph.models.llm_manager import LLMManager, format_messages, resolve_env_vars


class TestLLMManager:
    """Test LLM Manager functionality."""

    @pytest.fixture
    def config(self):
        return {
            "openai": {
                "api_key": "test_key",
                "model": "gpt-4o-mini",
                "temperature": 0.1,
                "max_tokens": 2000,
                "embedding_model": "text-embedding-3-small"
            }
        }

    @pytest.fixture
    def llm_manager(self, config):
        with patch("openai.AsyncOpenAI") as mock_client_class:
            mock_client_class.return_value = Mock()
            return LLMManager(config)

    def test_initialization(self, llm_manager):
        """Test LLM manager initialization."""
        assert llm_manager.default_provider == "openai"
        assert llm_manager.embedding_provider == "openai"
        assert llm_manager.get_available_providers() == ["openai"]

    def test_no_providers(self):
        with pytest.raises(ValueError):
            LLMManager({})

    @pytest.mark.asyncio
    async def test_complete(self, llm_manager):
        """Test chat completion with per-call overrides."""
        mock_response = Mock()
        mock_response.choices = [Mock()]
        mock_response.choices[0].message.content = "  Test response "
        create = AsyncMock(return_value=mock_response)
        llm_manager.providers["openai"].client.chat.completions.create = create

        result = await llm_manager.complete(
            [{"role": "user", "content": "Test prompt"}], temperature=0.0, max_tokens=50
        )

        assert result == "Test response"
        kwargs = create.await_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 50
        assert kwargs["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_generate(self, llm_manager):
        mock_response = Mock()
        mock_response.choices = [Mock()]
        mock_response.choices[0].message.content = "Test response"
        create = AsyncMock(return_value=mock_response)
        llm_manager.providers["openai"].client.chat.completions.create = create

        assert await llm_manager.generate("Test prompt") == "Test response"
        assert create.await_args.kwargs["messages"] == [{"role": "user", "content": "Test prompt"}]

    @pytest.mark.asyncio
    async def test_embed(self, llm_manager):
        mock_response = Mock()
        mock_response.data = [Mock(embedding=[0.1, 0.2, 0.3])]
        create = AsyncMock(return_value=mock_response)
        llm_manager.providers["openai"].client.embeddings.create = create

        assert await llm_manager.embed("battery drain") == [0.1, 0.2, 0.3]
        assert create.await_args.kwargs["model"] == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_backend_failure_is_wrapped(self, llm_manager):
        client = llm_manager.providers["openai"].client
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        client.embeddings.create = AsyncMock(side_effect=RuntimeError("rate limited"))

        with pytest.raises(UpstreamGenerationError) as exc_info:
            await llm_manager.complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.details == "rate limited"

        with pytest.raises(UpstreamGenerationError):
            await llm_manager.embed("hi")

    @pytest.mark.asyncio
    async def test_unknown_provider(self, llm_manager):
        with pytest.raises(ValueError):
            await llm_manager.complete([{"role": "user", "content": "hi"}], provider="missing")


class TestAnthropicProvider:
    """Test system prompt handling for the messages API."""

    @pytest.mark.asyncio
    async def test_system_messages_are_separated(self):
        with patch("anthropic.AsyncAnthropic") as mock_client_class:
            mock_client_class.return_value = Mock()
            manager = LLMManager({"anthropic": {"api_key": "test_key"}})

        block = Mock(type="text", text="Answer")
        create = AsyncMock(return_value=Mock(content=[block]))
        manager.providers["anthropic"].client.messages.create = create

        result = await manager.complete([
            {"role": "system", "content": "Schema"},
            {"role": "user", "content": "Question"},
        ])

        assert result == "Answer"
        kwargs = create.await_args.kwargs
        assert kwargs["system"] == "Schema"
        assert kwargs["messages"] == [{"role": "user", "content": "Question"}]


class TestHelpers:

    def test_resolve_env_vars(self, monkeypatch):
        monkeypatch.setenv("FEEDBACK_TEST_KEY", "secret")
        assert resolve_env_vars("${FEEDBACK_TEST_KEY}") == "secret"
        assert resolve_env_vars("${FEEDBACK_MISSING_KEY}") == "${FEEDBACK_MISSING_KEY}"
        assert resolve_env_vars("plain") == "plain"

    def test_format_messages(self):
        assert format_messages("hi") == [{"role": "user", "content": "hi"}]
        with pytest.raises(ValueError):
            format_messages(42)
