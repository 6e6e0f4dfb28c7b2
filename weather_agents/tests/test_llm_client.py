"""Tests for LLMClient provider abstraction."""

import pytest
from unittest.mock import MagicMock
from weather_agents.common.llm_client import LLMClient


class TestLLMClientInit:
    def test_missing_anthropic_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="weather.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_openai_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="weather.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_google_key_logs_info(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="weather.common.llm_client"):
            client = LLMClient(provider="google")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        import logging
        with caplog.at_level(logging.WARNING, logger="weather.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_from_config_picks_provider_model(self):
        from weather_agents.common.config import LLMConfig
        client = LLMClient.from_config(LLMConfig(provider="anthropic"))
        assert client.provider == "anthropic"
        assert client.model == LLMConfig().anthropic_model
        assert not client.is_available


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    def test_openai_generate_passes_system_prompt(self):
        client = LLMClient(provider="openai", model="gpt-test")
        fake = MagicMock()
        fake.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="  sunny  "))
        ]
        client._client = fake

        assert client.generate("hi", system="be brief", max_tokens=10) == "sunny"
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
        assert kwargs["max_tokens"] == 10

    def test_anthropic_generate(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        fake = MagicMock()
        fake.messages.create.return_value.content = [MagicMock(text="rain later\n")]
        client._client = fake

        assert client.generate("hi") == "rain later"
        assert "system" not in fake.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_complete_runs_generate(self):
        client = LLMClient(provider="openai", model="gpt-test")
        fake = MagicMock()
        fake.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="cloudy"))
        ]
        client._client = fake

        assert await client.complete("hi") == "cloudy"

    @pytest.mark.asyncio
    async def test_complete_propagates_errors(self):
        client = LLMClient(provider="openai", model="gpt-test")
        fake = MagicMock()
        fake.chat.completions.create.side_effect = TimeoutError("slow")
        client._client = fake

        with pytest.raises(TimeoutError):
            await client.complete("hi")
