"""Tests for LLMClient provider abstraction."""

import logging
from unittest.mock import Mock

import pytest

from dionysus.common.config import LLMConfig
from dionysus.common.llm_client import LLMClient


class TestLLMClientInit:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "google"])
    def test_missing_key_logs_info(self, provider, caplog):
        with caplog.at_level(logging.INFO, logger="dionysus.common.llm_client"):
            client = LLMClient(provider=provider)
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_auto_provider_raises(self):
        with pytest.raises(ValueError, match="auto"):
            LLMClient(provider="auto")

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dionysus.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_default_provider_is_google(self):
        assert LLMClient().provider == "google"


class TestFromConfig:
    def test_uses_provider_model(self):
        client = LLMClient.from_config(LLMConfig(provider="openai", openai_model="gpt-4o"))
        assert client.provider == "openai"
        assert client.model == "gpt-4o"

    def test_auto_picks_first_configured(self):
        client = LLMClient.from_config(LLMConfig(provider="auto", anthropic_api_key=""))
        assert client.provider == "google"
        assert client.model == "gemini-2.5-flash"


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    def test_anthropic_generate(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        client._client = Mock()
        client._client.messages.create.return_value = Mock(content=[Mock(text=" answer ")])

        assert client.generate("q", system="be brief") == "answer"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["model"] == "claude-test"

    def test_openai_generate(self):
        client = LLMClient(provider="openai", model="gpt-test")
        client._client = Mock()
        message = Mock(content="answer")
        client._client.chat.completions.create.return_value = Mock(choices=[Mock(message=message)])

        assert client.generate("q", system="be brief") == "answer"
        messages = client._client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}

    def test_google_generate_caches_model_per_system_prompt(self):
        client = LLMClient(provider="google", model="gemini-2.5-flash")
        client._client = Mock()
        model = client._client.GenerativeModel.return_value
        model.generate_content.return_value = Mock(text=" summary ")

        assert client.generate("a") == "summary"
        assert client.generate("b") == "summary"
        client._client.GenerativeModel.assert_called_once_with(model_name="gemini-2.5-flash")
