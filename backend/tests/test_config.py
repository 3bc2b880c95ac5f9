"""Tests for settings validation and the upstream client factory."""

from __future__ import annotations

import pytest
from openai import AsyncAzureOpenAI, AsyncOpenAI
from pydantic import ValidationError

from aichat.chat.client import build_client
from aichat.chat.errors import ConfigError
from aichat.config import Settings, load_settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.openai_api_type == "OPEN_AI"
        assert s.openai_model == "gpt-3.5-turbo"
        assert s.openai_stream is True
        assert s.httpd_port == 8080
        assert not s.openai_configured

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("OPENAI_HISTORY", "3")
        s = Settings(_env_file=None)
        assert s.openai_api_key == "sk-env"
        assert s.openai_history == 3
        assert s.openai_configured

    def test_api_type_normalized(self):
        assert Settings(_env_file=None, openai_api_type="azure").openai_api_type == "AZURE"

    def test_invalid_api_type(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, openai_api_type="bogus")

    def test_invalid_base_url(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, openai_api_base_url="not a url")

    def test_negative_history_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, openai_history=-1)

    def test_negative_heartbeat_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sse_heartbeat_seconds=-1)

    def test_empty_buffer_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sse_buffer_size=0)

    def test_default_settings_loaded_lazily(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_TYPE", "bogus")
        load_settings.cache_clear()
        try:
            with pytest.raises(ValidationError):
                load_settings()
            monkeypatch.setenv("OPENAI_API_TYPE", "azure")
            load_settings.cache_clear()
            assert load_settings().openai_api_type == "AZURE"
            assert load_settings() is load_settings()
        finally:
            load_settings.cache_clear()

    def test_chat_options(self):
        s = Settings(
            _env_file=None,
            openai_model="m",
            openai_system="sys",
            openai_stream=False,
            openai_max_tokens=5,
            openai_history=2,
        )
        opts = s.chat_options()
        assert (opts.model, opts.system, opts.stream, opts.max_tokens, opts.history) == (
            "m", "sys", False, 5, 2,
        )


class TestBuildClient:
    def test_openai_client(self):
        client = build_client("sk-test")
        assert isinstance(client, AsyncOpenAI)
        assert client.max_retries == 0

    def test_custom_base_url(self):
        client = build_client("sk-test", base_url="http://localhost:11434/v1")
        assert str(client.base_url).startswith("http://localhost:11434/v1")

    def test_azure_client(self):
        client = build_client("key", "AZURE", "https://example.openai.azure.com")
        assert isinstance(client, AsyncAzureOpenAI)

    def test_azure_ad_client(self):
        client = build_client("token", "azure_ad", "https://example.openai.azure.com")
        assert isinstance(client, AsyncAzureOpenAI)

    def test_proxy_accepted(self):
        assert build_client("sk-test", proxy="http://proxy.local:3128") is not None

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"api_key": ""}, "missed api key"),
            ({"api_key": "k", "api_type": "NOPE"}, "invalid api type"),
            ({"api_key": "k", "base_url": "ftp//bad"}, "invalid base url"),
            ({"api_key": "k", "proxy": "::"}, "invalid proxy"),
            ({"api_key": "k", "api_type": "AZURE"}, "missed base url"),
        ],
    )
    def test_config_errors(self, kwargs, message):
        with pytest.raises(ConfigError, match=message):
            build_client(**kwargs)
