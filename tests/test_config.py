"""Tests for config parsing and secret resolution."""

import pytest

from relaybot.config import AppConfig, _parse_config, get_config, resolve_secret, set_config
from relaybot.constants import DEFAULT_MODEL, DEFAULT_PORT


class TestResolveSecret:
    def test_env_reference_resolved(self, monkeypatch):
        monkeypatch.setenv("RELAY_TEST_KEY", "s3cret")
        assert resolve_secret("RELAY_TEST_KEY") == "s3cret"

    def test_missing_env_reference_is_none(self, monkeypatch):
        monkeypatch.delenv("RELAY_MISSING_KEY", raising=False)
        assert resolve_secret("RELAY_MISSING_KEY") is None

    def test_literal_passes_through(self):
        assert resolve_secret("sk-literal-value") == "sk-literal-value"
        assert resolve_secret("") == ""


class TestParseConfig:
    def test_defaults_for_empty_config(self):
        config = _parse_config({})

        assert config.agent.defaults.model == DEFAULT_MODEL
        assert config.agent.max_history is None
        assert config.server.port == DEFAULT_PORT
        assert config.channels == {}
        assert config.image.api_key is None

    def test_channels_and_secrets(self, monkeypatch):
        monkeypatch.setenv("TG_TOKEN", "tg-123")
        monkeypatch.setenv("WA_TOKEN", "wa-456")
        monkeypatch.setenv("WA_VERIFY", "verify-me")
        monkeypatch.setenv("PUBLIC_URL", "https://bot.example.com/")

        config = _parse_config({
            "agent": {"default": {"provider": "groq", "model": "groq/llama3"}, "max_history": 20},
            "providers": {"groq": {"api_key": "literal", "adapters": "openai", "enabled": True}},
            "channels": {
                "telegram": {"type": "telegram", "enabled": True, "env_token": "TG_TOKEN", "mode": "webhook"},
                "whatsapp": {
                    "type": "whatsapp",
                    "enabled": False,
                    "env_token": "WA_TOKEN",
                    "env_verify_token": "WA_VERIFY",
                    "phone_number_id": "1234",
                },
            },
            "server": {"public_url": "PUBLIC_URL", "port": "9000"},
            "logging": {"level": "DEBUG"},
        })

        assert config.agent.max_history == 20
        assert config.get_provider("groq").adapters == "openai"
        assert config.get_provider("groq").enabled

        telegram = config.get_channel("telegram")
        assert telegram.token == "tg-123"
        assert telegram.extra == {"mode": "webhook"}

        whatsapp = config.get_channel("whatsapp")
        assert whatsapp.extra == {"phone_number_id": "1234", "verify_token": "verify-me"}
        assert list(config.get_enabled_channels()) == ["telegram"]

        assert config.server.public_url == "https://bot.example.com"
        assert config.server.port == 9000
        assert config.log_level == "DEBUG"


class TestGetConfig:
    def test_loads_from_project_root(self, tmp_path, monkeypatch):
        (tmp_path / "configs").mkdir()
        (tmp_path / "configs" / "config.json").write_text('{"agent": {"max_history": 5}}')
        monkeypatch.setenv("RELAYBOT_ROOT", str(tmp_path))
        monkeypatch.chdir(tmp_path)

        try:
            config = get_config(reload=True)
            assert config.agent.max_history == 5
            assert get_config() is config
        finally:
            set_config(None)

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RELAYBOT_ROOT", str(tmp_path))
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError):
            get_config(reload=True)
        set_config(None)

    def test_set_config(self):
        config = AppConfig(agent=_parse_config({}).agent, providers={}, channels={})
        set_config(config)
        try:
            assert get_config() is config
        finally:
            set_config(None)
