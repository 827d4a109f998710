"""Tests for settings read from the environment."""

import os
from pathlib import Path
from unittest.mock import patch

from event_chat.config import Settings
from event_chat.upstream import DEFAULT_BASE_URL, DEFAULT_MODEL


class TestSettings:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env(load_env_file=False)

        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.model == DEFAULT_MODEL
        assert settings.temperature == 0.7
        assert settings.max_tokens == 2048
        assert settings.data_dir is None

    def test_environment_overrides(self, tmp_path):
        env_vars = {
            "OPENROUTER_BASE_URL": "http://localhost:11434/v1",
            "EVENT_CHAT_MODEL": "anthropic/claude-3.5-sonnet",
            "EVENT_CHAT_TEMPERATURE": "0.1",
            "EVENT_CHAT_MAX_TOKENS": "512",
            "EVENT_CHAT_APP_TITLE": "My Chat",
            "EVENT_CHAT_DATA_DIR": str(tmp_path),
        }

        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings.from_env(load_env_file=False)

        assert settings.base_url == "http://localhost:11434/v1"
        assert settings.model == "anthropic/claude-3.5-sonnet"
        assert settings.temperature == 0.1
        assert settings.max_tokens == 512
        assert settings.app_title == "My Chat"
        assert settings.data_dir == Path(tmp_path)

    def test_invalid_numbers_fall_back(self, caplog):
        env_vars = {"EVENT_CHAT_TEMPERATURE": "warm", "EVENT_CHAT_MAX_TOKENS": "lots"}

        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings.from_env(load_env_file=False)

        assert settings.temperature == 0.7
        assert settings.max_tokens == 2048
        assert "EVENT_CHAT_TEMPERATURE" in caplog.text
