"""Tests for ai_chatter.settings"""

import pytest

from ai_chatter.errors import ChatError, ErrorKind
from ai_chatter.properties import InMemoryPropertyStore, Properties
from ai_chatter.settings import DEFAULT_MODEL, RuntimeSettings


def _settings(values=None, **kwargs):
    return RuntimeSettings(Properties(InMemoryPropertyStore(values)), **kwargs)


class TestAdmins:
    def test_split_on_commas_and_whitespace(self):
        settings = _settings({"ADMINS": " users/1, users/2 users/3,\nusers/4 "})
        assert settings.admins == ["users/1", "users/2", "users/3", "users/4"]

    def test_exact_match(self):
        settings = _settings({"ADMINS": "users/1,users/2"})
        assert settings.is_admin("users/2")
        assert not settings.is_admin("users/")
        assert not settings.is_admin("users/22")

    def test_no_admins(self):
        assert _settings().admins == []
        assert _settings({"ADMINS": "   "}).admins == []


class TestApiKey:
    def test_present(self):
        assert _settings({"OPENAI_API_KEY": "sk-1"}).api_key == "sk-1"

    def test_missing_is_configuration_error(self):
        with pytest.raises(ChatError) as exc_info:
            _ = _settings().api_key
        assert exc_info.value.kind is ErrorKind.CONFIGURATION
        assert "OPENAI_API_KEY" in exc_info.value.message


class TestInitSequence:
    def test_default_empty(self):
        assert _settings().init_sequence == []

    def test_valid_sequence(self):
        settings = _settings({"CHAT_COMPLETION_INIT": '[{"role": "system", "content": "Be terse."}]'})
        assert settings.init_sequence == [{"role": "system", "content": "Be terse."}]

    def test_invalid_role_is_configuration_error(self):
        settings = _settings({"CHAT_COMPLETION_INIT": '[{"role": "robot", "content": "x"}]'})
        with pytest.raises(ChatError) as exc_info:
            _ = settings.init_sequence
        assert exc_info.value.kind is ErrorKind.CONFIGURATION

    def test_not_a_list_is_configuration_error(self):
        settings = _settings({"CHAT_COMPLETION_INIT": '{"role": "user"}'})
        with pytest.raises(ChatError):
            _ = settings.init_sequence

    def test_set_and_clear(self):
        settings = _settings()
        settings.set_init_sequence("You are a pirate.")
        assert settings.init_sequence == [{"role": "user", "content": "You are a pirate."}]
        settings.set_init_sequence(None)
        assert settings.init_sequence == []
        assert settings.properties.store.get("CHAT_COMPLETION_INIT") is None


class TestDefaults:
    def test_defaults(self):
        settings = _settings(default_history_minutes=30)
        assert settings.model == DEFAULT_MODEL
        assert settings.chat_completion_url.endswith("/chat/completions")
        assert settings.image_generation_url.endswith("/images/generations")
        assert settings.moderation_url.endswith("/moderations")
        assert settings.history_minutes == 30
        assert settings.show_tokens is False
        assert settings.token_price is None
        assert settings.log_chat_completion is False

    def test_overrides(self):
        settings = _settings({
            "CHAT_COMPLETION_MODEL": "gpt-4",
            "HISTORY_MINUTES": "15",
            "CHAT_COMPLETION_SHOW_TOKENS": "true",
            "CHAT_COMPLETION_TOKEN_PRICE": "0.000002",
        })
        assert settings.model == "gpt-4"
        assert settings.history_minutes == 15
        assert settings.show_tokens is True
        assert settings.token_price == 0.000002
