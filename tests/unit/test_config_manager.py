"""
Unit tests for ConfigManager (YAML defaults plus runtime overrides).
"""

import pytest

from notequiz.core.config.manager import ConfigManager


@pytest.mark.unit
class TestReads:
    def test_dot_notation_reads_yaml(self, config_manager):
        assert config_manager.get("quiz.questions_per_session") == 10
        assert config_manager.get("leaderboard.max_limit") == 100
        assert config_manager.get("core.redis.lock.wait_timeout_sec") == 5

    def test_missing_key_returns_default(self, config_manager):
        assert config_manager.get("quiz.nope", 42) == 42
        assert config_manager.get("quiz.questions_per_session.deeper", "x") == "x"

    def test_lazy_load_before_initialize(self, config_manager):
        ConfigManager.reset()
        assert ConfigManager.get("quiz.answer_choices") == 4


@pytest.mark.unit
class TestOverrides:
    def test_override_and_clear(self, config_manager):
        config_manager.set_override("quiz.gateway_timeout_seconds", 0.5)
        assert config_manager.get("quiz.gateway_timeout_seconds") == 0.5

        config_manager.clear_override("quiz.gateway_timeout_seconds")
        assert config_manager.get("quiz.gateway_timeout_seconds") == 5.0

    def test_override_creates_nested_keys(self, config_manager):
        config_manager.set_override("feature.flags.fast_mode", True)
        assert config_manager.get("feature.flags.fast_mode") is True

    def test_override_keeps_sibling_keys(self, config_manager):
        config_manager.set_override("quiz.answer_choices", 3)

        assert config_manager.get("quiz.answer_choices") == 3
        assert config_manager.get("quiz.max_answer_length") == 8

    async def test_initialize_is_idempotent(self, config_manager):
        config_manager.set_override("quiz.answer_choices", 2)

        await ConfigManager.initialize()

        assert config_manager.get("quiz.answer_choices") == 2
