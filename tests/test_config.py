"""Tests for environment-driven configuration and logging setup."""
from __future__ import annotations

import logging

from agentlink.config import DEFAULT_BASE_URL, Config
from agentlink.logging_config import LOG_FORMAT, setup_logging


def test_defaults_without_environment() -> None:
    settings = Config.from_env({})

    assert settings.api.base_url == DEFAULT_BASE_URL
    assert settings.api.api_key is None
    assert settings.api.timeout_ms == 30_000
    assert settings.api.retries == 2
    assert settings.planner is None
    assert settings.agent_cards == ()
    assert settings.log_level == "INFO"


def test_values_are_read_from_environment() -> None:
    settings = Config.from_env(
        {
            "AGENTLINK_BASE_URL": "https://example.test/",
            "AGENTLINK_API_KEY": "wallet",
            "AGENTLINK_TIMEOUT_MS": "500",
            "AGENTLINK_RETRIES": "0",
            "AGENTLINK_AGENT_CARDS": " https://a.test/card.json, ,https://b.test/card.json",
            "AGENTLINK_LOG_LEVEL": "debug",
            "OPENAI_API_KEY": "sk-test",
            "OPENAI_API_VERSION": "2024-06-01",
            "AGENTLINK_PLANNER_MODEL": "gpt-4o",
        }
    )

    assert settings.api.base_url == "https://example.test"
    assert settings.api.api_key == "wallet"
    assert settings.api.timeout_ms == 500
    assert settings.api.retries == 0
    assert settings.agent_cards == ("https://a.test/card.json", "https://b.test/card.json")
    assert settings.log_level == "DEBUG"
    assert settings.planner is not None
    assert settings.planner.model == "gpt-4o"
    assert settings.planner.api_version == "2024-06-01"
    assert settings.planner.max_concurrent == 50


def test_setup_logging_installs_single_handler() -> None:
    setup_logging("DEBUG", logger_name="agentlink.test")
    logger = setup_logging("WARNING", logger_name="agentlink.test")

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert logger.handlers[0].formatter._fmt == LOG_FORMAT
    assert logger.propagate is False
