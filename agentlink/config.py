"""Configuration management for the client toolkit."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

DEFAULT_BASE_URL = "https://api.dgenai.io"


@dataclass(frozen=True)
class LLMConfig:
    """Language model used by the orchestration planner."""

    api_key: str
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    model: str = "o3-mini"
    max_concurrent: int = 50


@dataclass(frozen=True)
class ApiConfig:
    """Remote API endpoint and transport defaults."""

    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    timeout_ms: int = 30_000
    retries: int = 2


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    api: ApiConfig = field(default_factory=ApiConfig)
    planner: Optional[LLMConfig] = None
    agent_cards: Tuple[str, ...] = ()
    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Config:
        """Load configuration from environment variables."""
        env = os.environ if environ is None else environ

        api = ApiConfig(
            base_url=env.get("AGENTLINK_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            api_key=env.get("AGENTLINK_API_KEY") or None,
            timeout_ms=int(env.get("AGENTLINK_TIMEOUT_MS", "30000")),
            retries=int(env.get("AGENTLINK_RETRIES", "2")),
        )

        planner = None
        openai_key = env.get("OPENAI_API_KEY")
        if openai_key:
            planner = LLMConfig(
                api_key=openai_key,
                base_url=env.get("OPENAI_BASE_URL") or None,
                api_version=env.get("OPENAI_API_VERSION") or None,
                model=env.get("AGENTLINK_PLANNER_MODEL", "o3-mini"),
                max_concurrent=int(env.get("AGENTLINK_PLANNER_MAX_CONCURRENT", "50")),
            )

        cards = tuple(
            url.strip() for url in env.get("AGENTLINK_AGENT_CARDS", "").split(",") if url.strip()
        )

        return cls(
            api=api,
            planner=planner,
            agent_cards=cards,
            log_level=env.get("AGENTLINK_LOG_LEVEL", "INFO").upper(),
            environment=env.get("ENVIRONMENT", "development"),
        )


# Global config instance
config = Config.from_env()
