"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Callable, List, Optional, Sequence

import httpx

from agentlink.agents.directory import AgentCardDirectory
from agentlink.agents.invoker import AgentInvoker
from agentlink.config import Config, config
from agentlink.core.models import AgentDescriptor
from agentlink.http.client import HttpClient
from agentlink.http.middleware import PaymentSigner
from agentlink.orchestration.manager import OrchestrationManager, write_stdout
from agentlink.orchestration.planner import Planner, PlannerAgent
from agentlink.orchestration.sequential import SequentialOrchestrator
from agentlink.services.llm_pool import LLMPool

HttpClientFactory = Callable[[], HttpClient]


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()

    # Register the planner model if configured
    if config.planner:
        pool.register(config.planner.model, config.planner)

    return pool


def create_http_client(
    settings: Config = config,
    *,
    api_key: Optional[str] = None,
    signer: Optional[PaymentSigner] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HttpClient:
    """Build a fresh client session. Each run owns its own instance."""
    return HttpClient(
        base_url=settings.api.base_url,
        api_key=api_key or settings.api.api_key,
        timeout_ms=settings.api.timeout_ms,
        retries=settings.api.retries,
        signer=signer,
        transport=transport,
    )


def get_http_factory() -> HttpClientFactory:
    return create_http_client


def create_planner(settings: Config = config) -> PlannerAgent:
    if settings.planner is None:
        raise RuntimeError("Planner not configured. Set OPENAI_API_KEY to enable orchestration.")
    pool = get_llm_pool() if settings is config else LLMPool()
    if settings.planner.model not in pool:
        pool.register(settings.planner.model, settings.planner)
    return PlannerAgent(pool, settings.planner.model)


def get_planner() -> Planner:
    return create_planner(config)


def create_manager(
    http: HttpClient,
    planner: Planner,
    sink: Callable[[str], None] = write_stdout,
) -> OrchestrationManager:
    return OrchestrationManager(planner, SequentialOrchestrator(AgentInvoker(http)), sink)


async def load_agents(http: HttpClient, card_urls: Sequence[str]) -> List[AgentDescriptor]:
    return await AgentCardDirectory(http, card_urls).list_agents()
