"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from openai import AsyncAzureOpenAI, AsyncOpenAI

from agentlink.config import LLMConfig


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._initialized: Dict[str, bool] = {}

    def __contains__(self, model_name: str) -> bool:
        return model_name in self._clients

    def register(self, name: str, config: LLMConfig) -> None:
        """Register a model configuration; the client is built on first use."""
        self._clients[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)
        self._initialized[name] = False

    def register_client(self, name: str, client: Any, max_concurrent: int = 50) -> None:
        """Register an already constructed OpenAI-compatible client."""
        self._clients[name] = client
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)
        self._initialized[name] = True

    @asynccontextmanager
    async def acquire(self, model_name: str) -> AsyncIterator[Any]:
        """Acquire access to a model client with concurrency control."""
        if model_name not in self._clients:
            raise KeyError(f"Model '{model_name}' not registered in LLM pool")

        semaphore = self._semaphores[model_name]
        await semaphore.acquire()

        try:
            if not self._initialized[model_name]:
                self._initialize_client(model_name)

            yield self._clients[model_name]
        finally:
            semaphore.release()

    def _initialize_client(self, model_name: str) -> None:
        config: LLMConfig = self._clients[model_name]

        if config.api_version:
            client: Any = AsyncAzureOpenAI(
                api_key=config.api_key,
                api_version=config.api_version,
                azure_endpoint=config.base_url,
            )
        else:
            client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
        self._clients[model_name] = client
        self._initialized[model_name] = True
