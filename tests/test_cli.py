"""Tests for the command-line front-end."""
from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from agentlink import cli
from agentlink.http.client import HttpClient
from agentlink.orchestration.planner import PlannerAgent
from agentlink.services.llm_pool import LLMPool

CARD_URL = "https://agent.test/.well-known/agent-card.json"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def remote(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/Public/agents":
        return httpx.Response(200, json=[{"id": "echo", "name": "Echo"}])
    return httpx.Response(200, json={"name": "Echo", "url": "https://agent.test/rpc"})


class UnreachableModel:
    async def create(self, **kwargs: Any) -> None:
        raise openai.APIConnectionError(request=httpx.Request("POST", "https://llm.test/v1/chat/completions"))


@pytest.fixture
def offline(monkeypatch: pytest.MonkeyPatch) -> None:
    def create_http_client(settings, *, api_key=None, **kwargs):
        return HttpClient(base_url="https://api.test", transport=httpx.MockTransport(remote))

    def create_planner(settings):
        pool = LLMPool()
        pool.register_client("test-model", SimpleNamespace(chat=SimpleNamespace(completions=UnreachableModel())))
        return PlannerAgent(pool, "test-model")

    monkeypatch.setattr(cli, "create_http_client", create_http_client)
    monkeypatch.setattr(cli, "create_planner", create_planner)


@pytest.mark.anyio
async def test_agents_list_prints_json(offline, capsys: pytest.CaptureFixture[str]) -> None:
    assert await cli.main(["agents-list"]) == 0

    assert '"name": "Echo"' in capsys.readouterr().out


@pytest.mark.anyio
async def test_orchestrate_reports_planner_failure(offline, capsys: pytest.CaptureFixture[str]) -> None:
    code = await cli.main(["orchestrate", "--prompt", "hello", "--card", CARD_URL])

    assert code == 1
    assert "Error: Planner model test-model failed" in capsys.readouterr().err
