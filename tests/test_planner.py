"""Tests for plan parsing and the LLM-backed planner."""
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import openai
import pytest

from agentlink.core.errors import AgentLinkError, PlanParseError, PlannerError
from agentlink.core.models import AgentDescriptor
from agentlink.orchestration.plan import PlanMode, parse_plan
from agentlink.orchestration.planner import PlannerAgent, build_planner_prompt
from agentlink.services.llm_pool import LLMPool


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


PLAN = {
    "mode": "sequential",
    "steps": [
        {"name": "Researcher", "url": "https://r.test/rpc", "input": "find facts"},
        {"name": "Writer", "url": "https://w.test/rpc", "input": "summarise {{lastOutput}}"},
    ],
}

AGENTS = [
    AgentDescriptor(id="r", name="Researcher", url="https://r.test/rpc", description="Finds facts", capabilities=("search",)),
    AgentDescriptor(id="w", name="Writer", url="https://w.test/rpc"),
]


def test_parse_plan_accepts_valid_json() -> None:
    plan = parse_plan(json.dumps(PLAN))

    assert plan.mode is PlanMode.SEQUENTIAL
    assert [step.name for step in plan.steps] == ["Researcher", "Writer"]
    assert plan.steps[1].input == "summarise {{lastOutput}}"


def test_parse_plan_strips_markdown_fences() -> None:
    raw = "Here you go:\n```json\n" + json.dumps(PLAN) + "\n```"

    assert len(parse_plan(raw).steps) == 2


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ("", "empty response"),
        ("I think you should ask the writer.", "not valid JSON"),
        (json.dumps({"mode": "sequential"}), "plan has no steps"),
        (json.dumps({"mode": "round-robin", "steps": PLAN["steps"]}), "mode"),
        (json.dumps({"mode": "sequential", "steps": [{"name": "x", "url": "", "input": "y"}]}), "steps.0.url"),
        (json.dumps({"mode": "sequential", "steps": [{"name": "x", "url": "u"}]}), "steps.0.input"),
        (json.dumps({"mode": "sequential", "steps": PLAN["steps"], "notes": "hi"}), "notes"),
        (json.dumps({"mode": "sequential", "steps": [{"name": "x", "url": "u", "input": "y", "agent": "z"}]}), "steps.0.agent"),
    ],
)
def test_parse_plan_rejects_bad_output(raw: str, fragment: str) -> None:
    with pytest.raises(PlanParseError) as exc_info:
        parse_plan(raw)

    assert fragment in str(exc_info.value)
    assert exc_info.value.raw == raw


def test_parse_plan_can_allow_empty_steps() -> None:
    assert parse_plan('{"mode": "sequential", "steps": []}', require_steps=False).steps == []


def test_planner_prompt_lists_agents_and_request() -> None:
    prompt = build_planner_prompt("Write a report", AGENTS)

    assert "- Researcher (url: https://r.test/rpc)" in prompt
    assert "Description: Finds facts" in prompt
    assert "    - search" in prompt
    assert "Description: No description" in prompt
    assert 'USER REQUEST:\n"Write a report"' in prompt
    assert "{{lastOutput}}" in prompt


class FakeCompletions:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def pool_with(content: str) -> tuple:
    completions = FakeCompletions(content)
    pool = LLMPool()
    pool.register_client("test-model", SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    return pool, completions


@pytest.mark.anyio
async def test_planner_agent_calls_model_once_and_parses() -> None:
    pool, completions = pool_with("```json\n" + json.dumps(PLAN) + "\n```")

    plan = await PlannerAgent(pool, "test-model").plan("Write a report", AGENTS)

    assert [step.url for step in plan.steps] == ["https://r.test/rpc", "https://w.test/rpc"]
    assert len(completions.calls) == 1
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert [message["role"] for message in call["messages"]] == ["system", "user"]
    assert "Write a report" in call["messages"][1]["content"]


@pytest.mark.anyio
async def test_planner_agent_surfaces_invalid_output() -> None:
    pool, _ = pool_with("Sorry, I cannot help with that.")

    with pytest.raises(PlanParseError):
        await PlannerAgent(pool, "test-model").plan("anything", AGENTS)


@pytest.mark.anyio
async def test_unregistered_model_is_rejected() -> None:
    with pytest.raises(KeyError):
        await PlannerAgent(LLMPool(), "missing").plan("anything", AGENTS)


class UnreachableCompletions:
    async def create(self, **kwargs: Any) -> SimpleNamespace:
        raise openai.APIConnectionError(request=httpx.Request("POST", "https://llm.test/v1/chat/completions"))


@pytest.mark.anyio
async def test_model_failures_become_planner_errors() -> None:
    pool = LLMPool()
    pool.register_client("test-model", SimpleNamespace(chat=SimpleNamespace(completions=UnreachableCompletions())))

    with pytest.raises(PlannerError) as exc_info:
        await PlannerAgent(pool, "test-model").plan("anything", AGENTS)

    assert isinstance(exc_info.value, AgentLinkError)
    assert isinstance(exc_info.value.__cause__, openai.APIConnectionError)
