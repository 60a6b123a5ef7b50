"""LLM-backed planner that turns a user request into an orchestration plan."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Sequence

import openai

from agentlink.core.errors import PlannerError
from agentlink.core.models import AgentDescriptor
from agentlink.orchestration.plan import OrchestrationPlan, parse_plan

if TYPE_CHECKING:
    from agentlink.services.llm_pool import LLMPool

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an internal AI orchestration planner.
You decide which AI agents to invoke and in what sequence based on the user request."""

PLAN_INSTRUCTIONS = """### Your task:
Analyze the request and determine if it requires collaboration between multiple agents.

- If the request is simple, use **one** agent.
- If it requires research, validation, or analysis from multiple perspectives, use **several agents** in sequence.
- Reuse outputs from previous agents when helpful: {{lastOutput}} is the previous agent's answer,
  {{allOutputs}} is every previous answer and {{stepN}} is the answer of step N (1-based).

### Output format (MUST be valid JSON):
{
  "mode": "sequential",
  "steps": [
    {"name": "<agent name>", "url": "<one of the listed agent URLs>", "input": "<instruction for this agent>"}
  ]
}

Do not invent new agents or URLs.
Always include at least one step.
Respond with JSON only, no commentary or markdown."""


class Planner(Protocol):
    async def plan(self, user_prompt: str, available_agents: Sequence[AgentDescriptor]) -> OrchestrationPlan:
        ...


def describe_agents(agents: Sequence[AgentDescriptor]) -> str:
    blocks = []
    for agent in agents:
        skills = "\n".join(f"    - {skill}" for skill in agent.capabilities) or "    - None"
        blocks.append(
            f"- {agent.name} (url: {agent.url})\n"
            f"  Description: {agent.description or 'No description'}\n"
            f"  Skills:\n{skills}"
        )
    return "\n\n".join(blocks)


def build_planner_prompt(user_prompt: str, agents: Sequence[AgentDescriptor]) -> str:
    return (
        "You are a reasoning engine that creates a multi-agent orchestration plan.\n\n"
        "You have access only to the following agents:\n\n"
        f"{describe_agents(agents)}\n\n---\n\n"
        f'USER REQUEST:\n"{user_prompt}"\n\n---\n\n'
        f"{PLAN_INSTRUCTIONS}"
    )


class PlannerAgent:
    """Planner backed by a chat-completion model from the shared pool."""

    def __init__(self, llm_pool: LLMPool, model_name: str = "o3-mini") -> None:
        self._llm_pool = llm_pool
        self.model_name = model_name

    async def plan(self, user_prompt: str, available_agents: Sequence[AgentDescriptor]) -> OrchestrationPlan:
        async with self._llm_pool.acquire(self.model_name) as client:
            try:
                response = await client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_planner_prompt(user_prompt, available_agents)},
                    ],
                )
            except openai.OpenAIError as exc:
                logger.error("Planner model %s failed: %s", self.model_name, exc)
                raise PlannerError(f"Planner model {self.model_name} failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        logger.debug("Planner output: %s", content)
        return parse_plan(content)
