"""Orchestration plan schema and strict parsing of planner output."""
from __future__ import annotations

import json
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentlink.core.errors import PlanParseError


class PlanMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class OrchestrationStep(BaseModel):
    """One agent call; ``input`` may hold ``{{lastOutput}}``-style placeholders."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Agent name, used as the progress label")
    url: str = Field(..., min_length=1, description="Agent endpoint or card URL")
    input: str = Field(..., description="Instruction sent to the agent")


class OrchestrationPlan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: PlanMode
    steps: List[OrchestrationStep] = Field(default_factory=list)


def strip_code_fences(content: str) -> str:
    """Extract JSON from a markdown code block if the model wrapped it in one."""
    if "```json" in content:
        return content.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in content:
        return content.split("```", 1)[1].split("```", 1)[0].strip()
    return content.strip()


def parse_plan(raw: str, *, require_steps: bool = True) -> OrchestrationPlan:
    """Validate untrusted planner output into an ``OrchestrationPlan``."""
    content = strip_code_fences(raw or "")
    if not content:
        raise PlanParseError("empty response", raw)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"not valid JSON ({exc.msg})", raw) from exc
    try:
        plan = OrchestrationPlan.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc']) or 'plan'}: {error['msg']}"
            for error in exc.errors()
        )
        raise PlanParseError(problems, raw) from exc
    if require_steps and not plan.steps:
        raise PlanParseError("plan has no steps", raw)
    return plan
