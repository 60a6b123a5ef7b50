"""Plan a user request and run it end to end."""
from __future__ import annotations

import logging
import sys
from typing import Callable, Sequence

from agentlink.core.models import AgentDescriptor
from agentlink.orchestration.planner import Planner
from agentlink.orchestration.sequential import ProgressUpdate, SequentialOrchestrator

logger = logging.getLogger(__name__)


def write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class OrchestrationManager:
    """Compose one planner call with sequential execution of the plan."""

    def __init__(
        self,
        planner: Planner,
        orchestrator: SequentialOrchestrator,
        sink: Callable[[str], None] = write_stdout,
    ) -> None:
        self._planner = planner
        self._orchestrator = orchestrator
        self._sink = sink

    async def run(self, user_prompt: str, available_agents: Sequence[AgentDescriptor]) -> str:
        plan = await self._planner.plan(user_prompt, available_agents)
        logger.info("Planned %d step(s) in %s mode", len(plan.steps), plan.mode.value)
        return await self._orchestrator.run(plan, self._relay)

    def _relay(self, update: ProgressUpdate) -> None:
        if update.type == "text":
            self._sink(update.data or "")
        elif update.type == "status":
            logger.info("[%s] %s", update.step, update.data)
        elif update.type == "error":
            logger.error("[%s] %s", update.step, update.data)
