"""Sequential execution of an orchestration plan."""
from __future__ import annotations

import json
import logging
import re
from contextlib import aclosing
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from agentlink.agents.invoker import AgentInvoker
from agentlink.core.errors import StepFailure, UnsupportedPlanMode
from agentlink.core.models import DoneEvent, ErrorEvent, MessageEvent, MetaEvent, StatusEvent
from agentlink.orchestration.plan import OrchestrationPlan, PlanMode

logger = logging.getLogger(__name__)

_LAST_OUTPUT = re.compile(r"\{\{lastOutput\}\}")
_ALL_OUTPUTS = re.compile(r"\{\{allOutputs\}\}")
_STEP_OUTPUT = re.compile(r"\{\{step(\d+)\}\}")


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """Progress notification; ``type`` is text, status, meta, done or error."""

    step: str
    type: str
    data: Optional[str] = None


ProgressCallback = Callable[[ProgressUpdate], None]


def resolve_placeholders(template: str, outputs: Sequence[str]) -> str:
    """Substitute ``{{lastOutput}}``, ``{{allOutputs}}`` and ``{{stepN}}`` (1-based).

    Unknown step references resolve to an empty string.
    """

    def step_output(match: re.Match) -> str:
        index = int(match.group(1))
        return outputs[index - 1] if 1 <= index <= len(outputs) else ""

    resolved = _LAST_OUTPUT.sub(lambda _: outputs[-1] if outputs else "", template)
    resolved = _ALL_OUTPUTS.sub(lambda _: "\n\n".join(outputs), resolved)
    return _STEP_OUTPUT.sub(step_output, resolved)


class SequentialOrchestrator:
    """Run plan steps one at a time, feeding each step's output forward."""

    def __init__(self, invoker: AgentInvoker) -> None:
        self._invoker = invoker

    async def run(self, plan: OrchestrationPlan, on_progress: Optional[ProgressCallback] = None) -> str:
        """Execute ``plan`` and return the last step's trimmed output.

        The first failing step aborts the run with ``StepFailure``.
        """
        if plan.mode is not PlanMode.SEQUENTIAL:
            raise UnsupportedPlanMode(plan.mode.value)

        def notify(update: ProgressUpdate) -> None:
            if on_progress is not None:
                on_progress(update)

        outputs: List[str] = []
        total = len(plan.steps)
        for position, step in enumerate(plan.steps, start=1):
            label = step.name or step.url
            step_input = resolve_placeholders(step.input, outputs)
            logger.info("Starting step %d/%d: %s", position, total, label)
            notify(ProgressUpdate(label, "status", f"Starting step {position}/{total}"))

            fragments: List[str] = []
            events = self._invoker.stream(step.url, step_input, {"orchestrationStep": position})
            async with aclosing(events):
                async for event in events:
                    if isinstance(event, MessageEvent):
                        fragments.append(event.text)
                        notify(ProgressUpdate(label, "text", event.text))
                    elif isinstance(event, StatusEvent):
                        notify(ProgressUpdate(label, "status", event.text))
                    elif isinstance(event, MetaEvent):
                        notify(ProgressUpdate(label, "meta", json.dumps(event.payload)))
                    elif isinstance(event, DoneEvent):
                        notify(ProgressUpdate(label, "done"))
                    elif isinstance(event, ErrorEvent):
                        notify(ProgressUpdate(label, "error", event.reason))
                        logger.error("Step %d/%d (%s) failed: %s", position, total, label, event.reason)
                        raise StepFailure(label, position, event.reason, completed_steps=len(outputs))
                    else:
                        raise TypeError(f"Unhandled stream event: {event!r}")

            outputs.append("".join(fragments).strip())
            logger.info("Finished step %d/%d: %s", position, total, label)

        return outputs[-1] if outputs else ""
