"""Orchestration endpoints: plan a prompt and run it across remote agents."""
from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from typing import AsyncIterator, List, Optional, Sequence

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from agentlink.agents.invoker import AgentInvoker
from agentlink.config import config
from agentlink.core.errors import AgentLinkError, PlanParseError, UnsupportedPlanMode
from agentlink.orchestration.planner import Planner
from agentlink.orchestration.sequential import ProgressUpdate, SequentialOrchestrator
from agentlink.runtime import HttpClientFactory, create_manager, get_http_factory, get_planner, load_agents

router = APIRouter(prefix="/orchestrate", tags=["orchestration"])


class OrchestrateRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="Free-form user request")
    agent_cards: List[str] = Field(
        default_factory=list,
        description="Agent card URLs to plan with; defaults to the configured cards",
    )


class OrchestrateResponse(BaseModel):
    result: str


def planner_dependency() -> Planner:
    try:
        return get_planner()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def _card_urls(request: OrchestrateRequest) -> List[str]:
    cards = request.agent_cards or list(config.agent_cards)
    if not cards:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No agent cards supplied or configured",
        )
    return cards


@router.post("", response_model=OrchestrateResponse)
async def orchestrate(
    request: OrchestrateRequest,
    http_factory: HttpClientFactory = Depends(get_http_factory),
    planner: Planner = Depends(planner_dependency),
) -> OrchestrateResponse:
    """Plan and run the prompt, returning the final step's output."""
    cards = _card_urls(request)
    async with http_factory() as http:
        try:
            agents = await load_agents(http, cards)
            manager = create_manager(http, planner, sink=lambda _: None)
            result = await manager.run(request.prompt, agents)
        except (PlanParseError, UnsupportedPlanMode) as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        except (AgentLinkError, httpx.HTTPError) as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return OrchestrateResponse(result=result)


def _sse(update: ProgressUpdate) -> str:
    return f"data: {json.dumps(asdict(update))}\n\n"


async def _progress_events(
    prompt: str,
    cards: Sequence[str],
    http_factory: HttpClientFactory,
    planner: Planner,
) -> AsyncIterator[str]:
    queue: asyncio.Queue[Optional[ProgressUpdate]] = asyncio.Queue()

    async def execute_plan() -> str:
        async with http_factory() as http:
            agents = await load_agents(http, cards)
            plan = await planner.plan(prompt, agents)
            return await SequentialOrchestrator(AgentInvoker(http)).run(plan, queue.put_nowait)

    task = asyncio.create_task(execute_plan())
    task.add_done_callback(lambda _: queue.put_nowait(None))
    try:
        while True:
            update = await queue.get()
            if update is None:
                break
            yield _sse(update)

        try:
            result = task.result()
        except (AgentLinkError, httpx.HTTPError) as exc:
            yield _sse(ProgressUpdate("orchestration", "error", str(exc)))
            return
        yield _sse(ProgressUpdate("orchestration", "done", result))
    finally:
        if not task.done():
            task.cancel()


@router.post("/stream")
async def orchestrate_stream(
    request: OrchestrateRequest,
    http_factory: HttpClientFactory = Depends(get_http_factory),
    planner: Planner = Depends(planner_dependency),
) -> StreamingResponse:
    """Stream progress updates as server-sent events."""
    cards = _card_urls(request)
    return StreamingResponse(
        _progress_events(request.prompt, cards, http_factory, planner),
        media_type="text/event-stream",
    )
