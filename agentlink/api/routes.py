"""HTTP API exposing the agent directory."""
from __future__ import annotations

from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from agentlink.agents.directory import PublicApiClient
from agentlink.core.errors import AgentLinkError
from agentlink.core.models import AgentDescriptor
from agentlink.runtime import HttpClientFactory, get_http_factory

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentResponse(BaseModel):
    id: str
    name: str
    url: str
    description: Optional[str] = None
    capabilities: List[str] = []

    @classmethod
    def from_descriptor(cls, descriptor: AgentDescriptor) -> "AgentResponse":
        return cls(
            id=descriptor.id,
            name=descriptor.name,
            url=descriptor.url,
            description=descriptor.description,
            capabilities=list(descriptor.capabilities),
        )


@router.get("", response_model=List[AgentResponse])
async def list_agents(http_factory: HttpClientFactory = Depends(get_http_factory)) -> List[AgentResponse]:
    async with http_factory() as http:
        try:
            agents = await PublicApiClient(http).list_agents()
        except (AgentLinkError, httpx.HTTPError, ValueError) as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [AgentResponse.from_descriptor(agent) for agent in agents]
