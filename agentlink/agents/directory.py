"""Agent directory clients: the public API listing and A2A agent cards."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
from urllib.parse import quote

from agentlink.agents.invoker import open_event_stream
from agentlink.core.models import AgentDescriptor, StreamEvent
from agentlink.http.client import HttpClient
from agentlink.streaming.demux import classify_response_frame

logger = logging.getLogger(__name__)

AGENTS_PATH = "/api/Public/agents"
ROUTED_PATH = "/api/Public/askstreaming"


@dataclass(slots=True)
class AskRequest:
    """Body accepted by the public ask endpoints."""

    input: str
    user_name: str
    user_id: Optional[str] = None
    fee_payer: Optional[str] = None
    attachment: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)

    def to_payload(self, agent_id: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "input": self.input,
            "userName": self.user_name,
            "userId": self.user_id,
            "agentId": agent_id,
            "feePayer": self.fee_payer,
            "attachment": self.attachment,
        }
        if self.variables:
            payload["variables"] = [{"key": k, "value": v} for k, v in self.variables.items()]
        return {key: value for key, value in payload.items() if value is not None}


class PublicApiClient:
    """Client for the public agent marketplace API."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    def agent_url(self, agent_id: str) -> str:
        return self._http.url_for(f"{AGENTS_PATH}/{quote(agent_id, safe='')}/askasync")

    async def list_agents(self) -> List[AgentDescriptor]:
        payload = await self._http.get_json(AGENTS_PATH)
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected agent listing payload: {type(payload).__name__}")
        return [
            AgentDescriptor.from_payload(item, url=self.agent_url(str(item.get("id", ""))))
            for item in payload
            if isinstance(item, dict)
        ]

    def ask_agent(self, agent_id: str, request: AskRequest) -> AsyncIterator[StreamEvent]:
        """Stream one agent's answer (status, message and done events)."""
        if not request.input or not request.user_name:
            raise ValueError("Missing required fields 'input' and 'user_name' in AskRequest.")
        return open_event_stream(
            self._http,
            "POST",
            self.agent_url(agent_id),
            request.to_payload(agent_id),
            classify_response_frame,
        )

    def ask_routed(self, request: AskRequest) -> AsyncIterator[StreamEvent]:
        """Let the platform route the request; meta events name the chosen agent."""
        return open_event_stream(
            self._http, "POST", ROUTED_PATH, request.to_payload(), classify_response_frame
        )


class AgentCardDirectory:
    """Directory backed by a fixed list of A2A agent card URLs.

    Descriptors are fetched once and kept for the lifetime of the instance.
    """

    def __init__(self, http: HttpClient, card_urls: Sequence[str]) -> None:
        self._http = http
        self._card_urls = list(card_urls)
        self._agents: Optional[List[AgentDescriptor]] = None

    async def list_agents(self) -> List[AgentDescriptor]:
        if self._agents is None:
            cards = await asyncio.gather(*(self._http.get_json(url) for url in self._card_urls))
            self._agents = [
                AgentDescriptor.from_payload(card, url=card.get("url") or card_url)
                for card_url, card in zip(self._card_urls, cards)
                if isinstance(card, dict)
            ]
            logger.info("Loaded %d agent card(s)", len(self._agents))
        return list(self._agents)
