"""Invoke remote A2A agents, either aggregated or as a live event stream."""
from __future__ import annotations

import logging
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional

from agentlink.core.errors import AgentLinkError, StreamError
from agentlink.core.models import ErrorEvent, MessageEvent, MetaEvent, StreamEvent, is_terminal
from agentlink.http.client import HttpClient
from agentlink.streaming.demux import Classifier, classify_a2a_frame, demux

logger = logging.getLogger(__name__)

EVENT_STREAM_HEADERS = {"Accept": "text/event-stream"}


async def open_event_stream(
    http: HttpClient,
    method: str,
    path: str,
    body: Any,
    classify: Classifier,
) -> AsyncIterator[StreamEvent]:
    """Open a streamed request and demultiplex it.

    Failures to open the stream surface as a terminal ``ErrorEvent`` like any
    other stream failure, so callers only ever see well-formed sequences.
    """
    terminated = False
    try:
        async with http.open_stream(method, path, json=body, headers=EVENT_STREAM_HEADERS) as response:
            async with aclosing(demux(response.aiter_bytes(), classify)) as events:
                async for event in events:
                    terminated = is_terminal(event)
                    yield event
    except Exception as exc:  # noqa: BLE001
        if terminated:
            logger.debug("Error while closing finished stream %s: %s", path, exc)
            return
        logger.warning("Stream %s failed: %s", path, exc)
        yield ErrorEvent(str(exc) or type(exc).__name__)


def is_card_url(url: str) -> bool:
    return url.endswith(".json") or "/.well-known/" in url


class AgentInvoker:
    """Per-session façade over remote A2A agents.

    Remembers the task most recently announced by a stream so it can be
    cancelled, and forgets it once that stream terminates.
    """

    def __init__(self, http: HttpClient) -> None:
        self._http = http
        self._endpoints: Dict[str, str] = {}
        self.current_task_id: Optional[str] = None

    @staticmethod
    def build_message(text: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "kind": "message",
            "messageId": str(uuid.uuid4()),
            "role": "user",
            "parts": [{"kind": "text", "text": text, "metadata": metadata or {}}],
        }

    @staticmethod
    def _rpc(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": str(uuid.uuid4()), "method": method, "params": params}

    async def resolve_endpoint(self, url: str) -> str:
        """Map an agent card URL to the service URL it advertises."""
        if not is_card_url(url):
            return url
        if url not in self._endpoints:
            card = await self._http.get_json(url)
            if not isinstance(card, dict) or not card.get("url"):
                raise AgentLinkError(f"Agent card at {url} does not advertise a service url")
            self._endpoints[url] = card["url"]
        return self._endpoints[url]

    async def stream(
        self,
        endpoint: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield the agent's events as they arrive."""
        try:
            url = await self.resolve_endpoint(endpoint)
        except Exception as exc:  # noqa: BLE001
            self.current_task_id = None
            yield ErrorEvent(str(exc) or type(exc).__name__)
            return

        payload = self._rpc("message/stream", {"message": self.build_message(text, metadata)})
        events = open_event_stream(self._http, "POST", url, payload, classify_a2a_frame)
        async with aclosing(events):
            async for event in events:
                self._observe(event)
                yield event

    async def send(
        self,
        endpoint: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Run the agent to completion and return its concatenated text."""
        fragments: List[str] = []
        async for event in self.stream(endpoint, text, metadata):
            if isinstance(event, MessageEvent):
                fragments.append(event.text)
            elif isinstance(event, ErrorEvent):
                raise StreamError(event.reason)
        return "".join(fragments)

    async def cancel(self, endpoint: str, task_id: Optional[str] = None) -> bool:
        """Ask the agent to cancel a task. Returns ``False`` when there is none.

        Best effort: the stream may still finish normally.
        """
        task_id = task_id or self.current_task_id
        if not task_id:
            return False
        url = await self.resolve_endpoint(endpoint)
        reply = await self._http.post_json(url, self._rpc("tasks/cancel", {"id": task_id}))
        if isinstance(reply, dict) and reply.get("error"):
            error = reply["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise AgentLinkError(f"Cancel of task {task_id} rejected: {message}")
        logger.info("Task %s cancelled", task_id)
        if task_id == self.current_task_id:
            self.current_task_id = None
        return True

    def _observe(self, event: StreamEvent) -> None:
        if isinstance(event, MetaEvent) and event.payload.get("taskId"):
            self.current_task_id = str(event.payload["taskId"])
        elif is_terminal(event):
            self.current_task_id = None
