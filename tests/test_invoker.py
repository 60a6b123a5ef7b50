"""Tests for invoking A2A agents through the façade."""
from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from agentlink.agents.invoker import AgentInvoker
from agentlink.core.errors import StreamError
from agentlink.core.models import DoneEvent, ErrorEvent, MessageEvent, MetaEvent, StatusEvent
from agentlink.http.client import HttpClient

AGENT_URL = "https://agent.test/a2a"
CARD_URL = "https://agent.test/.well-known/agent-card.json"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def sse(*results: Dict[str, Any]) -> bytes:
    return "".join(
        f"data: {json.dumps({'jsonrpc': '2.0', 'id': '1', 'result': result})}\n\n" for result in results
    ).encode()


ANSWER = sse(
    {"kind": "task", "id": "task-1", "contextId": "ctx"},
    {"kind": "status-update", "status": {"state": "working"}},
    {"kind": "artifact-update", "artifact": {"parts": [{"kind": "text", "text": "Hello"}]}},
    {"kind": "artifact-update", "artifact": {"parts": [{"kind": "text", "text": " world"}]}},
    {"kind": "status-update", "final": True, "status": {"state": "completed"}},
)


class FakeAgent:
    """Records JSON-RPC calls and answers from a canned body."""

    def __init__(self, body: bytes = ANSWER, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.requests: List[Dict[str, Any]] = []
        self.urls: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        if request.method == "GET":
            return httpx.Response(200, json={"name": "Echo", "url": AGENT_URL})
        payload = json.loads(request.content)
        self.requests.append(payload)
        if payload["method"] == "tasks/cancel":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": {"id": "task-1"}})
        return httpx.Response(
            self.status_code,
            content=self.body,
            headers={"content-type": "text/event-stream"},
        )


def make_invoker(agent: FakeAgent) -> AgentInvoker:
    return AgentInvoker(HttpClient(base_url="https://api.test", transport=httpx.MockTransport(agent)))


@pytest.mark.anyio
async def test_send_aggregates_message_text() -> None:
    agent = FakeAgent()
    invoker = make_invoker(agent)

    result = await invoker.send(AGENT_URL, "say hello", {"orchestrationStep": 1})

    assert result == "Hello world"
    request = agent.requests[0]
    assert request["method"] == "message/stream"
    message = request["params"]["message"]
    assert message["role"] == "user"
    assert message["kind"] == "message"
    assert message["parts"] == [{"kind": "text", "text": "say hello", "metadata": {"orchestrationStep": 1}}]


@pytest.mark.anyio
async def test_every_call_gets_a_fresh_message_id() -> None:
    agent = FakeAgent()
    invoker = make_invoker(agent)

    await invoker.send(AGENT_URL, "one")
    await invoker.send(AGENT_URL, "two")

    ids = [request["params"]["message"]["messageId"] for request in agent.requests]
    assert len(set(ids)) == 2


@pytest.mark.anyio
async def test_stream_tracks_task_until_terminal() -> None:
    invoker = make_invoker(FakeAgent())
    seen_task_ids = []
    events = []

    async for event in invoker.stream(AGENT_URL, "hi"):
        events.append(event)
        seen_task_ids.append(invoker.current_task_id)

    assert events == [
        MetaEvent({"taskId": "task-1", "contextId": "ctx"}),
        StatusEvent("working"),
        MessageEvent("Hello"),
        MessageEvent(" world"),
        StatusEvent("completed"),
        DoneEvent(),
    ]
    assert seen_task_ids[:5] == ["task-1"] * 5
    assert seen_task_ids[-1] is None
    assert invoker.current_task_id is None


@pytest.mark.anyio
async def test_remote_error_frame_fails_aggregated_send() -> None:
    body = (
        sse({"kind": "artifact-update", "artifact": {"parts": [{"kind": "text", "text": "par"}]}})
        + b'data: {"jsonrpc": "2.0", "id": "1", "error": {"code": -32000, "message": "tool exploded"}}\n\n'
    )
    invoker = make_invoker(FakeAgent(body))

    with pytest.raises(StreamError) as exc_info:
        await invoker.send(AGENT_URL, "hi")

    assert exc_info.value.reason == "tool exploded"


@pytest.mark.anyio
async def test_http_failure_becomes_error_event() -> None:
    invoker = make_invoker(FakeAgent(b"agent offline", status_code=503))

    events = [event async for event in invoker.stream(AGENT_URL, "hi")]

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert "503" in events[0].reason


@pytest.mark.anyio
async def test_cancel_without_task_is_a_no_op() -> None:
    agent = FakeAgent()
    invoker = make_invoker(agent)

    assert await invoker.cancel(AGENT_URL) is False
    assert agent.requests == []


@pytest.mark.anyio
async def test_cancel_sends_task_id() -> None:
    body = sse({"kind": "task", "id": "task-1"})
    agent = FakeAgent(body)
    invoker = make_invoker(agent)

    stream = invoker.stream(AGENT_URL, "long job")
    first = await stream.__anext__()
    assert first == MetaEvent({"taskId": "task-1", "contextId": None})
    assert invoker.current_task_id == "task-1"

    assert await invoker.cancel(AGENT_URL) is True
    await stream.aclose()

    cancel = agent.requests[-1]
    assert cancel["method"] == "tasks/cancel"
    assert cancel["params"] == {"id": "task-1"}
    assert invoker.current_task_id is None


@pytest.mark.anyio
async def test_card_url_is_resolved_once() -> None:
    agent = FakeAgent()
    invoker = make_invoker(agent)

    await invoker.send(CARD_URL, "one")
    await invoker.send(CARD_URL, "two")

    assert agent.urls == [CARD_URL, AGENT_URL, AGENT_URL]
