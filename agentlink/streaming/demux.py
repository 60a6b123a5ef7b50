"""Turn a raw line-delimited stream into typed events.

Two frame dialects are understood:

* response-type frames from the public API, ``{"ResponseType": 0, "Value": "..."}``
* A2A JSON-RPC frames, ``{"jsonrpc": "2.0", "result": {"kind": "artifact-update", ...}}``

Either may arrive as Server-Sent-Events (``data: {...}``) or as plain
newline-delimited JSON.
"""
from __future__ import annotations

import codecs
import json
import logging
import re
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, List, Optional, Union

from agentlink.core.errors import MalformedFrame
from agentlink.core.models import (
    DoneEvent,
    ErrorEvent,
    EventKind,
    MessageEvent,
    MetaEvent,
    StatusEvent,
    StreamEvent,
    is_terminal,
)

logger = logging.getLogger(__name__)

Frame = Dict[str, Any]
Classifier = Callable[[Frame], List[StreamEvent]]

_LINE_BREAKS = re.compile(r"[\r\n]+")
_DATA_PREFIX = re.compile(r"^data:\s*")

# Wire codes used by the public API.
RESPONSE_TYPES: Dict[int, EventKind] = {
    0: EventKind.MESSAGE,
    2: EventKind.STATUS,
    8: EventKind.DONE,
    11: EventKind.META,
}
_KIND_NAMES = {kind.value: kind for kind in RESPONSE_TYPES.values()}

_FAILED_STATES = {"failed", "rejected"}


def parse_frame(line: str) -> Optional[Frame]:
    """Strip the SSE marker and decode one line. Blank lines yield ``None``."""
    text = _DATA_PREFIX.sub("", line.strip()).strip()
    if not text:
        return None
    try:
        frame = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedFrame(f"Undecodable frame: {text[:80]!r}") from exc
    if not isinstance(frame, dict):
        raise MalformedFrame(f"Frame is not an object: {text[:80]!r}")
    return frame


def extract_text(data: Any) -> str:
    """Flatten an A2A message (or plain string) to its text parts."""
    if not data:
        return ""
    if isinstance(data, str):
        return data
    parts = data.get("parts") if isinstance(data, dict) else None
    if isinstance(parts, list):
        return "".join(_text_parts(parts))
    return json.dumps(data)


def _text_parts(parts: List[Any]) -> List[str]:
    return [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]
    ]


def _lookup_kind(code: Any) -> Optional[EventKind]:
    if isinstance(code, bool):
        return None
    if isinstance(code, int):
        return RESPONSE_TYPES.get(code)
    if isinstance(code, str):
        if code.isdigit():
            return RESPONSE_TYPES.get(int(code))
        return _KIND_NAMES.get(code.lower())
    return None


def classify_response_frame(frame: Frame) -> List[StreamEvent]:
    """Classify a ``{ResponseType, Value}`` frame from the public API."""
    kind = _lookup_kind(frame.get("ResponseType", frame.get("type")))
    value = frame.get("Value", frame.get("value"))

    if kind is EventKind.MESSAGE:
        return [MessageEvent("" if value is None else str(value))]
    if kind is EventKind.STATUS:
        return [StatusEvent("" if value is None else str(value))]
    if kind is EventKind.META:
        if isinstance(value, dict):
            return [MetaEvent(value)]
        try:
            payload = json.loads(value)
        except (TypeError, json.JSONDecodeError) as exc:
            raise MalformedFrame("Meta value is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedFrame("Meta value is not an object")
        return [MetaEvent(payload)]
    if kind is EventKind.DONE:
        return [DoneEvent()]

    logger.debug("Dropping frame with unknown discriminator: %r", frame)
    return []


def _member(result: Frame, key: str) -> Frame:
    value = result.get(key) or {}
    if not isinstance(value, dict):
        raise MalformedFrame(f"A2A {key} is not an object")
    return value


def classify_a2a_frame(frame: Frame) -> List[StreamEvent]:
    """Classify one A2A JSON-RPC streaming response."""
    error = frame.get("error")
    if error:
        reason = error.get("message") if isinstance(error, dict) else str(error)
        return [ErrorEvent(reason or "Remote agent reported an error")]

    result = frame.get("result", frame)
    if not isinstance(result, dict):
        raise MalformedFrame("JSON-RPC result is not an object")

    kind = result.get("kind")
    if kind == "artifact-update":
        artifact = _member(result, "artifact")
        return [MessageEvent(text) for text in _text_parts(artifact.get("parts") or [])]
    if kind == "message":
        return [MessageEvent(text) for text in _text_parts(result.get("parts") or [])]
    if kind == "task":
        return [MetaEvent({"taskId": result.get("id"), "contextId": result.get("contextId")})]
    if kind == "status-update":
        status = _member(result, "status")
        state = str(status.get("state", ""))
        note = extract_text(status.get("message"))
        text = f"{state} {note}" if note else state
        events: List[StreamEvent] = [StatusEvent(text)]
        if result.get("final"):
            if state in _FAILED_STATES:
                events.append(ErrorEvent(note or f"Task {state}"))
            else:
                events.append(DoneEvent())
        return events

    logger.debug("Dropping A2A frame of kind %r", kind)
    return []


def _events_for(line: str, classify: Classifier) -> List[StreamEvent]:
    try:
        frame = parse_frame(line)
        if frame is None:
            return []
        return classify(frame)
    except MalformedFrame as exc:
        logger.debug("Dropping malformed frame: %s", exc)
        return []


async def _close(source: AsyncIterable[Any]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Closing stream source failed: %s", exc)


async def demux(
    source: AsyncIterable[Union[bytes, str]],
    classify: Classifier = classify_response_frame,
) -> AsyncIterator[StreamEvent]:
    """Yield classified events from ``source`` in arrival order.

    Exactly one terminal event (``DoneEvent`` or ``ErrorEvent``) is always
    yielded last. A source that ends without a done frame counts as success;
    a source that raises becomes an ``ErrorEvent``.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    iterator = source.__aiter__()
    buffer = ""
    try:
        while True:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as exc:  # noqa: BLE001
                logger.warning("Stream read failed: %s", exc)
                yield ErrorEvent(str(exc) or type(exc).__name__)
                return

            buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
            *lines, buffer = _LINE_BREAKS.split(buffer)
            for line in lines:
                for event in _events_for(line, classify):
                    yield event
                    if is_terminal(event):
                        return

        # The source is exhausted, so the last fragment is complete.
        buffer += decoder.decode(b"", final=True)
        for event in _events_for(buffer, classify):
            yield event
            if is_terminal(event):
                return
        yield DoneEvent()
    finally:
        await _close(iterator)
