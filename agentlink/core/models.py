"""Core data models shared across the client toolkit."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class EventKind(str, Enum):
    """Classified category of a stream frame."""

    MESSAGE = "message"
    STATUS = "status"
    META = "meta"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Remote agent as published by a directory service."""

    id: str
    name: str
    url: str
    description: Optional[str] = None
    capabilities: Tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], *, url: Optional[str] = None) -> AgentDescriptor:
        skills = payload.get("capabilities") or payload.get("skills") or ()
        capabilities = tuple(
            skill.get("name", "") if isinstance(skill, dict) else str(skill) for skill in skills
        )
        return cls(
            id=str(payload.get("id") or payload.get("name") or ""),
            name=str(payload.get("name") or payload.get("id") or ""),
            url=url or str(payload.get("url") or ""),
            description=payload.get("description"),
            capabilities=capabilities,
        )


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """Incremental text fragment."""

    text: str
    kind: EventKind = field(default=EventKind.MESSAGE, init=False)


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """Human-readable lifecycle note."""

    text: str
    kind: EventKind = field(default=EventKind.STATUS, init=False)


@dataclass(frozen=True, slots=True)
class MetaEvent:
    """Structured out-of-band data, e.g. a created task identifier."""

    payload: Dict[str, Any]
    kind: EventKind = field(default=EventKind.META, init=False)


@dataclass(frozen=True, slots=True)
class DoneEvent:
    """Terminal event for a stream that completed normally."""

    kind: EventKind = field(default=EventKind.DONE, init=False)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Terminal event for a stream that ended abnormally."""

    reason: str
    kind: EventKind = field(default=EventKind.ERROR, init=False)


StreamEvent = Union[MessageEvent, StatusEvent, MetaEvent, DoneEvent, ErrorEvent]

TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
