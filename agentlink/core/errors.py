"""Exception hierarchy raised by the toolkit."""
from __future__ import annotations

from typing import Optional


class AgentLinkError(Exception):
    """Base class for every error the toolkit raises on purpose."""


class TransportError(AgentLinkError):
    """Non-2xx HTTP outcome."""

    def __init__(self, message: str, status_code: int, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PaymentRequiredError(TransportError):
    """A payment challenge that could not be satisfied."""

    def __init__(self, message: str, body: Optional[str] = None) -> None:
        super().__init__(message, 402, body)


class RequestTimeoutError(AgentLinkError, TimeoutError):
    """An attempt did not settle within its deadline."""

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"Request timed out after {timeout_ms:g} ms")
        self.timeout_ms = timeout_ms


class MalformedFrame(AgentLinkError):
    """A stream line could not be parsed. Never leaves the demultiplexer."""


class StreamError(AgentLinkError):
    """The remote signalled an error, or reading the stream failed."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class StepFailure(StreamError):
    """One orchestration step failed, aborting the rest of the plan."""

    def __init__(self, step: str, position: int, reason: str, completed_steps: int) -> None:
        super().__init__(reason)
        self.step = step
        self.position = position
        self.completed_steps = completed_steps

    def __str__(self) -> str:
        return f"Step {self.position} ({self.step}) failed: {self.reason}"


class UnsupportedPlanMode(AgentLinkError):
    """Plan declares a mode other than sequential."""

    def __init__(self, mode: str) -> None:
        super().__init__(f"Unsupported plan mode: {mode}")
        self.mode = mode


class PlanParseError(AgentLinkError):
    """Planner output is not a valid orchestration plan."""

    def __init__(self, detail: str, raw: str = "") -> None:
        super().__init__(f"Planner produced an invalid plan: {detail}")
        self.detail = detail
        self.raw = raw


class PlannerError(AgentLinkError):
    """The planning model could not be reached or refused the request."""
