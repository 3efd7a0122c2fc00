"""Tagged event payloads.

Every payload carries a ``kind`` discriminator plus kind-specific fields.
Known kinds decode to their typed model; unknown kinds decode to a plain
``EventMsg`` that keeps all of its fields, so they survive a decode/encode
cycle unchanged.

Example:
    {"kind": "AgentMessage", "message": "hi there"}
    {"kind": "TaskComplete", "last_agent_message": "hi there"}
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from ..errors import MessageDecodeError

# Envelope keys that sit next to payload fields on the wire
ENVELOPE_KEYS = frozenset({"id", "routing_metadata", "work_dir"})


class EventMsg(BaseModel):
    """Base tagged event. Unknown kinds keep their extra fields."""

    model_config = ConfigDict(extra="allow")

    kind: str

    @model_validator(mode="after")
    def reject_envelope_keys(self) -> EventMsg:
        clash = ENVELOPE_KEYS.intersection(self.model_extra or {})
        if clash:
            raise ValueError(f"Event fields collide with envelope keys: {sorted(clash)}")
        return self


# =============================================================================
# Conversation Events
# =============================================================================


class UserMessageEvent(EventMsg):
    """Prompt text submitted by the user."""

    kind: Literal["UserMessage"] = "UserMessage"
    message: str
    images: list[str] | None = None


class AgentMessageEvent(EventMsg):
    """Complete message from the agent."""

    kind: Literal["AgentMessage"] = "AgentMessage"
    message: str


class AgentMessageDeltaEvent(EventMsg):
    """Incremental chunk of an agent message."""

    kind: Literal["AgentMessageDelta"] = "AgentMessageDelta"
    delta: str


class AgentReasoningEvent(EventMsg):
    kind: Literal["AgentReasoning"] = "AgentReasoning"
    text: str


class AgentReasoningDeltaEvent(EventMsg):
    kind: Literal["AgentReasoningDelta"] = "AgentReasoningDelta"
    delta: str


class AgentReasoningRawContentEvent(EventMsg):
    kind: Literal["AgentReasoningRawContent"] = "AgentReasoningRawContent"
    text: str


class AgentReasoningRawContentDeltaEvent(EventMsg):
    kind: Literal["AgentReasoningRawContentDelta"] = "AgentReasoningRawContentDelta"
    delta: str


class TokenCountEvent(EventMsg):
    """Token usage telemetry."""

    kind: Literal["TokenCount"] = "TokenCount"
    info: dict[str, Any] | None = None


# =============================================================================
# Task Lifecycle Events
# =============================================================================


class TaskStartedEvent(EventMsg):
    kind: Literal["TaskStarted"] = "TaskStarted"
    model_context_window: int | None = None


class TaskCompleteEvent(EventMsg):
    """The agent finished the submitted task."""

    kind: Literal["TaskComplete"] = "TaskComplete"
    last_agent_message: str | None = None


class ErrorEvent(EventMsg):
    """Terminal error for the current task."""

    kind: Literal["Error"] = "Error"
    message: str


class StreamErrorEvent(EventMsg):
    """Recoverable stream error (the task keeps running)."""

    kind: Literal["StreamError"] = "StreamError"
    message: str


class SessionConfiguredEvent(EventMsg):
    kind: Literal["SessionConfigured"] = "SessionConfigured"
    session_id: str
    model: str


class ShutdownCompleteEvent(EventMsg):
    kind: Literal["ShutdownComplete"] = "ShutdownComplete"


# =============================================================================
# Command Execution Events
# =============================================================================


class ExecCommandBeginEvent(EventMsg):
    kind: Literal["ExecCommandBegin"] = "ExecCommandBegin"
    call_id: str
    command: list[str]
    cwd: str


class ExecCommandEndEvent(EventMsg):
    kind: Literal["ExecCommandEnd"] = "ExecCommandEnd"
    call_id: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""


EVENT_TYPES: dict[str, type[EventMsg]] = {
    cls.model_fields["kind"].default: cls
    for cls in (
        UserMessageEvent,
        AgentMessageEvent,
        AgentMessageDeltaEvent,
        AgentReasoningEvent,
        AgentReasoningDeltaEvent,
        AgentReasoningRawContentEvent,
        AgentReasoningRawContentDeltaEvent,
        TokenCountEvent,
        TaskStartedEvent,
        TaskCompleteEvent,
        ErrorEvent,
        StreamErrorEvent,
        SessionConfiguredEvent,
        ShutdownCompleteEvent,
        ExecCommandBeginEvent,
        ExecCommandEndEvent,
    )
}

# High-frequency partial updates and telemetry
INCREMENTAL_KINDS = frozenset(
    {
        "AgentMessageDelta",
        "AgentReasoningDelta",
        "AgentReasoningRawContentDelta",
        "TokenCount",
    }
)

TERMINAL_KINDS = frozenset({"TaskComplete", "Error"})


def parse_event(data: dict[str, Any]) -> EventMsg:
    """Validate a payload dict into its event model.

    Args:
        data: Payload fields including the ``kind`` discriminator

    Returns:
        Typed event for known kinds, plain EventMsg otherwise

    Raises:
        MessageDecodeError: If ``kind`` is missing or fields are invalid
    """
    kind = data.get("kind")
    if not isinstance(kind, str):
        raise MessageDecodeError("Event payload requires a string 'kind' field")

    event_cls = EVENT_TYPES.get(kind, EventMsg)
    try:
        return event_cls.model_validate(data)
    except ValidationError as e:
        raise MessageDecodeError(f"Invalid {kind} event: {e}") from e


def is_incremental(event: EventMsg) -> bool:
    """Check if the event is a delta or telemetry update."""
    return event.kind in INCREMENTAL_KINDS


def is_terminal(event: EventMsg) -> bool:
    """Check if the event ends the current task."""
    return event.kind in TERMINAL_KINDS
