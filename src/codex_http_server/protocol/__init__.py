"""Wire protocol: tagged events and the flat message envelope."""

from .events import (
    ENVELOPE_KEYS,
    EVENT_TYPES,
    AgentMessageDeltaEvent,
    AgentMessageEvent,
    AgentReasoningDeltaEvent,
    AgentReasoningEvent,
    AgentReasoningRawContentDeltaEvent,
    AgentReasoningRawContentEvent,
    ErrorEvent,
    EventMsg,
    ExecCommandBeginEvent,
    ExecCommandEndEvent,
    SessionConfiguredEvent,
    ShutdownCompleteEvent,
    StreamErrorEvent,
    TaskCompleteEvent,
    TaskStartedEvent,
    TokenCountEvent,
    UserMessageEvent,
    is_incremental,
    is_terminal,
    parse_event,
)
from .message import Message, decode, encode

__all__ = [
    "ENVELOPE_KEYS",
    "EVENT_TYPES",
    "EventMsg",
    "parse_event",
    "is_incremental",
    "is_terminal",
    # Event kinds
    "UserMessageEvent",
    "AgentMessageEvent",
    "AgentMessageDeltaEvent",
    "AgentReasoningEvent",
    "AgentReasoningDeltaEvent",
    "AgentReasoningRawContentEvent",
    "AgentReasoningRawContentDeltaEvent",
    "TokenCountEvent",
    "TaskStartedEvent",
    "TaskCompleteEvent",
    "ErrorEvent",
    "StreamErrorEvent",
    "SessionConfiguredEvent",
    "ShutdownCompleteEvent",
    "ExecCommandBeginEvent",
    "ExecCommandEndEvent",
    # Envelope
    "Message",
    "encode",
    "decode",
]
