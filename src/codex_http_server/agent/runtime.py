"""Collaborator boundary for the agent runtime.

The agent runtime that actually produces events lives outside this
package. AgentHandler only relies on these protocols:
- ConversationManager.new_conversation(config) -> Conversation
- Conversation.submit(op)
- Conversation.next_event() -> EventMsg (suspends until available)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..protocol.events import EventMsg


class ApprovalPolicy(str, Enum):
    """When the agent must ask before running commands."""

    UNTRUSTED = "untrusted"
    ON_FAILURE = "on-failure"
    ON_REQUEST = "on-request"
    NEVER = "never"


class SandboxPolicy(str, Enum):
    """Filesystem/network restrictions for agent commands."""

    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"


@dataclass
class AgentConfig:
    """Per-conversation configuration handed to the runtime."""

    cwd: Path = field(default_factory=Path.cwd)
    approval_policy: ApprovalPolicy = ApprovalPolicy.ON_REQUEST
    sandbox_policy: SandboxPolicy = SandboxPolicy.WORKSPACE_WRITE
    model: str | None = None


@dataclass(frozen=True)
class InputItem:
    """One item of user input."""

    type: str
    text: str | None = None

    @classmethod
    def from_text(cls, text: str) -> InputItem:
        return cls(type="text", text=text)


@dataclass(frozen=True)
class UserInput:
    """Operation submitting user input to a conversation."""

    items: list[InputItem]


@runtime_checkable
class Conversation(Protocol):
    """A running agent conversation."""

    async def submit(self, op: UserInput) -> None:
        """Submit an operation to the conversation."""
        ...

    async def next_event(self) -> EventMsg:
        """Wait for the next event produced by the conversation."""
        ...


@runtime_checkable
class ConversationManager(Protocol):
    """Creates conversations. Shared across concurrent requests."""

    async def new_conversation(self, config: AgentConfig) -> Conversation:
        """Create and start a new conversation."""
        ...
