"""Agent-backed message handler.

Runs one agent conversation per request and streams its events:
1. Extract the prompt from a UserMessage or AgentMessage request
2. Apply per-request config (working directory, approval/sandbox policy)
3. Bootstrap workspace files, create the conversation, submit the prompt
4. Return the conversation's events wrapped in a SessionStream
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

from ..errors import HandlerError
from ..handler import EventStream, HandlerResult
from ..protocol.events import AgentMessageEvent, UserMessageEvent
from ..protocol.message import Message
from ..session import SessionStream
from .bootstrap import ensure_workspace_files
from .runtime import (
    AgentConfig,
    ApprovalPolicy,
    ConversationManager,
    InputItem,
    SandboxPolicy,
    UserInput,
)

logger = logging.getLogger(__name__)


class AgentHandler:
    """Handler that streams a fresh agent conversation per request."""

    def __init__(
        self,
        manager: ConversationManager,
        config: AgentConfig | None = None,
        *,
        dangerously_bypass_approvals_and_sandbox: bool = False,
    ) -> None:
        self.manager = manager
        self.config = config or AgentConfig()
        self.dangerously_bypass_approvals_and_sandbox = dangerously_bypass_approvals_and_sandbox

    def _extract_prompt(self, request: Message) -> str:
        event = request.payload
        if isinstance(event, UserMessageEvent):
            logger.info(f"Received UserMessage: {event.message}")
            return event.message
        if isinstance(event, AgentMessageEvent):
            logger.info(f"Received AgentMessage: {event.message}")
            return event.message

        logger.error(f"Invalid request event kind: {event.kind}")
        raise HandlerError(
            f"Invalid request: expected UserMessage or AgentMessage event, got {event.kind}"
        )

    def build_config(self, request: Message) -> AgentConfig:
        """Apply request-specific overrides to a copy of the base config."""
        config = replace(self.config)

        if request.routing_metadata:
            logger.info(f"Using working directory: {request.routing_metadata}")
            config.cwd = Path(request.routing_metadata)

        if self.dangerously_bypass_approvals_and_sandbox:
            logger.info("Bypassing approvals and sandbox (dangerous mode enabled)")
            config.approval_policy = ApprovalPolicy.NEVER
            config.sandbox_policy = SandboxPolicy.DANGER_FULL_ACCESS

        return config

    async def handle(self, request: Message) -> HandlerResult:
        logger.info(f"Running Codex session for request: id={request.id!r}")
        logger.debug(f"Received event kind: {request.payload.kind}")

        prompt = self._extract_prompt(request)
        config = self.build_config(request)
        await asyncio.to_thread(ensure_workspace_files, config.cwd)

        try:
            conversation = await self.manager.new_conversation(config)
        except Exception as e:
            raise HandlerError(f"Failed to create Codex conversation: {e}") from e

        try:
            await conversation.submit(UserInput(items=[InputItem.from_text(prompt)]))
        except Exception as e:
            raise HandlerError(f"Failed to submit initial prompt: {e}") from e

        return EventStream(
            SessionStream(
                conversation,
                request_id=request.id,
                routing_metadata=request.routing_metadata,
            )
        )
