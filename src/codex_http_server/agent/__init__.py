"""Agent-backed handler and the agent runtime boundary."""

from .bootstrap import AGENT_MD_CONTENT, ensure_workspace_files
from .handler import AgentHandler
from .loader import load_manager
from .runtime import (
    AgentConfig,
    ApprovalPolicy,
    Conversation,
    ConversationManager,
    InputItem,
    SandboxPolicy,
    UserInput,
)

__all__ = [
    "AgentHandler",
    "AgentConfig",
    "ApprovalPolicy",
    "SandboxPolicy",
    "Conversation",
    "ConversationManager",
    "InputItem",
    "UserInput",
    "AGENT_MD_CONTENT",
    "ensure_workspace_files",
    "load_manager",
]
