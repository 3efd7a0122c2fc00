"""Load a ConversationManager from a ``module:attribute`` reference."""

from __future__ import annotations

import importlib
import inspect

from ..errors import ConfigError
from .runtime import ConversationManager


def load_manager(reference: str) -> ConversationManager:
    """Import ``module:attribute`` and return the conversation manager.

    If the attribute is a class or other callable (a factory), it is
    called without arguments.

    Raises:
        ConfigError: If the reference cannot be resolved
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid runtime reference {reference!r}: expected module:attribute")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Failed to import module {module_name}: {e}") from e

    try:
        target = getattr(module, attr)
    except AttributeError:
        raise ConfigError(f"Module {module_name} has no attribute {attr!r}") from None

    if inspect.isclass(target) or (callable(target) and not hasattr(target, "new_conversation")):
        manager = target()
    else:
        manager = target

    if not isinstance(manager, ConversationManager):
        raise ConfigError(f"{reference} did not produce a ConversationManager")
    return manager
